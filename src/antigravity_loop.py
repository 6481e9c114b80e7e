#!/usr/bin/env python3

import argparse
import asyncio
import json
import logging
import os
import sys

from auto_antigravity import AutoAntigravity
from cdp_errors import DiscoveryFailure
from constants import Constants
from detect_test_command import detect_test_command
from ide_launcher import start_ide

logger = logging.getLogger("antigravity_loop")


def _read_prompt(args) -> str:
    if args.prompt_file == '-':
        return sys.stdin.read()
    if args.prompt_file:
        with open(args.prompt_file, encoding='utf8') as f:
            return f.read()
    return args.prompt


async def _run_chat_command(args) -> dict:
    try:
        ide = await AutoAntigravity.create(
            port_start=args.port_start,
            port_end=args.port_end,
            host=args.host,
            command_timeout=args.timeout,
        )
    except DiscoveryFailure as e:
        logger.error(str(e))
        return {'success': False, 'error': str(e)}
    try:
        if args.command == 'status':
            return {'success': True, **await ide.status()}
        if args.command == 'inject':
            return await ide.inject_prompt(_read_prompt(args))
        if args.command == 'submit':
            return await ide.submit_prompt()
        if args.command == 'send':
            return await ide.send_prompt(_read_prompt(args))
        if args.command == 'accept':
            result = await ide.click_accept_buttons()
            return {'success': 'error' not in result, **result}
        raise ValueError(f"Unknown command {args.command}")
    finally:
        await ide.close()


def _run_detect_test(args) -> dict:
    detected = detect_test_command(args.workspace)
    if detected is None:
        return {'success': False, 'error': f'no test command detected in {args.workspace}'}
    return {'success': True, **detected}


def _run_launch(args) -> dict:
    try:
        process, port = start_ide(
            workspace_path=args.workspace,
            executable=args.executable,
            port_start=args.port_start,
            port_end=args.port_end,
        )
    except RuntimeError as e:
        logger.error(str(e))
        return {'success': False, 'error': str(e)}
    return {'success': True, 'pid': process.pid, 'port': port}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Drive the Antigravity agent panel over the remote debugging port')
    parser.add_argument('--output', '-o', type=str, default=None, help='Also write the JSON result to this file')
    parser.add_argument('--verbose', '-v', action='store_true')
    parser.add_argument('--host', type=str, default=Constants.HOST)
    parser.add_argument('--port-start', type=int, default=Constants.PORT_START)
    parser.add_argument('--port-end', type=int, default=Constants.PORT_END)
    parser.add_argument('--timeout', type=float, default=Constants.TIMEOUT_COMMAND, help='Per-command timeout in seconds')

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('status', help='Connect and report connection and helper state')
    for name, help_text in (('inject', 'Put a prompt into the chat input'),
                            ('send', 'Put a prompt into the chat input and submit it')):
        sub = commands.add_parser(name, help=help_text)
        source = sub.add_mutually_exclusive_group(required=True)
        source.add_argument('--prompt', '-p', type=str)
        source.add_argument('--prompt-file', '-f', type=str, help="File holding the prompt, '-' for stdin")
    commands.add_parser('submit', help='Click the chat submit button')
    commands.add_parser('accept', help='Click every visible accept/apply/keep button')

    detect = commands.add_parser('detect-test', help='Print the test command for a workspace')
    detect.add_argument('--workspace', '-w', type=str, default=os.getcwd())

    launch = commands.add_parser('launch', help='Start the IDE with remote debugging enabled')
    launch.add_argument('--workspace', '-w', type=str, default=None, help='Path to workspace or folder')
    launch.add_argument('--executable', '-e', type=str, default=Constants.IDE_EXECUTABLE)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if args.command == 'detect-test':
        output = _run_detect_test(args)
    elif args.command == 'launch':
        output = _run_launch(args)
    else:
        output = asyncio.run(_run_chat_command(args))

    print(json.dumps(output))
    if args.output:
        try:
            with open(args.output, 'w', encoding='utf8') as f:
                json.dump(output, f, indent=2)
            logger.info(f'Output written to {args.output}')
        except OSError as err:
            logger.error(f'Failed to write output to {args.output}: {err}')
    return 0 if output.get('success') else 1


if __name__ == '__main__':
    sys.exit(main())
