import logging
import socket
import subprocess
import time
from typing import List, Optional

import requests

from constants import Constants

logger = logging.getLogger("IDELauncher")


def is_port_in_use(port: int, host: str = Constants.HOST) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def find_free_port(port_start: int = Constants.PORT_START, port_end: int = Constants.PORT_END,
                   host: str = Constants.HOST) -> Optional[int]:
    for port in range(port_start, port_end + 1):
        if is_port_in_use(port, host):
            logger.info(f"Port {port} is already in use, trying next...")
            continue
        return port
    return None


def build_ide_args(port: int, workspace_path: Optional[str] = None, user_data_dir: Optional[str] = None) -> List[str]:
    args = [f"--remote-debugging-port={port}"]
    if user_data_dir:
        args.append(f"--user-data-dir={user_data_dir}")
    if workspace_path:
        args.append(workspace_path)
    return args


def launch_ide(port: int, workspace_path: Optional[str] = None, executable: str = Constants.IDE_EXECUTABLE,
               user_data_dir: Optional[str] = None) -> subprocess.Popen:
    """Start the IDE with remote debugging enabled on ``port``."""
    args = [executable] + build_ide_args(port, workspace_path, user_data_dir)
    logger.debug(f"Executing IDE: {' '.join(args)}")
    try:
        # The IDE outlives this process, so nothing is left reading its pipes.
        return subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        raise RuntimeError(f"Failed to start {executable}: {e}") from e


def wait_for_debug_port(port: int, host: str = Constants.HOST,
                        iterations: int = Constants.TIMEOUT_IDE_START_ITERATIONS,
                        sleep: float = Constants.TIMEOUT_IDE_START_SLEEP,
                        process: Optional[subprocess.Popen] = None) -> dict:
    """Poll ``/json/version`` until the debugging endpoint answers.

    Returns the version record. Raises RuntimeError if the endpoint never
    comes up or the process exits first.
    """
    logger.debug(f"Waiting for debugging port {port}...")
    url = f"http://{host}:{port}{Constants.VERSION_PATH}"
    for _ in range(iterations):
        if process is not None and process.poll() is not None:
            raise RuntimeError(f"IDE exited with code {process.returncode} before port {port} was ready")
        try:
            response = requests.get(url, timeout=Constants.TIMEOUT_DISCOVERY_PROBE)
            if response.ok:
                logger.debug("IDE debugging port is ready")
                return response.json()
        except (requests.RequestException, ValueError):
            pass
        time.sleep(sleep)
    raise RuntimeError(f"IDE failed to start or debugging port {port} is not accessible.")


def terminate(process: subprocess.Popen):
    if process.poll() is not None:
        return
    logger.warning('Terminating IDE process...')
    process.terminate()
    try:
        process.wait(timeout=Constants.TERMINATE_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning('IDE process did not exit after SIGTERM, sending SIGKILL...')
        process.kill()
        process.wait()


def start_ide(workspace_path: Optional[str] = None, executable: str = Constants.IDE_EXECUTABLE,
              port_start: int = Constants.PORT_START, port_end: int = Constants.PORT_END,
              user_data_dir: Optional[str] = None) -> tuple:
    """Launch the IDE on the first free port in range and wait until it is debuggable.

    Returns ``(process, port)``.
    """
    port = find_free_port(port_start, port_end)
    if port is None:
        raise RuntimeError(f"No available port found for remote debugging between {port_start} and {port_end}.")
    logger.info(f"Launching {executable} with remote debugging on port {port}...")
    process = launch_ide(port, workspace_path, executable, user_data_dir)
    try:
        wait_for_debug_port(port, process=process)
    except RuntimeError:
        terminate(process)
        raise
    return process, port
