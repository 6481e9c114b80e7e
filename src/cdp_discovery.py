import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from constants import Constants

logger = logging.getLogger("CDPDiscovery")


@dataclass
class TargetDescriptor:
    """A connectable debugging target, as listed by the endpoint's HTTP API."""
    port: int
    id: str
    type: str
    title: str
    url: str
    web_socket_debugger_url: str

    @classmethod
    def from_json(cls, port: int, target: dict) -> 'TargetDescriptor':
        return cls(
            port=port,
            id=target.get('id', ''),
            type=target.get('type', ''),
            title=target.get('title', ''),
            url=target.get('url', ''),
            web_socket_debugger_url=target['webSocketDebuggerUrl'],
        )


def _matches_ide_signature(target: dict) -> bool:
    url = target.get('url') or ''
    title = target.get('title') or ''
    return Constants.TARGET_URL_SIGNATURE in url or Constants.TARGET_TITLE_SIGNATURE in title


def pick_target(targets: List[dict]) -> Optional[dict]:
    """Pick the IDE main window from a target list.

    Priority: page target matching the IDE window signature > any page target.
    Targets without a websocket URL (already attached elsewhere) are skipped.
    """
    pages = [
        t for t in targets
        if isinstance(t, dict) and t.get('type') == Constants.TARGET_TYPE_PAGE and t.get('webSocketDebuggerUrl')
    ]
    for target in pages:
        if _matches_ide_signature(target):
            return target
    return pages[0] if pages else None


def list_targets(port: int, host: str = Constants.HOST, timeout: float = Constants.TIMEOUT_DISCOVERY_PROBE) -> Optional[List[dict]]:
    """Fetch the target list from one port. Returns None if nothing parseable answers."""
    url = f"http://{host}:{port}{Constants.DISCOVERY_PATH}"
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        targets = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.debug(f"No debugging endpoint on port {port}: {type(e).__name__}: {e}")
        return None
    if not isinstance(targets, list):
        logger.debug(f"Port {port} answered with a non-list payload, ignoring")
        return None
    return targets


def _probe_range(port_start: int, port_end: int, host: str, timeout: float) -> Optional[TargetDescriptor]:
    for port in range(port_start, port_end + 1):
        targets = list_targets(port, host=host, timeout=timeout)
        if targets is None:
            continue
        target = pick_target(targets)
        if target is None:
            logger.debug(f"Port {port} has {len(targets)} targets but no usable page")
            continue
        logger.info(f"Found debugging endpoint on port {port}: {target.get('title')!r}")
        return TargetDescriptor.from_json(port, target)
    return None


async def find_available_endpoint(
    port_start: int = Constants.PORT_START,
    port_end: int = Constants.PORT_END,
    host: str = Constants.HOST,
    timeout: float = Constants.TIMEOUT_DISCOVERY_PROBE,
) -> Optional[TargetDescriptor]:
    """Probe each port in the inclusive range once; first usable target wins.

    Returns None when no port answers. That is an expected outcome (IDE not
    started with debugging enabled), so the caller decides whether to retry.
    """
    logger.debug(f"Probing ports {port_start}-{port_end} on {host}...")
    # requests is blocking; keep the event loop free while probing.
    return await asyncio.to_thread(_probe_range, port_start, port_end, host, timeout)


async def find_available_port(
    port_start: int = Constants.PORT_START,
    port_end: int = Constants.PORT_END,
    host: str = Constants.HOST,
    timeout: float = Constants.TIMEOUT_DISCOVERY_PROBE,
) -> Optional[int]:
    descriptor = await find_available_endpoint(port_start, port_end, host=host, timeout=timeout)
    return descriptor.port if descriptor else None
