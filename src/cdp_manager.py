import asyncio
import enum
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from cdp_discovery import TargetDescriptor, find_available_endpoint
from cdp_errors import CommandError, EvaluationFailure, ProtocolTimeout, TransportFailure
from cdp_transport import CDPTransport
from constants import Constants
from page_helper import build_installer_script

logger = logging.getLogger("CDPManager")


class ConnectionState(enum.Enum):
    DISCONNECTED = 'disconnected'
    DISCOVERING = 'discovering'
    CONNECTING = 'connecting'
    ACTIVE = 'active'
    DISPOSED = 'disposed'


@dataclass
class PendingCall:
    id: int
    method: str
    future: asyncio.Future
    created_at: float = field(default_factory=time.monotonic)


class CDPManager:
    """Owns one debugging connection to the IDE window.

    Commands are matched to responses purely by id, so any number of calls
    may be in flight at once. A lost connection is never re-established
    here; callers re-run ``try_connect``.
    """

    def __init__(
        self,
        port_start: int = Constants.PORT_START,
        port_end: int = Constants.PORT_END,
        host: str = Constants.HOST,
        command_timeout: float = Constants.TIMEOUT_COMMAND,
        discovery_timeout: float = Constants.TIMEOUT_DISCOVERY_PROBE,
        open_timeout: float = Constants.TIMEOUT_SOCKET_OPEN,
    ):
        self.port_start = port_start
        self.port_end = port_end
        self.host = host
        self.command_timeout = command_timeout
        self.discovery_timeout = discovery_timeout
        self.open_timeout = open_timeout
        self.port: Optional[int] = None
        self.target_title: Optional[str] = None
        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[CDPTransport] = None
        self._pending: Dict[int, PendingCall] = {}
        self._ids = itertools.count(1)
        self._connect_lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState):
        if state is not self._state:
            logger.debug(f"Connection state {self._state.value} -> {state.value}")
            self._state = state

    @property
    def is_connector_active(self) -> bool:
        return self._state is ConnectionState.ACTIVE and self._transport is not None and self._transport.is_open

    @property
    def connected_socket(self):
        if self._transport is None or not self._transport.is_open:
            return None
        return self._transport.socket

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def try_connect(self) -> bool:
        """Discover the IDE, open the websocket and install the page helper.

        Returns False on any failure; never raises for an unreachable IDE.
        """
        async with self._connect_lock:
            if self.is_connector_active:
                return True
            if self._transport is not None:
                # Stale transport from a dropped connection.
                await self._teardown(TransportFailure("Reconnecting"))

            self._set_state(ConnectionState.DISCOVERING)
            descriptor = await find_available_endpoint(
                self.port_start, self.port_end, host=self.host, timeout=self.discovery_timeout
            )
            if self._disposed_while("discovering"):
                return False
            if descriptor is None:
                logger.info(f"No debugging endpoint on ports {self.port_start}-{self.port_end}. "
                            f"Is the IDE running with --remote-debugging-port?")
                self._set_state(ConnectionState.DISCONNECTED)
                return False

            if not await self._open(descriptor):
                return False

            try:
                installed = await self.install_helper()
            except (TransportFailure, ProtocolTimeout, CommandError, EvaluationFailure) as e:
                logger.warning(f"Failed to install page helper: {e}")
                installed = False
            if self._disposed_while("installing the page helper"):
                # dispose() already tore the transport down.
                return False
            if not installed:
                await self._teardown(TransportFailure("Page helper installation failed"))
                self._set_state(ConnectionState.DISCONNECTED)
                return False

            logger.info(f"Connected to {descriptor.title!r} on port {descriptor.port}")
            return True

    def _disposed_while(self, step: str) -> bool:
        if self._state is ConnectionState.DISPOSED:
            logger.debug(f"Disposed while {step}, abandoning connection attempt")
            return True
        return False

    async def _open(self, descriptor: TargetDescriptor) -> bool:
        self._set_state(ConnectionState.CONNECTING)
        transport = CDPTransport(self._handle_message, self._handle_transport_closed)
        try:
            await transport.open(descriptor.web_socket_debugger_url, timeout=self.open_timeout)
        except TransportFailure as e:
            logger.warning(str(e))
            if self._state is not ConnectionState.DISPOSED:
                self._set_state(ConnectionState.DISCONNECTED)
            return False
        if self._disposed_while("opening the websocket"):
            await transport.close()
            return False
        self._transport = transport
        self.port = descriptor.port
        self.target_title = descriptor.title
        self._set_state(ConnectionState.ACTIVE)
        return True

    async def install_helper(self) -> bool:
        """(Re)install the helper namespace in the page. Idempotent."""
        response = await self.evaluate(build_installer_script())
        if 'exceptionDetails' in response:
            raise EvaluationFailure(describe_exception(response['exceptionDetails']))
        value = response.get('result', {}).get('value')
        installed = isinstance(value, dict) and value.get('installed') is True
        if installed:
            logger.debug(f"Page helper v{value.get('version')} installed")
        return installed

    async def evaluate(self, expression: str, timeout: Optional[float] = None) -> dict:
        return await self.send_command('Runtime.evaluate', {
            'expression': expression,
            'returnByValue': True,
            'awaitPromise': True,
        }, timeout=timeout)

    async def send_command(self, method: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> dict:
        """Send one command and wait for the response carrying its id."""
        if self._state is not ConnectionState.ACTIVE or self._transport is None:
            raise TransportFailure(f"Not connected (state: {self._state.value})")
        timeout = self.command_timeout if timeout is None else timeout

        call_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = PendingCall(id=call_id, method=method, future=future)
        try:
            await self._transport.send({'id': call_id, 'method': method, 'params': params or {}})
            response = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise ProtocolTimeout(method, timeout) from None
        finally:
            self._pending.pop(call_id, None)

        if 'error' in response:
            raise CommandError(method, response['error'])
        return response.get('result', {})

    def _handle_message(self, message: dict):
        call_id = message.get('id')
        pending = self._pending.get(call_id) if isinstance(call_id, int) else None
        if pending is None:
            # Events and replies to calls that already timed out.
            return
        if not pending.future.done():
            pending.future.set_result(message)

    def _handle_transport_closed(self, error: Optional[BaseException]):
        if self._state is ConnectionState.DISPOSED:
            return
        reason = error or TransportFailure("Connection closed")
        logger.warning(f"Connection lost: {reason}")
        self._reject_pending(reason)
        self._set_state(ConnectionState.DISCONNECTED)

    def _reject_pending(self, reason: BaseException):
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if not call.future.done():
                call.future.set_exception(reason)
        if pending:
            logger.debug(f"Rejected {len(pending)} pending calls: {reason}")

    async def _teardown(self, reason: BaseException):
        transport, self._transport = self._transport, None
        self._reject_pending(reason)
        if transport is not None:
            await transport.close()

    async def dispose(self):
        """Close the connection and fail every outstanding call. Safe to repeat."""
        if self._state is ConnectionState.DISPOSED and self._transport is None:
            return
        self._set_state(ConnectionState.DISPOSED)
        await self._teardown(TransportFailure("CDP connection disposed"))
        self.port = None
        self.target_title = None
        logger.debug("CDP connection disposed")


def describe_exception(details: dict) -> str:
    """Readable message from a Runtime.evaluate ``exceptionDetails`` record."""
    exception = details.get('exception') or {}
    return exception.get('description') or details.get('text') or 'Evaluation threw an exception'
