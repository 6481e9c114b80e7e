import asyncio
import json
import logging
from typing import Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from cdp_errors import TransportFailure
from constants import Constants

logger = logging.getLogger("CDPTransport")

MessageHandler = Callable[[dict], None]
CloseHandler = Callable[[Optional[BaseException]], None]


class CDPTransport:
    """Websocket channel to one debugging target.

    Frames outbound commands as JSON text and hands every decoded inbound
    object to ``on_message``. ``on_close`` fires exactly once when the
    channel goes away, with the error that killed it (None on a clean close).
    """

    def __init__(self, on_message: MessageHandler, on_close: CloseHandler):
        self._on_message = on_message
        self._on_close = on_close
        self._ws: Optional[ClientConnection] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._close_notified = False

    @property
    def socket(self) -> Optional[ClientConnection]:
        return self._ws

    @property
    def is_open(self) -> bool:
        return (
            self._ws is not None
            and self._ws.state is State.OPEN
            and self._reader_task is not None
            and not self._reader_task.done()
        )

    async def open(self, url: str, timeout: float = Constants.TIMEOUT_SOCKET_OPEN):
        if self._ws is not None:
            raise TransportFailure("Transport already opened")
        logger.debug(f"Opening websocket to {url}")
        try:
            # Evaluation results (DOM dumps) can be large; do not cap frame size.
            self._ws = await connect(url, open_timeout=timeout, max_size=None, ping_interval=None)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise TransportFailure(f"Failed to open websocket {url}: {type(e).__name__}: {e}") from e
        self._reader_task = asyncio.create_task(self._read_loop(), name="cdp_transport_reader")

    async def send(self, message: dict):
        if not self.is_open:
            raise TransportFailure("Websocket is not open")
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportFailure(f"Websocket closed while sending: {e}") from e

    async def close(self):
        ws, reader = self._ws, self._reader_task
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"Error closing websocket: {e}")
        if reader is not None and reader is not asyncio.current_task():
            try:
                await reader
            except asyncio.CancelledError:
                pass
        self._notify_closed(None)

    async def _read_loop(self):
        error: Optional[BaseException] = None
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except (TypeError, ValueError) as e:
                    error = TransportFailure(f"Malformed frame: {e}")
                    break
                if not isinstance(message, dict):
                    error = TransportFailure(f"Malformed frame: expected an object, got {type(message).__name__}")
                    break
                self._on_message(message)
        except ConnectionClosed as e:
            error = TransportFailure(f"Websocket closed: {e}")
        except Exception as e:
            logger.exception("Unexpected error in websocket reader")
            error = TransportFailure(f"Websocket reader failed: {type(e).__name__}: {e}")
        if error is not None:
            logger.warning(f"Transport invalidated: {error}")
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Error closing websocket after failure: {e}")
        self._notify_closed(error)

    def _notify_closed(self, error: Optional[BaseException]):
        if self._close_notified:
            return
        self._close_notified = True
        self._on_close(error)
