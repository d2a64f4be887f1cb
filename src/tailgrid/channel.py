"""WebSocket channel with reconnection and exponential backoff."""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

import websockets

from .errors import ChannelClosed

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class WebSocketChannel:
    """
    One long-lived WebSocket connection.

    Inbound text frames go to ``on_text``; ``on_open`` and ``on_close`` report
    connection changes so the session can fail pending requests and the
    coordinator can reload after a reconnect.
    """

    def __init__(
        self,
        url: str,
        on_text: Callable[[str], None],
        on_open: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 10.0,
    ):
        self.url = url
        self.on_text = on_text
        self.on_open = on_open
        self.on_close = on_close
        self.initial_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self.state = ConnectionState.DISCONNECTED
        self._websocket = None
        self._should_reconnect = True
        self._reconnect_delay = reconnect_delay
        self._send_tasks = set()

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self._websocket is not None

    def send(self, text: str) -> None:
        """
        Queue a frame for sending without blocking the caller.

        Raises:
            ChannelClosed: If there is no open connection
        """
        if not self.connected:
            raise ChannelClosed(f"not connected to {self.url}")
        task = asyncio.get_running_loop().create_task(self._send(self._websocket, text))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def run(self) -> None:
        """Connection loop; returns after stop()."""
        self._should_reconnect = True
        while self._should_reconnect:
            try:
                self.state = ConnectionState.CONNECTING
                logger.info(f"Connecting to {self.url}")
                async with websockets.connect(self.url, ping_interval=20, ping_timeout=10) as websocket:
                    self._websocket = websocket
                    self.state = ConnectionState.CONNECTED
                    self._reconnect_delay = self.initial_delay
                    logger.info(f"Connected to {self.url}")
                    if self.on_open:
                        self.on_open()

                    async for message in websocket:
                        if isinstance(message, bytes):
                            message = message.decode("utf-8", errors="replace")
                        self.on_text(message)

                self._closed("connection closed by server")
            except asyncio.CancelledError:
                self._closed("cancelled")
                raise
            except (OSError, websockets.WebSocketException) as e:
                self._closed(str(e) or type(e).__name__)

            if not self._should_reconnect:
                break
            self.state = ConnectionState.RECONNECTING
            logger.info(f"Reconnecting in {self._reconnect_delay:.1f}s")
            await asyncio.sleep(self._reconnect_delay)
            self._reconnect_delay = min(self._reconnect_delay * 2, self.max_reconnect_delay)

        self.state = ConnectionState.DISCONNECTED

    async def stop(self) -> None:
        self._should_reconnect = False
        if self._websocket is not None:
            await self._websocket.close()

    def _closed(self, reason: str) -> None:
        was_open = self._websocket is not None
        self._websocket = None
        self.state = ConnectionState.DISCONNECTED
        if was_open:
            logger.info(f"Disconnected from {self.url}: {reason}")
        else:
            logger.warning(f"Could not connect to {self.url}: {reason}")
        if self.on_close:
            self.on_close(reason)

    async def _send(self, websocket, text: str) -> None:
        try:
            await websocket.send(text)
        except websockets.ConnectionClosed as e:
            # The receive loop reports the close
            logger.debug(f"Send failed on closed connection: {e}")
