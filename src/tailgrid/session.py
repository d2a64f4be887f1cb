"""Request/response correlation over a single asynchronous channel."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .errors import ChannelClosed, ProtocolError, RemoteError, StaleResponse
from .protocol import DonePush, Method, Response, TailPush, UnknownFrame, decode_frame, encode_request

# Configure logger
logger = logging.getLogger(__name__)


class PendingRequest:
    """A request waiting for its response."""

    def __init__(
        self,
        request_id: int,
        kind: Method,
        resolve: Optional[Callable[[Any], None]] = None,
        reject: Optional[Callable[[Exception], None]] = None,
        epoch: int = 0,
    ):
        self.id = request_id
        self.kind = kind
        self.resolve = resolve
        self.reject = reject
        self.epoch = epoch
        # Set for requests made through call(); abandoning them fails the future
        self.awaited = False

    def __repr__(self) -> str:
        return f"PendingRequest(id={self.id}, kind={self.kind.value}, epoch={self.epoch})"


class RpcSession:
    """
    Correlates responses with requests and routes push notifications.

    One session owns one channel. Request ids come from a per-session counter
    that is never reset, so an id is never reused after a reconnect.
    """

    def __init__(self, transmit: Callable[[str], None]):
        """
        Initialize a session.

        Args:
            transmit: Hands one encoded frame to the channel. May raise ChannelClosed.
        """
        self._transmit = transmit
        self._next_id = 0
        self._epoch = 0
        self._pending: Dict[int, PendingRequest] = {}
        self._subscribers: Dict[Method, List[Callable]] = {}

    @property
    def epoch(self) -> int:
        """Number of channel losses seen by this session."""
        return self._epoch

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def send(
        self,
        method: Method,
        params: Optional[dict] = None,
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> int:
        """
        Send a request and register its pending entry.

        Returns:
            The id the request was sent with

        Raises:
            ChannelClosed: If the channel refused the frame
        """
        method = Method(method)
        request_id = self._next_id
        self._next_id += 1

        self._pending[request_id] = PendingRequest(request_id, method, on_result, on_error, self._epoch)
        try:
            self._transmit(encode_request(request_id, method, params))
        except ChannelClosed:
            del self._pending[request_id]
            raise
        logger.debug(f"Sent {method.value} request {request_id}")
        return request_id

    def call(self, method: Method, params: Optional[dict] = None) -> "asyncio.Future":
        """Send a request and return a future for its result."""
        future = asyncio.get_running_loop().create_future()

        def resolve(result):
            if not future.done():
                future.set_result(result)

        def reject(error):
            if not future.done():
                future.set_exception(error)

        request_id = self.send(method, params, resolve, reject)
        self._pending[request_id].awaited = True
        return future

    def abandon(self, request_id: int) -> bool:
        """Forget a pending request; its response will be discarded. Futures from call() fail with StaleResponse."""
        entry = self._pending.pop(request_id, None)
        if entry is not None:
            logger.debug(f"Abandoned {entry!r}")
            if entry.awaited:
                self._invoke(entry.reject, StaleResponse(f"Request {request_id} was abandoned"))
        return entry is not None

    def subscribe(self, method: Method, handler: Callable) -> None:
        """Register a handler for a push method."""
        self._subscribers.setdefault(Method(method), []).append(handler)

    def unsubscribe(self, method: Method, handler: Callable) -> None:
        handlers = self._subscribers.get(Method(method), [])
        if handler in handlers:
            handlers.remove(handler)

    def on_message(self, raw) -> None:
        """Decode one inbound frame and dispatch it."""
        try:
            frame = decode_frame(raw)
        except ProtocolError as e:
            logger.warning(f"Discarding malformed frame: {e}")
            return

        if isinstance(frame, Response):
            self._on_response(frame)
        elif isinstance(frame, TailPush):
            self._notify(Method.TAIL, frame.lines)
        elif isinstance(frame, DonePush):
            self._notify(Method.DONE)
        elif isinstance(frame, UnknownFrame):
            logger.warning(f"Discarding frame with unknown method {frame.method!r}")

    def connection_lost(self, reason: Optional[str] = None) -> None:
        """Fail every pending request with ChannelClosed."""
        pending = list(self._pending.values())
        self._pending.clear()
        self._epoch += 1
        logger.info(f"Channel closed ({reason or 'no reason'}), failing {len(pending)} pending requests")
        for entry in pending:
            if entry.reject is not None:
                self._invoke(entry.reject, ChannelClosed(reason or "channel closed"))

    def _on_response(self, frame: Response) -> None:
        entry = self._pending.pop(frame.id, None)
        if entry is None:
            logger.warning(f"Discarding response for unknown request id {frame.id}")
            return

        if frame.error is not None:
            error = RemoteError(frame.error.get("code", 0), str(frame.error.get("message", "")))
            logger.warning(f"{entry.kind.value} request {frame.id} failed: {error}")
            if entry.reject is not None:
                self._invoke(entry.reject, error)
            return

        logger.debug(f"Resolved {entry.kind.value} request {frame.id}")
        if entry.resolve is not None:
            self._invoke(entry.resolve, frame.result)

    def _notify(self, method: Method, *args) -> None:
        handlers = list(self._subscribers.get(method, []))
        if not handlers:
            logger.debug(f"No subscribers for {method.value} push")
        for handler in handlers:
            self._invoke(handler, *args)

    def _invoke(self, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Handler {callback!r} failed")
