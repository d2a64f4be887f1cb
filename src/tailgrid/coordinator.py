"""Query coordination: when to reload, and which results to trust."""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from .errors import ChannelClosed, OutOfOrderAppend, ProtocolError
from .geometry import Geometry
from .protocol import DisplayLine, LogWindow, Method, QueryParams
from .session import RpcSession
from .store import LogWindowStore

# Configure logger
logger = logging.getLogger(__name__)


class StreamMode:
    """The server sends an initial batch, then tail pushes until done."""

    name = "stream"
    paged = False

    def first_range(self, geometry: Geometry):
        return 0, None

    def page_size(self, geometry: Geometry) -> Optional[int]:
        return None


class PagedMode:
    """Every request names an explicit row range."""

    name = "paged"
    paged = True

    def __init__(self, page_size: Optional[int] = None, pages_per_screen: int = 4, start_at_end: bool = True):
        """
        Initialize a PagedMode.

        Args:
            page_size: Rows per request; derived from the viewport rows if None
            pages_per_screen: Screens of rows per request when derived
            start_at_end: Load the last page as soon as the first response gives the total
        """
        self._page_size = page_size
        self.pages_per_screen = pages_per_screen
        self.start_at_end = start_at_end

    def page_size(self, geometry: Geometry) -> int:
        if self._page_size:
            return self._page_size
        return max(1, geometry.rows * self.pages_per_screen)

    def first_range(self, geometry: Geometry):
        return 0, self.page_size(geometry)


class CoordinatorStatus:
    IDLE = "idle"
    LOADING = "loading"
    STREAMING = "streaming"
    DONE = "done"
    DISCONNECTED = "disconnected"


class QueryCoordinator:
    """
    Owns the query parameters and their generation counter.

    Every parameter change bumps the generation, resets the store, abandons
    requests of older generations and issues one replacing request. Results
    are applied only if they carry the current generation.
    """

    def __init__(self, session: RpcSession, store: LogWindowStore, mode=None):
        self.session = session
        self.store = store
        self.mode = mode or StreamMode()

        self._log_set: Optional[str] = None
        self._geometry: Optional[Geometry] = None
        self._filter: Optional[str] = None
        self._params: Optional[QueryParams] = None

        self._generation = 0
        # Generation whose first response has been applied; tail pushes belong to it
        self._stream_generation: Optional[int] = None
        # request id -> generation
        self._in_flight: Dict[int, int] = {}
        self._page_request: Optional[int] = None
        # Last rows asked for by the view, retried once a page lands
        self._wanted_rows: Optional[Tuple[int, int]] = None

        self._log_sets: List[str] = []
        self._log_set_listeners: List[Callable[[List[str]], None]] = []
        self._status_listeners: List[Callable[[str], None]] = []
        self._status = CoordinatorStatus.IDLE
        self._connected = True

        session.subscribe(Method.TAIL, self._on_tail)
        session.subscribe(Method.DONE, self._on_done)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def stream_generation(self) -> Optional[int]:
        return self._stream_generation

    @property
    def params(self) -> Optional[QueryParams]:
        return self._params

    @property
    def log_set(self) -> Optional[str]:
        return self._log_set

    @property
    def log_sets(self) -> List[str]:
        return list(self._log_sets)

    @property
    def filter_pattern(self) -> Optional[str]:
        return self._filter

    @property
    def geometry(self) -> Optional[Geometry]:
        return self._geometry

    @property
    def status(self) -> str:
        return self._status

    def on_log_sets(self, listener: Callable[[List[str]], None]) -> None:
        self._log_set_listeners.append(listener)

    def on_status(self, listener: Callable[[str], None]) -> None:
        self._status_listeners.append(listener)

    # Parameter inputs

    def set_log_set(self, name: Optional[str]) -> bool:
        if name == self._log_set:
            return False
        self._log_set = name
        return self._update_params()

    def commit_filter(self, text: Optional[str]) -> bool:
        """Apply filter text the user committed; an empty string clears the filter."""
        pattern = text if text else None
        if pattern == self._filter:
            return False
        self._filter = pattern
        return self._update_params()

    def set_geometry(self, geometry: Optional[Geometry]) -> bool:
        previous = self._geometry
        if geometry == previous:
            return False
        self._geometry = geometry
        if self._update_params():
            return True
        # Same columns; page size follows the rows in paged mode
        if self.mode.paged and geometry is not None and self._params is not None:
            if previous is None or previous.rows != geometry.rows:
                self.reload()
                return True
        return False

    def reload(self) -> None:
        """Start a new generation with the current parameters."""
        self._start_generation()

    # Channel lifecycle

    def on_channel_open(self) -> None:
        """The channel (re)connected: list log sets and reload."""
        self._connected = True
        logger.info("Channel open, refreshing log sets")
        self.refresh_log_sets()
        if self._params is not None:
            self.reload()
        else:
            self._set_status(CoordinatorStatus.IDLE)

    def on_channel_closed(self) -> None:
        self._connected = False
        self._in_flight.clear()
        self._page_request = None
        self._set_status(CoordinatorStatus.DISCONNECTED)

    def refresh_log_sets(self) -> Optional[int]:
        try:
            return self.session.send(Method.LIST, None, self._on_log_sets, self._on_list_error)
        except ChannelClosed:
            logger.info("Cannot list log sets, channel closed")
            return None

    # Paged mode

    def ensure_rows(self, start: int, end: int) -> Optional[int]:
        """
        Request a page covering rows [start, end] if they are not materialized.

        Only meaningful in paged mode; at most one page request is in flight.
        Pages hold ``page_size`` rows, or the requested rows if there are more.
        """
        if not self.mode.paged or self._params is None or self._geometry is None:
            return None
        self._wanted_rows = (start, end)
        if self.store.awaiting_replace or self._page_request is not None:
            return None
        end = min(end, self.store.total_display_lines - 1)
        if end < start:
            return None

        window_start = self.store.row_offset
        window_end = window_start + len(self.store.lines)
        if window_start <= start and end < window_end:
            return None

        # Only the rows outside the window are missing
        if window_start <= start < window_end:
            start = window_end
        elif window_start <= end < window_end:
            end = window_start - 1

        wanted = end - start + 1
        size = max(self.mode.page_size(self._geometry), wanted)
        if start == window_end:
            page_start = start
        elif end == window_start - 1:
            page_start = end + 1 - size
        else:
            page_start = start - (size - wanted) // 2
        page_start = max(0, min(page_start, self.store.total_display_lines - size))
        page_end = min(self.store.total_display_lines, page_start + size)

        self._page_request = self._send_logs(page_start, page_end)
        return self._page_request

    # Internals

    def _update_params(self) -> bool:
        params = None
        if self._geometry is not None:
            params = QueryParams(self._log_set, self._geometry.columns, self._filter)
        if params == self._params:
            return False
        logger.info(f"Query parameters changed: {self._params} -> {params}")
        self._params = params
        self._start_generation()
        return True

    def _start_generation(self) -> None:
        self._generation += 1
        self._stream_generation = None
        self.store.reset(self._generation)

        for request_id, generation in list(self._in_flight.items()):
            if generation != self._generation:
                self.session.abandon(request_id)
                del self._in_flight[request_id]
        self._page_request = None
        self._wanted_rows = None

        if self._params is None or self._params.log_set is None:
            self._set_status(CoordinatorStatus.IDLE)
            return

        start, end = self.mode.first_range(self._geometry)
        if self._send_logs(start, end) is not None:
            self._set_status(CoordinatorStatus.LOADING)

    def _send_logs(self, start: int, end: Optional[int]) -> Optional[int]:
        generation = self._generation
        holder = {}

        def on_result(result):
            self._in_flight.pop(holder.get("id"), None)
            self._on_logs(generation, holder.get("id"), result)

        def on_error(error):
            self._in_flight.pop(holder.get("id"), None)
            self._on_logs_error(generation, holder.get("id"), error)

        try:
            request_id = self.session.send(Method.LOGS, self._params.to_wire(start, end), on_result, on_error)
        except ChannelClosed:
            logger.info("Cannot load logs, channel closed")
            self._set_status(CoordinatorStatus.DISCONNECTED)
            return None
        holder["id"] = request_id
        self._in_flight[request_id] = generation
        return request_id

    def _on_logs(self, generation: int, request_id: Optional[int], result) -> None:
        page = request_id is not None and request_id == self._page_request
        if page:
            self._page_request = None
        if generation != self._generation:
            logger.debug(f"Discarding response {request_id} of stale generation {generation}")
            return
        try:
            window = LogWindow.from_wire(result)
        except ProtocolError as e:
            logger.warning(f"Discarding malformed logs result: {e}")
            return

        if self._stream_generation != generation:
            self.store.replace(window, generation)
            self._stream_generation = generation
            self._set_status(CoordinatorStatus.STREAMING)
            if self.mode.paged and self.mode.start_at_end and self.store.sparse:
                # A new view starts out tailing, so it needs the last page first
                last = self.store.total_display_lines - 1
                self.ensure_rows(last, last)
            return

        before = (self.store.row_offset, len(self.store.lines))
        self.store.fill(window, generation)
        moved = (self.store.row_offset, len(self.store.lines)) != before
        if page and moved and self._wanted_rows is not None:
            # Rows may have been asked for while this page was in flight
            self.ensure_rows(*self._wanted_rows)

    def _on_logs_error(self, generation: int, request_id: Optional[int], error: Exception) -> None:
        if request_id == self._page_request:
            self._page_request = None
        if generation != self._generation:
            return
        if isinstance(error, ChannelClosed):
            self._set_status(CoordinatorStatus.DISCONNECTED)
        else:
            logger.warning(f"Logs request {request_id} failed: {error}")
            self._set_status(CoordinatorStatus.IDLE)

    def _on_tail(self, lines: List[DisplayLine]) -> None:
        if self._stream_generation is None or self._stream_generation != self._generation:
            logger.debug(f"Discarding tail push of {len(lines)} lines for a superseded query")
            return
        try:
            self.store.append(lines, self._stream_generation)
        except OutOfOrderAppend as e:
            logger.warning(f"{e}, forcing a full reload")
            self.reload()

    def _on_done(self) -> None:
        if self._stream_generation is None or self._stream_generation != self._generation:
            return
        self.store.mark_done(self._stream_generation)
        self._set_status(CoordinatorStatus.DONE)

    def _on_log_sets(self, result) -> None:
        if not isinstance(result, list) or not all(isinstance(name, str) for name in result):
            logger.warning(f"Discarding malformed list result: {result!r}")
            return
        self._log_sets = list(result)
        logger.info(f"{len(self._log_sets)} log sets available")
        for listener in list(self._log_set_listeners):
            listener(self.log_sets)
        if self._log_set is None and self._log_sets:
            self.set_log_set(self._log_sets[0])

    def _on_list_error(self, error: Exception) -> None:
        logger.warning(f"Listing log sets failed: {error}")

    def _set_status(self, status: str) -> None:
        if not self._connected and status != CoordinatorStatus.DISCONNECTED:
            return
        if status == self._status:
            return
        self._status = status
        for listener in list(self._status_listeners):
            listener(status)
