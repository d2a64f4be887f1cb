"""The materialized window of display lines."""

import logging
from typing import Callable, List, Optional, Sequence

from .errors import OutOfOrderAppend
from .protocol import DisplayLine, LogWindow

# Configure logger
logger = logging.getLogger(__name__)


class StoreChange:
    """Describes one mutation of the store, passed to listeners."""

    RESET = "reset"
    REPLACE = "replace"
    APPEND = "append"
    FILL = "fill"
    DONE = "done"

    def __init__(self, kind: str, previous_total: int, total: int):
        self.kind = kind
        self.previous_total = previous_total
        self.total = total

    @property
    def delta(self) -> int:
        return self.total - self.previous_total

    def __repr__(self) -> str:
        return f"StoreChange({self.kind}, {self.previous_total} -> {self.total})"


class LogWindowStore:
    """
    Holds the display lines of the current query generation.

    Lines are a contiguous slice of the display rows starting at
    ``row_offset``: the window adopted by the last ``replace``, moved or
    extended by ``fill`` in paged mode, and followed by lines appended from
    tail pushes when it reaches the last row. Every mutation is tagged with
    the generation it belongs to; mutations for any other generation are
    ignored.
    """

    def __init__(self):
        self._lines: List[DisplayLine] = []
        self._total = 0
        self._row_offset = 0
        self._generation = 0
        self._awaiting_replace = False
        self._done = False
        self._listeners: List[Callable[["LogWindowStore", StoreChange], None]] = []

    @property
    def lines(self) -> List[DisplayLine]:
        return self._lines

    @property
    def total_display_lines(self) -> int:
        return self._total

    @property
    def row_offset(self) -> int:
        """Display row of the first materialized line."""
        return self._row_offset

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def awaiting_replace(self) -> bool:
        return self._awaiting_replace

    @property
    def done(self) -> bool:
        """True once the server reported the end of the stream."""
        return self._done

    @property
    def last_logical_line(self) -> Optional[int]:
        return self._lines[-1].logical_line_number if self._lines else None

    @property
    def sparse(self) -> bool:
        """True if the window does not reach the last display row."""
        return self._row_offset + len(self._lines) < self._total

    def __len__(self) -> int:
        return self._total

    def line_at(self, row: int) -> Optional[DisplayLine]:
        """
        Get the line shown at a display row.

        Returns:
            The line, or None if the row is outside the materialized lines
        """
        index = row - self._row_offset
        if 0 <= index < len(self._lines):
            return self._lines[index]
        return None

    def subscribe(self, listener: Callable[["LogWindowStore", StoreChange], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[["LogWindowStore", StoreChange], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def reset(self, generation: Optional[int] = None) -> None:
        """
        Empty the store.

        Args:
            generation: New query generation. When given, appends are refused
                until the replacing window for that generation arrives.
        """
        previous_total = self._total
        self._lines = []
        self._total = 0
        self._row_offset = 0
        self._done = False
        self._awaiting_replace = generation is not None
        if generation is not None:
            self._generation = generation
        logger.debug(f"Reset store for generation {self._generation}")
        self._emit(StoreChange.RESET, previous_total)

    def replace(self, window: LogWindow, generation: Optional[int] = None) -> bool:
        """
        Adopt a freshly loaded window, discarding all prior lines.

        Returns:
            False if the window belongs to another generation and was ignored
        """
        if generation is not None and generation != self._generation:
            logger.debug(f"Ignoring stale window for generation {generation} (current {self._generation})")
            return False

        previous_total = self._total
        self._lines = list(window.lines)
        self._total = max(window.total_display_lines, len(window.lines))
        self._row_offset = window.row_offset
        self._awaiting_replace = False
        logger.debug(f"Replaced window: {len(self._lines)} of {self._total} lines at row {self._row_offset}")
        self._emit(StoreChange.REPLACE, previous_total)
        return True

    def append(self, new_lines: Sequence[DisplayLine], generation: Optional[int] = None) -> bool:
        """
        Extend the window with lines pushed by the server.

        Returns:
            False if the append was rejected as stale

        Raises:
            OutOfOrderAppend: If logical line numbers would decrease
        """
        if self._awaiting_replace:
            logger.warning(f"Rejecting append of {len(new_lines)} lines while waiting for a reload")
            return False
        if generation is not None and generation != self._generation:
            logger.warning(f"Rejecting append for stale generation {generation} (current {self._generation})")
            return False
        if not new_lines:
            return True

        floor = self.last_logical_line
        for line in new_lines:
            if floor is not None and line.logical_line_number < floor:
                raise OutOfOrderAppend(floor, line.logical_line_number)
            floor = line.logical_line_number

        previous_total = self._total
        if self.sparse:
            # Rows past the materialized prefix are fetched by page when needed
            logger.debug(f"Counting {len(new_lines)} appended lines past a sparse window")
        else:
            self._lines.extend(new_lines)
        self._total += len(new_lines)
        self._emit(StoreChange.APPEND, previous_total)
        return True

    def fill(self, window: LogWindow, generation: Optional[int] = None) -> bool:
        """
        Merge a page of the current generation into the window.

        A page that overlaps or touches the materialized lines extends them;
        any other page replaces them, so the window can sit at any row.

        Returns:
            False if the page was ignored
        """
        if generation is not None and generation != self._generation:
            logger.debug(f"Ignoring stale page for generation {generation} (current {self._generation})")
            return False
        if self._awaiting_replace:
            return self.replace(window, generation)
        if not window.lines:
            return False

        previous_total = self._total
        page_start = window.row_offset
        page_end = page_start + len(window.lines)
        window_end = self._row_offset + len(self._lines)

        if self._row_offset <= page_start <= window_end:
            start = page_start - self._row_offset
            self._lines[start : start + len(window.lines)] = window.lines
        elif page_start < self._row_offset <= page_end:
            self._lines = list(window.lines) + self._lines[page_end - self._row_offset :]
            self._row_offset = page_start
        else:
            logger.debug(f"Moving window to rows {page_start}-{page_end}")
            self._lines = list(window.lines)
            self._row_offset = page_start

        # Tail pushes may have been counted since the server computed its total
        self._total = max(self._total, window.total_display_lines, self._row_offset + len(self._lines))
        self._emit(StoreChange.FILL, previous_total)
        return True

    def mark_done(self, generation: Optional[int] = None) -> bool:
        if generation is not None and generation != self._generation:
            return False
        self._done = True
        self._emit(StoreChange.DONE, self._total)
        return True

    def _emit(self, kind: str, previous_total: int) -> None:
        change = StoreChange(kind, previous_total, self._total)
        for listener in list(self._listeners):
            listener(self, change)
