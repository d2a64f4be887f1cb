"""Tailing: keep the viewport pinned to the newest line while the user is at the bottom."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrollCommand:
    """Ask the rendering widget to bring ``index`` into view."""

    index: int


class TailState(Enum):
    TAILING = "tailing"
    SCROLLED_AWAY = "scrolled_away"


def scroll_command(previous_is_tailing: bool, total_delta: int, total: int) -> Optional[ScrollCommand]:
    """
    Decide whether growth of the log should move the viewport.

    Args:
        previous_is_tailing: Tailing state at the previous observation
        total_delta: Change of the total line count since that observation
        total: Total line count now

    Returns:
        A command to scroll to the last line, or None
    """
    if previous_is_tailing and total_delta > 0 and total > 0:
        return ScrollCommand(total - 1)
    return None


class TailController:
    """
    Tracks the visible range against the total line count.

    The controller is tailing while the last visible row is the last line.
    Growth while tailing scrolls to the new last line; growth while
    scrolled away leaves the viewport alone.
    """

    def __init__(self, scroll_to: Callable[[ScrollCommand], None]):
        """
        Initialize a TailController.

        Args:
            scroll_to: Executes scroll commands on the rendering widget
        """
        self.scroll_to = scroll_to
        self._visible_start = 0
        self._visible_end = -1
        self._total = 0
        self._state = TailState.TAILING

    @property
    def state(self) -> TailState:
        return self._state

    @property
    def is_tailing(self) -> bool:
        return self._state is TailState.TAILING

    @property
    def visible_start(self) -> int:
        return self._visible_start

    @property
    def visible_end(self) -> int:
        return self._visible_end

    @property
    def total(self) -> int:
        return self._total

    def observe_visible_range(self, start: int, end: int, total: Optional[int] = None) -> Optional[ScrollCommand]:
        """
        Record the range reported by the widget after a render or scroll.

        Args:
            start: First visible row
            end: Last visible row, -1 when nothing is shown
            total: Line count the range was computed against; defaults to the current total

        Returns:
            A catch-up scroll command if tailing resumed behind later growth
        """
        self._visible_start = start
        self._visible_end = end
        if total is None or total == self._total:
            self._set_state(self._at_bottom())
            return None

        # Computed before later growth: judge it against the total it saw
        was_tailing = self.is_tailing
        self._set_state(end == total - 1)
        if self.is_tailing and not was_tailing and self._total > 0:
            command = ScrollCommand(self._total - 1)
            self.scroll_to(command)
            return command
        return None

    def observe_total(self, total: int) -> Optional[ScrollCommand]:
        """Record the store's line count and follow growth when tailing."""
        delta = total - self._total
        self._total = total
        if total == 0:
            # An emptied store is trivially at the bottom
            self._visible_start, self._visible_end = 0, -1
            self._set_state(True)
            return None

        command = scroll_command(self.is_tailing, delta, total)
        if command is not None:
            self.scroll_to(command)
        return command

    def scroll_to_bottom(self) -> Optional[ScrollCommand]:
        """Jump to the last line; tailing resumes once the widget reports it."""
        if self._total == 0:
            return None
        command = ScrollCommand(self._total - 1)
        self.scroll_to(command)
        return command

    def status_text(self) -> str:
        return "TAILING" if self.is_tailing else "SCROLLING"

    def _at_bottom(self) -> bool:
        return self._visible_end == self._total - 1

    def _set_state(self, tailing: bool) -> None:
        state = TailState.TAILING if tailing else TailState.SCROLLED_AWAY
        if state is not self._state:
            logger.debug(f"Tail state {self._state.value} -> {state.value}")
            self._state = state
