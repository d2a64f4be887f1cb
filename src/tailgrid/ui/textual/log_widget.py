import logging
from typing import Optional

from rich.segment import Segment
from rich.style import Style
from textual.geometry import Size
from textual.message import Message
from textual.scroll_view import ScrollView
from textual.strip import Strip

from ...protocol import DisplayLine, SpanLabel
from ...store import LogWindowStore, StoreChange

# Configure logger
logger = logging.getLogger(__name__)

LABEL_STYLES = {
    SpanLabel.NOISE: Style(dim=True),
    SpanLabel.TIMESTAMP: Style(color="cyan"),
    SpanLabel.TARGET: Style(color="magenta"),
    SpanLabel.TEXT: Style(),
    SpanLabel.TEXT_MATCH: Style(color="black", bgcolor="yellow", bold=True),
}

# Numeric levels as sent by the server: 1 error .. 5 trace
LEVEL_STYLES = {
    1: Style(color="red", bold=True),
    2: Style(color="yellow"),
    3: Style(color="green"),
    4: Style(color="blue"),
    5: Style(dim=True),
}


def span_style(label: SpanLabel, level: Optional[int]) -> Style:
    if label is SpanLabel.LEVEL:
        return LEVEL_STYLES.get(level if level is not None else 5, LEVEL_STYLES[5])
    return LABEL_STYLES.get(label, Style())


def line_segments(line: DisplayLine) -> list:
    return [Segment(span.text, span_style(span.label, line.level)) for span in line.spans]


class LogWidget(ScrollView):
    """Renders the rows of a LogWindowStore, one display line per row."""

    class VisibleRangeChanged(Message):
        """Posted when the visible rows or the row count change, stamped with that row count."""

        def __init__(self, start: int, end: int, total: int) -> None:
            super().__init__()
            self.start = start
            self.end = end
            self.total = total

    class Measured(Message):
        """Posted with the viewport size in cells on every resize."""

        def __init__(self, width: int, height: int) -> None:
            super().__init__()
            self.width = width
            self.height = height

    DEFAULT_CSS = """
    LogWidget {
        padding: 0;
        margin: 0;
        border: none;
        scrollbar-size-horizontal: 0;
        overflow-y: scroll;
        width: 100%;
        height: 1fr;
    }
    """

    can_focus = True

    def __init__(self, store: LogWindowStore, **kwargs):
        super().__init__(**kwargs)
        self.store = store
        self._visible_range = None

    def on_mount(self):
        self._sync_virtual_size()

    def on_resize(self, event):
        """Called when widget is resized."""
        region = self.scrollable_content_region
        self.post_message(self.Measured(region.width, region.height))
        self._sync_virtual_size()
        self.call_after_refresh(self._post_visible_range)

    def store_changed(self, change: StoreChange) -> None:
        """Adopt the store's new row count; call before issuing scroll commands."""
        self._sync_virtual_size()
        self.refresh()
        self.call_after_refresh(self._post_visible_range)

    def visible_range(self):
        """(first, last) visible row; last is -1 for an empty store."""
        start = int(self.scroll_offset.y)
        height = self.scrollable_content_region.height
        end = min(start + height, len(self.store)) - 1
        return start, end

    def scroll_to_item(self, index: int) -> None:
        """Bring a row into view, aligned to the bottom when scrolling down."""
        start, _ = self.visible_range()
        height = max(1, self.scrollable_content_region.height)
        if index < start:
            self.scroll_to(y=index)
        elif index >= start + height:
            self.scroll_to(y=index - height + 1)

    def _sync_virtual_size(self):
        self.virtual_size = Size(self.scrollable_content_region.width, len(self.store))

    def _post_visible_range(self):
        visible = (*self.visible_range(), len(self.store))
        if visible != self._visible_range:
            self._visible_range = visible
            self.post_message(self.VisibleRangeChanged(*visible))

    def watch_scroll_y(self, old_value: float, new_value: float) -> None:
        """Called when scroll position changes."""
        super().watch_scroll_y(old_value, new_value)
        if round(old_value) != round(new_value):
            self._post_visible_range()

    def render_line(self, y: int) -> Strip:
        """Render a single row of the log."""
        line = self.store.line_at(self.scroll_offset.y + y)
        if line is None:
            return Strip.blank(self.size.width)
        return Strip(line_segments(line))

    def scroll_to(self, x=None, y=None, **kwargs):
        """Override scroll_to to always disable animation."""
        return super().scroll_to(x=x, y=y, animate=False)

    def scroll_up(self, **kwargs):
        """Override scroll_up to always disable animation."""
        return super().scroll_up(animate=False)

    def scroll_down(self, **kwargs):
        """Override scroll_down to always disable animation."""
        return super().scroll_down(animate=False)
