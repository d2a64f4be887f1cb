"""The tailgrid terminal application."""

import logging
from typing import List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Button, Footer, Header, Input, Static

from ...channel import WebSocketChannel
from ...config import Settings
from ...coordinator import PagedMode, QueryCoordinator, StreamMode
from ...geometry import ViewportGeometry, glyph_box
from ...session import RpcSession
from ...store import LogWindowStore, StoreChange
from ...tail import ScrollCommand, TailController
from .log_set_picker import LogSetPicker
from .log_widget import LogWidget

logger = logging.getLogger(__name__)


class TailgridApp(App):
    """Live view of one log set on a tailgrid server."""

    TITLE = "tailgrid"

    CSS = """
    #nav {
        height: 3;
    }

    #filter {
        width: 1fr;
    }

    #status {
        height: 1;
        background: $panel;
    }

    #range {
        width: 1fr;
    }

    #state {
        width: auto;
    }

    #state.tailing {
        color: $success;
        text-style: bold;
    }
    """

    BINDINGS = [
        Binding("ctrl+l", "pick_log_set", "Log sets"),
        Binding("end", "scroll_to_bottom", "Bottom"),
        Binding("ctrl+r", "reload", "Reload"),
    ]

    def __init__(self, settings: Optional[Settings] = None, connect: bool = True) -> None:
        super().__init__()
        self.settings = settings or Settings()
        self._connect = connect

        self.store = LogWindowStore()
        self.session = RpcSession(self._transmit)
        if self.settings.mode == "paged":
            mode = PagedMode(self.settings.page_size)
        else:
            mode = StreamMode()
        self.coordinator = QueryCoordinator(self.session, self.store, mode)
        self.channel = WebSocketChannel(
            self.settings.url,
            self.session.on_message,
            on_open=self._on_channel_open,
            on_close=self._on_channel_close,
            reconnect_delay=self.settings.reconnect_delay,
            max_reconnect_delay=self.settings.max_reconnect_delay,
        )
        self.tail_controller = TailController(self._execute_scroll)
        self.viewport = ViewportGeometry(self.coordinator.set_geometry, self.settings.debounce)
        self._log_widget: Optional[LogWidget] = None

    def compose(self) -> ComposeResult:
        # Kept as attributes: queries go to the active screen, which may be the picker
        self._log_set_button = Button("(no log set)", id="log-set")
        self._filter_input = Input(placeholder="Filter logs by regex...", id="filter")
        self._log_widget = LogWidget(self.store, id="logs")
        self._range_label = Static("", id="range")
        self._state_label = Static("", id="state")

        yield Header()
        with Horizontal(id="nav"):
            yield self._log_set_button
            yield self._filter_input
            yield Button("Update", id="update")
            yield Button("Clear", id="clear")
            yield Button("Scroll to bottom", id="bottom")
        yield self._log_widget
        with Horizontal(id="status"):
            yield self._range_label
            yield self._state_label
        yield Footer()

    def on_mount(self) -> None:
        self.store.subscribe(self._on_store_change)
        self.coordinator.on_status(lambda status: self._update_status())
        self.coordinator.on_log_sets(self._on_log_sets)
        self.viewport.measure_glyph(*glyph_box())
        if self._connect:
            self.run_worker(self.channel.run(), name="channel", exclusive=True)
        self._update_status()

    async def on_unmount(self) -> None:
        self.viewport.cancel()
        await self.channel.stop()

    @property
    def log_widget(self) -> LogWidget:
        return self._log_widget

    # Channel

    def _transmit(self, text: str) -> None:
        self.channel.send(text)

    def _on_channel_open(self) -> None:
        self.coordinator.on_channel_open()
        self._update_status()

    def _on_channel_close(self, reason: str) -> None:
        self.session.connection_lost(reason)
        self.coordinator.on_channel_closed()
        self._update_status()

    def _on_log_sets(self, log_sets: List[str]) -> None:
        self._update_status()

    # Store and viewport

    def _on_store_change(self, store: LogWindowStore, change: StoreChange) -> None:
        self.log_widget.store_changed(change)
        self.tail_controller.observe_total(change.total)
        self._update_status()

    def _execute_scroll(self, command: ScrollCommand) -> None:
        self.log_widget.scroll_to_item(command.index)

    def on_log_widget_measured(self, event: LogWidget.Measured) -> None:
        self.viewport.measure_viewport(event.width, event.height)

    def on_log_widget_visible_range_changed(self, event: LogWidget.VisibleRangeChanged) -> None:
        self.tail_controller.observe_visible_range(event.start, event.end, event.total)
        self.coordinator.ensure_rows(event.start, event.end)
        self._update_status()

    # User input

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.coordinator.commit_filter(event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button = event.button.id
        if button == "update":
            self.coordinator.commit_filter(self._filter_input.value)
        elif button == "clear":
            self._filter_input.value = ""
            self.coordinator.commit_filter(None)
        elif button == "bottom":
            self.action_scroll_to_bottom()
        elif button == "log-set":
            self.action_pick_log_set()

    def action_scroll_to_bottom(self) -> None:
        self.tail_controller.scroll_to_bottom()

    def action_reload(self) -> None:
        self.coordinator.reload()

    def action_pick_log_set(self) -> None:
        def chosen(name: Optional[str]) -> None:
            if name:
                self.coordinator.set_log_set(name)
                self._update_status()

        self.push_screen(LogSetPicker(self.coordinator.log_sets, self.coordinator.log_set), chosen)

    # Status

    def _update_status(self) -> None:
        if self._log_widget is None:
            return
        total = self.store.total_display_lines
        self._range_label.update(
            f"{self.tail_controller.visible_start} – {self.tail_controller.visible_end} / {total - 1} display lines"
        )
        self._state_label.update(
            f"{self.tail_controller.status_text()}  {self.coordinator.status}  {self.channel.state.value}"
        )
        self._state_label.set_class(self.tail_controller.is_tailing, "tailing")
        self._log_set_button.label = self.coordinator.log_set or "(no log set)"
