"""Modal list for choosing the log set to view."""

from typing import List, Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Label, ListItem, ListView, Static


class LogSetPicker(ModalScreen[Optional[str]]):
    """Returns the chosen log set name, or None when cancelled."""

    CSS = """
    LogSetPicker {
        align: center middle;
    }

    LogSetPicker > Vertical {
        width: 60;
        max-width: 90%;
        height: auto;
        max-height: 80%;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }

    LogSetPicker ListView {
        height: auto;
        max-height: 20;
    }
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    def __init__(self, log_sets: List[str], current: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._log_sets = log_sets
        self._current = current

    def compose(self) -> ComposeResult:
        with Vertical():
            if self._log_sets:
                yield Static("Log set", id="prompt")
            else:
                yield Static("No log sets available yet", id="prompt")
            yield ListView(
                *[ListItem(Label(name), name=name) for name in self._log_sets],
                initial_index=self._initial_index(),
                id="log-set-list",
            )

    def _initial_index(self) -> int:
        if self._current in self._log_sets:
            return self._log_sets.index(self._current)
        return 0

    def on_mount(self) -> None:
        self.query_one("#log-set-list", ListView).focus()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        # ListItem.name holds the log set
        self.dismiss(event.item.name)

    def action_cancel(self) -> None:
        self.dismiss(None)
