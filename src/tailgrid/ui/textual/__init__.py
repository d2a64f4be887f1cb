from .app import TailgridApp
from .log_set_picker import LogSetPicker
from .log_widget import LogWidget

__all__ = ["LogSetPicker", "LogWidget", "TailgridApp"]
