"""tailgrid - Live log viewer kept in sync with a streaming log server."""

import logging
from pathlib import Path
from typing import Optional, Union

from .coordinator import PagedMode, QueryCoordinator, StreamMode
from .errors import ChannelClosed, OutOfOrderAppend, ProtocolError, RemoteError, StaleResponse
from .geometry import Geometry, ViewportGeometry
from .protocol import DisplayLine, DisplaySpan, LogWindow, QueryParams, SpanLabel
from .session import RpcSession
from .store import LogWindowStore
from .tail import ScrollCommand, TailController

__version__ = "0.1.0"
__all__ = [
    "ChannelClosed",
    "DisplayLine",
    "DisplaySpan",
    "Geometry",
    "LogWindow",
    "LogWindowStore",
    "OutOfOrderAppend",
    "PagedMode",
    "ProtocolError",
    "QueryCoordinator",
    "QueryParams",
    "RemoteError",
    "RpcSession",
    "ScrollCommand",
    "SpanLabel",
    "StaleResponse",
    "StreamMode",
    "TailController",
    "ViewportGeometry",
    "configure_logging",
]


def configure_logging(level=logging.INFO, filename: Optional[Union[str, Path]] = None):
    """
    Configure logging for tailgrid.

    Args:
        level: Log level for the tailgrid loggers
        filename: Log to this file instead of stderr (the TUI owns the terminal)
    """
    # Create formatter
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if filename is not None:
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger = logging.getLogger("tailgrid")
    logger.setLevel(level)
    # Remove existing handlers to avoid duplicates
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    return handler
