"""Settings for the viewer: defaults, then environment, then command line."""

import os
from pathlib import Path
from typing import Mapping, Optional

import platformdirs

from .geometry import DEFAULT_DEBOUNCE

LOG_DIR = Path(platformdirs.user_log_dir("tailgrid"))
DEFAULT_URL = "ws://127.0.0.1:9000"
MODES = ("stream", "paged")
ENV_PREFIX = "TAILGRID_"


def _parse_float(key: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise ValueError(f"{key}: expected a number, got {value!r}") from None
    if number < 0:
        raise ValueError(f"{key}: must not be negative, got {value!r}")
    return number


def _parse_int(key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{key}: expected an integer, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"{key}: must be positive, got {value!r}")
    return number


class Settings:
    """Viewer settings."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        mode: str = "stream",
        page_size: Optional[int] = None,
        debounce: float = DEFAULT_DEBOUNCE,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 10.0,
        log_file: Optional[Path] = None,
        log_level: str = "INFO",
    ):
        if mode not in MODES:
            raise ValueError(f"mode: expected one of {', '.join(MODES)}, got {mode!r}")
        if not url.startswith(("ws://", "wss://")):
            raise ValueError(f"url: expected a ws:// or wss:// URL, got {url!r}")
        self.url = url
        self.mode = mode
        self.page_size = page_size
        self.debounce = debounce
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max(max_reconnect_delay, reconnect_delay)
        self.log_file = Path(log_file) if log_file else LOG_DIR / "tailgrid.log"
        self.log_level = log_level.upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "Settings":
        """
        Build settings from TAILGRID_* environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)
            **overrides: Values that win over the environment; None values are ignored

        Raises:
            ValueError: If a value cannot be parsed
        """
        environ = os.environ if environ is None else environ
        values = {}

        def get(name):
            return environ.get(ENV_PREFIX + name)

        if get("URL"):
            values["url"] = get("URL")
        if get("MODE"):
            values["mode"] = get("MODE").lower()
        if get("PAGE_SIZE"):
            values["page_size"] = _parse_int("page_size", get("PAGE_SIZE"))
        if get("DEBOUNCE"):
            values["debounce"] = _parse_float("debounce", get("DEBOUNCE"))
        if get("RECONNECT_DELAY"):
            values["reconnect_delay"] = _parse_float("reconnect_delay", get("RECONNECT_DELAY"))
        if get("MAX_RECONNECT_DELAY"):
            values["max_reconnect_delay"] = _parse_float("max_reconnect_delay", get("MAX_RECONNECT_DELAY"))
        if get("LOG_FILE"):
            values["log_file"] = Path(get("LOG_FILE"))
        if get("LOG_LEVEL"):
            values["log_level"] = get("LOG_LEVEL")

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def __repr__(self) -> str:
        return f"Settings(url={self.url!r}, mode={self.mode!r}, page_size={self.page_size!r})"
