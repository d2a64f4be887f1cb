"""Viewport geometry: pixel (or cell) measurements to columns and rows."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from wcwidth import wcswidth

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.3
RULER_GLYPH = "0"


@dataclass(frozen=True)
class Geometry:
    columns: int
    rows: int


def compute_geometry(viewport: Optional[Tuple[int, int]], glyph: Optional[Tuple[int, int]]) -> Optional[Geometry]:
    """
    Derive (columns, rows) from a viewport box and a reference glyph box.

    Args:
        viewport: (width, height) of the viewport, or None if not measured yet
        glyph: (width, height) of one reference glyph, or None if not measured yet

    Returns:
        Geometry, or None while any measurement is zero or missing
    """
    if not viewport or not glyph:
        return None
    width, height = viewport
    glyph_width, glyph_height = glyph
    if not (width and height and glyph_width and glyph_height):
        return None
    columns = int(width // glyph_width)
    rows = int(height // glyph_height)
    if columns <= 0 or rows <= 0:
        return None
    return Geometry(columns, rows)


def glyph_box(glyph: str = RULER_GLYPH) -> Tuple[int, int]:
    """Size of the reference glyph in terminal cells."""
    width = wcswidth(glyph)
    # Non-printable glyphs report -1
    return (max(1, width if width is not None else len(glyph)), 1)


class Debouncer:
    """
    Delivers only the last value pushed within a quiet period.

    Every push cancels the armed timer and arms a new one on the running
    event loop.
    """

    def __init__(self, delay: float, callback: Callable[[Any], None]):
        self.delay = delay
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._value: Any = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: Any) -> None:
        """Record a value and restart the quiet period."""
        self._value = value
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Deliver the pending value now, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._value = None

    def _fire(self) -> None:
        value = self._value
        self._handle = None
        self._value = None
        self.callback(value)


class ViewportGeometry:
    """
    Debounced geometry of the log viewport.

    Measurements arrive independently; once the debounce period passes without
    a new measurement the geometry is recomputed and, if it changed, handed to
    ``on_change``.
    """

    def __init__(self, on_change: Callable[[Optional[Geometry]], None], delay: float = DEFAULT_DEBOUNCE):
        self.on_change = on_change
        self._viewport: Optional[Tuple[int, int]] = None
        self._glyph: Optional[Tuple[int, int]] = None
        self._geometry: Optional[Geometry] = None
        self._debouncer = Debouncer(delay, self._recompute)

    @property
    def geometry(self) -> Optional[Geometry]:
        """Last delivered geometry; None until both measurements are known."""
        return self._geometry

    def measure_viewport(self, width: int, height: int) -> None:
        self._viewport = (width, height)
        self._debouncer.push((self._viewport, self._glyph))

    def measure_glyph(self, width: int, height: int) -> None:
        self._glyph = (width, height)
        self._debouncer.push((self._viewport, self._glyph))

    def flush(self) -> None:
        self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    def _recompute(self, measurements) -> None:
        viewport, glyph = measurements
        geometry = compute_geometry(viewport, glyph)
        if geometry == self._geometry:
            return
        logger.debug(f"Geometry changed from {self._geometry} to {geometry}")
        self._geometry = geometry
        self.on_change(geometry)
