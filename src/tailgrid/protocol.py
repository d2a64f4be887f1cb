"""Wire data model and frame codec.

Frames are JSON objects exchanged over the channel:

- request: ``{"id": int, "method": str, "params": object}``
- response: ``{"id": int, "result": object}`` or ``{"id": int, "error": {"code", "message"}}``
- push: ``{"method": "tail" | "done", "params": object}`` (no ``id``)

Inbound frames are decoded into exactly one of :class:`Response`,
:class:`TailPush`, :class:`DonePush` or :class:`UnknownFrame`.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from .errors import ProtocolError


class Method(str, Enum):
    """Method names used on the wire."""

    LIST = "list"
    LOGS = "logs"
    TAIL = "tail"
    DONE = "done"

    @classmethod
    def parse(cls, name: str) -> Optional["Method"]:
        if name == "query":
            return cls.LOGS
        try:
            return cls(name)
        except ValueError:
            return None


class SpanLabel(str, Enum):
    """Styling label of a span."""

    NOISE = "noise"
    TIMESTAMP = "timestamp"
    LEVEL = "level"
    TARGET = "target"
    TEXT = "text"
    TEXT_MATCH = "text_match"

    @classmethod
    def parse(cls, name: Any) -> "SpanLabel":
        try:
            return cls(name)
        except ValueError:
            return cls.TEXT


@dataclass(frozen=True)
class DisplaySpan:
    text: str
    label: SpanLabel = SpanLabel.TEXT

    @classmethod
    def from_wire(cls, data: Any) -> "DisplaySpan":
        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            raise ProtocolError(f"Malformed span: {data!r}")
        return cls(data["text"], SpanLabel.parse(data.get("label")))


# chrono emits up to nanosecond precision; datetime holds microseconds
_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, ``None`` passes through."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"Malformed timestamp: {value!r}")
    text = _FRACTION.sub(r"\1", value.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ProtocolError(f"Malformed timestamp: {value!r}") from e


@dataclass(frozen=True)
class DisplayLine:
    """One rendered row.

    ``logical_line_number`` identifies the source line; wrapped rows of the
    same source line share it.
    """

    logical_line_number: int
    spans: List[DisplaySpan] = field(default_factory=list)
    level: Optional[int] = None
    timestamp: Optional[datetime] = None

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)

    @classmethod
    def from_wire(cls, data: Any) -> "DisplayLine":
        if not isinstance(data, dict):
            raise ProtocolError(f"Malformed display line: {data!r}")
        lln = data.get("lln")
        if not isinstance(lln, int) or isinstance(lln, bool):
            raise ProtocolError(f"Display line without logical line number: {data!r}")
        level = data.get("ll")
        if level is not None and not isinstance(level, int):
            raise ProtocolError(f"Malformed log level: {level!r}")
        spans = data.get("spans") or []
        if not isinstance(spans, list):
            raise ProtocolError(f"Malformed spans: {spans!r}")
        return cls(
            logical_line_number=lln,
            spans=[DisplaySpan.from_wire(span) for span in spans],
            level=level,
            timestamp=parse_timestamp(data.get("ts")),
        )


def parse_display_lines(data: Any) -> List[DisplayLine]:
    if not isinstance(data, list):
        raise ProtocolError(f"Expected a list of display lines, got {type(data).__name__}")
    return [DisplayLine.from_wire(item) for item in data]


@dataclass(frozen=True)
class LogWindow:
    """A slice of display lines plus the total row count of the query."""

    total_display_lines: int = 0
    lines: List[DisplayLine] = field(default_factory=list)
    row_offset: int = 0

    @classmethod
    def from_wire(cls, data: Any) -> "LogWindow":
        if not isinstance(data, dict):
            raise ProtocolError(f"Malformed logs result: {data!r}")
        total = data.get("total_display_lines", 0)
        offset = data.get("row_offset", 0) or 0
        if not isinstance(total, int) or total < 0 or not isinstance(offset, int) or offset < 0:
            raise ProtocolError(f"Malformed logs result counts: total={total!r} offset={offset!r}")
        lines = parse_display_lines(data.get("display_lines", []))
        if offset + len(lines) > total:
            raise ProtocolError(f"Window of {len(lines)} lines at {offset} exceeds total {total}")
        return cls(total_display_lines=total, lines=lines, row_offset=offset)


@dataclass(frozen=True)
class QueryParams:
    """Identity of one logical query; any change requires a replacing reload."""

    log_set: Optional[str]
    columns: int
    filter_pattern: Optional[str] = None

    def __post_init__(self):
        if self.columns <= 0:
            raise ValueError(f"columns must be positive, got {self.columns}")
        if self.filter_pattern == "":
            object.__setattr__(self, "filter_pattern", None)

    def to_wire(self, start: int = 0, end: Optional[int] = None) -> dict:
        params = {"logset": self.log_set, "cols": self.columns, "from": start}
        if self.filter_pattern is not None:
            params["filter"] = self.filter_pattern
        if end is not None:
            params["to"] = end
        return params


@dataclass(frozen=True)
class Response:
    id: int
    result: Any = None
    error: Optional[dict] = None


@dataclass(frozen=True)
class TailPush:
    lines: List[DisplayLine]


@dataclass(frozen=True)
class DonePush:
    pass


@dataclass(frozen=True)
class UnknownFrame:
    method: Optional[str]
    payload: Any = None


Frame = Union[Response, TailPush, DonePush, UnknownFrame]


def decode_frame(raw: Union[str, bytes]) -> Frame:
    """Decode one inbound frame.

    Raises:
        ProtocolError: If the frame is not valid JSON or has the wrong shape
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Frame is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Frame is not an object: {data!r}")

    if data.get("id") is not None:
        request_id = data["id"]
        if not isinstance(request_id, int) or isinstance(request_id, bool):
            raise ProtocolError(f"Frame id is not an integer: {request_id!r}")
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            raise ProtocolError(f"Malformed error object: {error!r}")
        return Response(request_id, data.get("result"), error)

    method_name = data.get("method")
    params = data.get("params") or {}
    method = Method.parse(method_name) if isinstance(method_name, str) else None
    if method is Method.TAIL:
        if not isinstance(params, dict):
            raise ProtocolError(f"Malformed tail params: {params!r}")
        return TailPush(parse_display_lines(params.get("display_lines", [])))
    if method is Method.DONE:
        return DonePush()
    return UnknownFrame(method_name, data)


def encode_request(request_id: int, method: Method, params: Optional[dict] = None) -> str:
    frame = {"id": request_id, "method": Method(method).value}
    if params is not None:
        frame["params"] = params
    return json.dumps(frame)
