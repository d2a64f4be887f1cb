"""Error taxonomy for tailgrid."""


class TailgridError(Exception):
    """Base class for all tailgrid errors."""


class ProtocolError(TailgridError):
    """A frame could not be decoded or violates the wire protocol."""


class RemoteError(ProtocolError):
    """The server answered a request with an error object."""

    def __init__(self, code: int, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


class ChannelClosed(TailgridError):
    """The channel went away while a request was pending."""


class StaleResponse(TailgridError):
    """A response or push belongs to a superseded query generation."""


class OutOfOrderAppend(TailgridError):
    """An append would move logical line numbers backwards."""

    def __init__(self, expected_min: int, got: int):
        super().__init__(f"Append starts at logical line {got}, expected >= {expected_min}")
        self.expected_min = expected_min
        self.got = got
