"""Error types raised by remotepy.

Local misuse (`ConfigurationError`, `UsageError`) is always raised
synchronously at the offending call. Failures of remote code are delivered
to exception continuations as plain strings; only the coroutine helpers wrap
them in `RemoteError`.
"""


class RemotePyError(Exception):
    """Base class for all remotepy errors."""


class ConfigurationError(RemotePyError, ValueError):
    """Connection parameters are missing or contradictory."""


class UsageError(RemotePyError, TypeError):
    """A request was issued with a missing or non-callable continuation."""


class SpawnError(RemotePyError):
    """The interpreter process or its pipes could not be created."""


class ChannelClosedError(RemotePyError):
    """The channel closed before a response arrived."""


class ProtocolError(RemotePyError):
    """The byte stream could not be decoded or a response was unexpected."""


class LibraryError(RemotePyError):
    """A procedure library or one of its functions could not be found."""


class RemoteError(RemotePyError):
    """The remote interpreter reported a failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
