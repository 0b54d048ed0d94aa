"""
Error types for the flow tracker.

Configuration errors escape the tracker constructor. Every other error is
raised by the clients and caught at the stage boundary, where it is recorded
on the stage instead of propagating to the caller.
"""


class FlowTrackerError(Exception):
    """Base class for all flow tracker errors."""


class ConfigurationError(FlowTrackerError, ValueError):
    """A requested chain (or other setting) has no valid configuration."""


class NotFoundError(FlowTrackerError):
    """A transaction, event or callback does not exist upstream."""


class ExplorerError(FlowTrackerError):
    """The block explorer reported a provider-level error or a malformed response."""


class RpcError(FlowTrackerError):
    """The Reactive Network RPC reported an error or a malformed response."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class FlowTimeoutError(FlowTrackerError):
    """A network call or stage exceeded its deadline."""


class RateLimitError(ExplorerError):
    """The explorer throttled the request inside an otherwise successful response."""
