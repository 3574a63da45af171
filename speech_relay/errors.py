"""Error taxonomy shared by the store, the speech client and the transports."""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base error for relay failures."""


class ToolError(RelayError):
    """Failure raised while running a tool; reported as an error ToolResult."""

    kind = "tool_error"


class InvalidArgument(ToolError):
    """Raised for bad or missing caller input."""

    kind = "invalid_argument"


class ConfigurationError(ToolError):
    """Raised when a required setting (the provider credential) is absent."""

    kind = "configuration_error"


class UpstreamError(ToolError):
    """Raised when the speech provider fails, times out or returns non-2xx."""

    kind = "upstream_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFound(ToolError):
    """Raised when an audio artifact does not exist."""

    kind = "not_found"


class UnknownCapability(ToolError):
    """Raised when a tool name is not registered."""

    kind = "unknown_capability"


# JSON-RPC 2.0 error codes.
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
NO_SESSION = -32000


class TransportError(RelayError):
    """Protocol/transport failure, reported as a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        *,
        code: int = NO_SESSION,
        http_status: int = 400,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.http_status = http_status
