"""Custom exception hierarchy for the Integritas MCP host."""

from typing import Any


class IntegritasHostError(Exception):
    """Base exception for all host errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ----- Client Errors -----


class ValidationError(IntegritasHostError):
    """Request validation failed (malformed or empty request)."""

    pass


class ConfigurationError(IntegritasHostError):
    """The request cannot proceed with the configured providers.

    Raised for a missing provider credential, an unknown provider, or a
    model outside the provider's allowlist.
    """

    pass


# ----- Tool Server Errors -----


class ToolServerError(IntegritasHostError):
    """The MCP tool server is unavailable."""

    pass


class ToolTimeoutError(ToolServerError):
    """A tool call exceeded its timeout without progress."""

    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Request timed out: {tool_name} after {timeout_seconds:g}s",
            details={"tool": tool_name, "timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class ToolCallRefusedError(IntegritasHostError):
    """The model requested a tool on a turn where tools are not allowed."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            message=f"Tool calls are disabled for documentation answers: {tool_name}",
            details={"tool": tool_name},
        )
