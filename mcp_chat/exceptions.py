from typing import Optional


class ChatError(Exception):
    """Base exception for mcp-chat errors."""


class ConfigurationError(ChatError):
    """Raised when the provider or model snapshot is missing or unusable."""


class ProviderError(ChatError):
    """Raised when a provider request fails (network error or non-2xx status)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class RequestCancelled(ChatError):
    """Raised when a request is aborted through its cancellation token."""


class ToolNotFound(ChatError):
    """Raised when the model calls a tool that is not in the catalog."""


class ToolArgumentsError(ChatError):
    """Raised when tool call arguments cannot be recovered as a JSON object."""


class ToolExecutionError(ChatError):
    """Raised when the tool executor reports a failure."""
