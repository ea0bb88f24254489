"""Error hierarchy for toolrelay.

Configuration and chat-client errors are fatal to a query; argument and
tool-execution errors are recovered from inside the orchestrator.
"""

from __future__ import annotations


class ToolrelayError(Exception):
    """Base for all toolrelay errors."""


class ConfigurationError(ToolrelayError):
    """Missing or invalid configuration (e.g. gateway mode without a token)."""


class ConversationStateError(ToolrelayError):
    """A message would break the ordering or call-id rules of the history."""


class ChatClientError(ToolrelayError):
    """Base for failures of a single chat-completion request.

    Attributes:
        phase: Which request failed ("initial" or "follow-up"), set by the
            orchestrator once known.
    """

    def __init__(self, message: str, phase: str | None = None) -> None:
        super().__init__(message)
        self.phase = phase

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"{self.phase} request failed: {message}"
        return message


class TransportError(ChatClientError):
    """Connection refused, timeout or exhausted deadline."""


class APIError(ChatClientError):
    """Non-2xx response from the chat endpoint.

    Attributes:
        status_code: HTTP status returned by the endpoint.
        body: Raw response body text.
    """

    def __init__(self, status_code: int, body: str, phase: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code} - {body}", phase=phase)


class ResponseDecodeError(ChatClientError):
    """Response body is not JSON or does not have the chat-completion shape."""


class ArgumentDecodeError(ToolrelayError):
    """Tool-call arguments are not valid JSON or miss required fields."""


class ToolExecutionError(ToolrelayError):
    """The tool service could not be reached or read."""
