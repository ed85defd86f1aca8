"""Structured error responses for persona-chat.

Provides a consistent error response format and the exception classes
raised by the turn pipeline.
"""

from dataclasses import dataclass, field
from typing import Any

from persona_chat.errors.codes import ErrorCode, ModelFailureKind

# User-facing messages, keyed by code. Exceptions may carry a more
# specific message for logs; callers render these.
USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.CREDENTIAL_MISSING: "API key required. Add a model provider key to continue.",
    ErrorCode.AGENT_NOT_FOUND: "Agent not found.",
    ErrorCode.SESSION_NOT_FOUND: "Session not found.",
    ErrorCode.MODEL_INVALID_CREDENTIAL: "Invalid API key. Please check your API credentials.",
    ErrorCode.MODEL_RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    ErrorCode.MODEL_MALFORMED_REQUEST: "The model rejected the request.",
    ErrorCode.MODEL_UNAVAILABLE: "The model provider is temporarily unavailable. Please try again later.",
    ErrorCode.MODEL_ERROR: "The model call failed.",
    ErrorCode.NO_MODEL_RESPONSE: "The model returned no response.",
}


@dataclass
class ErrorResponse:
    """Structured error response for consistent error handling.

    Serialisable to JSON for whichever collaborator renders the failure.

    Attributes:
        code: The error code categorizing this error.
        message: Human-readable error message.
        details: Optional additional context about the error.
        retryable: Whether the operation might succeed on retry.
    """

    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None
    retryable: bool = field(init=False)

    def __post_init__(self) -> None:
        """Set retryable flag based on error code."""
        self.retryable = self.code.is_retryable()

    @property
    def user_message(self) -> str:
        """Message suitable for showing to an end user."""
        return USER_MESSAGES.get(self.code, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error": True,
            "code": self.code.value,
            "message": self.user_message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result

    @classmethod
    def from_exception(cls, exc: Exception, code: ErrorCode | None = None) -> "ErrorResponse":
        """Create ErrorResponse from an exception.

        Args:
            exc: The exception to convert.
            code: Optional error code override.

        Returns:
            ErrorResponse instance.
        """
        if isinstance(exc, PersonaChatError):
            return exc.to_response()

        return cls(
            code=code or ErrorCode.INTERNAL_ERROR,
            message=str(exc),
            details={"exception_type": type(exc).__name__},
        )


class PersonaChatError(Exception):
    """Base exception class for persona-chat errors.

    All pipeline exceptions inherit from this class so callers can
    convert any of them to an ErrorResponse.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize PersonaChatError.

        Args:
            code: The error code categorizing this error.
            message: Human-readable error message.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.code = code
        self.details = details

    def to_response(self) -> ErrorResponse:
        """Convert to ErrorResponse.

        Returns:
            ErrorResponse representation of this exception.
        """
        return ErrorResponse(
            code=self.code,
            message=str(self),
            details=self.details,
        )


class CredentialMissingError(PersonaChatError):
    """Raised before any work when the user has no model credential."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            code=ErrorCode.CREDENTIAL_MISSING,
            message=f"No model credential stored for user {user_id}",
            details={"user_id": user_id},
        )


class AgentNotFoundError(PersonaChatError):
    """Raised when an agent is missing or not visible to the user."""

    def __init__(self, agent_id: int) -> None:
        super().__init__(
            code=ErrorCode.AGENT_NOT_FOUND,
            message=f"Agent {agent_id} not found",
            details={"agent_id": agent_id},
        )


class SessionNotFoundError(PersonaChatError):
    """Raised when a session is missing or belongs to another agent or user."""

    def __init__(self, session_id: int) -> None:
        super().__init__(
            code=ErrorCode.SESSION_NOT_FOUND,
            message=f"Session {session_id} not found",
            details={"session_id": session_id},
        )


class ModelInvocationError(PersonaChatError):
    """Exception for classified language model failures."""

    def __init__(
        self,
        kind: ModelFailureKind,
        message: str,
        status_code: int | None = None,
    ) -> None:
        """Initialize ModelInvocationError.

        Args:
            kind: Classified failure kind.
            message: Provider error message.
            status_code: HTTP status returned by the provider, if any.
        """
        details: dict[str, Any] = {"kind": kind.value}
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(code=kind.error_code, message=message, details=details)
        self.kind = kind
        self.status_code = status_code


class NoModelResponseError(PersonaChatError):
    """Raised when a completion carries no usable reply text."""

    def __init__(self, model: str) -> None:
        super().__init__(
            code=ErrorCode.NO_MODEL_RESPONSE,
            message=f"No response from model {model}",
            details={"model": model},
        )


class VectorIndexUnavailableError(PersonaChatError):
    """Raised when the native vector index cannot be used at all."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            code=ErrorCode.VECTOR_INDEX_UNAVAILABLE,
            message=f"Vector index unavailable: {reason}",
        )


class MemoryDimensionError(PersonaChatError):
    """Raised when a memory vector has the wrong dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            code=ErrorCode.MEMORY_DIMENSION_MISMATCH,
            message=f"Expected a {expected}-dimensional vector, got {actual}",
            details={"expected": expected, "actual": actual},
        )
