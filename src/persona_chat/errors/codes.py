"""Structured error codes for persona-chat.

These error codes give every failure in the turn pipeline a stable
category, whether it aborts the turn or is logged and skipped.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error codes for the chat pipeline.

    Error codes are grouped by category:
    - CREDENTIAL_* / AGENT_* / SESSION_*: Pre-flight resolution errors
    - MODEL_* / NO_MODEL_RESPONSE: Language model invocation errors
    - VECTOR_* / MEMORY_*: Memory subsystem errors (non-fatal for a turn)
    - INVALID_* / INTERNAL_* / CONFIGURATION_*: System-level errors
    """

    # Pre-flight errors
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    """No model provider credential is stored for the user."""

    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    """The agent does not exist or is not visible to the user."""

    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    """The session does not exist, belongs to another user or another agent."""

    # Model invocation errors
    MODEL_INVALID_CREDENTIAL = "MODEL_INVALID_CREDENTIAL"
    """The provider rejected the credential."""

    MODEL_RATE_LIMITED = "MODEL_RATE_LIMITED"
    """The provider throttled the request."""

    MODEL_MALFORMED_REQUEST = "MODEL_MALFORMED_REQUEST"
    """The provider rejected the request payload."""

    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    """The provider is unreachable or returned a server error."""

    MODEL_ERROR = "MODEL_ERROR"
    """The provider call failed for an unrecognised reason."""

    NO_MODEL_RESPONSE = "NO_MODEL_RESPONSE"
    """The provider answered without any usable reply text."""

    # Memory subsystem errors
    VECTOR_INDEX_UNAVAILABLE = "VECTOR_INDEX_UNAVAILABLE"
    """The native vector index is not supported in this deployment."""

    MEMORY_DIMENSION_MISMATCH = "MEMORY_DIMENSION_MISMATCH"
    """A memory vector does not match the configured embedding dimension."""

    # System errors
    INVALID_PARAMETER = "INVALID_PARAMETER"
    """A parameter value is invalid (wrong type, format, or value)."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected internal error (bug or system issue)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Invalid or missing configuration."""

    def is_retryable(self) -> bool:
        """Check if this error type is potentially retryable.

        Returns:
            True if the error might succeed on retry.
        """
        return self in {
            ErrorCode.MODEL_RATE_LIMITED,
            ErrorCode.MODEL_UNAVAILABLE,
            ErrorCode.NO_MODEL_RESPONSE,
        }

    def is_fatal(self) -> bool:
        """Check if this error aborts a turn.

        Memory subsystem errors degrade the turn instead of failing it.

        Returns:
            True if a turn that raises this error produces no reply.
        """
        return self not in {
            ErrorCode.VECTOR_INDEX_UNAVAILABLE,
            ErrorCode.MEMORY_DIMENSION_MISMATCH,
        }

    def is_user_error(self) -> bool:
        """Check if this error can be fixed by the user.

        Returns:
            True if the error is due to user input or user-owned settings.
        """
        return self in {
            ErrorCode.CREDENTIAL_MISSING,
            ErrorCode.MODEL_INVALID_CREDENTIAL,
            ErrorCode.AGENT_NOT_FOUND,
            ErrorCode.SESSION_NOT_FOUND,
            ErrorCode.INVALID_PARAMETER,
        }


class ModelFailureKind(str, Enum):
    """Classification of a failed language model call."""

    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    MALFORMED_REQUEST = "malformed_request"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    UNKNOWN = "unknown"

    @property
    def error_code(self) -> ErrorCode:
        """The ErrorCode reported for this failure kind."""
        return _KIND_TO_CODE[self]


_KIND_TO_CODE = {
    ModelFailureKind.INVALID_CREDENTIAL: ErrorCode.MODEL_INVALID_CREDENTIAL,
    ModelFailureKind.RATE_LIMITED: ErrorCode.MODEL_RATE_LIMITED,
    ModelFailureKind.MALFORMED_REQUEST: ErrorCode.MODEL_MALFORMED_REQUEST,
    ModelFailureKind.PROVIDER_UNAVAILABLE: ErrorCode.MODEL_UNAVAILABLE,
    ModelFailureKind.UNKNOWN: ErrorCode.MODEL_ERROR,
}
