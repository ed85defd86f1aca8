"""Structured error handling for persona-chat.

This module provides consistent error codes and response formats
across the turn pipeline.
"""

from persona_chat.errors.codes import ErrorCode, ModelFailureKind
from persona_chat.errors.responses import (
    AgentNotFoundError,
    CredentialMissingError,
    ErrorResponse,
    MemoryDimensionError,
    ModelInvocationError,
    NoModelResponseError,
    PersonaChatError,
    SessionNotFoundError,
    VectorIndexUnavailableError,
)

__all__ = [
    "AgentNotFoundError",
    "CredentialMissingError",
    "ErrorCode",
    "ErrorResponse",
    "MemoryDimensionError",
    "ModelFailureKind",
    "ModelInvocationError",
    "NoModelResponseError",
    "PersonaChatError",
    "SessionNotFoundError",
    "VectorIndexUnavailableError",
]
