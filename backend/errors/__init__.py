"""
Procura Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        ProcuraError,
        ValidationError,
        NotFoundError,
        ExpiredOrInvalidTokenError,
        UnknownToolError,
        AuthenticationRequiredError,
        LLMError,
        ExternalServiceError,

        # Response builders
        error_response,
        success_response,
        format_error_for_llm,

        # Logging
        log_error,
    )

Propagation:
    NotFound / Validation errors are client errors and map to 4xx.
    AuthenticationRequired and UnknownTool raised by the tool dispatcher
    become ``tool_error`` events and never end a turn.
    LLMError ends the turn with a terminal ``error`` event.
    ExternalServiceError from the email collaborator is logged and the
    auth dialog carries on.
"""

from .codes import ErrorCode
from .exceptions import (
    ProcuraError,
    ValidationError,
    NotFoundError,
    ExpiredOrInvalidTokenError,
    UnknownToolError,
    AuthenticationRequiredError,
    LLMError,
    ExternalServiceError,
)
from .response import (
    error_response,
    success_response,
    format_error_for_llm,
)
from .handlers import log_error

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "ProcuraError",
    "ValidationError",
    "NotFoundError",
    "ExpiredOrInvalidTokenError",
    "UnknownToolError",
    "AuthenticationRequiredError",
    "LLMError",
    "ExternalServiceError",
    # Response builders
    "error_response",
    "success_response",
    "format_error_for_llm",
    # Logging
    "log_error",
]
