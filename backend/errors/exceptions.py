"""
Custom exception hierarchy for Procura.

All exceptions inherit from ProcuraError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class ProcuraError(Exception):
    """Base exception for all Procura errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(ProcuraError):
    """Malformed submitted text or tool arguments."""

    code = ErrorCode.VALIDATION_INVALID_FORMAT
    recoverable = True
    status_code = 422

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, code=code, **ctx)


class NotFoundError(ProcuraError):
    """A referenced conversation, token, identity or tool does not exist."""

    code = ErrorCode.NOT_FOUND_RESOURCE
    recoverable = False
    status_code = 404

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        if resource_type == "conversation":
            code = ErrorCode.NOT_FOUND_CONVERSATION
        elif resource_type == "message_token":
            code = ErrorCode.NOT_FOUND_MESSAGE_TOKEN
        elif resource_type == "user":
            code = ErrorCode.NOT_FOUND_USER
        elif resource_type == "request":
            code = ErrorCode.NOT_FOUND_REQUEST
        elif resource_type == "tool":
            code = ErrorCode.NOT_FOUND_TOOL
        else:
            code = ErrorCode.NOT_FOUND_RESOURCE

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class ExpiredOrInvalidTokenError(NotFoundError):
    """Pending message token is unknown, consumed, expired or foreign."""

    def __init__(self, token: str, details: Optional[str] = None, **context: Any):
        super().__init__(
            "Message not found or expired",
            details,
            resource_type="message_token",
            resource_id=token,
            **context,
        )


class UnknownToolError(NotFoundError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str, **context: Any):
        super().__init__(f"Unknown tool: {name}", resource_type="tool", resource_id=name, **context)


class AuthenticationRequiredError(ProcuraError):
    """Operation needs a bound identity and none was supplied."""

    code = ErrorCode.AUTH_REQUIRED
    recoverable = True
    status_code = 401


class LLMError(ProcuraError):
    """Error during LLM interactions."""

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = False
    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class ExternalServiceError(ProcuraError):
    """Error with external collaborators (email provider, product catalog)."""

    code = ErrorCode.EXTERNAL_NETWORK_ERROR
    recoverable = True
    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        if service == "email":
            code = ErrorCode.EXTERNAL_EMAIL_FAILED
        elif service == "catalog":
            code = ErrorCode.EXTERNAL_CATALOG_FAILED
        else:
            code = ErrorCode.EXTERNAL_NETWORK_ERROR

        ctx = {**context}
        if service:
            ctx["service"] = service
        if status_code:
            ctx["upstream_status"] = status_code
        super().__init__(message, details, code=code, **ctx)
