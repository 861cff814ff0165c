"""
Standard error response builders for Procura.

Provides consistent response formats for HTTP error bodies and for the
structured results that tools hand back to the model.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import ProcuraError


def error_response(error: ProcuraError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Message cannot be empty", parameter="message")
        >>> error_response(err)
        {
            "success": False,
            "error": {
                "code": "VALIDATION_INVALID_FORMAT",
                "message": "Message cannot be empty",
                "details": None,
                "tool": None,
                "recoverable": True,
                "context": {"parameter": "message"}
            }
        }
    """
    if isinstance(error, ProcuraError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "tool": tool,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(requestId="req-1")
        {"success": True, "requestId": "req-1"}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def format_error_for_llm(error: ProcuraError | Exception) -> str:
    """Format an error as a short sentence the model can relay to the user."""
    if isinstance(error, ProcuraError):
        parts = [f"Error: {error.message}"]
        if error.details:
            parts.append(f"Details: {error.details}")
        if error.recoverable:
            parts.append("This error may be recoverable by the user.")
        return " ".join(parts)

    return f"Error: {str(error)}"
