"""
Error logging helpers for Procura.
"""

import logging
from typing import Optional

from .exceptions import ProcuraError


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="Auth")
        # Logs: "[Auth] EXTERNAL_EMAIL_FAILED: Courier rejected the message"
    """
    if isinstance(error, ProcuraError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
