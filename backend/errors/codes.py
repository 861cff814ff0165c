"""
Error codes for Procura.

Standardized taxonomy of error codes organized by category. Codes travel
over the wire in HTTP error bodies and in ``tool_error`` events, so keep
them stable.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Procura.

    Categories:
    - VALIDATION_*: Malformed submitted text or tool arguments
    - NOT_FOUND_*: Unknown conversation, message token, identity or tool
    - AUTH_*: Operations that need a bound identity
    - LLM_*: Language model provider errors
    - EXTERNAL_*: Email, catalog and other collaborator errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
    VALIDATION_EMPTY_MESSAGE = "VALIDATION_EMPTY_MESSAGE"
    VALIDATION_MESSAGE_TOO_LONG = "VALIDATION_MESSAGE_TOO_LONG"

    # Not found errors (missing resources)
    NOT_FOUND_CONVERSATION = "NOT_FOUND_CONVERSATION"
    NOT_FOUND_MESSAGE_TOKEN = "NOT_FOUND_MESSAGE_TOKEN"
    NOT_FOUND_USER = "NOT_FOUND_USER"
    NOT_FOUND_REQUEST = "NOT_FOUND_REQUEST"
    NOT_FOUND_TOOL = "NOT_FOUND_TOOL"
    NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"

    # Authentication
    AUTH_REQUIRED = "AUTH_REQUIRED"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"

    # External service errors
    EXTERNAL_EMAIL_FAILED = "EXTERNAL_EMAIL_FAILED"
    EXTERNAL_CATALOG_FAILED = "EXTERNAL_CATALOG_FAILED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
