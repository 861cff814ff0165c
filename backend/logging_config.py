"""
Procura Logging Configuration - Color-Coded Console Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_message_out, log_tool, log_llm,
  log_auth, log_stream
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_tool
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "necesito un cable", conversation="c-1")
"""

import logging
import sys

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    # Event colors
    "MSG_IN": "\033[96m",  # Cyan - incoming message
    "MSG_OUT": "\033[92m",  # Green - outgoing response
    "AUTH": "\033[95m",  # Magenta - authentication dialog
    "TOOL": "\033[93m",  # Yellow - tool calls
    "LLM": "\033[94m",  # Blue - LLM operations
    "STREAM": "\033[36m",  # Teal - event stream lifecycle
    "ERROR": "\033[91m",  # Red - errors
    "WARN": "\033[33m",  # Orange/Yellow - warnings
    "DEBUG": "\033[90m",  # Gray - debug info
}


# Client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "redis", "uvicorn.access")


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])

        # Format: timestamp [LEVEL] message (no module name for compactness)
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: int = logging.INFO) -> None:
    """Configure colored logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================

# 'start' / 'end' states map to an arrow; anything else gets the neutral marker
_ARROWS = {"start": ">>>", "end": "<<<"}


def _ctx(context: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items()) if context else ""


def _emit(logger: logging.Logger, color: str, label: str, text: str, marker: str = "***") -> None:
    logger.info(f"{COLORS[color]}{marker} {label}{COLORS['RESET']} {text}".rstrip())


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log an incoming user message, truncated to 80 characters."""
    preview = message[:80] + "..." if len(message) > 80 else message
    _emit(logger, "MSG_IN", "MESSAGE", f"{preview} [{_ctx(context)}]", marker=">>>")


def log_message_out(logger: logging.Logger, tools_used: list = None, chars: int = 0) -> None:
    """Log the end of a turn: tools called and length of the stored answer."""
    tools = ", ".join(tools_used) if tools_used else "none"
    _emit(logger, "MSG_OUT", "RESPONSE", f"tools=[{tools}] chars={chars}", marker="<<<")


def log_auth(logger: logging.Logger, state: str, **context) -> None:
    """Log a sign-in dialog step.

    Args:
        logger: Logger instance
        state: 'code_sent', 'unknown_name', 'verified', 'rejected', ...
        **context: conversation, user, name
    """
    _emit(logger, "AUTH", "AUTH", f"{state} {_ctx(context)}")


def log_tool(logger: logging.Logger, tool_name: str, state: str, **context) -> None:
    """Log a tool dispatch ('start' or 'end')."""
    _emit(logger, "TOOL", "TOOL", f"{tool_name} {_ctx(context)}", marker=_ARROWS.get(state, "***"))


def log_llm(logger: logging.Logger, state: str, model: str = "", duration: float = 0) -> None:
    """Log one streamed model round; ``duration`` is only shown on 'end'."""
    if state == "start":
        text = f"calling {model}"
    else:
        text = f"{model} completed in {duration:.1f}s"
    _emit(logger, "LLM", "LLM", text, marker=_ARROWS.get(state, "***"))


def log_stream(logger: logging.Logger, state: str, **context) -> None:
    """Log event stream lifecycle ('open', 'closed', 'disconnected')."""
    _emit(logger, "STREAM", "STREAM", f"{state} {_ctx(context)}", marker="~~~")
