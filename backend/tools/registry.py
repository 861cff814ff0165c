"""
Tool Registry - declares the capabilities the model may call and runs them.

Each tool is a ``ToolDefinition`` with an OpenAI-style parameter schema and
a pydantic ``args_model`` that validates arguments at the dispatch
boundary, so executors receive typed arguments instead of raw JSON.

Dispatch outcomes:
- unknown name, missing identity, invalid arguments -> raises
  (UnknownToolError, AuthenticationRequiredError, ValidationError)
- the capability itself fails -> ``{"error": message}`` result, never raised

Every call produces a human-readable trace, whichever way it ends. Raised
errors carry theirs in ``context["trace"]``.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from errors import AuthenticationRequiredError, UnknownToolError, ValidationError
from logging_config import log_tool

logger = logging.getLogger(__name__)

Executor = Callable[[BaseModel, Optional[str]], Awaitable[Dict[str, Any]]]


class ToolCategory(Enum):
    """Tool categories for grouping."""

    KNOWLEDGE = "knowledge"  # Policy/document search
    REQUESTS = "requests"  # Purchase request lookup/creation
    EXTERNAL = "external"  # Third-party APIs


@dataclass
class ToolDefinition:
    """Definition of a tool for the registry."""

    name: str
    description: str
    parameters: Dict[str, Any]
    required_params: List[str]
    args_model: Type[BaseModel]
    executor: Executor
    category: ToolCategory
    requires_auth: bool = False
    brief: str = ""  # One-line summary for the system prompt


@dataclass
class ToolExecution:
    """Outcome of one dispatched call."""

    result: Dict[str, Any]
    trace: str
    success: bool = True


def format_trace(name: str, arguments: Union[Dict[str, Any], str], error: Optional[str] = None) -> str:
    """Trace of one call. Unparsed argument buffers are shown raw."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments, indent=2, ensure_ascii=False, default=str)
    trace = f"Executing tool: {name}\nArguments: {arguments}"
    if error is not None:
        trace += f"\nError: {error}"
    return trace


def _validation_message(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


@dataclass
class ToolRegistry:
    """
    Registry of tools available to one application.

    Usage:
        registry = ToolRegistry()
        registry.register(ToolDefinition(...))
        tools_schema = registry.get_tools_schema()
        execution = await registry.execute("search_knowledge_base", {"query": "..."})
    """

    _tools: Dict[str, ToolDefinition] = field(default_factory=dict)

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool definition."""
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get_all_tools(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def get_tools_schema(self) -> List[Dict[str, Any]]:
        """Generate OpenAI-compatible tools schema for function calling."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": {
                        "type": "object",
                        "properties": tool.parameters,
                        "required": tool.required_params,
                    },
                },
            }
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, arguments: Dict[str, Any], user_id: Optional[str] = None) -> ToolExecution:
        """
        Execute a tool by name.

        Args:
            name: Tool name
            arguments: Parsed argument object
            user_id: Bound caller identity, if the conversation is authenticated

        Returns:
            ToolExecution with the result dict and trace

        Raises:
            UnknownToolError: name is not registered
            AuthenticationRequiredError: tool needs an identity and none was given
            ValidationError: arguments do not match the tool's model
        """
        trace = format_trace(name, arguments)
        log_tool(logger, name, "start", user=user_id or "-")

        tool = self._tools.get(name)
        if tool is None:
            error_trace = format_trace(name, arguments, error=f"Unknown tool: {name}")
            self._log_trace(error_trace, failed=True)
            raise UnknownToolError(name, trace=error_trace)

        if tool.requires_auth and not user_id:
            message = f"Authentication required to use {name}"
            error_trace = format_trace(name, arguments, error=message)
            self._log_trace(error_trace, failed=True)
            raise AuthenticationRequiredError(message, tool=name, trace=error_trace)

        try:
            args = tool.args_model.model_validate(arguments)
        except PydanticValidationError as e:
            message = f"Invalid arguments for {name}: {_validation_message(e)}"
            error_trace = format_trace(name, arguments, error=message)
            self._log_trace(error_trace, failed=True)
            raise ValidationError(message, parameter="arguments", tool=name, trace=error_trace) from e

        try:
            result = await tool.executor(args, user_id)
        except Exception as e:
            # Capability failures are reported to the model, never raised
            logger.warning(f"Tool {name} failed: {e}", exc_info=True)
            error_trace = format_trace(name, arguments, error=str(e))
            self._log_trace(error_trace, failed=True)
            log_tool(logger, name, "end", success=False)
            return ToolExecution(result={"error": str(e)}, trace=error_trace, success=False)

        success = "error" not in result
        result_trace = f"{trace}\nResult: {json.dumps(result, indent=2, ensure_ascii=False, default=str)}"
        self._log_trace(result_trace, failed=not success)
        log_tool(logger, name, "end", success=success)
        return ToolExecution(result=result, trace=result_trace, success=success)

    @staticmethod
    def _log_trace(trace: str, failed: bool) -> None:
        if failed:
            logger.warning(trace)
        else:
            logger.info(trace)
