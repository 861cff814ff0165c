"""
Procura Tools - capabilities the model can call during a turn.

- registry: ToolRegistry / ToolDefinition, validation and tracing
- shopping: the purchasing tools and their argument models
"""

from .registry import ToolCategory, ToolDefinition, ToolExecution, ToolRegistry
from .shopping import ShoppingTools, register_shopping_tools

__all__ = [
    "ToolCategory",
    "ToolDefinition",
    "ToolExecution",
    "ToolRegistry",
    "ShoppingTools",
    "register_shopping_tools",
]
