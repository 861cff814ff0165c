"""
Tool call reassembly.

Streamed completions deliver tool calls as fragments tagged with a call
index. ``ToolCallAccumulator`` keeps one builder per index and hands them
back in index order; argument buffers are raw strings until the stream ends.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from errors import ValidationError
from services.llm_client import ToolCallFragment


@dataclass
class ToolCallBuilder:
    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""

    def apply(self, fragment: ToolCallFragment) -> None:
        if fragment.id and not self.id:
            self.id = fragment.id
        if fragment.name:
            self.name = fragment.name
        if fragment.arguments:
            self.arguments += fragment.arguments

    @property
    def call_id(self) -> str:
        return self.id or f"call_{self.index}"

    def parse_arguments(self) -> Dict[str, Any]:
        """Parse the completed buffer.

        Raises:
            ValidationError: not valid JSON, or not a JSON object
        """
        raw = self.arguments.strip() or "{}"
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Invalid arguments for {self.name}: {e.msg}",
                parameter="arguments",
                expected="JSON object",
                received=raw[:200],
            ) from e
        if not isinstance(value, dict):
            raise ValidationError(
                f"Invalid arguments for {self.name}: expected a JSON object",
                parameter="arguments",
                expected="JSON object",
                received=type(value).__name__,
            )
        return value

    def to_history(self) -> Dict[str, Any]:
        return {"id": self.call_id, "name": self.name, "arguments": self.arguments}


class ToolCallAccumulator:

    def __init__(self):
        self._builders: Dict[int, ToolCallBuilder] = {}

    def __len__(self) -> int:
        return len(self._builders)

    def __bool__(self) -> bool:
        return bool(self._builders)

    def add(self, fragments: Iterable[ToolCallFragment]) -> None:
        for fragment in fragments:
            builder = self._builders.get(fragment.index)
            if builder is None:
                builder = self._builders[fragment.index] = ToolCallBuilder(index=fragment.index)
            builder.apply(fragment)

    def calls(self) -> List[ToolCallBuilder]:
        """Builders in call index order, which is the model's request order."""
        return [self._builders[i] for i in sorted(self._builders)]
