"""
LLM Client - wraps the async OpenAI SDK for streamed chat completions.

Works against any OpenAI-compatible endpoint (OpenAI, Azure/GitHub models,
llama-server). The orchestrator only sees ``ChatFragment`` values:

    ChatFragment(content="Hola", tool_calls=[])
    ChatFragment(content="", tool_calls=[ToolCallFragment(index=0, id="call_1", name="search_knowledge_base", arguments='{"que')])

Key translations:
- Internal history dicts -> OpenAI messages (tool_call_id, assistant tool_calls)
- ChatCompletionChunk.choices[0].delta -> ChatFragment
- SDK / transport failures -> LLMError (no retries here)
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from config import runtime_config
from errors import LLMError
from logging_config import log_llm

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """Partial tool call data for one call index within one chunk."""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass
class ChatFragment:
    """One incremental piece of a streamed completion."""

    content: str = ""
    tool_calls: List[ToolCallFragment] = field(default_factory=list)


def _translate_messages_for_openai(messages: List[Dict]) -> List[Dict]:
    """Translate internal message dicts to OpenAI API format."""
    translated = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "tool":
            translated.append({
                "role": "tool",
                "content": content if isinstance(content, str) else json.dumps(content),
                "tool_call_id": msg.get("tool_call_id", "call_0"),
            })
            continue

        new_msg = {"role": role, "content": content}
        if role == "assistant" and msg.get("tool_calls"):
            new_msg["tool_calls"] = [
                {
                    "id": tc["id"],
                    "type": "function",
                    "function": {"name": tc["name"], "arguments": tc.get("arguments") or "{}"},
                }
                for tc in msg["tool_calls"]
            ]
            # OpenAI requires content to be None when tool_calls present
            if not content:
                new_msg["content"] = None
        translated.append(new_msg)

    return translated


def _translate_chunk(chunk: Any) -> Optional[ChatFragment]:
    """Turn a ChatCompletionChunk into a ChatFragment, or None if it carries nothing."""
    if not chunk.choices:
        return None
    delta = chunk.choices[0].delta
    if delta is None:
        return None

    tool_calls = []
    for tc in delta.tool_calls or []:
        fn = tc.function
        tool_calls.append(ToolCallFragment(
            index=tc.index if tc.index is not None else 0,
            id=tc.id,
            name=fn.name if fn else None,
            arguments=(fn.arguments or "") if fn else "",
        ))

    content = delta.content or ""
    if not content and not tool_calls:
        return None
    return ChatFragment(content=content, tool_calls=tool_calls)


class LLMClient:
    """Async streaming chat client."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        """
        Args:
            api_key: Provider API key
            model: Chat model name; None follows runtime_config.model_chat
            base_url: OpenAI-compatible endpoint; SDK default when None
            timeout: Request timeout in seconds
            temperature, max_tokens: Fixed overrides; None follows runtime_config
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._openai = AsyncOpenAI(
            api_key=api_key or "not-needed",
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def stream_chat(
        self,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
    ) -> AsyncIterator[ChatFragment]:
        """Stream one completion round.

        Raises:
            LLMError: on connection, timeout or API status failures, whether
                they happen when the request is made or mid-stream
        """
        model = self.model or runtime_config.model_chat
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": _translate_messages_for_openai(messages),
            "stream": True,
            **runtime_config.get_llm_params(),
        }
        if tools:
            kwargs["tools"] = tools
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens

        log_llm(logger, "start", model=model)
        start = time.monotonic()
        try:
            stream = await self._openai.chat.completions.create(**kwargs)
            async for chunk in stream:
                fragment = _translate_chunk(chunk)
                if fragment is not None:
                    yield fragment
        except openai.APITimeoutError as e:
            raise LLMError("Model request timed out", details=str(e), model=model, error_type="timeout") from e
        except (openai.APIError, httpx.HTTPError) as e:
            raise LLMError("Model provider request failed", details=str(e), model=model) from e
        log_llm(logger, "end", model=model, duration=time.monotonic() - start)

    async def close(self) -> None:
        await self._openai.close()
