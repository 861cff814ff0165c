"""
Procura Turn Orchestrator - two-round model protocol for one user turn

1. Persist the user message
2. Authentication utterances go to the auth dialog (no model call)
3. Round one: history + tool schema, streamed; text is forwarded as it
   arrives, tool call fragments are accumulated by index
4. No tool calls -> persist the answer, done
5. Tool calls -> tool_start, dispatch each call in request order
   (tool_result / tool_error), append one tool-role entry per call
6. Round two: updated history with tools disabled, streamed as content
7. Persist the final answer (if any), done

At most two model round-trips per turn. A model failure in either round
ends the turn with a terminal ``error`` event; it is not retried here.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from errors import LLMError, ProcuraError, format_error_for_llm, log_error
from logging_config import log_message_in, log_message_out
from models import Message, Role
from routers.chat_prompts import build_system_prompt
from services.database import Database
from services.llm_client import LLMClient
from tools.registry import ToolRegistry, format_trace

from .auth_dialog import AuthDialog
from .events import EventChannel, StreamEvent
from .intents import classify_intent
from .session import ChatSession
from .tool_calls import ToolCallAccumulator, ToolCallBuilder

logger = logging.getLogger(__name__)


class TurnOrchestrator:
    """Runs one turn and writes its events to an EventChannel.

    Args:
        db: Persistence collaborator
        llm: Streaming chat client
        registry: Tools exposed to the model
        auth_dialog: Handles authentication utterances
    """

    def __init__(self, db: Database, llm: LLMClient, registry: ToolRegistry, auth_dialog: AuthDialog):
        self.db = db
        self.llm = llm
        self.registry = registry
        self.auth_dialog = auth_dialog

    async def run_turn(self, conversation_id: str, text: str, channel: EventChannel) -> None:
        await self.db.add_message(Message(conversation_id=conversation_id, role=Role.USER, content=text))
        session = await ChatSession.load(self.db, conversation_id)
        log_message_in(logger, text, conversation=conversation_id, authenticated=session.is_authenticated)

        intent = classify_intent(text, session.is_authenticated)
        if intent is not None:
            await self.auth_dialog.handle(session.conversation, intent, channel)
            return

        user_name = session.user.name if session.user_id else None
        system_prompt = build_system_prompt(self.registry.get_all_tools(), user_name)
        messages = session.get_messages_for_llm(system_prompt)

        try:
            response, tools_used = await self._run_rounds(conversation_id, session.user_id, messages, channel)
        except LLMError as e:
            log_error(logger, e, context="Turn")
            await channel.send(StreamEvent.error(e.message))
            return

        if response:
            await self.db.add_message(Message(conversation_id=conversation_id, role=Role.ASSISTANT, content=response))
        await channel.send(StreamEvent.done())
        log_message_out(logger, tools_used=tools_used, chars=len(response))

    async def _run_rounds(
        self,
        conversation_id: str,
        user_id: Optional[str],
        messages: List[Dict[str, Any]],
        channel: EventChannel,
    ) -> tuple:
        """Returns (final response text, names of tools called)."""
        calls = ToolCallAccumulator()
        response = await self._stream_round(messages, channel, tools=self.registry.get_tools_schema(), calls=calls)
        if not calls:
            return response, []

        requested = calls.calls()
        names = [call.name for call in requested]
        await channel.send(StreamEvent.tool_start(names))
        messages.append({
            "role": "assistant",
            "content": response or None,
            "tool_calls": [call.to_history() for call in requested],
        })

        for call in requested:
            await self._dispatch(conversation_id, user_id, call, messages, channel)

        # Tools disabled: one corrective round, never recursive
        response = await self._stream_round(messages, channel)
        return response, names

    async def _stream_round(
        self,
        messages: List[Dict[str, Any]],
        channel: EventChannel,
        tools: Optional[List[Dict[str, Any]]] = None,
        calls: Optional[ToolCallAccumulator] = None,
    ) -> str:
        buffer = []
        async for fragment in self.llm.stream_chat(messages, tools=tools):
            if fragment.content:
                buffer.append(fragment.content)
                await channel.send(StreamEvent.content(fragment.content))
            if fragment.tool_calls and calls is not None:
                calls.add(fragment.tool_calls)
        return "".join(buffer)

    async def _dispatch(
        self,
        conversation_id: str,
        user_id: Optional[str],
        call: ToolCallBuilder,
        messages: List[Dict[str, Any]],
        channel: EventChannel,
    ) -> None:
        """Run one call. Every outcome leaves exactly one tool-role entry."""
        try:
            arguments = call.parse_arguments()
            execution = await self.registry.execute(call.name, arguments, user_id=user_id)
        except ProcuraError as e:
            logger.warning(f"Tool call {call.name} rejected: {e.code.value}: {e.message}")
            trace = (e.context or {}).get("trace") or format_trace(call.name, call.arguments, error=e.message)
            result = {"error": format_error_for_llm(e)}
            await channel.send(StreamEvent.tool_error(call.name, e.message, trace))
        else:
            result = execution.result
            await channel.send(StreamEvent.tool_result(call.name, result, execution.trace))

        content = json.dumps(result, ensure_ascii=False, default=str)
        messages.append({"role": "tool", "tool_call_id": call.call_id, "content": content})
        await self.db.add_message(Message(
            conversation_id=conversation_id,
            role=Role.TOOL,
            content=content,
            tool_calls=call.to_history(),
        ))
