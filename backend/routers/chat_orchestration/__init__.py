"""
Procura Chat Orchestration

Components:
- events: StreamEvent values and the EventChannel that carries them
- intents: authentication utterance classifier
- auth_dialog: one-time code sign-in
- tool_calls: reassembly of streamed tool call fragments
- session: conversation snapshot -> model messages
- orchestrator: TurnOrchestrator, the two-round tool protocol
"""

from .auth_dialog import AuthDialog
from .events import EventChannel, EventType, StreamEvent
from .intents import RequestAuth, VerifyCode, classify_intent
from .orchestrator import TurnOrchestrator
from .session import ChatSession
from .tool_calls import ToolCallAccumulator, ToolCallBuilder

__all__ = [
    "AuthDialog",
    "EventChannel",
    "EventType",
    "StreamEvent",
    "RequestAuth",
    "VerifyCode",
    "classify_intent",
    "TurnOrchestrator",
    "ChatSession",
    "ToolCallAccumulator",
    "ToolCallBuilder",
]
