"""
Procura Chat Session - conversation state for one turn

Loaded from the persistence collaborator at the start of a turn; turns
the stored history into model messages.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import NotFoundError
from models import Conversation, Message, Role, User
from services.database import Database


@dataclass
class ChatSession:
    """Conversation snapshot used to build one model request.

    Attributes:
        conversation: Conversation header (auth flag, bound user id)
        user: Bound identity, if authenticated
        history: Stored messages, oldest first
    """

    conversation: Conversation
    user: Optional[User] = None
    history: List[Message] = field(default_factory=list)

    @classmethod
    async def load(cls, db: Database, conversation_id: str) -> "ChatSession":
        conversation = await db.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found", resource_type="conversation", resource_id=conversation_id)
        user = await db.get_user(conversation.user_id) if conversation.user_id else None
        history = await db.list_messages(conversation_id)
        return cls(conversation=conversation, user=user, history=history)

    @property
    def is_authenticated(self) -> bool:
        return self.conversation.is_authenticated

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user and self.is_authenticated else None

    def get_messages_for_llm(self, system_prompt: str) -> List[Dict[str, Any]]:
        """System preamble plus prior turns. Tool-role entries are not replayed."""
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for msg in self.history:
            if msg.role == Role.TOOL:
                continue
            messages.append({"role": msg.role.value, "content": msg.content})
        return messages
