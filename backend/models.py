"""
Procura domain records.

Plain dataclasses shared by the persistence collaborator, the tools and
the conversation core. ``to_dict`` produces the camelCase shape used on
the wire.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


@dataclass
class User:
    """A known identity that can be bound to a conversation."""

    name: str
    email: str
    department: Optional[str] = None
    id: str = field(default_factory=new_id)
    otp: Optional[str] = None
    otp_expires_at: Optional[datetime] = None

    def has_live_code(self, now: datetime) -> bool:
        return bool(self.otp) and self.otp_expires_at is not None and self.otp_expires_at > now

    def public_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class Message:
    """One immutable entry in a conversation history."""

    conversation_id: str
    role: Role
    content: str
    tool_calls: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "toolCalls": self.tool_calls,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class Conversation:
    """Conversation header. Messages live in the persistence collaborator."""

    title: str = "Nueva conversación"
    is_authenticated: bool = False
    user_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(
        self,
        messages: Optional[List[Message]] = None,
        user: Optional[User] = None,
    ) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "isAuthenticated": self.is_authenticated,
            "user": user.public_dict() if user else None,
            "messages": [m.to_dict() for m in (messages or [])],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class ShoppingRequest:
    """A purchase request raised through the create_shopping_request tool."""

    item: str
    quantity: int
    estimated_price: float
    requested_by_id: str
    justification: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    # Filled in once the product catalog has been consulted
    search_results: Optional[List[Dict[str, Any]]] = None
    selected_product: Optional[Dict[str, Any]] = None
    product_link: Optional[str] = None
    product_price_usd: Optional[float] = None
    quotation_file: Optional[str] = None
