"""
Persistence collaborator - conversations, messages, users and requests.

The conversation core only needs atomic single-entity operations, so the
contract is a small abstract class. ``InMemoryDatabase`` backs a single
process (development, tests); a durable backend implements the same
methods.

Usage:
    db = InMemoryDatabase()
    await seed_users(db)
    conversation = await db.create_conversation()
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from errors import NotFoundError
from models import Conversation, Message, RequestStatus, ShoppingRequest, User, utcnow

logger = logging.getLogger(__name__)

# Identities available out of the box
DEFAULT_USERS = [
    {"name": "Olvadis", "email": "olvadis@procura.local", "department": "IT"},
    {"name": "Monica", "email": "monica@procura.local", "department": "Marketing"},
]


class Database(ABC):
    """Single-entity persistence operations consumed by the core."""

    # Conversations
    @abstractmethod
    async def create_conversation(self, title: Optional[str] = None) -> Conversation: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    async def update_conversation(self, conversation_id: str, **changes) -> Conversation: ...

    # Messages
    @abstractmethod
    async def add_message(self, message: Message) -> Message: ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> List[Message]:
        """Messages ordered by creation time, oldest first."""

    # Users
    @abstractmethod
    async def create_user(self, user: User) -> User: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def find_user_by_name(self, name: str) -> Optional[User]:
        """Case-insensitive substring match on the user's name."""

    @abstractmethod
    async def claim_user_by_otp(self, code: str, now: datetime) -> Optional[User]:
        """User holding exactly ``code`` with an expiry after ``now``.

        The code is cleared in the same step; at most one caller gets the user.
        """

    @abstractmethod
    async def update_user(self, user_id: str, **changes) -> User: ...

    # Shopping requests
    @abstractmethod
    async def create_request(self, request: ShoppingRequest) -> ShoppingRequest: ...

    @abstractmethod
    async def update_request(self, request_id: str, **changes) -> ShoppingRequest: ...

    @abstractmethod
    async def list_requests(
        self, user_id: str, status: Optional[RequestStatus] = None, limit: int = 10
    ) -> List[ShoppingRequest]:
        """Newest first."""


class InMemoryDatabase(Database):
    """Dict-backed implementation. Each operation holds the lock for its duration."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._users: Dict[str, User] = {}
        self._requests: Dict[str, ShoppingRequest] = {}

    # === Conversations ===

    async def create_conversation(self, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title) if title else Conversation()
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            return replace(conversation) if conversation else None

    async def update_conversation(self, conversation_id: str, **changes) -> Conversation:
        async with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                raise NotFoundError("Conversation not found", resource_type="conversation", resource_id=conversation_id)
            updated = replace(current, updated_at=utcnow(), **changes)
            self._conversations[conversation_id] = updated
            return replace(updated)

    # === Messages ===

    async def add_message(self, message: Message) -> Message:
        async with self._lock:
            conversation = self._conversations.get(message.conversation_id)
            if conversation is None:
                raise NotFoundError(
                    "Conversation not found", resource_type="conversation", resource_id=message.conversation_id
                )
            self._messages[message.conversation_id].append(message)
            self._conversations[message.conversation_id] = replace(conversation, updated_at=utcnow())
        return message

    async def list_messages(self, conversation_id: str) -> List[Message]:
        async with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        return sorted(messages, key=lambda m: m.created_at)

    # === Users ===

    async def create_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    async def find_user_by_name(self, name: str) -> Optional[User]:
        needle = name.strip().lower()
        if not needle:
            return None
        async with self._lock:
            for user in self._users.values():
                if needle in user.name.lower():
                    return replace(user)
        return None

    async def claim_user_by_otp(self, code: str, now: datetime) -> Optional[User]:
        async with self._lock:
            for user in self._users.values():
                if user.otp == code and user.otp_expires_at is not None and user.otp_expires_at > now:
                    self._users[user.id] = replace(user, otp=None, otp_expires_at=None)
                    return replace(user)
        return None

    async def update_user(self, user_id: str, **changes) -> User:
        async with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise NotFoundError("User not found", resource_type="user", resource_id=user_id)
            updated = replace(current, **changes)
            self._users[user_id] = updated
            return replace(updated)

    # === Shopping requests ===

    async def create_request(self, request: ShoppingRequest) -> ShoppingRequest:
        async with self._lock:
            self._requests[request.id] = request
        return replace(request)

    async def update_request(self, request_id: str, **changes) -> ShoppingRequest:
        async with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise NotFoundError("Request not found", resource_type="request", resource_id=request_id)
            updated = replace(current, **changes)
            self._requests[request_id] = updated
            return replace(updated)

    async def list_requests(
        self, user_id: str, status: Optional[RequestStatus] = None, limit: int = 10
    ) -> List[ShoppingRequest]:
        async with self._lock:
            rows = [
                r for r in self._requests.values()
                if r.requested_by_id == user_id and (status is None or r.status == status)
            ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [replace(r) for r in rows[:limit]]


async def seed_users(db: Database, path: Optional[str] = None) -> List[User]:
    """Load initial identities from a JSON list, or the built-in defaults.

    Each entry needs ``name`` and ``email``; ``department`` is optional.
    """
    entries = DEFAULT_USERS
    if path:
        seed_file = Path(path)
        if seed_file.exists():
            entries = json.loads(seed_file.read_text(encoding="utf-8"))
        else:
            logger.warning(f"Seed file not found: {path}, using default users")

    users = []
    for entry in entries:
        user = User(name=entry["name"], email=entry["email"], department=entry.get("department"))
        users.append(await db.create_user(user))
    logger.info(f"Seeded {len(users)} users")
    return users
