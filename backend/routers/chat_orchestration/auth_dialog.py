"""
Authentication sub-dialog: binds an anonymous conversation to a known
identity with a one-time code sent by email.

    Unauthenticated --request_auth--> AwaitingCode --verify_code--> Authenticated

No state is stored for the dialog itself: it is derived from the
conversation's auth flag and whether the identity holds a live code.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import runtime_config
from errors import ExternalServiceError, log_error
from logging_config import log_auth
from models import Conversation, Message, Role, utcnow
from routers.chat_prompts import (
    AUTH_CODE_INVALID,
    AUTH_CODE_NOT_SENT,
    AUTH_CODE_SENT,
    AUTH_SUCCESS,
    AUTH_TITLE,
    AUTH_USER_NOT_FOUND,
)
from services.database import Database
from services.email import EmailService

from .events import EventChannel, StreamEvent
from .intents import AuthIntent, RequestAuth, VerifyCode

logger = logging.getLogger(__name__)

OTP_LENGTH = 6


def generate_code() -> str:
    """Six-digit numeric code, 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


class AuthDialog:

    def __init__(
        self,
        db: Database,
        email: EmailService,
        otp_ttl_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.db = db
        self.email = email
        self._otp_ttl_minutes = otp_ttl_minutes
        self._clock = clock
        self._code_factory = code_factory

    @property
    def otp_ttl_minutes(self) -> int:
        """Fixed at construction, or read from runtime_config on each use."""
        if self._otp_ttl_minutes is not None:
            return self._otp_ttl_minutes
        return runtime_config.otp_ttl_minutes

    async def handle(self, conversation: Conversation, intent: AuthIntent, channel: EventChannel) -> None:
        """Run one dialog step. Always ends with ``done`` on the channel."""
        if isinstance(intent, RequestAuth):
            await self._request_code(conversation, intent.name, channel)
        elif isinstance(intent, VerifyCode):
            await self._verify_code(conversation, intent.code, channel)
        await channel.send(StreamEvent.done())

    async def _reply(self, conversation: Conversation, text: str, channel: EventChannel) -> None:
        await channel.send(StreamEvent.content(text))
        await self.db.add_message(Message(conversation_id=conversation.id, role=Role.ASSISTANT, content=text))

    async def _request_code(self, conversation: Conversation, name: str, channel: EventChannel) -> None:
        user = await self.db.find_user_by_name(name)
        if user is None:
            log_auth(logger, "unknown_name", conversation=conversation.id, name=name)
            await self._reply(conversation, AUTH_USER_NOT_FOUND.format(name=name), channel)
            return

        now = self._clock()
        if user.has_live_code(now):
            # Re-send the code already issued instead of invalidating it
            code, expires_at = user.otp, user.otp_expires_at
        else:
            code, expires_at = self._code_factory(), now + timedelta(minutes=self.otp_ttl_minutes)
            await self.db.update_user(user.id, otp=code, otp_expires_at=expires_at)

        try:
            await self.email.send_otp_email(user.email, code, self.otp_ttl_minutes, user.name)
        except ExternalServiceError as e:
            log_error(logger, e, context="Auth")
            await self._reply(conversation, AUTH_CODE_NOT_SENT.format(email=user.email), channel)
            return

        log_auth(logger, "code_sent", conversation=conversation.id, user=user.id)
        await self._reply(conversation, AUTH_CODE_SENT.format(email=user.email), channel)

    async def _verify_code(self, conversation: Conversation, code: str, channel: EventChannel) -> None:
        user = await self.db.claim_user_by_otp(code, self._clock())
        if user is None:
            log_auth(logger, "rejected", conversation=conversation.id)
            await self._reply(conversation, AUTH_CODE_INVALID, channel)
            return

        await self.db.update_conversation(
            conversation.id,
            user_id=user.id,
            is_authenticated=True,
            title=AUTH_TITLE.format(name=user.name),
        )
        log_auth(logger, "verified", conversation=conversation.id, user=user.id)

        text = AUTH_SUCCESS.format(name=user.name)
        await channel.send(StreamEvent.content(text))
        await channel.send(StreamEvent.authenticated(user.public_dict()))
        await self.db.add_message(Message(conversation_id=conversation.id, role=Role.ASSISTANT, content=text))
