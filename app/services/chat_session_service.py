"""Active chat-session resolution and sender attribution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.constants.waha import SYSTEM_BOT_NAME, SenderType
from app.models.bot_personality import BotPersonality
from app.models.chat_session import ChatSession


@dataclass(frozen=True)
class SenderInfo:
    type: SenderType
    id: Optional[UUID]
    name: str


class ChatSessionService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_active_session(
        self, organization_id: UUID, customer_id: UUID
    ) -> Optional[ChatSession]:
        return (
            self.db.query(ChatSession)
            .filter(
                ChatSession.organization_id == organization_id,
                ChatSession.customer_id == customer_id,
                ChatSession.is_active.is_(True),
            )
            .order_by(ChatSession.started_at.desc())
            .first()
        )

    def get_default_bot_personality(
        self, organization_id: UUID
    ) -> Optional[BotPersonality]:
        return (
            self.db.query(BotPersonality)
            .filter(
                BotPersonality.organization_id == organization_id,
                BotPersonality.status == "active",
                BotPersonality.is_default.is_(True),
            )
            .first()
        )

    def get_or_open_active_session(
        self, organization_id: UUID, customer_id: UUID
    ) -> ChatSession:
        """Flushes only; the caller commits."""
        session = self.find_active_session(organization_id, customer_id)
        if session is not None:
            return session
        bot = self.get_default_bot_personality(organization_id)
        session = ChatSession(
            organization_id=organization_id,
            customer_id=customer_id,
            bot_personality_id=bot.id if bot else None,
            is_active=True,
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(session)
        self.db.flush()
        return session

    def determine_sender(self, chat_session: ChatSession) -> SenderInfo:
        """Assigned agent, else the organization's default bot, else the system bot."""
        if chat_session.agent_id is not None:
            agent = chat_session.agent
            name = agent.display_name if agent is not None else "Agent"
            return SenderInfo(SenderType.AGENT, chat_session.agent_id, name)
        bot = self.get_default_bot_personality(chat_session.organization_id)
        if bot is not None:
            return SenderInfo(SenderType.BOT, bot.id, bot.display_name or bot.name)
        return SenderInfo(SenderType.BOT, None, SYSTEM_BOT_NAME)
