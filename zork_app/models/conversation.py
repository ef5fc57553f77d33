# zork_app/models/conversation.py
# -*- coding: utf-8 -*-
import datetime
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Integer, String, func

from . import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(timezone.utc)


class Conversation(Base):
    """
    Maps a client-chosen conversation ID to the OpenAI thread that holds its context.
    One row per conversation; the row is deleted and recreated when a new game starts.
    """
    __tablename__ = 'conversations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String(255), unique=True, nullable=False)
    thread_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(),
                        onupdate=utcnow, nullable=False)

    def to_record(self) -> "ConversationRecord":
        return ConversationRecord(
            conversation_id=self.conversation_id,
            thread_id=self.thread_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self):
        return f"<Conversation(conversation_id='{self.conversation_id}', thread_id='{self.thread_id}')>"


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    if value is None:
        return None
    # SQLite hands back naive datetimes; every timestamp we write is UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass(frozen=True)
class ConversationRecord:
    """Detached copy of a ``Conversation`` row, safe to use after the session closes."""
    conversation_id: str
    thread_id: str
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "threadId": self.thread_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
