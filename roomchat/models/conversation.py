"""Conversation, participant and message models for marketplace messaging."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, Relationship, SQLModel


class ConversationType(str, Enum):
    user_host = "user_host"
    support = "support"
    direct = "direct"


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    type: ConversationType = Field(default=ConversationType.user_host)
    listing_id: Optional[str] = Field(default=None, foreign_key="listings.id", index=True)
    # Canonical "<scope>:<a>:<b>" key; the unique index is what makes find-or-create atomic
    pair_key: Optional[str] = Field(default=None, unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    participants: list["ConversationParticipant"] = Relationship(back_populates="conversation")


class ConversationParticipant(SQLModel, table=True):
    __tablename__ = "conversation_participants"

    conversation_id: str = Field(foreign_key="conversations.id", primary_key=True)
    user_id: str = Field(primary_key=True, index=True)
    last_read_at: Optional[datetime] = None

    conversation: Optional[Conversation] = Relationship(back_populates="participants")


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id", index=True)
    sender_id: str = Field(index=True)
    body: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
