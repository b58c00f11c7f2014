"""Inbox aggregator - the caller's conversations with the other party, recency and unread state."""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from roomchat.core import timeutil
from roomchat.core.config import settings
from roomchat.core.errors import PersistenceError
from roomchat.models.conversation import Conversation, ConversationParticipant, Message
from roomchat.services.messaging.ledger import has_unread
from roomchat.services.profiles import display_avatar, display_name, get_profiles
from roomchat.services.realtime.feed import Change, ChangeFeed, Subscription

logger = logging.getLogger(__name__)


@dataclass
class InboxEntry:
    conversation_id: str
    type: str
    listing_id: str | None
    created_at: datetime
    other_user_id: str | None
    other_full_name: str
    other_avatar_url: str | None
    last_message_at: datetime | None
    last_message_preview: str
    last_read_at: datetime | None
    has_unread: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "last_message_at", "last_read_at"):
            data[key] = timeutil.isoformat(data[key])
        return data


def list_conversations(session: Session, identity: str) -> list[InboxEntry]:
    """Newest conversation first (by creation time, not by latest message)."""
    try:
        mine = session.exec(
            select(ConversationParticipant).where(ConversationParticipant.user_id == identity)
        ).all()
        if not mine:
            return []
        read_marks = {p.conversation_id: p.last_read_at for p in mine}
        ids = list(read_marks)

        conversations = session.exec(
            select(Conversation)
            .where(Conversation.id.in_(ids))  # type: ignore[union-attr]
            .order_by(Conversation.created_at.desc(), Conversation.id.desc())  # type: ignore[attr-defined]
        ).all()

        others = session.exec(
            select(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id.in_(ids),  # type: ignore[attr-defined]
                ConversationParticipant.user_id != identity,
            )
            .order_by(ConversationParticipant.user_id)  # type: ignore[arg-type]
        ).all()
        other_by_conversation: dict[str, str] = {}
        for row in others:
            other_by_conversation.setdefault(row.conversation_id, row.user_id)
        profiles = get_profiles(session, other_by_conversation.values())

        # One bulk fetch, newest first; the first row seen per conversation is its latest
        latest: dict[str, Message] = {}
        for message in session.exec(
            select(Message)
            .where(Message.conversation_id.in_(ids))  # type: ignore[attr-defined]
            .order_by(Message.created_at.desc(), Message.id.desc())  # type: ignore[attr-defined]
        ):
            latest.setdefault(message.conversation_id, message)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load inbox for {identity}: {e}")
        raise PersistenceError("Failed to load conversations") from e

    entries = []
    for conv in conversations:
        other_id = other_by_conversation.get(conv.id)
        if other_id is None:
            name, avatar = settings.support_label, None
        else:
            profile = profiles.get(other_id)
            name, avatar = display_name(profile), display_avatar(profile)
        last = latest.get(conv.id)
        last_read_at = timeutil.as_utc(read_marks.get(conv.id))
        last_message_at = timeutil.as_utc(last.created_at) if last else None
        entries.append(
            InboxEntry(
                conversation_id=conv.id,
                type=conv.type.value if hasattr(conv.type, "value") else str(conv.type),
                listing_id=conv.listing_id,
                created_at=timeutil.as_utc(conv.created_at),  # type: ignore[arg-type]
                other_user_id=other_id,
                other_full_name=name,
                other_avatar_url=avatar,
                last_message_at=last_message_at,
                last_message_preview=last.body[: settings.preview_length] if last else "",
                last_read_at=last_read_at,
                has_unread=has_unread(last_message_at, last.sender_id if last else None, identity, last_read_at),
            )
        )
    return entries


def unread_count(session: Session, identity: str) -> int:
    """Number of conversations with unread messages, for the unread badge."""
    return sum(1 for entry in list_conversations(session, identity) if entry.has_unread)


def subscribe_to_inbox_changes(
    feed: ChangeFeed,
    identity: str,
    on_change: Callable[[Change], None] | None = None,
) -> Subscription:
    """Fires on every message insert system-wide; callers recompute the whole inbox.

    Not narrowed to the caller's conversations, so unrelated traffic also triggers a refresh.
    """
    logger.debug(f"Inbox subscription for {identity}")
    return feed.subscribe("messages", callback=on_change)
