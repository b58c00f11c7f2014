"""Message store - append-only log per conversation, plus the live feed of new messages."""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from roomchat.core import timeutil
from roomchat.core.errors import PersistenceError, ValidationError
from roomchat.models.conversation import Message
from roomchat.models.profile import Profile
from roomchat.services.messaging.ledger import require_member
from roomchat.services.profiles import display_avatar, display_name, get_profiles
from roomchat.services.realtime.feed import Change, ChangeFeed, Subscription, feed as default_feed

logger = logging.getLogger(__name__)


@dataclass
class MessageView:
    id: int
    conversation_id: str
    sender_id: str
    body: str
    created_at: datetime
    sender_full_name: str
    sender_avatar_url: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = timeutil.isoformat(self.created_at)
        return data


def _view(message: Message, profile: Profile | None) -> MessageView:
    return MessageView(
        id=message.id,  # type: ignore[arg-type]
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        body=message.body,
        created_at=timeutil.as_utc(message.created_at),  # type: ignore[arg-type]
        sender_full_name=display_name(profile),
        sender_avatar_url=display_avatar(profile),
    )


def load_history(session: Session, conversation_id: str, identity: str) -> list[MessageView]:
    """All messages oldest first. Same-instant messages keep insertion order."""
    require_member(session, conversation_id, identity)
    try:
        messages = session.exec(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)  # type: ignore[arg-type]
        ).all()
        profiles = get_profiles(session, {m.sender_id for m in messages})
    except SQLAlchemyError as e:
        logger.error(f"Failed to load messages for {conversation_id}: {e}")
        raise PersistenceError("Failed to load messages") from e
    return [_view(m, profiles.get(m.sender_id)) for m in messages]


def view_from_change(session: Session, change: Change) -> MessageView:
    """Hydrate a message row that arrived through the change feed."""
    message = Message.model_validate(change.new)
    try:
        profile = session.get(Profile, message.sender_id)
    except SQLAlchemyError:
        logger.warning(f"Sender profile lookup failed for message {message.id}", exc_info=True)
        profile = None
    return _view(message, profile)


def send(
    session: Session,
    conversation_id: str,
    sender_id: str,
    body: str,
    feed: ChangeFeed = default_feed,
) -> None:
    """Append a message. The new row reaches subscribers, the sender included, only via the feed."""
    text = (body or "").strip()
    if not text:
        raise ValidationError("Message body cannot be empty")
    require_member(session, conversation_id, sender_id)

    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        body=text,
        created_at=timeutil.utcnow(),
    )
    try:
        session.add(message)
        session.flush()
        feed.publish_insert(session, message)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to send message to {conversation_id}: {e}")
        raise PersistenceError("Failed to send message") from e
    logger.debug(f"Message appended to {conversation_id} by {sender_id}")


def subscribe_to_conversation(
    feed: ChangeFeed,
    conversation_id: str,
    on_insert: Callable[[Change], None] | None = None,
) -> Subscription:
    """Live channel for new messages in one conversation. Caller must ``close()`` it."""
    return feed.subscribe("messages", filters={"conversation_id": conversation_id}, callback=on_insert)
