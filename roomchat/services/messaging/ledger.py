"""Membership ledger - who may see a conversation, and how far each member has read."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from roomchat.core import timeutil
from roomchat.core.errors import NotFound, PersistenceError, Unauthorized
from roomchat.models.conversation import Conversation, ConversationParticipant

logger = logging.getLogger(__name__)

NOT_A_PARTICIPANT = "You are not a participant of this conversation"


def is_member(session: Session, conversation_id: str, identity: str) -> bool:
    if not conversation_id or not identity:
        return False
    try:
        return session.get(ConversationParticipant, (conversation_id, identity)) is not None
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to check membership") from e


def require_member(session: Session, conversation_id: str, identity: str) -> None:
    """Gate for every read/write on a conversation. Raises NotFound or Unauthorized."""
    try:
        exists = session.get(Conversation, conversation_id) is not None
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load conversation") from e
    if not exists:
        raise NotFound("Conversation not found")
    if not is_member(session, conversation_id, identity):
        raise Unauthorized(NOT_A_PARTICIPANT, signed_in=True)


def mark_read(session: Session, conversation_id: str, identity: str) -> datetime | None:
    """Advance the member's last-read mark to now. Best-effort: failures are logged, never raised."""
    now = timeutil.utcnow()
    try:
        participant = session.get(ConversationParticipant, (conversation_id, identity))
        if participant is None:
            logger.warning(f"mark_read: {identity} is not a participant of {conversation_id}")
            return None

        previous = timeutil.as_utc(participant.last_read_at)
        stamp = now if previous is None or previous < now else previous
        participant.last_read_at = stamp
        session.add(participant)
        session.commit()
        return stamp
    except SQLAlchemyError:
        session.rollback()
        logger.warning(f"mark_read failed for {identity} on {conversation_id}", exc_info=True)
        return None


def has_unread(
    last_message_at: datetime | None,
    last_message_sender: str | None,
    viewer_id: str,
    last_read_at: datetime | None,
) -> bool:
    """Latest message is from someone else and newer than the viewer's read mark.

    A member who never opened the conversation has read nothing.
    """
    if last_message_at is None or last_message_sender == viewer_id:
        return False
    read_at = timeutil.as_utc(last_read_at)
    if read_at is None:
        return True
    return timeutil.as_utc(last_message_at) > read_at
