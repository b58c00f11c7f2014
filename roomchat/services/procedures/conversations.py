"""Server-side conversation procedures.

Each one is an atomic find-or-create keyed on ``Conversation.pair_key``. The
conversation and all of its participants are written in one transaction, and
the unique index settles concurrent callers: the loser rolls back and returns
the winner's id.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from roomchat.core import timeutil
from roomchat.core.errors import InvalidArgument, PersistenceError
from roomchat.models.conversation import Conversation, ConversationParticipant, ConversationType

logger = logging.getLogger(__name__)


def scoped_key(scope: str, *parts: str) -> str:
    # Each part is length-prefixed so ids containing ":" cannot collide
    return scope + "".join(f":{len(part)}:{part}" for part in parts)


def pair_key(scope: str, a: str, b: str, *, listing_id: str | None = None) -> str:
    low, high = sorted((a, b))
    if listing_id is None:
        return scoped_key(scope, low, high)
    return scoped_key(scope, listing_id, low, high)


def _conversation_id_for(session: Session, key: str) -> str | None:
    return session.exec(select(Conversation.id).where(Conversation.pair_key == key)).first()


def _find_or_create(
    session: Session,
    key: str,
    conversation_type: ConversationType,
    members: list[str],
    listing_id: str | None = None,
) -> str:
    try:
        existing = _conversation_id_for(session, key)
        if existing:
            return existing

        conv = Conversation(
            type=conversation_type,
            listing_id=listing_id,
            pair_key=key,
            created_at=timeutil.utcnow(),
        )
        conversation_id = conv.id
        session.add(conv)
        session.flush()
        session.add_all(
            [ConversationParticipant(conversation_id=conversation_id, user_id=member) for member in members]
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        winner = _conversation_id_for(session, key)
        if winner is None:
            raise PersistenceError("Failed to create conversation")
        logger.info(f"Concurrent create for {key}, using existing conversation {winner}")
        return winner
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Conversation find-or-create failed for {key}: {e}")
        raise PersistenceError("Failed to create conversation") from e

    logger.info(f"Created {conversation_type.value} conversation {conversation_id}")
    return conversation_id


def ensure_conversation(session: Session, a: str, b: str) -> str:
    """1:1 conversation between two identities, regardless of listing."""
    if not a or not b:
        raise InvalidArgument("Missing other user id")
    if a == b:
        raise InvalidArgument("A conversation requires two distinct participants")
    return _find_or_create(session, pair_key("direct", a, b), ConversationType.direct, [a, b])


def ensure_user_host_conversation(session: Session, listing_id: str, viewer_id: str, host_id: str) -> str:
    if not listing_id or not viewer_id or not host_id:
        raise InvalidArgument("Missing required IDs to create/find conversation")
    if viewer_id == host_id:
        raise InvalidArgument("A conversation requires two distinct participants")
    return _find_or_create(
        session,
        pair_key("listing", viewer_id, host_id, listing_id=listing_id),
        ConversationType.user_host,
        [viewer_id, host_id],
        listing_id=listing_id,
    )


def ensure_support_conversation(session: Session, user_id: str) -> str:
    """Single-member support thread; the inbox labels it with the support label."""
    if not user_id:
        raise InvalidArgument("Missing user id")
    return _find_or_create(session, scoped_key("support", user_id), ConversationType.support, [user_id])
