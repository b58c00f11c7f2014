"""Conversation directory - resolves the conversation id for a listing or a pair of people."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from roomchat.core.errors import InvalidArgument, NotFound, PersistenceError
from roomchat.models.conversation import Conversation, ConversationParticipant
from roomchat.models.profile import Listing
from roomchat.services.procedures.registry import procedures

logger = logging.getLogger(__name__)


def _require_pair(a: str | None, b: str | None) -> None:
    if not a or not a.strip() or not b or not b.strip():
        raise InvalidArgument("Missing required IDs to create/find conversation")
    if a == b:
        raise InvalidArgument("A conversation requires two distinct participants")


def _find_listing_conversation(session: Session, listing_id: str, members: set[str]) -> str | None:
    """First conversation on the listing whose participant set is exactly ``members``."""
    conversation_ids = session.exec(
        select(Conversation.id)
        .where(Conversation.listing_id == listing_id)
        .order_by(Conversation.created_at, Conversation.id)  # type: ignore[arg-type]
    ).all()
    if not conversation_ids:
        return None

    rows = session.exec(
        select(ConversationParticipant).where(
            ConversationParticipant.conversation_id.in_(conversation_ids)  # type: ignore[attr-defined]
        )
    ).all()
    by_conversation: dict[str, set[str]] = {cid: set() for cid in conversation_ids}
    for row in rows:
        by_conversation[row.conversation_id].add(row.user_id)

    matches = [cid for cid in conversation_ids if by_conversation[cid] == members]
    if len(matches) > 1:
        logger.warning(f"Listing {listing_id} has {len(matches)} conversations for the same pair, using {matches[0]}")
    return matches[0] if matches else None


def get_listing(session: Session, listing_id: str) -> Listing:
    try:
        listing = session.get(Listing, listing_id)
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load listing") from e
    if listing is None:
        raise NotFound("Listing not found")
    return listing


def ensure_listing_conversation(session: Session, listing_id: str, viewer_id: str, host_id: str) -> str:
    """Find or create the user/host conversation for a listing. Argument order of the pair does not matter."""
    if not listing_id:
        raise InvalidArgument("Missing required IDs to create/find conversation")
    _require_pair(viewer_id, host_id)

    listing = get_listing(session, listing_id)
    if listing.user_id not in (viewer_id, host_id):
        raise InvalidArgument("The listing's host must be one of the participants")

    try:
        found = _find_listing_conversation(session, listing_id, {viewer_id, host_id})
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load conversations") from e

    if found:
        return found

    return procedures.call(
        "ensure_user_host_conversation",
        session,
        listing_id=listing_id,
        viewer_id=viewer_id,
        host_id=host_id,
    )


def ensure_direct_conversation(session: Session, caller_id: str, other_id: str) -> str:
    _require_pair(caller_id, other_id)
    return procedures.call("ensure_conversation", session, a=caller_id, b=other_id)


def ensure_support_conversation(session: Session, caller_id: str) -> str:
    if not caller_id:
        raise InvalidArgument("Missing user id")
    return procedures.call("ensure_support_conversation", session, user_id=caller_id)


def get_conversation(session: Session, conversation_id: str) -> Conversation:
    try:
        conv = session.get(Conversation, conversation_id)
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load conversation") from e
    if conv is None:
        raise NotFound("Conversation not found")
    return conv


def get_participant_ids(session: Session, conversation_id: str) -> list[str]:
    try:
        return list(
            session.exec(
                select(ConversationParticipant.user_id)
                .where(ConversationParticipant.conversation_id == conversation_id)
                .order_by(ConversationParticipant.user_id)  # type: ignore[arg-type]
            ).all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load participants") from e
