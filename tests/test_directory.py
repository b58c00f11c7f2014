"""Tests for conversation find-or-create."""

from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from tests.conftest import HOST, STRANGER, VIEWER, seed_conversation, seed_listing, test_engine
from roomchat.core.errors import InvalidArgument, NotFound
from roomchat.models.conversation import Conversation, ConversationParticipant, ConversationType
from roomchat.services.messaging import directory, ledger
from roomchat.services.procedures import conversations as conversation_procedures
from roomchat.services.procedures.registry import procedures


def _count(model, **where):
    with Session(test_engine) as session:
        stmt = select(model)
        for column, value in where.items():
            stmt = stmt.where(getattr(model, column) == value)
        return len(session.exec(stmt).all())


def test_listing_conversation_is_idempotent(session):
    seed_listing("L123")
    first = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)
    second = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)

    assert first == second
    assert _count(Conversation, listing_id="L123") == 1
    assert _count(ConversationParticipant, conversation_id=first) == 2


def test_listing_conversation_ignores_argument_order(session):
    seed_listing("L123")
    a = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)
    b = directory.ensure_listing_conversation(session, "L123", HOST, VIEWER)
    assert a == b


def test_listing_conversation_has_user_host_type_and_both_members(session):
    seed_listing("L123")
    cid = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)

    conv = directory.get_conversation(session, cid)
    assert conv.type == ConversationType.user_host
    assert conv.listing_id == "L123"
    assert directory.get_participant_ids(session, cid) == sorted([VIEWER, HOST])


def test_different_listings_get_different_conversations(session):
    seed_listing("L1")
    seed_listing("L2")
    assert directory.ensure_listing_conversation(session, "L1", VIEWER, HOST) != \
        directory.ensure_listing_conversation(session, "L2", VIEWER, HOST)


def test_listing_conversation_reuses_existing_row_without_pair_key(session):
    """Rows created before the unique key existed are still found by participant set."""
    seed_listing("L123")
    legacy = seed_conversation([VIEWER, HOST], listing_id="L123")
    seed_conversation([STRANGER, HOST], listing_id="L123")

    assert directory.ensure_listing_conversation(session, "L123", HOST, VIEWER) == legacy


def test_listing_conversation_duplicates_return_first_match(session):
    from datetime import datetime, timezone

    seed_listing("L123")
    earliest = seed_conversation([VIEWER, HOST], listing_id="L123", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    seed_conversation([VIEWER, HOST], listing_id="L123", created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))

    assert directory.ensure_listing_conversation(session, "L123", VIEWER, HOST) == earliest


def test_listing_conversation_superset_does_not_match(session):
    seed_listing("L123")
    group = seed_conversation([VIEWER, HOST, STRANGER], listing_id="L123")
    cid = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)
    assert cid != group


@pytest.mark.parametrize(
    "listing_id, viewer, host",
    [
        ("L123", VIEWER, VIEWER),
        ("L123", "", HOST),
        ("L123", VIEWER, "   "),
        ("", VIEWER, HOST),
    ],
)
def test_listing_conversation_rejects_bad_ids(session, listing_id, viewer, host):
    seed_listing("L123")
    with pytest.raises(InvalidArgument):
        directory.ensure_listing_conversation(session, listing_id, viewer, host)
    assert _count(Conversation) == 0


def test_listing_conversation_unknown_listing(session):
    with pytest.raises(NotFound):
        directory.ensure_listing_conversation(session, "missing", VIEWER, HOST)


def test_direct_conversation_is_symmetric_and_idempotent(session):
    a = directory.ensure_direct_conversation(session, VIEWER, HOST)
    b = directory.ensure_direct_conversation(session, HOST, VIEWER)
    assert a == b
    assert _count(Conversation, type=ConversationType.direct) == 1
    assert _count(ConversationParticipant, conversation_id=a) == 2


def test_direct_conversation_is_independent_of_listings(session):
    seed_listing("L123")
    listing_cid = directory.ensure_listing_conversation(session, "L123", VIEWER, HOST)
    direct_cid = directory.ensure_direct_conversation(session, VIEWER, HOST)
    assert listing_cid != direct_cid


def test_direct_conversation_with_self_is_rejected(session):
    with pytest.raises(InvalidArgument):
        directory.ensure_direct_conversation(session, VIEWER, VIEWER)


def test_support_conversation_has_single_member(session):
    cid = directory.ensure_support_conversation(session, VIEWER)
    assert directory.ensure_support_conversation(session, VIEWER) == cid
    assert directory.get_participant_ids(session, cid) == [VIEWER]
    assert directory.get_conversation(session, cid).type == ConversationType.support


def test_get_conversation_not_found(session):
    with pytest.raises(NotFound):
        directory.get_conversation(session, "nope")


def test_concurrent_create_returns_winner(session):
    """Losing the unique-key race rolls back and hands back the existing conversation."""
    winner = directory.ensure_direct_conversation(session, VIEWER, HOST)

    with patch.object(conversation_procedures, "_conversation_id_for", side_effect=[None, winner]):
        result = procedures.call("ensure_conversation", session, a=VIEWER, b=HOST)

    assert result == winner
    assert _count(Conversation) == 1
    assert _count(ConversationParticipant) == 2


def test_start_or_get_dm_alias(session):
    cid = procedures.call("start_or_get_dm", session, p_user1=HOST, p_user2=VIEWER)
    assert cid == directory.ensure_direct_conversation(session, VIEWER, HOST)


def test_unknown_procedure(session):
    with pytest.raises(NotFound):
        procedures.call("match_roommates", session)


def test_direct_conversation_ids_containing_separator_do_not_collide(session):
    first = directory.ensure_direct_conversation(session, "a", "b:c")
    second = directory.ensure_direct_conversation(session, "a:b", "c")

    assert first != second
    assert directory.get_participant_ids(session, first) == ["a", "b:c"]
    assert directory.get_participant_ids(session, second) == ["a:b", "c"]
    assert ledger.is_member(session, second, "a:b")


def test_listing_conversation_ids_containing_separator_do_not_collide(session):
    first = procedures.call("ensure_user_host_conversation", session, listing_id="L", viewer_id="a", host_id="b:c")
    second = procedures.call("ensure_user_host_conversation", session, listing_id="L:a", viewer_id="b", host_id="c")

    assert first != second
    assert directory.get_participant_ids(session, second) == ["b", "c"]


def test_default_procedures_are_registered():
    assert procedures.names() == [
        "ensure_conversation",
        "ensure_support_conversation",
        "ensure_user_host_conversation",
        "start_or_get_dm",
    ]


def test_listing_conversation_requires_the_listing_host(session):
    seed_listing("L123", host_id=HOST)
    with pytest.raises(InvalidArgument):
        directory.ensure_listing_conversation(session, "L123", VIEWER, STRANGER)
    assert _count(Conversation) == 0
