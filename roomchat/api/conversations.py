"""REST API for conversations: find-or-create, history, sending and read marks."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from roomchat.api.deps import get_current_identity, http_error
from roomchat.core import timeutil
from roomchat.core.database import get_session
from roomchat.core.errors import MessagingError
from roomchat.services.messaging import directory, ledger, store

router = APIRouter()
logger = logging.getLogger(__name__)


class ListingConversationCreate(BaseModel):
    listing_id: str
    host_id: str | None = None  # defaults to the listing's owner


class DirectConversationCreate(BaseModel):
    other_user_id: str


class MessageCreate(BaseModel):
    body: str


@router.post("/listing")
async def ensure_listing_conversation(
    payload: ListingConversationCreate,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        host_id = payload.host_id or directory.get_listing(session, payload.listing_id).user_id
        conversation_id = directory.ensure_listing_conversation(session, payload.listing_id, identity, host_id)
    except MessagingError as e:
        raise http_error(e)
    return {"conversation_id": conversation_id}


@router.post("/direct")
async def ensure_direct_conversation(
    payload: DirectConversationCreate,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        conversation_id = directory.ensure_direct_conversation(session, identity, payload.other_user_id)
    except MessagingError as e:
        raise http_error(e)
    return {"conversation_id": conversation_id}


@router.post("/support")
async def ensure_support_conversation(
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        conversation_id = directory.ensure_support_conversation(session, identity)
    except MessagingError as e:
        raise http_error(e)
    return {"conversation_id": conversation_id}


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        ledger.require_member(session, conversation_id, identity)
        conv = directory.get_conversation(session, conversation_id)
        participants = directory.get_participant_ids(session, conversation_id)
    except MessagingError as e:
        raise http_error(e)

    return {
        "id": conv.id,
        "type": conv.type.value if hasattr(conv.type, "value") else conv.type,
        "listing_id": conv.listing_id,
        "created_at": timeutil.isoformat(conv.created_at),
        "participants": participants,
    }


@router.get("/{conversation_id}/messages")
async def load_history(
    conversation_id: str,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        messages = store.load_history(session, conversation_id, identity)
    except MessagingError as e:
        raise http_error(e)
    return [m.to_dict() for m in messages]


@router.post("/{conversation_id}/messages", status_code=202)
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    # The stored row is delivered through the conversation feed, not in this response
    try:
        store.send(session, conversation_id, identity, payload.body)
    except MessagingError as e:
        raise http_error(e)
    return {"status": "sent"}


@router.post("/{conversation_id}/read")
async def mark_read(
    conversation_id: str,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        ledger.require_member(session, conversation_id, identity)
    except MessagingError as e:
        raise http_error(e)
    stamp = ledger.mark_read(session, conversation_id, identity)
    return {"conversation_id": conversation_id, "last_read_at": timeutil.isoformat(stamp)}
