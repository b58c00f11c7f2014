"""Inbox API - the caller's conversation list, live over a WebSocket."""

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlmodel import Session

from roomchat.api.deps import WS_UNAUTHENTICATED, get_current_identity, http_error, identity_from_websocket
from roomchat.core.database import engine, get_session
from roomchat.core.errors import MessagingError
from roomchat.services.messaging import inbox
from roomchat.services.realtime.feed import feed

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
async def list_conversations(
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        entries = inbox.list_conversations(session, identity)
    except MessagingError as e:
        raise http_error(e)
    return [entry.to_dict() for entry in entries]


@router.get("/unread")
async def unread_count(
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        count = inbox.unread_count(session, identity)
    except MessagingError as e:
        raise http_error(e)
    return {"unread": count}


def _snapshot(identity: str) -> dict:
    with Session(engine) as session:
        entries = inbox.list_conversations(session, identity)
    return {"type": "inbox", "conversations": [entry.to_dict() for entry in entries]}


@router.websocket("/ws")
async def inbox_websocket(websocket: WebSocket):
    identity = identity_from_websocket(websocket)
    if identity is None:
        await websocket.close(code=WS_UNAUTHENTICATED)
        return

    await websocket.accept()
    # Subscribe before the first snapshot so nothing slips in between
    subscription = inbox.subscribe_to_inbox_changes(feed, identity)

    async def push_snapshot():
        try:
            snapshot = _snapshot(identity)
        except MessagingError as e:
            logger.warning(f"Inbox refresh failed for {identity}: {e}")
            await websocket.send_json({"type": "error", "detail": str(e)})
            return
        await websocket.send_json(snapshot)

    async def push_snapshots():
        await push_snapshot()
        async for _change in subscription:
            await push_snapshot()

    push_task = asyncio.create_task(push_snapshots())

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Inbox socket closed by {identity}")
    finally:
        subscription.close()
        push_task.cancel()
        try:
            await push_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.warning("Socket forwarder ended with an error", exc_info=True)
