"""Conversation WebSocket. Opening it marks the conversation read for the caller."""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlmodel import Session

from roomchat.api.deps import WS_UNAUTHENTICATED, identity_from_websocket, ws_close_code
from roomchat.core.database import engine
from roomchat.core.errors import MessagingError
from roomchat.services.messaging import ledger, store
from roomchat.services.realtime.feed import feed

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/{conversation_id}/ws")
async def conversation_websocket(websocket: WebSocket, conversation_id: str):
    identity = identity_from_websocket(websocket)
    if identity is None:
        await websocket.close(code=WS_UNAUTHENTICATED)
        return

    try:
        with Session(engine) as session:
            ledger.require_member(session, conversation_id, identity)
    except MessagingError as e:
        await websocket.close(code=ws_close_code(e))
        return

    await websocket.accept()
    with Session(engine) as session:
        ledger.mark_read(session, conversation_id, identity)
    subscription = store.subscribe_to_conversation(feed, conversation_id)
    await websocket.send_json({"type": "subscribed", "conversation_id": conversation_id})

    async def forward_inserts():
        async for change in subscription:
            with Session(engine) as session:
                view = store.view_from_change(session, change)
            await websocket.send_json({"type": "message.created", "message": view.to_dict()})

    forward_task = asyncio.create_task(forward_inserts())

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                continue
            if not isinstance(data, dict) or data.get("type") != "message.send":
                continue
            # Sent messages come back through the subscription like everyone else's
            try:
                with Session(engine) as session:
                    store.send(session, conversation_id, identity, data.get("body") or "")
            except MessagingError as e:
                await websocket.send_json({"type": "error", "detail": str(e)})
    except WebSocketDisconnect:
        logger.debug(f"Conversation socket for {conversation_id} closed by {identity}")
    finally:
        subscription.close()
        forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.warning("Socket forwarder ended with an error", exc_info=True)
