"""Request dependencies shared by the routers: caller identity and domain-error mapping."""

import logging

from fastapi import Header, HTTPException, WebSocket

from roomchat.core.auth import bearer_token, verify_token
from roomchat.core.errors import (
    InvalidArgument,
    MessagingError,
    NotFound,
    PersistenceError,
    Unauthorized,
)

logger = logging.getLogger(__name__)

# Application-defined WebSocket close codes (4000-4999)
WS_UNAUTHENTICATED = 4401
WS_FORBIDDEN = 4403
WS_NOT_FOUND = 4404
WS_INTERNAL_ERROR = 1011


async def get_current_identity(authorization: str | None = Header(default=None)) -> str:
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        return verify_token(token)
    except Unauthorized as e:
        raise HTTPException(status_code=401, detail=str(e))


def identity_from_websocket(websocket: WebSocket) -> str | None:
    """Browsers cannot set headers on WebSockets, so ``?token=`` is accepted as well."""
    token = bearer_token(websocket.headers.get("authorization")) or websocket.query_params.get("token")
    if not token:
        return None
    try:
        return verify_token(token)
    except Unauthorized as e:
        logger.debug(f"WebSocket auth rejected: {e}")
        return None


def http_error(error: MessagingError) -> HTTPException:
    if isinstance(error, InvalidArgument):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, Unauthorized):
        return HTTPException(status_code=403 if error.signed_in else 401, detail=str(error))
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=503, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def ws_close_code(error: MessagingError) -> int:
    if isinstance(error, Unauthorized):
        return WS_FORBIDDEN if error.signed_in else WS_UNAUTHENTICATED
    if isinstance(error, NotFound):
        return WS_NOT_FOUND
    return WS_INTERNAL_ERROR
