"""Session tokens from the identity provider. We only verify them; issuing is the provider's job."""

import jwt

from roomchat.core.config import settings
from roomchat.core.errors import Unauthorized


def bearer_token(header: str | None) -> str | None:
    if header and header.lower().startswith("bearer "):
        token = header.split(" ", 1)[1].strip()
        return token or None
    return None


def verify_token(token: str) -> str:
    """Return the caller's identity (the ``sub`` claim) from a signed session token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Session expired")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid session token")

    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("Session token has no subject")
    return str(subject)
