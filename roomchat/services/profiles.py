"""Profile lookups used to hydrate messages and inbox rows with display attributes."""

import logging
from typing import Iterable
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from roomchat.core import timeutil
from roomchat.core.errors import PersistenceError
from roomchat.models.profile import Profile

logger = logging.getLogger(__name__)

DEFAULT_NAME = "User"


def avatar_for(name: str | None) -> str:
    return f"https://api.dicebear.com/7.x/initials/svg?seed={quote(name or DEFAULT_NAME)}"


def display_name(profile: Profile | None) -> str:
    return (profile.full_name if profile else None) or DEFAULT_NAME


def display_avatar(profile: Profile | None) -> str:
    if profile and profile.avatar_url:
        return profile.avatar_url
    return avatar_for(display_name(profile))


def get_profiles(session: Session, ids: Iterable[str]) -> dict[str, Profile]:
    """Fetch profiles for a set of identities in a single query."""
    wanted = sorted(set(ids))
    if not wanted:
        return {}
    rows = session.exec(select(Profile).where(Profile.id.in_(wanted))).all()  # type: ignore[attr-defined]
    return {p.id: p for p in rows}


def get_profile(session: Session, identity: str) -> Profile | None:
    try:
        return session.get(Profile, identity)
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load profile") from e


def upsert_profile(
    session: Session,
    identity: str,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> Profile:
    """Create or update display attributes. ``None`` leaves a field unchanged."""
    try:
        profile = session.get(Profile, identity) or Profile(id=identity)
        if full_name is not None:
            profile.full_name = full_name.strip() or None
        if avatar_url is not None:
            profile.avatar_url = avatar_url or None
        profile.updated_at = timeutil.utcnow()
        session.add(profile)
        session.commit()
        session.refresh(profile)
        return profile
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Profile update failed for {identity}: {e}")
        raise PersistenceError("Failed to save profile") from e
