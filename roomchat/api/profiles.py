import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, UploadFile
from pydantic import BaseModel
from sqlmodel import Session

from roomchat.api.deps import get_current_identity, http_error
from roomchat.core import timeutil
from roomchat.core.database import get_session
from roomchat.core.errors import MessagingError
from roomchat.core.storage import StorageError, get_public_url, upload_object
from roomchat.models.profile import Profile
from roomchat.services import profiles

router = APIRouter()

AVATAR_BUCKET = "avatars"
ALLOWED_AVATAR_TYPES = {"image/png", "image/jpeg", "image/webp", "image/gif"}
MAX_AVATAR_BYTES = 5 * 1024 * 1024


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    avatar_url: str | None = None


def _profile_dict(identity: str, profile: Profile | None) -> dict:
    return {
        "id": identity,
        "full_name": profile.full_name if profile else None,
        "avatar_url": profiles.display_avatar(profile),
        "updated_at": timeutil.isoformat(profile.updated_at) if profile else None,
    }


@router.get("/me")
async def get_my_profile(
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        profile = profiles.get_profile(session, identity)
    except MessagingError as e:
        raise http_error(e)
    return _profile_dict(identity, profile)


@router.put("/me")
async def update_my_profile(
    payload: ProfileUpdate,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    try:
        profile = profiles.upsert_profile(session, identity, payload.full_name, payload.avatar_url)
    except MessagingError as e:
        raise http_error(e)
    return _profile_dict(identity, profile)


@router.post("/me/avatar")
async def upload_avatar(
    file: UploadFile,
    identity: str = Depends(get_current_identity),
    session: Session = Depends(get_session),
):
    if file.content_type not in ALLOWED_AVATAR_TYPES:
        raise HTTPException(status_code=400, detail="Avatar must be a PNG, JPEG, WebP or GIF image")

    content = await file.read()
    if len(content) > MAX_AVATAR_BYTES:
        raise HTTPException(status_code=413, detail="Avatar is too large")

    suffix = Path(file.filename or "").suffix.lower()
    path = f"{identity}/{uuid.uuid4().hex}{suffix}"
    try:
        upload_object(AVATAR_BUCKET, path, content)
        url = get_public_url(AVATAR_BUCKET, path)
    except StorageError as e:
        raise HTTPException(status_code=403, detail=str(e))

    try:
        profile = profiles.upsert_profile(session, identity, avatar_url=url)
    except MessagingError as e:
        raise http_error(e)
    return _profile_dict(identity, profile)
