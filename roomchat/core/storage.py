"""Object storage - bucketed files under the storage dir, served as public URLs."""

import re
from pathlib import Path
from urllib.parse import quote

from roomchat.core.config import settings

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class StorageError(Exception):
    pass


def resolve_object_path(bucket: str, path: str) -> Path:
    """Resolve an object path inside its bucket. Raises StorageError if the path escapes."""
    if not _BUCKET_RE.match(bucket):
        raise StorageError(f"Invalid bucket name '{bucket}'")
    bucket_dir = (settings.storage_dir / bucket).resolve()
    resolved = (bucket_dir / path).resolve()

    if resolved == bucket_dir or not resolved.is_relative_to(bucket_dir):
        raise StorageError(f"Path '{path}' escapes bucket '{bucket}'")

    return resolved


def upload_object(bucket: str, path: str, data: bytes) -> str:
    """Store an object, replacing any existing one. Returns the object path."""
    target = resolve_object_path(bucket, path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return path


def get_public_url(bucket: str, path: str) -> str:
    resolve_object_path(bucket, path)
    return f"{settings.public_base_url.rstrip('/')}/storage/{bucket}/{quote(path)}"
