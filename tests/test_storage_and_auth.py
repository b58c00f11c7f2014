"""Tests for object storage paths and session token verification."""

from unittest.mock import patch

import jwt
import pytest

from tests.conftest import VIEWER, make_token
from roomchat.core.auth import bearer_token, verify_token
from roomchat.core.config import settings
from roomchat.core.errors import Unauthorized
from roomchat.core.storage import StorageError, get_public_url, resolve_object_path, upload_object


@pytest.fixture
def storage_dir(tmp_path):
    with patch.object(settings, "storage_dir", tmp_path):
        yield tmp_path


def test_upload_and_public_url(storage_dir):
    assert upload_object("avatars", "u1/pic.png", b"data") == "u1/pic.png"
    assert (storage_dir / "avatars" / "u1" / "pic.png").read_bytes() == b"data"
    assert get_public_url("avatars", "u1/pic.png").endswith("/storage/avatars/u1/pic.png")


@pytest.mark.parametrize("path", ["../escape.png", "u1/../../escape.png", ""])
def test_paths_cannot_escape_bucket(storage_dir, path):
    with pytest.raises(StorageError):
        resolve_object_path("avatars", path)


@pytest.mark.parametrize("bucket", ["../avatars", "Avatars", "a/b"])
def test_bucket_names_are_validated(storage_dir, bucket):
    with pytest.raises(StorageError):
        upload_object(bucket, "x.png", b"")


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_verify_token_returns_subject():
    assert verify_token(make_token(VIEWER)) == VIEWER


def test_verify_token_wrong_secret():
    token = jwt.encode({"sub": VIEWER, "aud": settings.jwt_audience}, "another-secret-that-is-long-enough-0123", algorithm="HS256")
    with pytest.raises(Unauthorized):
        verify_token(token)


def test_verify_token_wrong_audience():
    with pytest.raises(Unauthorized):
        verify_token(make_token(VIEWER, aud="anon"))


def test_verify_token_without_subject():
    with pytest.raises(Unauthorized) as excinfo:
        verify_token(make_token(""))
    assert str(excinfo.value) == "Session token has no subject"
    assert not excinfo.value.signed_in
