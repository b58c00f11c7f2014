"""Profile and listing rows the messaging core reads but does not own."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(primary_key=True)  # identity from the auth provider
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Listing(SQLModel, table=True):
    __tablename__ = "listings"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)  # host
    title: str = Field(default="")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
