"""
World state schemas — roster, wars and the append-only context log.
"""

from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator


class Player(BaseModel):
    """A player and the country they control."""

    server_id: str
    user_id: str
    country: str
    display_name: Optional[str] = None

    @field_validator("server_id", "user_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    model_config = {"extra": "allow"}


class War(BaseModel):
    """A war tracked by a forum thread. The thread id is the war id."""

    server_id: str
    thread_id: str
    title: str = Field(min_length=1)
    synopsis: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("server_id", "thread_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    model_config = {"extra": "allow"}


class ContextEntry(BaseModel):
    """Append-only context log entry. Never modified after creation."""

    server_id: str
    text: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("server_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("context text is empty")
        return v

    model_config = {"extra": "allow"}
