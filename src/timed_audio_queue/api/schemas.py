"""FastAPI request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str


class SoundCreateRequest(BaseModel):
    file_name: str = Field(min_length=1)
    file_url: str = Field(min_length=1)
    plays_completed: int = Field(default=0, ge=0)
    total_plays: int = Field(default=6, ge=1, le=6)
    is_playing: bool = False
    next_play_at: datetime | None = None
    playback_speeds: list[str] | None = Field(default=None, max_length=6)
    duration: int | None = Field(default=None, ge=0)


class SoundUpdateRequest(BaseModel):
    file_name: str | None = Field(default=None, min_length=1)
    file_url: str | None = Field(default=None, min_length=1)
    plays_completed: int | None = Field(default=None, ge=0)
    total_plays: int | None = Field(default=None, ge=1, le=6)
    is_playing: bool | None = None
    next_play_at: datetime | None = None
    playback_speeds: list[str] | None = Field(default=None, max_length=6)
    duration: int | None = Field(default=None, ge=0)


class SoundResponse(BaseModel):
    id: str
    file_name: str
    file_url: str
    plays_completed: int
    total_plays: int
    is_playing: bool
    created_at: datetime
    next_play_at: datetime
    playback_speeds: list[str]
    duration: int | None = None


class SoundShareCreateRequest(BaseModel):
    sound_id: str = Field(min_length=1)
    user_email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class SoundShareResponse(BaseModel):
    id: str
    sound_id: str
    user_email: str
    created_at: datetime


class DeletedResponse(BaseModel):
    id: str
    status: str = "deleted"
