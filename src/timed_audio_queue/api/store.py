"""In-memory sounds and sound-shares store backing the REST API."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Callable, Mapping

from timed_audio_queue.playback.models import MAX_REPEAT_PLAYS

DEFAULT_PLAYBACK_SPEEDS: tuple[str, ...] = ("1.0",) * MAX_REPEAT_PLAYS

UPDATABLE_SOUND_FIELDS = frozenset(
    {
        "file_name",
        "file_url",
        "plays_completed",
        "total_plays",
        "is_playing",
        "next_play_at",
        "playback_speeds",
        "duration",
    }
)


@dataclass(slots=True)
class Sound:
    id: str
    file_name: str
    file_url: str
    created_at: datetime
    next_play_at: datetime
    plays_completed: int = 0
    total_plays: int = MAX_REPEAT_PLAYS
    is_playing: bool = False
    playback_speeds: list[str] = field(default_factory=lambda: list(DEFAULT_PLAYBACK_SPEEDS))
    duration: int | None = None


@dataclass(slots=True)
class SoundShare:
    id: str
    sound_id: str
    user_email: str
    created_at: datetime


class SoundStore:
    """Thread-safe; FastAPI runs sync endpoints on a worker pool."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._sounds: dict[str, Sound] = {}
        self._shares: dict[str, SoundShare] = {}

    def now(self) -> datetime:
        return self._clock()

    def list_sounds(self) -> list[Sound]:
        with self._lock:
            return _newest_first(self._sounds.values())

    def get_sound(self, sound_id: str) -> Sound:
        with self._lock:
            return self._require_sound(sound_id)

    def create_sound(
        self,
        file_name: str,
        file_url: str,
        plays_completed: int = 0,
        total_plays: int = MAX_REPEAT_PLAYS,
        is_playing: bool = False,
        next_play_at: datetime | None = None,
        playback_speeds: list[str] | None = None,
        duration: int | None = None,
    ) -> Sound:
        if not file_name or not file_url:
            raise ValueError("file_name and file_url are required")
        created_at = self.now()
        sound = Sound(
            id=str(uuid.uuid4()),
            file_name=file_name,
            file_url=file_url,
            created_at=created_at,
            next_play_at=next_play_at or created_at,
            plays_completed=plays_completed,
            total_plays=total_plays,
            is_playing=is_playing,
            playback_speeds=list(playback_speeds) if playback_speeds else list(DEFAULT_PLAYBACK_SPEEDS),
            duration=duration,
        )
        with self._lock:
            self._sounds[sound.id] = sound
        return sound

    def update_sound(self, sound_id: str, changes: Mapping[str, Any]) -> Sound:
        updates = {key: value for key, value in changes.items() if key in UPDATABLE_SOUND_FIELDS and value is not None}
        if not updates:
            raise ValueError("No valid fields provided for update")
        with self._lock:
            sound = replace(self._require_sound(sound_id), **updates)
            self._sounds[sound_id] = sound
        return sound

    def delete_sound(self, sound_id: str) -> None:
        with self._lock:
            self._require_sound(sound_id)
            del self._sounds[sound_id]
            for share_id in [share.id for share in self._shares.values() if share.sound_id == sound_id]:
                del self._shares[share_id]

    def list_shares(self) -> list[SoundShare]:
        with self._lock:
            return _newest_first(self._shares.values())

    def create_share(self, sound_id: str, user_email: str) -> SoundShare:
        if not sound_id or not user_email:
            raise ValueError("sound_id and user_email are required")
        with self._lock:
            self._require_sound(sound_id)
            share = SoundShare(id=str(uuid.uuid4()), sound_id=sound_id, user_email=user_email, created_at=self.now())
            self._shares[share.id] = share
        return share

    def delete_share(self, share_id: str) -> None:
        with self._lock:
            if share_id not in self._shares:
                raise KeyError(f"Sound share '{share_id}' not found")
            del self._shares[share_id]

    def _require_sound(self, sound_id: str) -> Sound:
        sound = self._sounds.get(sound_id)
        if sound is None:
            raise KeyError(f"Sound '{sound_id}' not found")
        return sound


def _newest_first(items: Any) -> list[Any]:
    # Later inserts win ties on created_at.
    return sorted(reversed(list(items)), key=lambda item: item.created_at, reverse=True)
