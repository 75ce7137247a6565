"""Core playback models: recordings, repeat slots and scheduled entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Mapping

MAX_REPEAT_PLAYS = 6


class EntryStatus(str, Enum):
    SCHEDULED = "scheduled"
    READY = "ready"
    QUEUED = "queued"
    PLAYING = "playing"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Recording:
    recording_id: str
    name: str
    url: str
    created_at_ms: int

    def expires_at_ms(self, ttl_ms: int) -> int:
        return self.created_at_ms + ttl_ms

    def is_expired(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms >= self.expires_at_ms(ttl_ms)

    @staticmethod
    def from_payload(payload: Mapping[str, Any], fallback_now_ms: int) -> Recording:
        """Map a sound row from the REST API.

        `created_at` is optional; a missing or unparsable value is treated as
        "created now" on the trusted clock.
        """
        created_at_ms = _parse_iso_ms(payload.get("created_at"))
        return Recording(
            recording_id=str(payload["id"]),
            name=str(payload.get("file_name") or "Recording"),
            url=str(payload["file_url"]),
            created_at_ms=fallback_now_ms if created_at_ms is None else created_at_ms,
        )


@dataclass(frozen=True, slots=True)
class RepeatSetting:
    gap_seconds: int = 30
    playback_rate: float = 1.0
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class EnabledSlot:
    slot_number: int
    play_number: int
    scheduled_offset_ms: int
    playback_rate: float


@dataclass(slots=True)
class ScheduledEntry:
    entry_id: str
    recording: Recording
    slot_number: int
    play_number: int
    scheduled_at_ms: int
    playback_rate: float
    status: EntryStatus = field(default=EntryStatus.SCHEDULED)
    error_message: str | None = None

    @property
    def recording_id(self) -> str:
        return self.recording.recording_id

    @staticmethod
    def new(recording: Recording, slot: EnabledSlot, base_time_ms: int) -> ScheduledEntry:
        return ScheduledEntry(
            entry_id=entry_id_for(recording.recording_id, slot.slot_number),
            recording=recording,
            slot_number=slot.slot_number,
            play_number=slot.play_number,
            scheduled_at_ms=base_time_ms + slot.scheduled_offset_ms,
            playback_rate=slot.playback_rate,
        )


def entry_id_for(recording_id: str, slot_number: int) -> str:
    return f"{recording_id}-slot-{slot_number}"


def _parse_iso_ms(raw: object) -> int | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # MySQL dateStrings come back without an offset; they are UTC on the server.
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)
