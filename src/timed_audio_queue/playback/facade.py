"""Playlist public facade."""

from __future__ import annotations

from typing import Any

from timed_audio_queue.playback.models import ScheduledEntry
from timed_audio_queue.playback.repeats import NormalizedSchedule
from timed_audio_queue.playback.service import PlaybackService


class Playlist:
    def __init__(self, service: PlaybackService) -> None:
        self._service = service

    async def refresh(self) -> list[ScheduledEntry]:
        return await self._service.poll_once()

    def tick(self) -> list[str]:
        return self._service.tick()

    def get_entries(self) -> list[ScheduledEntry]:
        return self._service.entries()

    def get_countdowns(self) -> dict[str, int]:
        return self._service.countdowns()

    def get_schedule(self) -> NormalizedSchedule:
        return self._service.schedule

    def get_clock_source(self) -> str:
        return self._service.clock_source

    def set_repeats(self, raw: Any) -> bool:
        return self._service.set_repeat_settings(raw)

    def reload_repeats(self) -> bool:
        return self._service.reload_repeat_settings()

    def retry(self, entry_id: str) -> None:
        self._service.retry(entry_id=entry_id)

    def stop(self, entry_id: str) -> None:
        self._service.stop(entry_id=entry_id)

    def discard(self, entry_id: str) -> None:
        self._service.discard(entry_id=entry_id)

    def user_interaction(self) -> None:
        self._service.user_interaction()
