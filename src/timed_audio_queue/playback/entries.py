"""Owned table of scheduled slot entries keyed by entry id."""

from __future__ import annotations

from typing import Iterator

from timed_audio_queue.playback.models import ScheduledEntry


class EntryTable:
    """Insertion and removal are the only ways entries enter or leave the schedule."""

    def __init__(self) -> None:
        self._items: dict[str, ScheduledEntry] = {}

    def insert(self, entry: ScheduledEntry) -> bool:
        if entry.entry_id in self._items:
            return False
        self._items[entry.entry_id] = entry
        return True

    def remove(self, entry_id: str) -> ScheduledEntry | None:
        return self._items.pop(entry_id, None)

    def get(self, entry_id: str) -> ScheduledEntry | None:
        return self._items.get(entry_id)

    def for_recording(self, recording_id: str) -> list[ScheduledEntry]:
        return [entry for entry in self._items.values() if entry.recording_id == recording_id]

    def in_schedule_order(self) -> list[ScheduledEntry]:
        return sorted(self._items.values(), key=lambda entry: (entry.scheduled_at_ms, entry.entry_id))

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._items

    def __iter__(self) -> Iterator[ScheduledEntry]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)
