"""Slot scheduler: turns recordings x enabled slots into timed playback entries."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from timed_audio_queue.playback.clock import ClockReconciler
from timed_audio_queue.playback.entries import EntryTable
from timed_audio_queue.playback.models import EntryStatus, Recording, ScheduledEntry
from timed_audio_queue.playback.queue import PlaybackQueue
from timed_audio_queue.playback.repeats import DEFAULT_REPEAT_SETTINGS, NormalizedSchedule, normalize_repeat_settings
from timed_audio_queue.playback.timers import TimerHandle, Timers

logger = logging.getLogger(__name__)


class SlotScheduler:
    """Owns scheduled entries and their timers.

    Every mutation goes through `observe`, `tick`, `set_repeat_settings`,
    the slot timers and the queue's finish callback. All of them re-check the
    entry table before acting, since timers and recording-list updates can
    arrive in any order.
    """

    def __init__(
        self,
        clock: ClockReconciler,
        queue: PlaybackQueue,
        entries: EntryTable,
        timers: Timers,
        ttl_ms: int,
        repeat_settings: Iterable[Any] | None = None,
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._clock = clock
        self._queue = queue
        self._entries = entries
        self._timers = timers
        self._ttl_ms = ttl_ms
        self._schedule = normalize_repeat_settings(
            DEFAULT_REPEAT_SETTINGS if repeat_settings is None else repeat_settings
        )
        self._recordings: dict[str, Recording] = {}
        self._scheduled_recordings: set[str] = set()
        self._slot_timers: dict[str, TimerHandle] = {}
        self._queue.set_finished_callback(self._on_entry_finished)

    @property
    def schedule(self) -> NormalizedSchedule:
        return self._schedule

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def armed_timer_count(self) -> int:
        return len(self._slot_timers)

    def scheduled_recording_ids(self) -> set[str]:
        return set(self._scheduled_recordings)

    def entries(self) -> list[ScheduledEntry]:
        return self._entries.in_schedule_order()

    def get_entry(self, entry_id: str) -> ScheduledEntry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(f"Entry '{entry_id}' not found")
        return entry

    def observe(self, recordings: Iterable[Recording]) -> list[ScheduledEntry]:
        """Reconcile against the latest recordings list; returns newly created entries."""
        latest = {recording.recording_id: recording for recording in recordings}
        for recording_id in list(self._recordings):
            if recording_id not in latest:
                self._teardown_recording(recording_id, reason="removed from source")
        self._recordings = latest

        created: list[ScheduledEntry] = []
        for recording in latest.values():
            if recording.recording_id in self._scheduled_recordings:
                continue
            created.extend(self._schedule_recording(recording))
        self.sweep_expired()
        return [entry for entry in created if entry.entry_id in self._entries]

    def tick(self) -> list[str]:
        return self.sweep_expired()

    def sweep_expired(self) -> list[str]:
        now_ms = self._clock.trusted_now_ms()
        expired = [
            recording_id
            for recording_id, recording in self._recordings.items()
            if recording.is_expired(now_ms, self._ttl_ms)
        ]
        # Entries can outlive their recording's list membership only through races; sweep them too.
        for entry in self._entries:
            if entry.recording.is_expired(now_ms, self._ttl_ms) and entry.recording_id not in expired:
                expired.append(entry.recording_id)
        for recording_id in expired:
            self._teardown_recording(recording_id, reason="expired")
            self._recordings.pop(recording_id, None)
        return expired

    def set_repeat_settings(self, raw: Iterable[Any] | None) -> bool:
        """Apply new slot settings; any change invalidates every pending entry."""
        schedule = normalize_repeat_settings(raw)
        if schedule.key == self._schedule.key:
            return False
        logger.info("Repeat settings changed; rebuilding schedule for %d recordings", len(self._recordings))
        self._schedule = schedule
        self._reset()
        recordings = list(self._recordings.values())
        self._recordings = {}
        self.observe(recordings)
        return True

    def retry(self, entry_id: str) -> None:
        self.get_entry(entry_id)
        self._cancel_timer(entry_id)
        self._queue.retry_play(entry_id)

    def stop(self, entry_id: str) -> None:
        self.get_entry(entry_id)
        self._queue.stop(entry_id)

    def discard(self, entry_id: str) -> None:
        if self._entries.remove(entry_id) is None:
            raise KeyError(f"Entry '{entry_id}' not found")
        self._cancel_timer(entry_id)
        self._queue.release(entry_id)

    def countdowns(self) -> dict[str, int]:
        """Whole seconds until each still-scheduled entry fires."""
        now_ms = self._clock.trusted_now_ms()
        return {
            entry.entry_id: max(0, math.ceil((entry.scheduled_at_ms - now_ms) / 1000))
            for entry in self._entries.in_schedule_order()
            if entry.status == EntryStatus.SCHEDULED
        }

    def shutdown(self) -> None:
        self._reset()
        self._recordings = {}

    def _schedule_recording(self, recording: Recording) -> list[ScheduledEntry]:
        self._scheduled_recordings.add(recording.recording_id)
        base_time_ms = self._clock.trusted_now_ms()
        created: list[ScheduledEntry] = []
        for slot in self._schedule.enabled_slots:
            entry = ScheduledEntry.new(recording, slot, base_time_ms)
            if not self._entries.insert(entry):
                continue
            delay_ms = max(0, entry.scheduled_at_ms - self._clock.trusted_now_ms())
            self._slot_timers[entry.entry_id] = self._timers.call_later(
                delay_ms / 1000,
                lambda entry_id=entry.entry_id: self._on_slot_due(entry_id),
            )
            created.append(entry)
        logger.info(
            "Scheduled %s (%s): %d plays at offsets %s",
            recording.recording_id,
            recording.name,
            len(created),
            [slot.scheduled_offset_ms // 1000 for slot in self._schedule.enabled_slots],
        )
        return created

    def _on_slot_due(self, entry_id: str) -> None:
        self._slot_timers.pop(entry_id, None)
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != EntryStatus.SCHEDULED:
            return
        entry.status = EntryStatus.READY
        self._queue.request_play(entry_id)

    def _on_entry_finished(self, entry_id: str) -> None:
        self._cancel_timer(entry_id)
        self._entries.remove(entry_id)

    def _teardown_recording(self, recording_id: str, reason: str) -> None:
        removed = self._entries.for_recording(recording_id)
        for entry in removed:
            self._entries.remove(entry.entry_id)
        for entry in removed:
            self._cancel_timer(entry.entry_id)
            self._queue.release(entry.entry_id)
        self._scheduled_recordings.discard(recording_id)
        if removed:
            logger.info("Removed %d entries of %s (%s)", len(removed), recording_id, reason)

    def _cancel_timer(self, entry_id: str) -> None:
        handle = self._slot_timers.pop(entry_id, None)
        if handle is not None:
            handle.cancel()

    def _reset(self) -> None:
        for handle in self._slot_timers.values():
            handle.cancel()
        self._slot_timers.clear()
        self._queue.clear()
        self._entries.clear()
        self._scheduled_recordings.clear()
