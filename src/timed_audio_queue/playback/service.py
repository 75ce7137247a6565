"""Playback service: polls recordings, keeps the clock honest and drives the scheduler."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from timed_audio_queue.config import ConfigError, PlaybackConfig, load_repeat_settings
from timed_audio_queue.playback.audio import AudioFactory
from timed_audio_queue.playback.clock import ClockReconciler, ClockSource
from timed_audio_queue.playback.entries import EntryTable
from timed_audio_queue.playback.models import Recording, ScheduledEntry
from timed_audio_queue.playback.queue import PlaybackQueue
from timed_audio_queue.playback.repeats import (
    DEFAULT_REPEAT_SETTINGS,
    NormalizedSchedule,
    normalize_repeat_settings,
    single_play,
)
from timed_audio_queue.playback.scheduler import SlotScheduler
from timed_audio_queue.playback.timers import Timers
from timed_audio_queue.playback.unlock import AutoplayUnlock, NullAutoplayUnlock
from timed_audio_queue.remote.client import RecordingsSnapshot, RecordingsSourceError

logger = logging.getLogger(__name__)


class RecordingsSource(Protocol):
    def fetch(self) -> RecordingsSnapshot: ...


class PlaybackService:
    def __init__(
        self,
        config: PlaybackConfig,
        source: RecordingsSource,
        audio_factory: AudioFactory,
        timers: Timers,
        clock: ClockReconciler | None = None,
        unlock: AutoplayUnlock | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._clock = clock or ClockReconciler()
        self._unlock = unlock or NullAutoplayUnlock()
        self._entries = EntryTable()
        self._queue = PlaybackQueue(
            self._entries,
            audio_factory,
            timers,
            unlock=self._unlock,
            autoplay_retry_sec=config.autoplay_retry_sec,
        )
        self._scheduler = SlotScheduler(
            self._clock,
            self._queue,
            self._entries,
            timers,
            ttl_ms=config.recording_ttl_ms,
            repeat_settings=self._effective_repeats(self._read_repeat_settings()),
        )
        self._expired_logged: set[str] = set()
        self._last_poll_ok: bool | None = None

    @property
    def clock(self) -> ClockReconciler:
        return self._clock

    @property
    def clock_source(self) -> ClockSource:
        return self._clock.source

    @property
    def queue(self) -> PlaybackQueue:
        return self._queue

    @property
    def scheduler(self) -> SlotScheduler:
        return self._scheduler

    @property
    def schedule(self) -> NormalizedSchedule:
        return self._scheduler.schedule

    @property
    def last_poll_ok(self) -> bool | None:
        return self._last_poll_ok

    async def poll_once(self) -> list[ScheduledEntry]:
        """Fetch the recordings list once and reconcile the schedule against it.

        A failed fetch keeps the current schedule untouched; the next poll tries again.
        """
        try:
            snapshot = await asyncio.to_thread(self._source.fetch)
        except RecordingsSourceError as exc:
            self._last_poll_ok = False
            logger.warning("Recordings poll failed; keeping current schedule: %s", exc)
            return []
        self._last_poll_ok = True
        return self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: RecordingsSnapshot) -> list[ScheduledEntry]:
        self._clock.observe_date_header(snapshot.server_date)
        now_ms = self._clock.trusted_now_ms()
        ttl_ms = self._config.recording_ttl_ms

        fresh: list[Recording] = []
        for payload in snapshot.payloads:
            try:
                recording = Recording.from_payload(payload, fallback_now_ms=now_ms)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed recording payload %r: %s", payload.get("id"), exc)
                continue
            if recording.is_expired(now_ms, ttl_ms):
                if recording.recording_id not in self._expired_logged:
                    self._expired_logged.add(recording.recording_id)
                    logger.info(
                        "Skipping expired recording %s (created %ds ago)",
                        recording.recording_id,
                        (now_ms - recording.created_at_ms) // 1000,
                    )
                continue
            fresh.append(recording)
        return self._scheduler.observe(fresh)

    def tick(self) -> list[str]:
        return self._scheduler.tick()

    def reload_repeat_settings(self) -> bool:
        """Re-read the repeat settings file; returns True when the schedule was rebuilt."""
        return self.set_repeat_settings(self._read_repeat_settings())

    def set_repeat_settings(self, raw: Any) -> bool:
        return self._scheduler.set_repeat_settings(self._effective_repeats(raw))

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll and tick until `stop_event` is set, then tear everything down."""
        poller = asyncio.create_task(self._poll_loop(), name="recordings-poll")
        ticker = asyncio.create_task(self._tick_loop(), name="expiry-tick")
        stopper = asyncio.create_task(stop_event.wait(), name="stop-wait")
        try:
            done, _ = await asyncio.wait({poller, ticker, stopper}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task is not stopper:
                    task.result()
        finally:
            for task in (poller, ticker, stopper):
                task.cancel()
            await asyncio.gather(poller, ticker, stopper, return_exceptions=True)
            self.shutdown()

    def shutdown(self) -> None:
        self._scheduler.shutdown()
        logger.info("Playback service stopped")

    def retry(self, entry_id: str) -> None:
        self._scheduler.retry(entry_id)

    def discard(self, entry_id: str) -> None:
        self._scheduler.discard(entry_id)

    def stop(self, entry_id: str) -> None:
        self._scheduler.stop(entry_id)

    def user_interaction(self) -> None:
        self._unlock.handle_user_interaction()

    def entries(self) -> list[ScheduledEntry]:
        return self._scheduler.entries()

    def countdowns(self) -> dict[str, int]:
        return self._scheduler.countdowns()

    async def _poll_loop(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._config.poll_interval_sec)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_interval_sec)
            self.tick()

    def _read_repeat_settings(self) -> Any:
        path = self._config.repeats_file
        if path is None:
            return DEFAULT_REPEAT_SETTINGS
        try:
            return load_repeat_settings(path)
        except ConfigError as exc:
            logger.warning("%s; using default repeat settings", exc)
            return DEFAULT_REPEAT_SETTINGS

    def _effective_repeats(self, raw: Any) -> Any:
        if self._config.repeats_enabled:
            return raw
        return single_play(normalize_repeat_settings(raw)).repeats
