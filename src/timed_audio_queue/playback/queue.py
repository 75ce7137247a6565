"""Single-flight playback queue: at most one entry owns the audio output."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from timed_audio_queue.playback.audio import AudioElement, AudioFactory, AutoplayBlockedError, PlaybackError
from timed_audio_queue.playback.entries import EntryTable
from timed_audio_queue.playback.models import EntryStatus, ScheduledEntry
from timed_audio_queue.playback.timers import TimerHandle, Timers
from timed_audio_queue.playback.unlock import AutoplayUnlock, NullAutoplayUnlock

logger = logging.getLogger(__name__)

DEFAULT_AUTOPLAY_RETRY_SEC = 2.0

MEDIA_ERROR_MESSAGE = "Playback failed. Check that the file exists and is supported."
MANUAL_FAILURE_MESSAGE = "Playback failed. Try again."


class PlaybackQueue:
    def __init__(
        self,
        entries: EntryTable,
        audio_factory: AudioFactory,
        timers: Timers,
        unlock: AutoplayUnlock | None = None,
        autoplay_retry_sec: float = DEFAULT_AUTOPLAY_RETRY_SEC,
        on_finished: Callable[[str], None] | None = None,
    ) -> None:
        self._entries = entries
        self._audio_factory = audio_factory
        self._timers = timers
        self._unlock = unlock or NullAutoplayUnlock()
        self._unlock.bind(self.retry_pending_autoplay)
        self._autoplay_retry_sec = autoplay_retry_sec
        self._on_finished = on_finished

        self._waiting: deque[str] = deque()
        self._manual_requests: set[str] = set()
        self._current_id: str | None = None
        self._audio: dict[str, AudioElement] = {}
        self._retry_timers: dict[str, TimerHandle] = {}
        self._pending_autoplay: dict[str, None] = {}
        # Every grant gets a fresh attempt number so callbacks from an older attempt are ignored.
        self._attempts: dict[str, int] = {}
        self._attempt_seq = 0

    @property
    def current_id(self) -> str | None:
        current = self._current_entry()
        return current.entry_id if current is not None else None

    @property
    def active_audio_count(self) -> int:
        return len(self._audio)

    @property
    def armed_retry_count(self) -> int:
        return len(self._retry_timers)

    def waiting_ids(self) -> list[str]:
        return list(self._waiting)

    def pending_autoplay_ids(self) -> list[str]:
        return list(self._pending_autoplay)

    def set_finished_callback(self, callback: Callable[[str], None]) -> None:
        self._on_finished = callback

    def request_play(self, entry_id: str, manual: bool = False) -> None:
        entry = self._entries.get(entry_id)
        if entry is None or entry.status == EntryStatus.DONE:
            return

        current = self._current_entry()
        if current is not None and current.entry_id == entry_id:
            return
        if current is not None:
            if entry_id not in self._waiting:
                self._waiting.append(entry_id)
            if manual:
                self._manual_requests.add(entry_id)
            entry.status = EntryStatus.QUEUED
            logger.debug("Queued %s behind %s (%d waiting)", entry_id, current.entry_id, len(self._waiting))
            return

        self._grant(entry, manual=manual)

    def retry_play(self, entry_id: str) -> None:
        if entry_id in self._waiting:
            self._waiting.remove(entry_id)
        self.request_play(entry_id, manual=True)

    def retry_pending_autoplay(self) -> None:
        pending = list(self._pending_autoplay)
        self._pending_autoplay.clear()
        for entry_id in pending:
            self.request_play(entry_id, manual=True)

    def stop(self, entry_id: str) -> None:
        """Stop the active entry on request; it stays retryable and the queue moves on."""
        if self._current_id != entry_id:
            return
        entry = self._entries.get(entry_id)
        self._attempts.pop(entry_id, None)
        self._forget(entry_id)
        self._current_id = None
        if entry is not None and entry.status == EntryStatus.PLAYING:
            entry.status = EntryStatus.READY
        self._advance()

    def release(self, entry_id: str) -> None:
        """Drop every resource tied to an entry that is leaving the schedule."""
        if entry_id in self._waiting:
            self._waiting.remove(entry_id)
        self._attempts.pop(entry_id, None)
        self._forget(entry_id)
        if self._current_id == entry_id:
            self._current_id = None
            self._advance()

    def clear(self) -> None:
        for audio in self._audio.values():
            _detach(audio)
        for handle in self._retry_timers.values():
            handle.cancel()
        self._audio.clear()
        self._retry_timers.clear()
        self._waiting.clear()
        self._manual_requests.clear()
        self._pending_autoplay.clear()
        self._attempts.clear()
        self._current_id = None

    def _current_entry(self) -> ScheduledEntry | None:
        if self._current_id is None:
            return None
        entry = self._entries.get(self._current_id)
        if entry is None or entry.status != EntryStatus.PLAYING:
            self._current_id = None
            return None
        return entry

    def _grant(self, entry: ScheduledEntry, manual: bool) -> None:
        entry_id = entry.entry_id
        self._stop_others(entry_id)
        if entry_id in self._waiting:
            self._waiting.remove(entry_id)
        self._manual_requests.discard(entry_id)
        self._pending_autoplay.pop(entry_id, None)
        self._cancel_retry(entry_id)

        audio = self._audio.get(entry_id)
        if audio is None:
            audio = self._audio_factory(entry.recording.url)
            self._audio[entry_id] = audio
        audio.current_time = 0.0
        audio.playback_rate = entry.playback_rate

        attempt = self._next_attempt()
        self._attempts[entry_id] = attempt
        audio.on_ended = lambda: self._handle_ended(entry_id, attempt)
        audio.on_error = lambda message: self._handle_failure(entry_id, attempt, message or MEDIA_ERROR_MESSAGE)

        entry.status = EntryStatus.PLAYING
        entry.error_message = None
        self._current_id = entry_id
        logger.debug(
            "Playing %s (play %d, %.2fx, manual=%s)", entry_id, entry.play_number, entry.playback_rate, manual
        )
        self._timers.spawn(self._begin(entry_id, attempt, audio, manual))

    def _stop_others(self, granted_id: str) -> None:
        for other_id, audio in list(self._audio.items()):
            if other_id == granted_id:
                continue
            audio.pause()
            other = self._entries.get(other_id)
            if other is not None and other.status == EntryStatus.PLAYING:
                self._attempts[other_id] = self._next_attempt()
                other.status = EntryStatus.QUEUED
                if other_id not in self._waiting:
                    self._waiting.append(other_id)
                logger.warning("Pre-empted %s still marked playing; re-queued", other_id)

    async def _begin(self, entry_id: str, attempt: int, audio: AudioElement, manual: bool) -> None:
        try:
            await audio.play()
            if self._is_live(entry_id, attempt) is None and not self._owns(entry_id, audio):
                # Released or stopped while starting; nothing owns this output any more.
                audio.pause()
        except AutoplayBlockedError as exc:
            if manual:
                self._handle_failure(entry_id, attempt, MANUAL_FAILURE_MESSAGE)
            else:
                self._handle_blocked(entry_id, attempt, exc)
        except PlaybackError as exc:
            message = MANUAL_FAILURE_MESSAGE if manual else (str(exc) or MEDIA_ERROR_MESSAGE)
            self._handle_failure(entry_id, attempt, message)
        except Exception as exc:  # noqa: BLE001 - one bad clip must never stall the queue
            logger.exception("Unexpected playback failure for %s", entry_id)
            message = MANUAL_FAILURE_MESSAGE if manual else f"{MEDIA_ERROR_MESSAGE} ({exc})"
            self._handle_failure(entry_id, attempt, message)

    def _next_attempt(self) -> int:
        self._attempt_seq += 1
        return self._attempt_seq

    def _owns(self, entry_id: str, audio: AudioElement) -> bool:
        return self._current_id == entry_id and self._audio.get(entry_id) is audio

    def _is_live(self, entry_id: str, attempt: int) -> ScheduledEntry | None:
        if self._attempts.get(entry_id) != attempt:
            return None
        return self._entries.get(entry_id)

    def _handle_blocked(self, entry_id: str, attempt: int, exc: Exception) -> None:
        entry = self._is_live(entry_id, attempt)
        if entry is None:
            return
        logger.info("Autoplay blocked for %s (%s); retrying in %.1fs", entry_id, exc, self._autoplay_retry_sec)
        entry.status = EntryStatus.READY
        self._forget_audio(entry_id)
        self._pending_autoplay[entry_id] = None
        if self._current_id == entry_id:
            self._current_id = None
        self._arm_retry(entry_id)
        self._unlock.notify_blocked()
        self._advance()

    def _handle_failure(self, entry_id: str, attempt: int, message: str) -> None:
        entry = self._is_live(entry_id, attempt)
        if entry is None:
            return
        logger.warning("Playback error for %s: %s", entry_id, message)
        entry.status = EntryStatus.ERROR
        entry.error_message = message
        if entry_id in self._waiting:
            self._waiting.remove(entry_id)
        self._forget(entry_id)
        if self._current_id == entry_id:
            self._current_id = None
        self._advance()

    def _handle_ended(self, entry_id: str, attempt: int) -> None:
        entry = self._is_live(entry_id, attempt)
        if entry is None:
            return
        entry.status = EntryStatus.DONE
        self._forget(entry_id)
        self._attempts.pop(entry_id, None)
        if self._current_id == entry_id:
            self._current_id = None
        logger.debug("Finished %s", entry_id)
        if self._on_finished is not None:
            self._on_finished(entry_id)
        self._advance()

    def _advance(self) -> None:
        if self._current_entry() is not None:
            return
        while self._waiting:
            next_id = self._waiting.popleft()
            entry = self._entries.get(next_id)
            if entry is None or entry.status != EntryStatus.QUEUED:
                self._manual_requests.discard(next_id)
                continue
            self._grant(entry, manual=next_id in self._manual_requests)
            return

    def _arm_retry(self, entry_id: str) -> None:
        self._cancel_retry(entry_id)
        self._retry_timers[entry_id] = self._timers.call_later(
            self._autoplay_retry_sec,
            lambda: self._retry_after_backoff(entry_id),
        )

    def _retry_after_backoff(self, entry_id: str) -> None:
        self._retry_timers.pop(entry_id, None)
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != EntryStatus.READY:
            return
        self.request_play(entry_id)

    def _cancel_retry(self, entry_id: str) -> None:
        handle = self._retry_timers.pop(entry_id, None)
        if handle is not None:
            handle.cancel()

    def _forget_audio(self, entry_id: str) -> None:
        audio = self._audio.pop(entry_id, None)
        if audio is not None:
            _detach(audio)

    def _forget(self, entry_id: str) -> None:
        self._forget_audio(entry_id)
        self._cancel_retry(entry_id)
        self._manual_requests.discard(entry_id)
        self._pending_autoplay.pop(entry_id, None)


def _detach(audio: AudioElement) -> None:
    audio.on_ended = None
    audio.on_error = None
    audio.pause()
