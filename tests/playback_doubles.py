"""Deterministic stand-ins for the event loop, wall clock and audio output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from timed_audio_queue.playback.clock import ClockReconciler
from timed_audio_queue.playback.entries import EntryTable
from timed_audio_queue.playback.models import Recording
from timed_audio_queue.playback.queue import PlaybackQueue
from timed_audio_queue.playback.scheduler import SlotScheduler
from timed_audio_queue.playback.unlock import AutoplayUnlock

START_SEC = 1_700_000_000.0
START_MS = int(START_SEC * 1000)


class FakeClock:
    def __init__(self, start: float = START_SEC) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class ManualHandle:
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Timer wheel advanced by hand; spawned coroutines run to completion immediately."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self._handles: list[ManualHandle] = []
        self._seq = 0

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self.clock.now + max(0.0, delay_sec), self._seq, callback)
        self._handles.append(handle)
        return handle

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        try:
            coroutine.send(None)
        except StopIteration:
            return
        coroutine.close()
        raise AssertionError("spawned coroutine tried to suspend")

    def pending(self) -> list[ManualHandle]:
        return [handle for handle in self._handles if not handle.cancelled and not handle.fired]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [handle for handle in self.pending() if handle.due <= target]
            if not due:
                break
            handle = min(due, key=lambda item: (item.due, item.seq))
            self.clock.now = max(self.clock.now, handle.due)
            handle.fired = True
            handle.callback()
        self.clock.now = target


class FakeAudio:
    def __init__(self, url: str, script: list[BaseException | None]) -> None:
        self.url = url
        self.current_time = 0.0
        self.playback_rate = 1.0
        self.on_ended: Callable[[], None] | None = None
        self.on_error: Callable[[str], None] | None = None
        self.play_calls = 0
        self.pause_calls = 0
        self.playing = False
        self._script = script

    async def play(self) -> None:
        self.play_calls += 1
        outcome = self._script.pop(0) if self._script else None
        if outcome is not None:
            raise outcome
        self.playing = True

    def pause(self) -> None:
        self.pause_calls += 1
        self.playing = False

    def finish(self) -> None:
        self.playing = False
        assert self.on_ended is not None
        self.on_ended()

    def fail(self, message: str) -> None:
        self.playing = False
        assert self.on_error is not None
        self.on_error(message)


class AudioBank:
    """Audio factory that records every element it hands out.

    `script(url, ...)` queues outcomes for successive `play()` calls on that URL;
    `None` means the play starts normally.
    """

    def __init__(self) -> None:
        self.created: list[FakeAudio] = []
        self._scripts: dict[str, list[BaseException | None]] = {}

    def script(self, url: str, *outcomes: BaseException | None) -> None:
        self._scripts.setdefault(url, []).extend(outcomes)

    def __call__(self, url: str) -> FakeAudio:
        audio = FakeAudio(url, self._scripts.setdefault(url, []))
        self.created.append(audio)
        return audio

    def latest(self, url: str) -> FakeAudio:
        for audio in reversed(self.created):
            if audio.url == url:
                return audio
        raise AssertionError(f"no audio created for {url}")

    def playing(self) -> list[FakeAudio]:
        return [audio for audio in self.created if audio.playing]


class RecordingUnlock:
    def __init__(self) -> None:
        self.retry_pending: Callable[[], None] | None = None
        self.blocked_notices = 0
        self.interactions = 0

    def bind(self, retry_pending: Callable[[], None]) -> None:
        self.retry_pending = retry_pending

    def handle_user_interaction(self) -> None:
        self.interactions += 1
        if self.retry_pending is not None:
            self.retry_pending()

    def notify_blocked(self) -> None:
        self.blocked_notices += 1


@dataclass
class Engine:
    clock: FakeClock
    timers: ManualTimers
    reconciler: ClockReconciler
    entries: EntryTable
    audio: AudioBank
    queue: PlaybackQueue
    scheduler: SlotScheduler


def build_engine(
    ttl_ms: int = 600_000,
    repeats: Any = None,
    unlock: AutoplayUnlock | None = None,
) -> Engine:
    clock = FakeClock()
    timers = ManualTimers(clock)
    reconciler = ClockReconciler(local_clock=clock)
    entries = EntryTable()
    audio = AudioBank()
    queue = PlaybackQueue(entries, audio, timers, unlock=unlock)
    scheduler = SlotScheduler(reconciler, queue, entries, timers, ttl_ms=ttl_ms, repeat_settings=repeats)
    return Engine(clock, timers, reconciler, entries, audio, queue, scheduler)


def make_recording(recording_id: str, created_at_ms: int = START_MS, url: str | None = None) -> Recording:
    return Recording(
        recording_id=recording_id,
        name=f"{recording_id}.webm",
        url=url or f"https://cdn.example.test/{recording_id}.webm",
        created_at_ms=created_at_ms,
    )


def url_of(recording_id: str) -> str:
    return f"https://cdn.example.test/{recording_id}.webm"
