"""Playback domain exports."""

from timed_audio_queue.playback.audio import (
    AudioElement,
    AudioFactory,
    AutoplayBlockedError,
    FFPlayAudio,
    PlaybackError,
    atempo_filter,
)
from timed_audio_queue.playback.clock import ClockReconciler, parse_http_date_ms
from timed_audio_queue.playback.entries import EntryTable
from timed_audio_queue.playback.facade import Playlist
from timed_audio_queue.playback.models import (
    MAX_REPEAT_PLAYS,
    EnabledSlot,
    EntryStatus,
    Recording,
    RepeatSetting,
    ScheduledEntry,
    entry_id_for,
)
from timed_audio_queue.playback.queue import PlaybackQueue
from timed_audio_queue.playback.repeats import (
    DEFAULT_REPEAT_SETTINGS,
    NormalizedSchedule,
    clamp_playback_rate,
    normalize_repeat_settings,
    single_play,
)
from timed_audio_queue.playback.scheduler import SlotScheduler
from timed_audio_queue.playback.service import PlaybackService, RecordingsSource
from timed_audio_queue.playback.timers import LoopTimers, TimerHandle, Timers
from timed_audio_queue.playback.unlock import AutoplayUnlock, NullAutoplayUnlock, SilentClipUnlock

__all__ = [
    "AudioElement",
    "AudioFactory",
    "AutoplayBlockedError",
    "AutoplayUnlock",
    "ClockReconciler",
    "DEFAULT_REPEAT_SETTINGS",
    "EnabledSlot",
    "EntryStatus",
    "EntryTable",
    "FFPlayAudio",
    "LoopTimers",
    "MAX_REPEAT_PLAYS",
    "NormalizedSchedule",
    "NullAutoplayUnlock",
    "PlaybackError",
    "PlaybackQueue",
    "PlaybackService",
    "Playlist",
    "Recording",
    "RecordingsSource",
    "RepeatSetting",
    "ScheduledEntry",
    "SilentClipUnlock",
    "SlotScheduler",
    "TimerHandle",
    "Timers",
    "atempo_filter",
    "clamp_playback_rate",
    "entry_id_for",
    "normalize_repeat_settings",
    "parse_http_date_ms",
    "single_play",
]
