"""Repeat slot normalization and cumulative offset derivation."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from timed_audio_queue.playback.models import MAX_REPEAT_PLAYS, EnabledSlot, RepeatSetting

MIN_PLAYBACK_RATE = 0.5
MAX_PLAYBACK_RATE = 3.0

DEFAULT_REPEAT = RepeatSetting(gap_seconds=30, playback_rate=1.0, enabled=True)

DEFAULT_REPEAT_SETTINGS: tuple[RepeatSetting, ...] = (
    RepeatSetting(gap_seconds=0),
    RepeatSetting(gap_seconds=30),
    RepeatSetting(gap_seconds=30),
    RepeatSetting(gap_seconds=30),
    RepeatSetting(gap_seconds=30),
    RepeatSetting(gap_seconds=30),
)


@dataclass(frozen=True, slots=True)
class NormalizedSchedule:
    repeats: tuple[RepeatSetting, ...]
    offsets_ms: tuple[int | None, ...]
    enabled_slots: tuple[EnabledSlot, ...]

    @property
    def key(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"), sort_keys=True)

    def to_payload(self) -> list[dict[str, Any]]:
        return [
            {
                "gapSeconds": repeat.gap_seconds,
                "playbackRate": repeat.playback_rate,
                "enabled": repeat.enabled,
            }
            for repeat in self.repeats
        ]


def normalize_repeat_settings(raw: Iterable[Any] | None) -> NormalizedSchedule:
    """Coerce user-edited slot settings into exactly six canonical slots.

    Gaps are whole non-negative seconds, rates are clamped to [0.5, 3.0] with two
    decimals, missing slots are padded with 30s/1.0x and at least one slot is
    always enabled. Offsets are positions on the recording's timeline: a
    disabled slot plays nothing and gets no offset, but its gap still elapses
    so the plays after it keep their times.
    """
    try:
        items = list(raw) if raw is not None else []
    except TypeError:
        items = []
    repeats = [_coerce_repeat(item) for item in items[:MAX_REPEAT_PLAYS]]
    while len(repeats) < MAX_REPEAT_PLAYS:
        repeats.append(DEFAULT_REPEAT)

    if not any(repeat.enabled for repeat in repeats):
        first = repeats[0]
        repeats[0] = RepeatSetting(gap_seconds=first.gap_seconds, playback_rate=first.playback_rate, enabled=True)

    offsets: list[int | None] = []
    enabled: list[EnabledSlot] = []
    elapsed_ms = 0
    for index, repeat in enumerate(repeats):
        elapsed_ms += repeat.gap_seconds * 1000
        if not repeat.enabled:
            offsets.append(None)
            continue
        offsets.append(elapsed_ms)
        enabled.append(
            EnabledSlot(
                slot_number=index + 1,
                play_number=len(enabled) + 1,
                scheduled_offset_ms=elapsed_ms,
                playback_rate=repeat.playback_rate,
            )
        )

    return NormalizedSchedule(
        repeats=tuple(repeats),
        offsets_ms=tuple(offsets),
        enabled_slots=tuple(enabled),
    )


def single_play(schedule: NormalizedSchedule) -> NormalizedSchedule:
    """Keep only the first enabled slot, for when repeating is switched off."""
    first = schedule.enabled_slots[0]
    repeats = [
        RepeatSetting(
            gap_seconds=repeat.gap_seconds,
            playback_rate=repeat.playback_rate,
            enabled=index + 1 == first.slot_number,
        )
        for index, repeat in enumerate(schedule.repeats)
    ]
    return normalize_repeat_settings(repeats)


def clamp_playback_rate(value: float) -> float:
    return min(max(round(value, 2), MIN_PLAYBACK_RATE), MAX_PLAYBACK_RATE)


def _coerce_repeat(item: Any) -> RepeatSetting:
    if isinstance(item, RepeatSetting):
        gap_raw: Any = item.gap_seconds
        rate_raw: Any = item.playback_rate
        enabled_raw: Any = item.enabled
    elif isinstance(item, Mapping):
        gap_raw = _first_present(item, "gap_seconds", "gapSeconds")
        rate_raw = _first_present(item, "playback_rate", "playbackRate")
        enabled_raw = item.get("enabled", True)
    else:
        return DEFAULT_REPEAT

    return RepeatSetting(
        gap_seconds=_coerce_gap(gap_raw),
        playback_rate=_coerce_rate(rate_raw),
        enabled=_coerce_enabled(enabled_raw),
    )


def _first_present(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in item:
            return item[key]
    return None


def _coerce_gap(raw: Any) -> int:
    value = _to_finite_float(raw)
    if value is None:
        return DEFAULT_REPEAT.gap_seconds
    return max(0, math.floor(value + 0.5))


def _coerce_enabled(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw.strip().lower() not in {"", "0", "false", "no", "off"}
    return bool(raw)


def _coerce_rate(raw: Any) -> float:
    value = _to_finite_float(raw)
    if value is None:
        return DEFAULT_REPEAT.playback_rate
    return clamp_playback_rate(value)


def _to_finite_float(raw: Any) -> float | None:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value
