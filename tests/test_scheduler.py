import pytest
from playback_doubles import START_MS, RecordingUnlock, build_engine, make_recording, url_of

from timed_audio_queue.playback.audio import AutoplayBlockedError, PlaybackError
from timed_audio_queue.playback.models import EntryStatus, entry_id_for
from timed_audio_queue.playback.queue import MANUAL_FAILURE_MESSAGE

TWO_PLAYS = [
    {"gapSeconds": 0, "playbackRate": 1.0, "enabled": True},
    {"gapSeconds": 30, "playbackRate": 1.0, "enabled": True},
    {"gapSeconds": 30, "playbackRate": 1.0, "enabled": False},
    {"gapSeconds": 0, "playbackRate": 1.0, "enabled": False},
    {"gapSeconds": 0, "playbackRate": 1.0, "enabled": False},
    {"gapSeconds": 0, "playbackRate": 1.0, "enabled": False},
]

ONE_PLAY = [{"gapSeconds": 0, "enabled": True}] + [{"gapSeconds": 30, "enabled": False}] * 5


def test_new_recording_gets_one_entry_per_enabled_slot() -> None:
    engine = build_engine()

    created = engine.scheduler.observe([make_recording("r1")])

    assert [entry.slot_number for entry in created] == [1, 2, 3, 4, 5, 6]
    assert [entry.scheduled_at_ms - START_MS for entry in created] == [0, 30_000, 60_000, 90_000, 120_000, 150_000]
    assert all(entry.status == EntryStatus.SCHEDULED for entry in created)
    assert created[0].entry_id == entry_id_for("r1", 1)
    assert engine.scheduler.armed_timer_count == 6


def test_schedule_is_anchored_at_first_observation() -> None:
    engine = build_engine()
    engine.timers.advance(42)

    created = engine.scheduler.observe([make_recording("r1", created_at_ms=START_MS)])

    assert created[0].scheduled_at_ms == START_MS + 42_000
    assert created[1].scheduled_at_ms == START_MS + 72_000


def test_observing_the_same_recordings_twice_never_duplicates_entries() -> None:
    engine = build_engine()
    recordings = [make_recording("r1"), make_recording("r2")]

    engine.scheduler.observe(recordings)
    again = engine.scheduler.observe(recordings)

    assert again == []
    assert len(engine.entries) == 12
    assert len({entry.entry_id for entry in engine.scheduler.entries()}) == 12
    assert engine.scheduler.armed_timer_count == 12


def test_finished_slots_are_not_recreated_by_later_polls() -> None:
    engine = build_engine()
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)
    engine.audio.latest(url_of("r1")).finish()
    assert len(engine.entries) == 5

    engine.scheduler.observe([make_recording("r1")])

    assert len(engine.entries) == 5
    assert entry_id_for("r1", 1) not in engine.entries


def test_overlapping_entries_never_play_at_the_same_time() -> None:
    engine = build_engine(repeats=ONE_PLAY)
    engine.scheduler.observe([make_recording("r1"), make_recording("r2")])

    engine.timers.advance(0)

    first = engine.scheduler.get_entry(entry_id_for("r1", 1))
    second = engine.scheduler.get_entry(entry_id_for("r2", 1))
    assert first.status == EntryStatus.PLAYING
    assert second.status == EntryStatus.QUEUED
    assert len(engine.audio.playing()) == 1

    first_audio = engine.audio.latest(url_of("r1"))
    first_audio.finish()

    assert first.status == EntryStatus.DONE
    assert second.status == EntryStatus.PLAYING
    assert engine.audio.playing() == [engine.audio.latest(url_of("r2"))]


def test_two_slot_recording_plays_in_order_end_to_end() -> None:
    engine = build_engine(repeats=TWO_PLAYS)
    transitions: list[tuple[str, EntryStatus]] = []
    request_play = engine.queue.request_play

    def _spy(entry_id: str, manual: bool = False) -> None:
        transitions.append((entry_id, engine.entries.get(entry_id).status))
        request_play(entry_id, manual=manual)

    engine.queue.request_play = _spy  # type: ignore[method-assign]

    created = engine.scheduler.observe([make_recording("R1")])
    assert [entry.scheduled_at_ms - START_MS for entry in created] == [0, 30_000]
    assert [entry.status for entry in created] == [EntryStatus.SCHEDULED] * 2
    first, second = created

    engine.timers.advance(0)
    assert first.status == EntryStatus.PLAYING
    assert second.status == EntryStatus.SCHEDULED
    assert len(engine.audio.playing()) == 1
    engine.audio.latest(url_of("R1")).finish()
    assert first.status == EntryStatus.DONE
    assert engine.audio.playing() == []

    engine.timers.advance(29)
    assert second.status == EntryStatus.SCHEDULED
    engine.timers.advance(1)
    assert second.status == EntryStatus.PLAYING
    assert len(engine.audio.playing()) == 1
    engine.audio.latest(url_of("R1")).finish()

    assert second.status == EntryStatus.DONE
    assert transitions == [(first.entry_id, EntryStatus.READY), (second.entry_id, EntryStatus.READY)]
    assert len(engine.entries) == 0
    assert engine.scheduler.armed_timer_count == 0


def test_expired_recording_is_torn_down_completely() -> None:
    engine = build_engine(ttl_ms=60_000)
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)
    engine.timers.advance(45)
    assert engine.scheduler.get_entry(entry_id_for("r1", 2)).status == EntryStatus.QUEUED

    engine.timers.advance(15)
    expired = engine.scheduler.tick()

    assert expired == ["r1"]
    assert len(engine.entries) == 0
    assert engine.scheduler.armed_timer_count == 0
    assert engine.timers.pending() == []
    assert engine.queue.current_id is None
    assert engine.queue.waiting_ids() == []
    assert engine.queue.active_audio_count == 0
    assert engine.audio.playing() == []


def test_expiry_uses_the_trusted_clock() -> None:
    engine = build_engine(ttl_ms=60_000)
    engine.scheduler.observe([make_recording("r1")])

    engine.reconciler.observe_server_time(START_MS + 61_000)

    assert engine.scheduler.tick() == ["r1"]
    assert len(engine.entries) == 0


def test_recording_already_expired_on_arrival_leaves_nothing_behind() -> None:
    engine = build_engine(ttl_ms=60_000)

    created = engine.scheduler.observe([make_recording("old", created_at_ms=START_MS - 60_000)])

    assert created == []
    assert len(engine.entries) == 0
    assert engine.timers.pending() == []


def test_recording_removed_from_source_is_torn_down() -> None:
    engine = build_engine()
    engine.scheduler.observe([make_recording("r1"), make_recording("r2")])
    engine.timers.advance(0)
    assert engine.queue.current_id == entry_id_for("r1", 1)

    engine.scheduler.observe([make_recording("r2")])

    assert {entry.recording_id for entry in engine.entries} == {"r2"}
    assert engine.queue.current_id == entry_id_for("r2", 1)
    assert engine.scheduler.armed_timer_count == 5


def test_changed_repeat_settings_rebuild_the_schedule_from_now() -> None:
    engine = build_engine()
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(10)

    changed = engine.scheduler.set_repeat_settings(TWO_PLAYS)

    entries = engine.scheduler.entries()
    assert changed is True
    assert [entry.slot_number for entry in entries] == [1, 2]
    assert [entry.scheduled_at_ms - START_MS for entry in entries] == [10_000, 40_000]
    assert all(entry.status == EntryStatus.SCHEDULED for entry in entries)
    assert engine.scheduler.armed_timer_count == 2
    assert engine.audio.playing() == []


def test_unchanged_repeat_settings_are_a_no_op() -> None:
    engine = build_engine(repeats=TWO_PLAYS)
    engine.scheduler.observe([make_recording("r1")])
    before = engine.scheduler.entries()

    changed = engine.scheduler.set_repeat_settings([dict(item) for item in TWO_PLAYS])

    assert changed is False
    assert engine.scheduler.entries() == before


def test_stale_slot_timer_after_settings_change_does_nothing() -> None:
    engine = build_engine(repeats=TWO_PLAYS)
    engine.scheduler.observe([make_recording("r1")])
    old_second_slot = engine.timers.pending()[1]
    engine.scheduler.set_repeat_settings(ONE_PLAY)

    old_second_slot.callback()

    assert [entry.entry_id for entry in engine.scheduler.entries()] == [entry_id_for("r1", 1)]
    assert engine.scheduler.get_entry(entry_id_for("r1", 1)).status == EntryStatus.SCHEDULED
    assert engine.audio.created == []

    engine.timers.advance(60)

    assert engine.scheduler.get_entry(entry_id_for("r1", 1)).status == EntryStatus.PLAYING
    assert len(engine.audio.created) == 1


def test_manual_retry_of_failed_entry_that_fails_again_stays_in_error() -> None:
    engine = build_engine(repeats=ONE_PLAY)
    engine.audio.script(url_of("r1"), PlaybackError("decode"), AutoplayBlockedError("blocked"))
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)
    entry_id = entry_id_for("r1", 1)
    assert engine.scheduler.get_entry(entry_id).status == EntryStatus.ERROR

    engine.scheduler.retry(entry_id)

    entry = engine.scheduler.get_entry(entry_id)
    assert entry.status == EntryStatus.ERROR
    assert entry.error_message == MANUAL_FAILURE_MESSAGE
    assert engine.queue.pending_autoplay_ids() == []


def test_manual_retry_of_failed_entry_can_succeed() -> None:
    engine = build_engine(repeats=ONE_PLAY)
    engine.audio.script(url_of("r1"), PlaybackError("decode"))
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)
    entry_id = entry_id_for("r1", 1)

    engine.scheduler.retry(entry_id)
    assert engine.scheduler.get_entry(entry_id).status == EntryStatus.PLAYING
    engine.audio.latest(url_of("r1")).finish()

    assert entry_id not in engine.entries


def test_blocked_autoplay_is_retried_after_user_interaction() -> None:
    unlock = RecordingUnlock()
    engine = build_engine(repeats=ONE_PLAY, unlock=unlock)
    engine.audio.script(url_of("r1"), AutoplayBlockedError("gesture required"))
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)
    entry_id = entry_id_for("r1", 1)
    assert engine.scheduler.get_entry(entry_id).status == EntryStatus.READY
    assert unlock.blocked_notices == 1

    unlock.handle_user_interaction()

    assert engine.scheduler.get_entry(entry_id).status == EntryStatus.PLAYING


def test_discard_removes_an_errored_entry() -> None:
    engine = build_engine(repeats=ONE_PLAY)
    engine.audio.script(url_of("r1"), PlaybackError("decode"))
    engine.scheduler.observe([make_recording("r1")])
    engine.timers.advance(0)

    engine.scheduler.discard(entry_id_for("r1", 1))

    assert len(engine.entries) == 0
    with pytest.raises(KeyError):
        engine.scheduler.discard(entry_id_for("r1", 1))


def test_stale_audio_callback_after_discard_is_ignored() -> None:
    engine = build_engine(repeats=ONE_PLAY)
    engine.scheduler.observe([make_recording("r1"), make_recording("r2")])
    engine.timers.advance(0)
    audio = engine.audio.latest(url_of("r1"))
    stale_error = audio.on_error
    assert stale_error is not None

    engine.scheduler.discard(entry_id_for("r1", 1))
    stale_error("late failure")

    assert entry_id_for("r1", 1) not in engine.entries
    assert engine.scheduler.get_entry(entry_id_for("r2", 1)).status == EntryStatus.PLAYING


def test_countdowns_cover_only_scheduled_entries() -> None:
    engine = build_engine(repeats=TWO_PLAYS)
    engine.scheduler.observe([make_recording("r1")])

    engine.timers.advance(10)

    assert engine.scheduler.countdowns() == {entry_id_for("r1", 2): 20}


def test_shutdown_cancels_everything() -> None:
    engine = build_engine()
    engine.scheduler.observe([make_recording("r1"), make_recording("r2")])
    engine.timers.advance(0)

    engine.scheduler.shutdown()

    assert len(engine.entries) == 0
    assert engine.timers.pending() == []
    assert engine.audio.playing() == []
    assert engine.queue.waiting_ids() == []


def test_unknown_entry_lookups_raise_key_error() -> None:
    engine = build_engine()

    with pytest.raises(KeyError):
        engine.scheduler.retry("missing-slot-1")
    with pytest.raises(KeyError):
        engine.scheduler.get_entry("missing-slot-1")


def test_ttl_must_be_positive() -> None:
    with pytest.raises(ValueError):
        build_engine(ttl_ms=0)
