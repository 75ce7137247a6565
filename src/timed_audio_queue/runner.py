"""Headless player: polls the sounds API and plays each recording's slots through ffplay."""

from __future__ import annotations

import asyncio
import logging
import signal

from timed_audio_queue.config import PlaybackConfig
from timed_audio_queue.playback.audio import FFPlayAudio
from timed_audio_queue.playback.service import PlaybackService
from timed_audio_queue.playback.timers import LoopTimers
from timed_audio_queue.playback.unlock import NullAutoplayUnlock
from timed_audio_queue.remote.client import RecordingsClient

logger = logging.getLogger(__name__)


async def run_player(config: PlaybackConfig) -> None:
    loop = asyncio.get_running_loop()
    timers = LoopTimers(loop)
    service = PlaybackService(
        config=config,
        source=RecordingsClient(base_url=config.api_base_url, timeout_sec=config.http_timeout_sec),
        audio_factory=FFPlayAudio,
        timers=timers,
        unlock=NullAutoplayUnlock(),
    )

    stop_event = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt.
            logger.debug("Signal handler for %s unavailable", signum)
    if hasattr(signal, "SIGHUP"):
        try:
            loop.add_signal_handler(signal.SIGHUP, service.reload_repeat_settings)
        except NotImplementedError:
            logger.debug("SIGHUP reload unavailable")

    logger.info(
        "Player started: api=%s ttl=%ss poll=%ss",
        config.api_base_url,
        config.recording_ttl_sec,
        config.poll_interval_sec,
    )
    try:
        await service.run(stop_event)
    finally:
        timers.cancel_all()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(name)s: %(message)s")
    try:
        asyncio.run(run_player(PlaybackConfig.from_env()))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
