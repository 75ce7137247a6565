"""Autoplay unlock helpers for platforms that gate audio behind a user gesture."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

from timed_audio_queue.playback.timers import Timers

logger = logging.getLogger(__name__)

SilentPlayer = Callable[[], Awaitable[None]]


class AutoplayUnlock(Protocol):
    def bind(self, retry_pending: Callable[[], None]) -> None: ...

    def handle_user_interaction(self) -> None: ...

    def notify_blocked(self) -> None: ...


class NullAutoplayUnlock:
    """For platforms that never block autoplay; retries rely on the backoff timer."""

    def bind(self, retry_pending: Callable[[], None]) -> None:
        return None

    def handle_user_interaction(self) -> None:
        return None

    def notify_blocked(self) -> None:
        return None


class SilentClipUnlock:
    """Plays a muted throwaway clip once per session, then retries pending plays.

    Triggered by the first user interaction or the first blocked autoplay,
    whichever comes first. The retry runs whether or not the silent clip played.
    """

    def __init__(self, silent_player: SilentPlayer, timers: Timers) -> None:
        self._silent_player = silent_player
        self._timers = timers
        self._retry_pending: Callable[[], None] | None = None
        self._attempted = False

    @property
    def attempted(self) -> bool:
        return self._attempted

    def bind(self, retry_pending: Callable[[], None]) -> None:
        self._retry_pending = retry_pending

    def handle_user_interaction(self) -> None:
        self._attempt("user interaction")

    def notify_blocked(self) -> None:
        self._attempt("autoplay blocked")

    def _attempt(self, trigger: str) -> None:
        if self._attempted:
            return
        self._attempted = True
        logger.info("Autoplay unlock attempt (trigger=%s)", trigger)
        self._timers.spawn(self._unlock())

    async def _unlock(self) -> None:
        try:
            await self._silent_player()
        except Exception as exc:  # noqa: BLE001 - outcome does not matter, only the attempt
            logger.debug("Silent unlock clip failed: %s", exc)
        finally:
            if self._retry_pending is not None:
                self._retry_pending()
