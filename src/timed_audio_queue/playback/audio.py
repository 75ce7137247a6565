"""Audio playback primitive contract and an ffplay-backed implementation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class PlaybackError(RuntimeError):
    """Raised when a clip cannot be played (decode, network or missing file)."""


class AutoplayBlockedError(PlaybackError):
    """Raised when the platform refuses to start audio without a user gesture."""


class AudioElement(Protocol):
    url: str
    current_time: float
    playback_rate: float
    on_ended: Callable[[], None] | None
    on_error: Callable[[str], None] | None

    async def play(self) -> None: ...

    def pause(self) -> None: ...


AudioFactory = Callable[[str], AudioElement]


class FFPlayAudio:
    """Plays one URL through an `ffplay` child process.

    `play()` returns once the process is running; the process exit is reported
    through `on_ended` (exit code 0) or `on_error`.
    """

    def __init__(self, url: str, binary: str = "ffplay") -> None:
        self.url = url
        self.binary = binary
        self.current_time = 0.0
        self.playback_rate = 1.0
        self.on_ended: Callable[[], None] | None = None
        self.on_error: Callable[[str], None] | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._watcher: asyncio.Task[None] | None = None
        self._generation = 0

    def build_command(self) -> list[str]:
        command = [self.binary, "-nodisp", "-autoexit", "-loglevel", "error"]
        if self.current_time > 0:
            command += ["-ss", f"{self.current_time:.3f}"]
        tempo = atempo_filter(self.playback_rate)
        if tempo:
            command += ["-af", tempo]
        command.append(self.url)
        return command

    async def play(self) -> None:
        self.pause()
        generation = self._generation
        command = self.build_command()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise PlaybackError(f"{self.binary} is not installed") from exc
        except OSError as exc:
            raise PlaybackError(f"could not start {self.binary}: {exc}") from exc
        logger.debug("ffplay started pid=%s url=%s", process.pid, self.url)
        self._watcher = asyncio.get_running_loop().create_task(self._watch(process))
        if generation != self._generation:
            logger.debug("ffplay pid=%s paused while starting; terminating", process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            return
        self._process = process

    def pause(self) -> None:
        self._generation += 1
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.terminate()

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        _, stderr = await process.communicate()
        if process is not self._process:
            # Paused or replaced by a newer play(); the exit is not a playback outcome.
            return
        self._process = None
        if process.returncode == 0:
            if self.on_ended is not None:
                self.on_ended()
            return
        detail = (stderr or b"").decode("utf-8", errors="replace").strip().splitlines()
        message = detail[-1] if detail else f"{self.binary} exited with code {process.returncode}"
        if self.on_error is not None:
            self.on_error(message)


def atempo_filter(rate: float) -> str:
    """Build an `atempo` chain; older ffmpeg builds accept 0.5-2.0 per stage."""
    if abs(rate - 1.0) < 1e-9:
        return ""
    stages: list[float] = []
    remaining = rate
    while remaining > 2.0:
        stages.append(2.0)
        remaining /= 2.0
    stages.append(remaining)
    return ",".join(f"atempo={stage:.4g}" for stage in stages)
