"""Remote recordings source exports."""

from timed_audio_queue.remote.client import HTTPResult, RecordingsClient, RecordingsSnapshot, RecordingsSourceError

__all__ = [
    "HTTPResult",
    "RecordingsClient",
    "RecordingsSnapshot",
    "RecordingsSourceError",
]
