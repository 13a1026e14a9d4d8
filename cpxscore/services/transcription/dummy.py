"""Dummy transcription service for testing or offline usage."""

from __future__ import annotations

from ...data.blobs import BlobStore
from ...data.models import TranscriptResult, TranscriptSegment
from .base import TranscriptionService


class DummyTranscriptionService(TranscriptionService):
    """Treat the stored blob as UTF-8 text with one dialogue turn per line."""

    def __init__(self, blobs: BlobStore, seconds_per_line: float = 5.0) -> None:
        self.blobs = blobs
        self.seconds_per_line = seconds_per_line

    async def transcribe(self, audio_key: str) -> TranscriptResult:
        raw = await self.blobs.get(audio_key)
        lines = [line.strip() for line in raw.decode("utf-8", errors="replace").splitlines() if line.strip()]
        segments = [
            TranscriptSegment(
                id=index + 1,
                start=index * self.seconds_per_line,
                end=(index + 1) * self.seconds_per_line,
                text=line,
            )
            for index, line in enumerate(lines)
        ]
        return TranscriptResult(source_key=audio_key, text="\n".join(lines), segments=segments)


__all__ = ["DummyTranscriptionService"]
