"""Transcription service abstractions."""

from __future__ import annotations

import abc

from ...data.models import TranscriptResult


class TranscriptionService(abc.ABC):
    """Convert one stored audio blob into a transcript with timed segments."""

    @abc.abstractmethod
    async def transcribe(self, audio_key: str) -> TranscriptResult:
        raise NotImplementedError


__all__ = ["TranscriptionService"]
