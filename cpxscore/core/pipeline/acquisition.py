"""Transcript acquisition for uploaded recordings and live sessions."""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath
from typing import List, Optional, Sequence, Tuple

from ...data.blobs import BlobStore
from ...data.models import AcquiredTranscript, TranscriptResult, TranscriptSegment, TurnTimestamp
from ...logging import get_logger
from ...services.transcription.base import TranscriptionService
from ..errors import PipelineInputError, TranscriptUnavailable
from .background import BackgroundUploader, SessionContext
from .tasks import gather_or_cancel

LOGGER = get_logger(__name__)

AUDIO_EXTENSIONS = frozenset({".mp3", ".m4a", ".wav", ".webm", ".ogg", ".oga", ".mp4", ".flac"})
_PART_SUFFIX = re.compile(r"-part\d+$", re.IGNORECASE)


def derive_script_key(audio_key: str) -> str:
    """Return the transcript key for a (possibly multi-part) audio upload.

    ``SP_audio/2025/abc-part2.mp3`` becomes ``SP_script/2025/abc.txt``.
    """

    path = PurePosixPath(audio_key)
    stem = path.stem if path.suffix.lower() in AUDIO_EXTENSIONS else path.name
    stem = _PART_SUFFIX.sub("", stem)
    folders = list(path.parts[:-1])
    if folders and folders[0].endswith("_audio"):
        folders[0] = folders[0][: -len("_audio")] + "_script"
    elif folders and folders[0] == "audio":
        folders[0] = "script"
    else:
        folders.insert(0, "script")
    return "/".join(folders + [f"{stem}.txt"])


def merge_segments(parts: Sequence[Sequence[TranscriptSegment]]) -> List[TranscriptSegment]:
    """Concatenate per-part segments onto one timeline, renumbering ids from 1."""

    merged: List[TranscriptSegment] = []
    offset = 0.0
    for part in parts:
        for segment in part:
            merged.append(
                TranscriptSegment(
                    id=len(merged) + 1,
                    start=segment.start + offset,
                    end=segment.end + offset,
                    text=segment.text,
                )
            )
        if part:
            offset = merged[-1].end
    return merged


class TranscriptAcquirer:
    def __init__(
        self,
        blobs: BlobStore,
        transcription: Optional[TranscriptionService] = None,
        uploader: Optional[BackgroundUploader] = None,
    ) -> None:
        self.blobs = blobs
        self.transcription = transcription
        self.uploader = uploader

    async def _download_text(self, key: str) -> str:
        try:
            return await self.blobs.get_text(key)
        except Exception as exc:
            raise TranscriptUnavailable(f"Transcript download failed for {key}: {exc}") from exc

    async def _transcribe(self, key: str) -> TranscriptResult:
        if self.transcription is None:
            raise TranscriptUnavailable("No transcription backend configured")
        try:
            return await self.transcription.transcribe(key)
        except Exception as exc:
            raise TranscriptUnavailable(f"Transcription failed for {key}: {exc}") from exc

    async def acquire_upload(
        self,
        audio_keys: Sequence[str],
        cached_transcript_key: Optional[str] = None,
        context: Optional[SessionContext] = None,
    ) -> AcquiredTranscript:
        if cached_transcript_key:
            LOGGER.info("Using cached transcript %s", cached_transcript_key)
            text = await self._download_text(cached_transcript_key)
            return AcquiredTranscript(mode="cached", text=text, transcript_key=cached_transcript_key)

        if not audio_keys:
            raise PipelineInputError("Upload mode requires at least one audio key")
        if self.transcription is None:
            raise TranscriptUnavailable("No transcription backend configured")

        LOGGER.info("Transcribing %d audio part(s)", len(audio_keys))
        parts: List[TranscriptResult] = await gather_or_cancel(
            *(self._transcribe(key) for key in audio_keys)
        )
        text = "\n".join(part.text for part in parts)
        segments = merge_segments([part.segments for part in parts])

        script_key = derive_script_key(audio_keys[0])
        if self.uploader is not None:
            self.uploader.schedule_background_upload(script_key, text, context or SessionContext())
        return AcquiredTranscript(mode="upload", text=text, segments=segments, transcript_key=script_key)

    async def _load_turn_timestamps(
        self, key: str
    ) -> Tuple[Optional[List[TurnTimestamp]], Optional[float]]:
        try:
            data = json.loads(await self.blobs.get(key))
            turns = [TurnTimestamp.model_validate(turn) for turn in data.get("turns") or []]
            duration = data.get("sessionDurationSec")
            duration = float(duration) if duration else None
        except Exception as exc:
            LOGGER.warning("Turn timestamps %s unavailable; continuing without them: %s", key, exc)
            return None, None
        return (turns or None), duration

    async def acquire_live(
        self,
        transcript_key: str,
        timestamps_key: Optional[str] = None,
    ) -> AcquiredTranscript:
        if not transcript_key:
            raise PipelineInputError("Live mode requires a transcript key")
        text = await self._download_text(transcript_key)
        turns, duration = (None, None)
        if timestamps_key:
            turns, duration = await self._load_turn_timestamps(timestamps_key)
        return AcquiredTranscript(
            mode="live",
            text=text,
            turn_timestamps=turns,
            session_duration_sec=duration,
            transcript_key=transcript_key,
        )


__all__ = ["AUDIO_EXTENSIONS", "TranscriptAcquirer", "derive_script_key", "merge_segments"]
