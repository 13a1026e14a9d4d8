"""OpenAI powered transcription service."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from ...config import get_settings
from ...data.blobs import BlobStore
from ...data.models import TranscriptResult, TranscriptSegment
from ...logging import get_logger
from ..openai_support import create_async_client
from ..retry import retry_with_backoff
from .base import TranscriptionService

LOGGER = get_logger(__name__)

_AUDIO_MIME_TYPES = {
    "m4a": "audio/m4a",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "webm": "audio/webm",
    "mp4": "audio/mp4",
    "flac": "audio/flac",
}


def guess_audio_mime(name: str, fallback: str = "application/octet-stream") -> str:
    suffix = PurePosixPath(name).suffix.lstrip(".").lower()
    return _AUDIO_MIME_TYPES.get(suffix, fallback)


class OpenAITranscriptionService(TranscriptionService):
    def __init__(self, blobs: BlobStore, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.blobs = blobs
        self.model = model or settings.openai_transcription_model
        self.max_retries = settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay
        self.client, self._openai_error_cls = create_async_client("transcription")

    async def transcribe(self, audio_key: str) -> TranscriptResult:
        audio = await self.blobs.get(audio_key)
        filename = PurePosixPath(audio_key).name or "audio.mp3"
        mime = guess_audio_mime(filename)
        LOGGER.info("Requesting OpenAI transcription for %s", audio_key)

        response: Any = None
        formats = self._candidate_response_formats()
        for index, response_format in enumerate(formats):
            try:
                response = await retry_with_backoff(
                    lambda: self.client.audio.transcriptions.create(
                        model=self.model,
                        file=(filename, audio, mime),
                        response_format=response_format,
                    ),
                    label=f"transcribe({audio_key})",
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                )
                break
            except self._openai_error_cls as exc:
                if self._is_response_format_error(exc) and index < len(formats) - 1:
                    LOGGER.info(
                        "Response format '%s' is not supported by model '%s'; retrying with '%s'",
                        response_format,
                        self.model,
                        formats[index + 1],
                    )
                    continue
                raise

        text, segments, raw_response = self._parse_transcription_response(response)
        return TranscriptResult(
            source_key=audio_key,
            text=text,
            segments=segments,
            raw_response=raw_response,
        )

    def _candidate_response_formats(self) -> List[str]:
        return ["verbose_json", "json", "text"]

    def _is_response_format_error(self, exc: Exception) -> bool:
        message = str(getattr(exc, "message", None) or exc)
        return "response_format" in message and "unsupported" in message.lower()

    def _parse_transcription_response(
        self, response: Any
    ) -> tuple[str, List[TranscriptSegment], Optional[Dict[str, Any]]]:
        if response is None:
            return "", [], None

        data: Optional[Dict[str, Any]] = None
        text = ""
        segments_data: List[Any] = []

        if isinstance(response, dict):
            data = response
        elif hasattr(response, "model_dump"):
            data = response.model_dump()
        elif isinstance(response, str):
            text = response

        if data is not None:
            text = str(data.get("text", "") or "")
            segments_source = data.get("segments", []) or []
            if isinstance(segments_source, list):
                segments_data = segments_source

        segments: List[TranscriptSegment] = []
        for segment in segments_data:
            if isinstance(segment, dict):
                start = segment.get("start")
                end = segment.get("end")
                segment_text = str(segment.get("text") or "")
            else:
                start = getattr(segment, "start", None)
                end = getattr(segment, "end", None)
                segment_text = str(getattr(segment, "text", "") or "")
            start_sec = float(start or 0.0)
            segments.append(
                TranscriptSegment(
                    id=len(segments) + 1,
                    start=start_sec,
                    end=max(float(end or 0.0), start_sec),
                    text=segment_text.strip(),
                )
            )

        # One line per segment keeps transcript lines aligned with segment indices.
        if segments:
            text = "\n".join(segment.text for segment in segments)
        else:
            text = text.strip()

        raw_response = data if data is not None else ({"text": text} if text else None)
        return text, segments, raw_response


__all__ = ["OpenAITranscriptionService", "guess_audio_mime"]
