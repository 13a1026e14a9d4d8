"""Factories for runtime service selection."""

from __future__ import annotations

from typing import Optional

from ..data.blobs import BlobStore
from .classification.base import SectionClassifier
from .classification.dummy import DummySectionClassifier
from .extraction.base import EvidenceExtractor
from .extraction.dummy import DummyEvidenceExtractor
from .feedback.base import FeedbackService
from .feedback.dummy import DummyFeedbackService
from .transcription.base import TranscriptionService
from .transcription.dummy import DummyTranscriptionService


class ServiceConfigurationError(ValueError):
    """Raised when an unknown backend is requested."""


def _normalise(name: Optional[str]) -> str:
    if not name:
        return "none"
    return name.strip().lower()


def resolve_transcription_backend(name: Optional[str], blobs: BlobStore) -> Optional[TranscriptionService]:
    backend = _normalise(name)
    if backend in {"", "none", "off"}:
        return None
    if backend == "dummy":
        return DummyTranscriptionService(blobs)
    if backend == "openai":
        from .transcription.openai_client import OpenAITranscriptionService

        return OpenAITranscriptionService(blobs)
    raise ServiceConfigurationError(f"Unknown transcription backend: {name}")


def resolve_extraction_backend(name: Optional[str]) -> EvidenceExtractor:
    backend = _normalise(name)
    if backend == "dummy":
        return DummyEvidenceExtractor()
    if backend == "openai":
        from .extraction.openai_extractor import OpenAIEvidenceExtractor

        return OpenAIEvidenceExtractor()
    raise ServiceConfigurationError(f"Unknown extraction backend: {name}")


def resolve_classification_backend(name: Optional[str]) -> Optional[SectionClassifier]:
    backend = _normalise(name)
    if backend in {"", "none", "off"}:
        return None
    if backend == "dummy":
        return DummySectionClassifier()
    if backend == "openai":
        from .classification.openai_classifier import OpenAISectionClassifier

        return OpenAISectionClassifier()
    raise ServiceConfigurationError(f"Unknown classification backend: {name}")


def resolve_feedback_backend(name: Optional[str]) -> Optional[FeedbackService]:
    backend = _normalise(name)
    if backend in {"", "none", "off"}:
        return None
    if backend == "dummy":
        return DummyFeedbackService()
    if backend == "openai":
        from .feedback.openai_feedback import OpenAIFeedbackService

        return OpenAIFeedbackService()
    raise ServiceConfigurationError(f"Unknown feedback backend: {name}")


__all__ = [
    "ServiceConfigurationError",
    "resolve_classification_backend",
    "resolve_extraction_backend",
    "resolve_feedback_backend",
    "resolve_transcription_backend",
]
