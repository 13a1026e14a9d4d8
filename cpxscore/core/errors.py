"""Errors raised by the scoring pipeline.

Only subclasses of :class:`PipelineError` abort a run. Degraded steps (timing
classification, optional timestamp downloads, background uploads) never raise
these; they log and return an empty result instead.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for fatal pipeline failures."""


class PipelineInputError(PipelineError, ValueError):
    """Raised before any I/O when a request lacks a required identifier."""


class ChecklistUnavailable(PipelineError):
    """Raised when no checklist can be resolved for the run."""


class TranscriptUnavailable(PipelineError):
    """Raised when a required transcription or transcript download fails."""


class SectionExtractionError(PipelineError):
    """Raised when evidence extraction fails for one checklist section."""

    def __init__(self, section_id: str, message: Optional[str] = None) -> None:
        self.section_id = section_id
        super().__init__(message or f"Evidence extraction failed for section '{section_id}'")


class PipelineTimeout(PipelineError):
    """Raised when a run exceeds the configured pipeline timeout."""


__all__ = [
    "ChecklistUnavailable",
    "PipelineError",
    "PipelineInputError",
    "PipelineTimeout",
    "SectionExtractionError",
    "TranscriptUnavailable",
]
