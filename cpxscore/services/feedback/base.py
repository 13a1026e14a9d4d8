"""Narrative feedback service abstractions."""

from __future__ import annotations

import abc
from typing import Optional

from ...data.models import EvidenceChecklist, NarrativeFeedback


class FeedbackService(abc.ABC):
    """Write coaching feedback from the transcript and the ungraded checklist.

    Runs alongside evidence extraction, so it never sees the grades.
    """

    @abc.abstractmethod
    async def generate_feedback(
        self,
        transcript_text: str,
        checklist: EvidenceChecklist,
        case_name: Optional[str] = None,
    ) -> NarrativeFeedback:
        raise NotImplementedError


__all__ = ["FeedbackService"]
