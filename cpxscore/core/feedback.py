"""Best-effort narrative feedback alongside grading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..data.models import EvidenceChecklist, NarrativeFeedback
from ..logging import get_logger
from ..services.feedback.base import FeedbackService

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class FeedbackOutcome:
    feedback: Optional[NarrativeFeedback] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.feedback is not None


async def collect_feedback(
    service: Optional[FeedbackService],
    transcript_text: str,
    checklist: EvidenceChecklist,
    case_name: Optional[str] = None,
) -> FeedbackOutcome:
    """Ask for narrative feedback; failures only leave the feedback out."""

    if service is None:
        return FeedbackOutcome()

    try:
        feedback = await service.generate_feedback(transcript_text, checklist, case_name)
    except Exception as exc:
        LOGGER.warning("Narrative feedback failed; scoring continues without it: %s", exc)
        return FeedbackOutcome(error=exc)
    return FeedbackOutcome(feedback=feedback)


__all__ = ["FeedbackOutcome", "collect_feedback"]
