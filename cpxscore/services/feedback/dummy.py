"""Dummy feedback generator for offline usage."""

from __future__ import annotations

from typing import Optional

from ...data.models import EvidenceChecklist, NarrativeFeedback
from .base import FeedbackService


class DummyFeedbackService(FeedbackService):
    async def generate_feedback(
        self,
        transcript_text: str,
        checklist: EvidenceChecklist,
        case_name: Optional[str] = None,
    ) -> NarrativeFeedback:
        lines = [line for line in transcript_text.splitlines() if line.strip()]

        def section_note(section: str) -> str:
            count = len(checklist.items(section))
            return f"{count} checklist item(s) reviewed against {len(lines)} transcript line(s)."

        case = f" for {case_name}" if case_name else ""
        return NarrativeFeedback(
            history_taking_feedback=section_note("history"),
            physical_exam_feedback=section_note("physical_exam"),
            patient_education_feedback=section_note("education"),
            ppi_feedback=section_note("ppi"),
            overall_summary=f"Offline feedback{case}; configure the openai backend for written comments.",
        )


__all__ = ["DummyFeedbackService"]
