"""Dummy phase classifier for testing or offline usage."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ...data.models import PhaseSpan
from .base import SectionClassifier, expected_phase_order


class DummySectionClassifier(SectionClassifier):
    """Split the transcript into equal runs following the case's phase order."""

    async def classify_turns(
        self, lines: Sequence[str], case_name: Optional[str] = None
    ) -> List[PhaseSpan]:
        if not lines:
            raise ValueError("transcript is empty")
        order = expected_phase_order(case_name)
        total = len(lines)
        spans: List[PhaseSpan] = []
        for position, section in enumerate(order):
            start = round(position * total / len(order))
            end = round((position + 1) * total / len(order)) - 1
            if end >= start:
                spans.append(PhaseSpan(section=section, start_index=start, end_index=end))
        return spans


__all__ = ["DummySectionClassifier"]
