"""Dummy evidence extractor for testing or offline usage."""

from __future__ import annotations

from typing import List, Sequence

from ...data.models import EvidenceChecklistItem, EvidenceRecord
from .base import EvidenceExtractor


class DummyEvidenceExtractor(EvidenceExtractor):
    """Quote every transcript line that mentions an item's title."""

    async def extract(
        self,
        transcript_text: str,
        items: Sequence[EvidenceChecklistItem],
        section_id: str,
    ) -> List[EvidenceRecord]:
        lines = [line.strip() for line in transcript_text.splitlines() if line.strip()]
        records = []
        for item in items:
            needle = item.title.casefold()
            records.append(
                EvidenceRecord(
                    id=item.id,
                    evidence=[line for line in lines if needle and needle in line.casefold()],
                )
            )
        return records


__all__ = ["DummyEvidenceExtractor"]
