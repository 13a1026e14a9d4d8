"""Evidence extraction service abstractions."""

from __future__ import annotations

import abc
from typing import List, Sequence

from ...data.models import EvidenceChecklistItem, EvidenceRecord


class EvidenceExtractor(abc.ABC):
    """Collect verbatim transcript quotations that satisfy each checklist item."""

    @abc.abstractmethod
    async def extract(
        self,
        transcript_text: str,
        items: Sequence[EvidenceChecklistItem],
        section_id: str,
    ) -> List[EvidenceRecord]:
        raise NotImplementedError


__all__ = ["EvidenceExtractor"]
