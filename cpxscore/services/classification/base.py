"""Phase classification abstractions and case-specific phase orders."""

from __future__ import annotations

import abc
from typing import List, Optional, Sequence, Tuple

from ...data.models import PhaseSpan

# Counseling cases have no physical examination.
COUNSELING_CASES = frozenset(
    {
        "예방접종",
        "성장/발달지연",
        "금연상담",
        "음주상담",
        "나쁜소식전하기",
        "자살",
    }
)

_SPECIAL_ORDERS = {
    "가정폭력": ("history", "physical_exam", "history", "education"),
    "의식장애": ("physical_exam", "history", "physical_exam", "education"),
}


def expected_phase_order(case_name: Optional[str] = None) -> Tuple[str, ...]:
    """Return the usual sequence of encounter phases for a case."""

    if case_name in COUNSELING_CASES:
        return ("history", "education")
    if case_name in _SPECIAL_ORDERS:
        return _SPECIAL_ORDERS[case_name]
    return ("history", "physical_exam", "education")


class SectionClassifier(abc.ABC):
    """Label contiguous runs of transcript lines with an encounter phase."""

    @abc.abstractmethod
    async def classify_turns(
        self, lines: Sequence[str], case_name: Optional[str] = None
    ) -> List[PhaseSpan]:
        raise NotImplementedError


__all__ = ["COUNSELING_CASES", "SectionClassifier", "expected_phase_order"]
