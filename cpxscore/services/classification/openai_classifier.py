"""OpenAI powered encounter phase classification."""

from __future__ import annotations

from typing import List, Optional, Sequence

from pydantic import BaseModel

from ...config import get_settings
from ...data.models import PhaseSpan
from ...logging import get_logger
from ..openai_support import create_async_client
from ..retry import retry_with_backoff
from .base import COUNSELING_CASES, SectionClassifier, expected_phase_order

LOGGER = get_logger(__name__)

_PHASE_LETTERS = {"history": "H", "physical_exam": "P", "education": "E"}


class _PhaseSpans(BaseModel):
    segments: List[PhaseSpan]


def _system_prompt(case_name: Optional[str], last_index: int) -> str:
    order = " -> ".join(_PHASE_LETTERS[phase] for phase in expected_phase_order(case_name))
    if case_name in COUNSELING_CASES:
        final_rule = "5. This is a counseling case without a physical examination; use only history and education."
    else:
        final_rule = "5. Use the expected order as a hint, but follow what the transcript actually shows."
    return f"""
You classify CPX (Clinical Performance Examination) transcripts into encounter phases.

Expected phase order for this case: {order}
(H = history taking, P = physical examination, E = patient education)

Each transcript line is prefixed with its index. Return an array of contiguous segments,
each {{"section", "start_index", "end_index"}} with section one of
"history", "physical_exam", "education".

- history: chief complaint, present illness, past/family/social history, review of systems
- physical_exam: examination manoeuvres, explaining and reporting findings
- education: diagnosis, treatment plan, lifestyle advice, follow-up

Rules:
1. Greetings and introductions belong to history.
2. Closing remarks belong to education.
3. Segments must cover every line from 0 to {last_index} without gaps.
4. Each segment starts at the previous segment's end_index + 1.
{final_rule}
""".strip()


class OpenAISectionClassifier(SectionClassifier):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_classification_model
        self.max_retries = settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay
        self.client, self._openai_error_cls = create_async_client("phase classification")

    async def classify_turns(
        self, lines: Sequence[str], case_name: Optional[str] = None
    ) -> List[PhaseSpan]:
        if not lines:
            raise ValueError("transcript is empty")

        numbered = "\n".join(f"[{index}] {line}" for index, line in enumerate(lines))
        LOGGER.info("Requesting OpenAI phase classification for %d lines", len(lines))
        response = await retry_with_backoff(
            lambda: self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": _system_prompt(case_name, len(lines) - 1)},
                    {"role": "user", "content": f"Return the phase segments for this transcript:\n\n{numbered}"},
                ],
                text_format=_PhaseSpans,
                max_output_tokens=8192,
            ),
            label="classify_turns",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        parsed = getattr(response, "output_parsed", None)
        if parsed is None:
            raise ValueError("phase classification output could not be parsed")
        return list(parsed.segments)


__all__ = ["OpenAISectionClassifier"]
