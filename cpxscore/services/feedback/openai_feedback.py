"""OpenAI powered narrative feedback."""

from __future__ import annotations

import json
from typing import Optional

from pydantic import BaseModel

from ...config import get_settings
from ...data.models import EvidenceChecklist, NarrativeFeedback
from ...logging import get_logger
from ..openai_support import create_async_client
from ..retry import retry_with_backoff
from .base import FeedbackService

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = """
You are a CPX (Clinical Performance Examination) faculty assessor. You read the transcript
of a conversation between a student and a standardized patient, together with the case's
evidence checklist, and write warm, specific feedback for the student.

The transcript comes from speech recognition and may contain typos; read it charitably.

Aim for feedback that is:
1. Evidence-based: strengths and weaknesses point at what the student actually said.
2. Actionable: every improvement comes with a concrete suggestion for next time.
3. Connected: the observation and the suggestion follow from each other.
4. Balanced: praise and suggestions are both present.

Rules:
- Infer the clinical situation from the transcript and fit the feedback to it.
- Write at most two or three short paragraphs per section.
- Do not mention omissions of low-importance items.
- Keep medical terms, and explain them gently.

Return JSON with the keys history_taking_feedback, physical_exam_feedback,
patient_education_feedback, ppi_feedback and overall_summary.
""".strip()

_SECTION_KEYS = {
    "history": "history_taking",
    "physical_exam": "physical_exam",
    "education": "patient_education",
    "ppi": "ppi",
}


class _FeedbackPayload(BaseModel):
    history_taking_feedback: str
    physical_exam_feedback: str
    patient_education_feedback: str
    ppi_feedback: str
    overall_summary: str


class OpenAIFeedbackService(FeedbackService):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_feedback_model
        self.max_retries = settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay
        self.client, self._openai_error_cls = create_async_client("feedback")

    async def generate_feedback(
        self,
        transcript_text: str,
        checklist: EvidenceChecklist,
        case_name: Optional[str] = None,
    ) -> NarrativeFeedback:
        user_message = json.dumps(
            {
                "chief_complaint": case_name or "",
                "transcript": transcript_text,
                "checklist": {
                    _SECTION_KEYS[section]: [item.model_dump() for item in items]
                    for section, items in checklist.sections.items()
                },
            },
            ensure_ascii=False,
        )
        LOGGER.info("Requesting OpenAI narrative feedback")
        response = await retry_with_backoff(
            lambda: self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                text_format=_FeedbackPayload,
                max_output_tokens=4096,
            ),
            label="generate_feedback",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        parsed = getattr(response, "output_parsed", None)
        if parsed is None:
            raise ValueError("feedback output could not be parsed")
        return NarrativeFeedback(**parsed.model_dump())


__all__ = ["OpenAIFeedbackService"]
