"""OpenAI powered evidence extraction."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ...config import get_settings
from ...data.models import EvidenceChecklistItem, EvidenceRecord
from ...logging import get_logger
from ..openai_support import create_async_client
from ..retry import retry_with_backoff
from .base import EvidenceExtractor

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = """
You are the evidence collector for an automated CPX (Clinical Performance Examination) grader.
The input is a JSON object with the dialogue transcript (doctor and patient turns in time
order, speakers not labelled), one checklist section (sectionId) and its items
(id, title, criteria).

For every item, return the transcript sentences that satisfy its criteria as verbatim
quotations in the item's "evidence" array.

Rules:
1. Accept clinically equivalent wording even if the sentence structure differs from the criteria.
2. Utterances by either the doctor or the patient count as evidence.
3. The same sentence may be quoted for several items.
4. When several utterances support an item, collect up to a few diverse ones and drop near-duplicates.
5. Never quote text that does not appear in the transcript. Use an empty array when nothing applies.

Return only JSON of the form:
{"evidenceList": [{"id": "...", "title": "...", "criteria": "...", "evidence": ["..."]}]}
""".strip()


class _EvidenceRow(BaseModel):
    id: str
    title: str
    criteria: str
    evidence: List[str]


class _EvidenceList(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    evidence_list: List[_EvidenceRow] = Field(alias="evidenceList")


class OpenAIEvidenceExtractor(EvidenceExtractor):
    def __init__(self, model: Optional[str] = None, fallback_model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_extraction_model
        self.fallback_model = fallback_model or settings.openai_extraction_fallback_model
        self.max_retries = settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay
        self.client, self._openai_error_cls = create_async_client("evidence extraction")

    async def extract(
        self,
        transcript_text: str,
        items: Sequence[EvidenceChecklistItem],
        section_id: str,
    ) -> List[EvidenceRecord]:
        if not items:
            return []

        user_message = json.dumps(
            {
                "transcript": transcript_text,
                "evidenceChecklist": [item.model_dump() for item in items],
                "sectionId": section_id,
            },
            ensure_ascii=False,
        )

        try:
            rows = await self._extract_structured(user_message, section_id)
        except Exception as exc:
            LOGGER.warning(
                "Structured evidence extraction with '%s' failed for section %s (%s); falling back to '%s'",
                self.model,
                section_id,
                exc,
                self.fallback_model,
            )
            rows = await self._extract_json_mode(user_message, section_id)

        return [
            EvidenceRecord(id=str(row.get("id", "")), evidence=row.get("evidence"))
            for row in rows
            if isinstance(row, dict)
        ]

    async def _extract_structured(self, user_message: str, section_id: str) -> List[Dict[str, Any]]:
        response = await retry_with_backoff(
            lambda: self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                text_format=_EvidenceList,
                max_output_tokens=4096,
            ),
            label=f"extract({section_id})",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        parsed = getattr(response, "output_parsed", None)
        if parsed is None:
            raise ValueError("structured output was empty")
        return [row.model_dump() for row in parsed.evidence_list]

    async def _extract_json_mode(self, user_message: str, section_id: str) -> List[Dict[str, Any]]:
        response = await retry_with_backoff(
            lambda: self.client.chat.completions.create(
                model=self.fallback_model,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT + "\nOutput JSON only, without markdown."},
                    {"role": "user", "content": user_message},
                ],
                temperature=0.2,
                max_tokens=3000,
            ),
            label=f"extract-fallback({section_id})",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
        )
        content = response.choices[0].message.content or "{}"
        rows = json.loads(content).get("evidenceList", [])
        return rows if isinstance(rows, list) else []


__all__ = ["OpenAIEvidenceExtractor"]
