"""Data models used by the scoring pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SECTION_IDS = ("history", "physical_exam", "education", "ppi")
PHASE_SECTIONS = ("history", "physical_exam", "education")

# Export names used by the bundled checklist modules and older snapshots.
_SECTION_ALIASES: Dict[str, tuple[str, ...]] = {
    "history": ("history", "HistoryEvidenceChecklist"),
    "physical_exam": ("physical_exam", "physicalExam", "PhysicalexamEvidenceChecklist"),
    "education": ("education", "EducationEvidenceChecklist"),
    "ppi": ("ppi", "PpiEvidenceChecklist"),
}


class EvidenceChecklistItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    criteria: str


class EvidenceChecklist(BaseModel):
    """Four-section rubric resolved once per pipeline run."""

    model_config = ConfigDict(frozen=True)

    sections: Dict[str, List[EvidenceChecklistItem]] = Field(default_factory=dict)

    @field_validator("sections")
    @classmethod
    def _canonical_sections(
        cls, value: Dict[str, List[EvidenceChecklistItem]]
    ) -> Dict[str, List[EvidenceChecklistItem]]:
        unknown = sorted(set(value) - set(SECTION_IDS))
        if unknown:
            raise ValueError(f"Unknown checklist sections: {', '.join(unknown)}")
        for section, items in value.items():
            seen = set()
            for item in items:
                if item.id in seen:
                    raise ValueError(f"Duplicate item id '{item.id}' in section '{section}'")
                seen.add(item.id)
        return {section: list(value.get(section, [])) for section in SECTION_IDS}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EvidenceChecklist":
        """Build a checklist from stored JSON, accepting the legacy export names."""

        source = payload.get("sections", payload)
        if not isinstance(source, Mapping):
            raise ValueError("Checklist payload must be a mapping of sections")
        sections: Dict[str, Any] = {}
        for section, aliases in _SECTION_ALIASES.items():
            for alias in aliases:
                if source.get(alias):
                    sections[section] = source[alias]
                    break
        return cls.model_validate({"sections": sections})

    def items(self, section: str) -> List[EvidenceChecklistItem]:
        return self.sections.get(section, [])

    @property
    def item_count(self) -> int:
        return sum(len(items) for items in self.sections.values())


class TranscriptSegment(BaseModel):
    id: int = Field(default=1, ge=1)
    start: float = Field(default=0.0, ge=0)
    end: float = Field(default=0.0, ge=0)
    text: str = ""

    @model_validator(mode="after")
    def _end_after_start(self) -> "TranscriptSegment":
        if self.end < self.start:
            raise ValueError(f"Segment {self.id} ends ({self.end}) before it starts ({self.start})")
        return self


class TranscriptResult(BaseModel):
    source_key: str
    text: str
    segments: List[TranscriptSegment] = Field(default_factory=list)
    raw_response: Optional[dict] = None


class TurnTimestamp(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    elapsed_sec: float = Field(alias="elapsedSec", ge=0)


class AcquiredTranscript(BaseModel):
    mode: Literal["upload", "live", "cached"]
    text: str
    segments: List[TranscriptSegment] = Field(default_factory=list)
    turn_timestamps: Optional[List[TurnTimestamp]] = None
    session_duration_sec: Optional[float] = None
    transcript_key: Optional[str] = None

    @property
    def lines(self) -> List[str]:
        return [line.strip() for line in self.text.split("\n") if line.strip()]


class EvidenceRecord(BaseModel):
    id: str
    evidence: List[str] = Field(default_factory=list)

    @field_validator("evidence", mode="before")
    @classmethod
    def _normalise_evidence(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(quote).strip() for quote in value if str(quote).strip()]


class GradeItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    criteria: str
    evidence: List[str] = Field(default_factory=list)
    point: Literal[0, 1]
    max_evidence_count: int = 1


class PhaseSpan(BaseModel):
    section: Literal["history", "physical_exam", "education"]
    start_index: int
    end_index: int


class TimeRange(BaseModel):
    start_sec: float
    end_sec: float


class SectionTiming(BaseModel):
    duration_sec: Optional[int] = None
    ranges: List[TimeRange] = Field(default_factory=list)


SectionTimingMap = Dict[str, SectionTiming]


class ArtifactRegistration(BaseModel):
    session_id: str
    record_id: str


@dataclass
class StoredArtifact:
    id: str
    session_id: str
    type: str
    key: str
    source: Optional[str] = None
    size_bytes: Optional[int] = None
    text_excerpt: Optional[str] = None
    text_length: Optional[int] = None
    total: Optional[int] = None


class NarrativeFeedback(BaseModel):
    """Per-section coaching prose written for the examinee."""

    history_taking_feedback: str = ""
    physical_exam_feedback: str = ""
    patient_education_feedback: str = ""
    ppi_feedback: str = ""
    overall_summary: str = ""


class ScoreReport(BaseModel):
    grades_by_section: Dict[str, List[GradeItem]]
    timing_by_section: Optional[Dict[str, SectionTiming]] = None
    feedback: Optional[NarrativeFeedback] = None
    total_points: int
    max_points: int


__all__ = [
    "PHASE_SECTIONS",
    "SECTION_IDS",
    "AcquiredTranscript",
    "ArtifactRegistration",
    "EvidenceChecklist",
    "EvidenceChecklistItem",
    "EvidenceRecord",
    "GradeItem",
    "NarrativeFeedback",
    "PhaseSpan",
    "ScoreReport",
    "SectionTiming",
    "SectionTimingMap",
    "StoredArtifact",
    "TimeRange",
    "TranscriptResult",
    "TranscriptSegment",
    "TurnTimestamp",
]
