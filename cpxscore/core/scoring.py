"""Pure score assembly from checklist items and extracted evidence."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from ..data.models import (
    EvidenceChecklist,
    EvidenceRecord,
    GradeItem,
    NarrativeFeedback,
    ScoreReport,
    SectionTimingMap,
)


def _index_records(records: Sequence[EvidenceRecord]) -> Dict[str, EvidenceRecord]:
    index: Dict[str, EvidenceRecord] = {}
    for record in records:
        index.setdefault(record.id, record)
    return index


def assemble_grades(
    checklist: EvidenceChecklist,
    evidence_by_section: Mapping[str, Sequence[EvidenceRecord]],
) -> Dict[str, List[GradeItem]]:
    """Emit one :class:`GradeItem` per checklist item, in checklist order.

    Items without a matching record score zero with empty evidence. Records for
    ids not on the checklist are ignored, and the first record wins when an id
    repeats.
    """

    graded: Dict[str, List[GradeItem]] = {}
    for section, items in checklist.sections.items():
        records = _index_records(evidence_by_section.get(section, ()))
        section_grades = []
        for item in items:
            record = records.get(item.id)
            evidence = list(record.evidence) if record is not None else []
            section_grades.append(
                GradeItem(
                    id=item.id,
                    title=item.title,
                    criteria=item.criteria,
                    evidence=evidence,
                    point=min(len(evidence), 1),
                    max_evidence_count=1,
                )
            )
        graded[section] = section_grades
    return graded


def build_report(
    grades_by_section: Mapping[str, Sequence[GradeItem]],
    timing_by_section: Optional[SectionTimingMap] = None,
    feedback: Optional[NarrativeFeedback] = None,
) -> ScoreReport:
    total = sum(item.point for items in grades_by_section.values() for item in items)
    maximum = sum(item.max_evidence_count for items in grades_by_section.values() for item in items)
    return ScoreReport(
        grades_by_section={section: list(items) for section, items in grades_by_section.items()},
        timing_by_section=dict(timing_by_section) if timing_by_section is not None else None,
        feedback=feedback,
        total_points=total,
        max_points=maximum,
    )


__all__ = ["assemble_grades", "build_report"]
