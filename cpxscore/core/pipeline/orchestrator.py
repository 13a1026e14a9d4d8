"""Scoring orchestrator coordinating checklist, transcript, extraction, and timing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from ...config import get_settings
from ...data.models import (
    AcquiredTranscript,
    EvidenceChecklist,
    EvidenceChecklistItem,
    EvidenceRecord,
    ScoreReport,
)
from ...logging import get_logger
from ...services.classification.base import SectionClassifier
from ...services.extraction.base import EvidenceExtractor
from ...services.feedback.base import FeedbackService
from ..checklists import ChecklistResolver
from ..errors import PipelineError, PipelineInputError, PipelineTimeout, SectionExtractionError
from ..feedback import FeedbackOutcome, collect_feedback
from ..scoring import assemble_grades, build_report
from ..timing import ClassificationOutcome, classify_timing
from .acquisition import TranscriptAcquirer
from .background import SessionContext
from .tasks import gather_or_cancel

LOGGER = get_logger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    RESOLVING_INPUTS = "resolving_inputs"
    SCORING = "scoring"
    ASSEMBLING = "assembling"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class ScoreRequest:
    mode: str = "upload"
    audio_keys: List[str] = field(default_factory=list)
    transcript_key: Optional[str] = None
    timestamps_key: Optional[str] = None
    cached_transcript_key: Optional[str] = None
    case_name: Optional[str] = None
    checklist_id: Optional[str] = None
    scenario_id: Optional[str] = None
    session_id: Optional[str] = None
    origin: Optional[str] = None


@dataclass
class PipelineRun:
    states: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    error: Optional[PipelineError] = None
    classification: Optional[ClassificationOutcome] = None
    feedback: Optional[FeedbackOutcome] = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]


@dataclass
class ScoreOutcome:
    report: ScoreReport
    transcript: AcquiredTranscript
    checklist: EvidenceChecklist
    evidence_by_section: Dict[str, List[EvidenceRecord]]
    run: PipelineRun
    context: SessionContext


class ScoringOrchestrator:
    """Run one scoring pipeline per call; nothing is carried between runs."""

    def __init__(
        self,
        checklists: ChecklistResolver,
        acquirer: TranscriptAcquirer,
        extractor: EvidenceExtractor,
        classifier: Optional[SectionClassifier] = None,
        timeout_sec: Optional[float] = None,
        default_session_duration_sec: Optional[float] = None,
        state_callback: Optional[Callable[[PipelineState], None]] = None,
        feedback: Optional[FeedbackService] = None,
    ) -> None:
        settings = get_settings()
        self.checklists = checklists
        self.acquirer = acquirer
        self.extractor = extractor
        self.classifier = classifier
        self.feedback = feedback
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.pipeline_timeout_sec
        self.default_session_duration_sec = (
            default_session_duration_sec or settings.default_session_duration_sec
        )
        self.default_origin = settings.default_origin
        self.state_callback = state_callback

    def _transition(self, run: PipelineRun, state: PipelineState) -> None:
        run.states.append(state)
        LOGGER.debug("Pipeline state -> %s", state.value)
        if self.state_callback is not None:
            try:
                self.state_callback(state)
            except Exception:  # pragma: no cover - callbacks should not break pipeline
                LOGGER.exception("Pipeline state callback raised an exception")

    def _fail(self, run: PipelineRun, error: PipelineError) -> None:
        LOGGER.error("Scoring failed during %s: %s", run.state.value, error)
        run.error = error
        self._transition(run, PipelineState.ERRORED)

    @staticmethod
    def _validate(request: ScoreRequest) -> None:
        if request.mode == "upload":
            if not request.audio_keys and not request.cached_transcript_key:
                raise PipelineInputError("Upload mode requires audio keys or a cached transcript key")
        elif request.mode == "live":
            if not request.transcript_key:
                raise PipelineInputError("Live mode requires a transcript key")
        else:
            raise PipelineInputError(f"Unknown acquisition mode: {request.mode}")
        if not (request.scenario_id or request.checklist_id or request.case_name):
            raise PipelineInputError("A case name, checklist id, or scenario id is required")

    async def run(self, request: ScoreRequest) -> ScoreOutcome:
        run = PipelineRun()
        context = SessionContext(request.session_id, origin=request.origin or self.default_origin)
        timeout = self.timeout_sec if self.timeout_sec and self.timeout_sec > 0 else None
        try:
            return await asyncio.wait_for(self._run(request, run, context), timeout)
        except PipelineError as exc:
            self._fail(run, exc)
            raise
        except asyncio.TimeoutError as exc:
            error = PipelineTimeout(f"Scoring did not finish within {timeout:g}s")
            self._fail(run, error)
            raise error from exc
        except Exception as exc:
            error = PipelineError(f"Scoring failed: {exc}")
            self._fail(run, error)
            raise error from exc

    async def _run(self, request: ScoreRequest, run: PipelineRun, context: SessionContext) -> ScoreOutcome:
        self._transition(run, PipelineState.RESOLVING_INPUTS)
        self._validate(request)
        checklist, transcript = await gather_or_cancel(
            self.checklists.resolve(
                case_name=request.case_name,
                checklist_id=request.checklist_id,
                scenario_id=request.scenario_id,
            ),
            self._acquire(request, context),
        )

        self._transition(run, PipelineState.SCORING)
        evidence_by_section, classification, feedback = await gather_or_cancel(
            self._extract_all(transcript.text, checklist),
            classify_timing(
                self.classifier,
                transcript,
                request.case_name,
                self.default_session_duration_sec,
            ),
            collect_feedback(self.feedback, transcript.text, checklist, request.case_name),
        )
        run.classification = classification
        run.feedback = feedback

        self._transition(run, PipelineState.ASSEMBLING)
        grades = assemble_grades(checklist, evidence_by_section)
        report = build_report(grades, classification.timing, feedback.feedback)
        self._transition(run, PipelineState.DONE)
        LOGGER.info("Scored %d/%d checklist items", report.total_points, report.max_points)
        return ScoreOutcome(
            report=report,
            transcript=transcript,
            checklist=checklist,
            evidence_by_section=evidence_by_section,
            run=run,
            context=context,
        )

    async def _acquire(self, request: ScoreRequest, context: SessionContext) -> AcquiredTranscript:
        if request.mode == "live":
            return await self.acquirer.acquire_live(request.transcript_key or "", request.timestamps_key)
        return await self.acquirer.acquire_upload(
            request.audio_keys,
            cached_transcript_key=request.cached_transcript_key,
            context=context,
        )

    async def _extract_all(
        self, transcript_text: str, checklist: EvidenceChecklist
    ) -> Dict[str, List[EvidenceRecord]]:
        sections = list(checklist.sections)
        results = await gather_or_cancel(
            *(self._extract_section(transcript_text, section, checklist.items(section)) for section in sections)
        )
        return dict(zip(sections, results))

    async def _extract_section(
        self,
        transcript_text: str,
        section: str,
        items: Sequence[EvidenceChecklistItem],
    ) -> List[EvidenceRecord]:
        try:
            records = list(await self.extractor.extract(transcript_text, items, section))
        except Exception as exc:
            raise SectionExtractionError(
                section, f"Evidence extraction failed for section '{section}': {exc}"
            ) from exc
        for record in records:
            for quote in record.evidence:
                if quote not in transcript_text:
                    LOGGER.debug("Non-verbatim evidence for %s/%s: %r", section, record.id, quote)
        return records


__all__ = [
    "PipelineRun",
    "PipelineState",
    "ScoreOutcome",
    "ScoreRequest",
    "ScoringOrchestrator",
]
