"""Map classified transcript lines onto elapsed time per encounter phase."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..data.models import (
    PHASE_SECTIONS,
    AcquiredTranscript,
    PhaseSpan,
    SectionTiming,
    SectionTimingMap,
    TimeRange,
    TranscriptSegment,
    TurnTimestamp,
)
from ..logging import get_logger
from ..services.classification.base import SectionClassifier

LOGGER = get_logger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def section_turns(spans: Iterable[PhaseSpan], line_count: int) -> Dict[str, List[int]]:
    """Expand spans into sorted line indices per phase, clamped to the transcript."""

    last_index = line_count - 1
    turns: Dict[str, set] = {section: set() for section in PHASE_SECTIONS}
    for span in spans:
        start = max(0, min(span.start_index, last_index))
        end = max(0, min(span.end_index, last_index))
        turns[span.section].update(range(start, end + 1))
    return {section: sorted(indices) for section, indices in turns.items()}


def contiguous_runs(indices: Sequence[int]) -> List[Tuple[int, int]]:
    runs: List[Tuple[int, int]] = []
    for index in indices:
        if runs and index == runs[-1][1] + 1:
            runs[-1] = (runs[-1][0], index)
        else:
            runs.append((index, index))
    return runs


def _timed_sections(
    turns: Dict[str, List[int]],
    bounds,
) -> SectionTimingMap:
    timing: SectionTimingMap = {}
    for section, indices in turns.items():
        ranges = [TimeRange(start_sec=start, end_sec=end) for start, end in map(bounds, contiguous_runs(indices))]
        duration = sum(item.end_sec - item.start_sec for item in ranges)
        timing[section] = SectionTiming(duration_sec=_round_half_up(duration), ranges=ranges)
    return timing


def build_timing_map(
    spans: Iterable[PhaseSpan],
    line_count: int,
    segments: Optional[Sequence[TranscriptSegment]] = None,
    turn_timestamps: Optional[Sequence[TurnTimestamp]] = None,
    total_duration_sec: Optional[float] = None,
) -> SectionTimingMap:
    """Compute per-phase durations and time ranges.

    Turn timestamps take precedence over transcription segments; with neither,
    durations are apportioned from ``total_duration_sec`` by line count. The
    ``ppi`` entry always covers the whole session because it is assessed across
    the entire encounter.
    """

    if line_count <= 0:
        raise ValueError("transcript is empty")

    turns = section_turns(spans, line_count)
    last_index = line_count - 1
    total: Optional[float] = None

    if turn_timestamps:
        stamps = list(turn_timestamps)
        total = total_duration_sec or stamps[-1].elapsed_sec

        def elapsed(index: int) -> float:
            return stamps[min(index, len(stamps) - 1)].elapsed_sec

        def turn_bounds(run: Tuple[int, int]) -> Tuple[float, float]:
            start, end = run
            stop = elapsed(end + 1) if end + 1 <= last_index else total
            return elapsed(start), max(stop, elapsed(start))

        timing = _timed_sections(turns, turn_bounds)
    elif segments:
        ordered = list(segments)
        total = ordered[-1].end

        def segment_bounds(run: Tuple[int, int]) -> Tuple[float, float]:
            start, end = run
            return (
                ordered[min(start, len(ordered) - 1)].start,
                ordered[min(end, len(ordered) - 1)].end,
            )

        timing = _timed_sections(turns, segment_bounds)
    elif total_duration_sec and total_duration_sec > 0:
        total = total_duration_sec
        timing = {
            section: SectionTiming(duration_sec=_round_half_up(len(indices) / line_count * total))
            for section, indices in turns.items()
        }
    else:
        timing = {section: SectionTiming() for section in PHASE_SECTIONS}

    if total is None:
        timing["ppi"] = SectionTiming()
    else:
        timing["ppi"] = SectionTiming(
            duration_sec=_round_half_up(total),
            ranges=[TimeRange(start_sec=0.0, end_sec=total)],
        )
    return timing


@dataclass(frozen=True)
class ClassificationOutcome:
    """Result of the best-effort timing step; never raised, only inspected."""

    timing: Optional[SectionTimingMap] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.timing is not None


async def classify_timing(
    classifier: Optional[SectionClassifier],
    transcript: AcquiredTranscript,
    case_name: Optional[str] = None,
    default_duration_sec: Optional[float] = None,
) -> ClassificationOutcome:
    """Run phase classification, converting any failure into an empty outcome."""

    if classifier is None:
        return ClassificationOutcome()

    try:
        lines = transcript.lines
        spans = await classifier.classify_turns(lines, case_name)
        if transcript.turn_timestamps:
            timing = build_timing_map(
                spans,
                len(lines),
                turn_timestamps=transcript.turn_timestamps,
                total_duration_sec=transcript.session_duration_sec,
            )
        elif transcript.segments:
            timing = build_timing_map(spans, len(lines), segments=transcript.segments)
        else:
            timing = build_timing_map(
                spans,
                len(lines),
                total_duration_sec=transcript.session_duration_sec or default_duration_sec,
            )
    except Exception as exc:
        LOGGER.warning("Phase classification failed; scoring continues without timing: %s", exc)
        return ClassificationOutcome(error=exc)
    return ClassificationOutcome(timing=timing)


__all__ = [
    "ClassificationOutcome",
    "build_timing_map",
    "classify_timing",
    "contiguous_runs",
    "section_turns",
]
