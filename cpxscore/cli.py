"""Typer CLI entry point for cpxscore."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from .config import (
    EnvironmentSettingError,
    Settings,
    clear_environment_setting,
    get_settings,
    list_environment_settings,
    update_environment_setting,
)
from .core.checklists import ChecklistResolver, StaticChecklistRegistry
from .core.errors import PipelineError
from .core.pipeline.acquisition import TranscriptAcquirer
from .core.pipeline.background import BackgroundUploader, persist_score_report
from .core.pipeline.orchestrator import ScoreOutcome, ScoreRequest, ScoringOrchestrator
from .data.blobs import LocalBlobStore
from .data.models import ScoreReport
from .data.storage import SessionStore
from .logging import configure_logging, get_logger
from .services.factory import (
    ServiceConfigurationError,
    resolve_classification_backend,
    resolve_extraction_backend,
    resolve_feedback_backend,
    resolve_transcription_backend,
)

app = typer.Typer(help="CPX transcript scoring pipeline")
LOGGER = get_logger(__name__)


@dataclass
class _Runtime:
    orchestrator: ScoringOrchestrator
    uploader: BackgroundUploader
    blobs: LocalBlobStore
    store: SessionStore


def _build_runtime(
    settings: Settings,
    transcription_backend: Optional[str],
    extraction_backend: Optional[str],
    classification_backend: Optional[str],
    feedback_backend: Optional[str] = None,
) -> _Runtime:
    blobs = LocalBlobStore(settings.blob_dir)
    store = SessionStore(settings.database_path)
    store.initialize()
    try:
        transcription = resolve_transcription_backend(
            transcription_backend or settings.transcription_backend, blobs
        )
        extractor = resolve_extraction_backend(extraction_backend or settings.extraction_backend)
        classifier = resolve_classification_backend(
            classification_backend or settings.classification_backend
        )
        feedback = resolve_feedback_backend(feedback_backend or settings.feedback_backend)
    except (ServiceConfigurationError, RuntimeError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    uploader = BackgroundUploader(blobs, store, excerpt_chars=settings.text_excerpt_chars)
    orchestrator = ScoringOrchestrator(
        checklists=ChecklistResolver(store),
        acquirer=TranscriptAcquirer(blobs, transcription, uploader),
        extractor=extractor,
        classifier=classifier,
        feedback=feedback,
    )
    return _Runtime(orchestrator=orchestrator, uploader=uploader, blobs=blobs, store=store)


async def _score(runtime: _Runtime, request: ScoreRequest, save: bool) -> Tuple[ScoreOutcome, Optional[str]]:
    try:
        outcome = await runtime.orchestrator.run(request)
        # The transcript upload may mint the session the report belongs to.
        await runtime.uploader.drain()
        saved_key = None
        if save:
            saved_key = await persist_score_report(
                outcome.report, runtime.blobs, runtime.store, outcome.context
            )
        return outcome, saved_key
    finally:
        await runtime.uploader.drain()


def _echo_report(report: ScoreReport) -> None:
    for section, items in report.grades_by_section.items():
        earned = sum(item.point for item in items)
        typer.echo(f"{section}: {earned}/{len(items)}")
        for item in items:
            mark = "x" if item.point else " "
            typer.echo(f"  [{mark}] {item.id} {item.title}")
    typer.echo(f"Total: {report.total_points}/{report.max_points}")
    if report.timing_by_section:
        typer.echo("Timing:")
        for section, timing in report.timing_by_section.items():
            if timing.duration_sec is not None:
                typer.echo(f"  {section}: {timing.duration_sec}s")
    if report.feedback is not None:
        typer.echo("Feedback:")
        for label, text in (
            ("History taking", report.feedback.history_taking_feedback),
            ("Physical exam", report.feedback.physical_exam_feedback),
            ("Patient education", report.feedback.patient_education_feedback),
            ("PPI", report.feedback.ppi_feedback),
            ("Overall", report.feedback.overall_summary),
        ):
            if text:
                typer.echo(f"  {label}: {text}")


def _execute(
    request: ScoreRequest,
    transcription_backend: Optional[str],
    extraction_backend: Optional[str],
    classification_backend: Optional[str],
    feedback_backend: Optional[str],
    output: Optional[Path],
    save: bool,
) -> None:
    configure_logging()
    settings = get_settings()
    runtime = _build_runtime(
        settings, transcription_backend, extraction_backend, classification_backend, feedback_backend
    )
    try:
        outcome, saved_key = asyncio.run(_score(runtime, request, save))
    except PipelineError as exc:
        typer.echo(f"Scoring failed, please retry: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    _echo_report(outcome.report)
    if outcome.context.session_id:
        typer.echo(f"Session: {outcome.context.session_id}")
    if saved_key:
        typer.echo(f"Report saved at {saved_key}")
    if output is not None:
        output.write_text(outcome.report.model_dump_json(indent=2), encoding="utf-8")
        typer.echo(f"Report written to {output}")


@app.command()
def cases() -> None:
    """List the case names with a bundled static checklist."""

    configure_logging()
    for name in StaticChecklistRegistry().case_names():
        typer.echo(name)


@app.command("score-upload")
def score_upload(
    audio_keys: Optional[List[str]] = typer.Argument(None, help="Audio blob keys in recording order"),
    case: Optional[str] = typer.Option(None, "--case", help="Case name for the static checklist"),
    checklist_id: Optional[str] = typer.Option(None, help="Versioned checklist id"),
    scenario_id: Optional[str] = typer.Option(None, help="Published scenario id"),
    session_id: Optional[str] = typer.Option(None, help="Existing session id"),
    cached_transcript: Optional[str] = typer.Option(None, help="Previously stored transcript key"),
    origin: Optional[str] = typer.Option(None, help="Session origin label, e.g. SP"),
    transcription_backend: Optional[str] = typer.Option(None, help="Transcription backend: dummy/openai"),
    extraction_backend: Optional[str] = typer.Option(None, help="Extraction backend: dummy/openai"),
    classification_backend: Optional[str] = typer.Option(None, help="Timing backend: none/dummy/openai"),
    feedback_backend: Optional[str] = typer.Option(None, help="Feedback backend: none/dummy/openai"),
    output: Optional[Path] = typer.Option(None, help="Write the JSON report to this path"),
    save: bool = typer.Option(True, "--save/--no-save", help="Archive the report in storage"),
) -> None:
    """Score an uploaded recording made of one or more audio parts."""

    request = ScoreRequest(
        mode="upload",
        audio_keys=list(audio_keys or []),
        cached_transcript_key=cached_transcript,
        case_name=case,
        checklist_id=checklist_id,
        scenario_id=scenario_id,
        session_id=session_id,
        origin=origin,
    )
    _execute(
        request,
        transcription_backend,
        extraction_backend,
        classification_backend,
        feedback_backend,
        output,
        save,
    )


@app.command("score-live")
def score_live(
    transcript_key: str = typer.Argument(..., help="Transcript blob key of the live session"),
    timestamps_key: Optional[str] = typer.Option(None, help="Turn timestamps JSON key"),
    case: Optional[str] = typer.Option(None, "--case", help="Case name for the static checklist"),
    checklist_id: Optional[str] = typer.Option(None, help="Versioned checklist id"),
    scenario_id: Optional[str] = typer.Option(None, help="Published scenario id"),
    session_id: Optional[str] = typer.Option(None, help="Existing session id"),
    origin: Optional[str] = typer.Option("VP", help="Session origin label"),
    extraction_backend: Optional[str] = typer.Option(None, help="Extraction backend: dummy/openai"),
    classification_backend: Optional[str] = typer.Option(None, help="Timing backend: none/dummy/openai"),
    feedback_backend: Optional[str] = typer.Option(None, help="Feedback backend: none/dummy/openai"),
    output: Optional[Path] = typer.Option(None, help="Write the JSON report to this path"),
    save: bool = typer.Option(True, "--save/--no-save", help="Archive the report in storage"),
) -> None:
    """Score a live simulated-patient session from its stored transcript."""

    request = ScoreRequest(
        mode="live",
        transcript_key=transcript_key,
        timestamps_key=timestamps_key,
        case_name=case,
        checklist_id=checklist_id,
        scenario_id=scenario_id,
        session_id=session_id,
        origin=origin,
    )
    _execute(request, "none", extraction_backend, classification_backend, feedback_backend, output, save)


@app.command("env-list")
def env_list() -> None:
    """Show environment-backed settings and their current values."""

    for entry in list_environment_settings():
        typer.echo(f"{entry.env_name}={entry.value}")


@app.command("env-set")
def env_set(field: str, value: str) -> None:
    """Persist an environment override in the .env file."""

    try:
        update_environment_setting(field, value)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Updated {field}")


@app.command("env-unset")
def env_unset(field: str) -> None:
    """Remove an environment override."""

    try:
        clear_environment_setting(field)
    except EnvironmentSettingError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Cleared {field}")


if __name__ == "__main__":  # pragma: no cover
    app()
