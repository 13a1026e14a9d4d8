"""Tests for the Typer command line interface."""

from __future__ import annotations

import json
import os

import pytest
from typer.testing import CliRunner

from cpxscore import cli, config
from cpxscore.data.storage import SessionStore

runner = CliRunner()

TRANSCRIPT = "\n".join(
    [
        "Good morning, a quick introduction: I am the attending doctor.",
        "Can you describe the chief complaint?",
        "When was the onset?",
        "I will check your vital signs now.",
        "Any questions before you go?",
    ]
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("CPXSCORE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CPXSCORE_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("CPXSCORE_DATABASE_PATH", str(tmp_path / "cpxscore.db"))
    monkeypatch.setattr(config, "_ENV_PATH", tmp_path / ".env")
    monkeypatch.setattr(config, "_settings", None)
    yield


def _write_blob(key: str, text: str) -> None:
    path = config.get_settings().blob_dir / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_cases_lists_bundled_checklists():
    result = runner.invoke(cli.app, ["cases"])

    assert result.exit_code == 0
    assert "base" in result.output.splitlines()


def test_score_live_prints_report_and_writes_output(tmp_path):
    _write_blob("VP_script/s1.txt", TRANSCRIPT)
    output = tmp_path / "report.json"

    result = runner.invoke(
        cli.app,
        ["score-live", "VP_script/s1.txt", "--case", "base", "--no-save", "--output", str(output)],
    )

    assert result.exit_code == 0, result.output
    assert "history: 2/8" in result.output
    assert "Timing:" in result.output
    assert "Feedback:" in result.output
    assert "  History taking: 8 checklist item(s) reviewed against 5 transcript line(s)." in result.output
    report = json.loads(output.read_text(encoding="utf-8"))
    assert list(report["grades_by_section"]) == ["history", "physical_exam", "education", "ppi"]
    assert report["total_points"] == 5
    assert report["timing_by_section"]["ppi"]["duration_sec"] == 720
    assert report["feedback"]["overall_summary"].startswith("Offline feedback for base")


def test_score_upload_saves_report_and_session():
    _write_blob("SP_audio/2025/abc.mp3", TRANSCRIPT)

    result = runner.invoke(
        cli.app,
        ["score-upload", "SP_audio/2025/abc.mp3", "--case", "base", "--classification-backend", "none"],
    )

    assert result.exit_code == 0, result.output
    assert "Timing:" not in result.output
    assert "Session: session-" in result.output
    assert "Report saved at SP_structuredScore/" in result.output
    assert (config.get_settings().blob_dir / "SP_script" / "2025" / "abc.txt").exists()

    session_line = next(line for line in result.output.splitlines() if line.startswith("Session: "))
    store = SessionStore(config.get_settings().database_path)
    artifacts = store.fetch_artifacts(session_line.split(": ", 1)[1])
    assert sorted(artifact.type for artifact in artifacts) == ["score", "transcript"]


def test_score_failure_exits_with_retry_message():
    result = runner.invoke(cli.app, ["score-live", "VP_script/missing.txt", "--case", "base", "--no-save"])

    assert result.exit_code == 1
    assert "Scoring failed, please retry" in result.output


def test_unknown_backend_is_a_usage_error():
    result = runner.invoke(
        cli.app,
        ["score-live", "VP_script/s1.txt", "--case", "base", "--extraction-backend", "magic"],
    )

    assert result.exit_code == 2


def test_env_commands_round_trip():
    set_result = runner.invoke(cli.app, ["env-set", "default_origin", "VP"])
    assert set_result.exit_code == 0
    assert config.get_settings().default_origin == "VP"

    list_result = runner.invoke(cli.app, ["env-list"])
    assert "CPXSCORE_DEFAULT_ORIGIN=VP" in list_result.output

    unset_result = runner.invoke(cli.app, ["env-unset", "default_origin"])
    assert unset_result.exit_code == 0
    assert config.get_settings().default_origin == "SP"
    os.environ.pop("CPXSCORE_DEFAULT_ORIGIN", None)


def test_feedback_backend_none_leaves_feedback_out(tmp_path):
    _write_blob("VP_script/s1.txt", TRANSCRIPT)
    output = tmp_path / "report.json"

    result = runner.invoke(
        cli.app,
        [
            "score-live",
            "VP_script/s1.txt",
            "--case",
            "base",
            "--no-save",
            "--feedback-backend",
            "none",
            "--output",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Feedback:" not in result.output
    assert "history: 2/8" in result.output
    assert json.loads(output.read_text(encoding="utf-8"))["feedback"] is None


def test_console_script_targets_typer_app():
    assert not hasattr(cli, "main")
    assert callable(cli.app)
