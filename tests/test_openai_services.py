from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Dict, List

import pytest

from cpxscore import config
from cpxscore.data.blobs import BlobStore
from cpxscore.data.models import EvidenceChecklist, EvidenceChecklistItem, PhaseSpan
from cpxscore.services.classification.openai_classifier import OpenAISectionClassifier, _PhaseSpans
from cpxscore.services.extraction.openai_extractor import OpenAIEvidenceExtractor, _EvidenceList
from cpxscore.services.feedback.openai_feedback import OpenAIFeedbackService, _FeedbackPayload
from cpxscore.services.openai_support import create_async_client
from cpxscore.services.retry import retry_with_backoff
from cpxscore.services.transcription.openai_client import OpenAITranscriptionService, guess_audio_mime


class DummyResponseFormatError(Exception):
    """Fake error raised by the mocked OpenAI client for unsupported formats."""


class StatusError(Exception):
    def __init__(self, status_code: int, headers: Dict[str, str] | None = None) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code
        self.response = SimpleNamespace(status_code=status_code, headers=headers or {})


class StaticBlobStore(BlobStore):
    async def get(self, key: str) -> bytes:
        return b"fake audio content"

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        raise AssertionError("not expected")


def _make_transcription_service(create) -> OpenAITranscriptionService:
    service = object.__new__(OpenAITranscriptionService)
    service.blobs = StaticBlobStore()
    service.model = "test-model"
    service.max_retries = 0
    service.base_delay = 0.0
    service._openai_error_cls = DummyResponseFormatError
    service.client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    return service


def _items() -> List[EvidenceChecklistItem]:
    return [
        EvidenceChecklistItem(id="HX-01", title="onset", criteria="asked onset"),
        EvidenceChecklistItem(id="HX-02", title="duration", criteria="asked duration"),
    ]


def test_transcribe_falls_back_to_text():
    calls: List[str] = []

    async def create(model, file, response_format):
        calls.append(response_format)
        if response_format != "text":
            raise DummyResponseFormatError(f"response_format '{response_format}' unsupported")
        return "Mock transcript from text response"

    service = _make_transcription_service(create)

    result = asyncio.run(service.transcribe("SP_audio/2025/example.mp3"))

    assert calls == ["verbose_json", "json", "text"]
    assert result.source_key == "SP_audio/2025/example.mp3"
    assert result.text == "Mock transcript from text response"
    assert result.segments == []
    assert result.raw_response == {"text": "Mock transcript from text response"}


def test_transcribe_parses_verbose_segments():
    async def create(model, file, response_format):
        name, data, mime = file
        assert (name, mime) == ("example.m4a", "audio/m4a")
        return {
            "text": "ignored joined text",
            "segments": [
                {"start": 0.0, "end": 2.5, "text": " Hello there. "},
                {"start": 2.5, "end": 6.0, "text": "Where does it hurt?"},
            ],
        }

    service = _make_transcription_service(create)

    result = asyncio.run(service.transcribe("SP_audio/example.m4a"))

    assert result.text == "Hello there.\nWhere does it hurt?"
    assert [(segment.id, segment.start, segment.end) for segment in result.segments] == [
        (1, 0.0, 2.5),
        (2, 2.5, 6.0),
    ]


def test_transcribe_propagates_other_errors():
    async def create(model, file, response_format):
        raise DummyResponseFormatError("invalid api key")

    service = _make_transcription_service(create)

    with pytest.raises(DummyResponseFormatError):
        asyncio.run(service.transcribe("SP_audio/example.mp3"))


def test_guess_audio_mime():
    assert guess_audio_mime("a/b/c.MP3") == "audio/mpeg"
    assert guess_audio_mime("c.unknown") == "application/octet-stream"


def _make_extractor(parse, create=None) -> OpenAIEvidenceExtractor:
    extractor = object.__new__(OpenAIEvidenceExtractor)
    extractor.model = "primary"
    extractor.fallback_model = "fallback"
    extractor.max_retries = 0
    extractor.base_delay = 0.0
    extractor.client = SimpleNamespace(
        responses=SimpleNamespace(parse=parse),
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
    )
    return extractor


def test_extractor_uses_structured_output():
    captured: dict = {}

    async def parse(model, input, text_format, max_output_tokens):
        captured["payload"] = json.loads(input[1]["content"])
        parsed = _EvidenceList.model_validate(
            {
                "evidenceList": [
                    {"id": "HX-01", "title": "onset", "criteria": "asked onset", "evidence": ["since Monday"]},
                    {"id": "HX-02", "title": "duration", "criteria": "asked duration", "evidence": []},
                ]
            }
        )
        return SimpleNamespace(output_parsed=parsed)

    extractor = _make_extractor(parse)

    records = asyncio.run(extractor.extract("since Monday", _items(), "history"))

    assert captured["payload"]["sectionId"] == "history"
    assert [item["id"] for item in captured["payload"]["evidenceChecklist"]] == ["HX-01", "HX-02"]
    assert [(record.id, record.evidence) for record in records] == [
        ("HX-01", ["since Monday"]),
        ("HX-02", []),
    ]


def test_extractor_falls_back_to_json_mode():
    calls: List[str] = []

    async def parse(**kwargs):
        calls.append(kwargs["model"])
        raise RuntimeError("structured outputs unsupported")

    async def create(**kwargs):
        calls.append(kwargs["model"])
        assert kwargs["response_format"] == {"type": "json_object"}
        content = json.dumps({"evidenceList": [{"id": "HX-02", "evidence": "for two hours"}]})
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    extractor = _make_extractor(parse, create)

    records = asyncio.run(extractor.extract("for two hours", _items(), "history"))

    assert calls == ["primary", "fallback"]
    assert [(record.id, record.evidence) for record in records] == [("HX-02", ["for two hours"])]


def test_extractor_skips_empty_sections():
    async def parse(**kwargs):
        raise AssertionError("no request expected")

    extractor = _make_extractor(parse)

    assert asyncio.run(extractor.extract("text", [], "education")) == []


def test_classifier_returns_parsed_spans():
    captured: dict = {}

    async def parse(model, input, text_format, max_output_tokens):
        captured["system"] = input[0]["content"]
        captured["user"] = input[1]["content"]
        return SimpleNamespace(
            output_parsed=_PhaseSpans(
                segments=[
                    PhaseSpan(section="history", start_index=0, end_index=0),
                    PhaseSpan(section="education", start_index=1, end_index=1),
                ]
            )
        )

    classifier = object.__new__(OpenAISectionClassifier)
    classifier.model = "test-model"
    classifier.max_retries = 0
    classifier.base_delay = 0.0
    classifier.client = SimpleNamespace(responses=SimpleNamespace(parse=parse))

    spans = asyncio.run(classifier.classify_turns(["Do you smoke?", "Let's plan to quit."], "금연상담"))

    assert [span.section for span in spans] == ["history", "education"]
    assert "H -> E" in captured["system"]
    assert "[1] Let's plan to quit." in captured["user"]


def test_retry_honours_retry_after_header():
    attempts: List[int] = []
    delays: List[float] = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise StatusError(429, {"retry-after": "0.5"})
        return "ok"

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    result = asyncio.run(retry_with_backoff(flaky, max_retries=3, sleep=fake_sleep))

    assert result == "ok"
    assert len(attempts) == 3
    assert delays == [0.5, 0.5]


def test_retry_uses_exponential_backoff_and_gives_up():
    delays: List[float] = []

    async def always_unavailable():
        raise StatusError(503)

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    with pytest.raises(StatusError):
        asyncio.run(retry_with_backoff(always_unavailable, max_retries=2, base_delay=2.0, sleep=fake_sleep))

    assert len(delays) == 2
    assert 2.0 <= delays[0] <= 3.0
    assert 4.0 <= delays[1] <= 5.0


def test_retry_does_not_retry_client_errors():
    attempts: List[int] = []

    async def bad_request():
        attempts.append(1)
        raise StatusError(400)

    with pytest.raises(StatusError):
        asyncio.run(retry_with_backoff(bad_request, sleep=lambda delay: asyncio.sleep(0)))

    assert attempts == [1]


def test_async_client_leaves_retries_to_backoff_helper(monkeypatch):
    monkeypatch.setattr(config, "_settings", config.Settings(openai_api_key="sk-test"))

    client, error_cls = create_async_client("evidence extraction")

    assert client.max_retries == 0
    assert issubclass(error_cls, Exception)


def test_feedback_service_sends_checklist_by_section():
    captured: dict = {}

    async def parse(model, input, text_format, max_output_tokens):
        captured["model"] = model
        captured["payload"] = json.loads(input[1]["content"])
        return SimpleNamespace(
            output_parsed=_FeedbackPayload(
                history_taking_feedback="Good onset questions.",
                physical_exam_feedback="Remember hand hygiene.",
                patient_education_feedback="Explain the next tests.",
                ppi_feedback="Warm introduction.",
                overall_summary="Solid encounter.",
            )
        )

    service = object.__new__(OpenAIFeedbackService)
    service.model = "feedback-model"
    service.max_retries = 0
    service.base_delay = 0.0
    service.client = SimpleNamespace(responses=SimpleNamespace(parse=parse))
    checklist = EvidenceChecklist(sections={"history": _items(), "ppi": []})

    feedback = asyncio.run(service.generate_feedback("When did it start?", checklist, "가슴통증"))

    assert captured["model"] == "feedback-model"
    assert captured["payload"]["chief_complaint"] == "가슴통증"
    assert [item["id"] for item in captured["payload"]["checklist"]["history_taking"]] == ["HX-01", "HX-02"]
    assert captured["payload"]["checklist"]["ppi"] == []
    assert feedback.physical_exam_feedback == "Remember hand hygiene."
    assert feedback.overall_summary == "Solid encounter."


def test_feedback_service_rejects_unparsed_output():
    async def parse(**kwargs):
        return SimpleNamespace(output_parsed=None)

    service = object.__new__(OpenAIFeedbackService)
    service.model = "feedback-model"
    service.max_retries = 0
    service.base_delay = 0.0
    service.client = SimpleNamespace(responses=SimpleNamespace(parse=parse))

    with pytest.raises(ValueError):
        asyncio.run(service.generate_feedback("text", EvidenceChecklist(sections={}), None))
