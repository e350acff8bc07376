"""End-to-end behaviour of the assessment pipeline with faked collaborators."""

from __future__ import annotations

import asyncio
import io
import json
from uuid import uuid4

import pytest

from skillcheck.pipelines.assessment import (
    AcousticMetrics,
    CorrectnessGrader,
    CorrectnessVerdict,
    Decision,
    LocalizedText,
    MediaDownloadError,
    OriginalityClassifier,
    PipelineOrchestrator,
    Submission,
    load_media,
)
from skillcheck.pipelines.assessment.orchestrator import (
    FLAG_CORRECTNESS_UNAVAILABLE,
    FLAG_NO_MEDIA,
    FLAG_ORIGINALITY_UNAVAILABLE,
    FLAG_SHORT_RECORDING,
    FLAG_SILENT,
    FLAG_TRANSCRIPTION_RETRYABLE,
    FLAG_TRANSCRIPTION_TERMINAL,
)
from skillcheck.pipelines.assessment.persistence import AUTO_REVIEW_PREFIX
from skillcheck.services import storage
from skillcheck.services.assessment_repository import PersistenceError
from skillcheck.services.text_generation import GatewayError
from skillcheck.services.transcribe import MediaPayload, TranscriptionError, TranscriptionResult

MEDIA_REF = "s3://skillcheck-assessments/recordings/answer.webm"
TRANSCRIPT = "Um, so first I switch off the breaker and lock it, then I check with the tester."

NATURAL_METRICS = AcousticMetrics(
    avg_volume=0.2,
    volume_variance=0.2,
    silence_ratio=0.2,
    peak_count=30,
    zero_crossings=100,
    speech_rate_variance=0.1,
)


def _verdict_json(**fields) -> str:
    return json.dumps(fields)


ORIGINAL = _verdict_json(
    is_original=True,
    confidence=85,
    reasoning="Natural hesitations",
    speech_pattern="natural",
)
CORRECT = _verdict_json(
    is_correct=True,
    score=80,
    matched_points=["isolation", "testing"],
    missed_points=[],
    summary="Covers isolation and testing.",
)


class FakeGateway:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls = 0

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls += 1
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeTranscriber:
    def __init__(self, *, text: str = TRANSCRIPT, language: str = "en-IN", error=None) -> None:
        self._text = text
        self._language = language
        self._error = error
        self.calls: list[tuple[MediaPayload, str | None]] = []

    async def transcribe(self, media, language_hint=None):
        self.calls.append((media, language_hint))
        if self._error is not None:
            raise self._error
        return TranscriptionResult(text=self._text, language=self._language)


class FakeRepository:
    def __init__(self, error: BaseException | None = None) -> None:
        self._error = error
        self.saved: list[tuple] = []

    async def save_analysis(self, submission_id, values):
        self.saved.append((submission_id, values))
        if self._error is not None:
            raise self._error


class FakeRetention:
    def __init__(self) -> None:
        self.scheduled: list[str | None] = []

    def schedule(self, media_ref):
        self.scheduled.append(media_ref)
        return True


async def fake_loader(media_ref: str) -> MediaPayload:
    return MediaPayload(data=b"recorded-media", mime_type="video/webm")


class Harness:
    def __init__(
        self,
        *,
        originality=(ORIGINAL,),
        correctness=(CORRECT,),
        transcriber: FakeTranscriber | None = None,
        repository: FakeRepository | None = None,
        media_loader=fake_loader,
    ) -> None:
        self.originality = FakeGateway(*originality)
        self.correctness = FakeGateway(*correctness)
        self.transcriber = transcriber or FakeTranscriber()
        self.repository = repository or FakeRepository()
        self.retention = FakeRetention()
        self.orchestrator = PipelineOrchestrator(
            transcription=self.transcriber,
            media_loader=media_loader,
            classifier=OriginalityClassifier(gateway=self.originality),
            grader=CorrectnessGrader(gateway=self.correctness),
            repository=self.repository,
            retention=self.retention,
        )

    def run(self, submission: Submission):
        return asyncio.run(self.orchestrator.run(submission))


def _submission(**overrides) -> Submission:
    fields = {
        "submission_id": uuid4(),
        "skill": "Electrical safety",
        "question": LocalizedText({"en": "How do you make a circuit safe to work on?"}),
        "expected_answer": "Isolate the supply, lock it off, prove dead with a tester.",
        "media_ref": MEDIA_REF,
        "language_hint": None,
        "acoustic_metrics": NATURAL_METRICS,
    }
    fields.update(overrides)
    return Submission(**fields)


def test_natural_correct_answer_is_approved():
    harness = Harness()

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.APPROVED
    # 80 * 0.25 + 80 * 0.35 + 80 * 0.40
    assert analysis.confidence_score == 80
    assert analysis.flags == []
    assert analysis.transcribed_text == TRANSCRIPT
    assert analysis.transcription_language == "en-IN"
    assert analysis.tone_natural is True
    assert analysis.answer_check.score == 80


def test_language_hint_reaches_transcriber():
    harness = Harness()

    harness.run(_submission(language_hint="te"))

    media, hint = harness.transcriber.calls[0]
    assert hint == "te"
    assert media.data == b"recorded-media"


class StoredMediaS3:
    def __init__(self) -> None:
        self.keys: list[tuple[str, str]] = []

    def get_object(self, *, Bucket, Key):
        self.keys.append((Bucket, Key))
        return {"Body": io.BytesIO(b"stored-recording"), "ContentType": "video/webm"}


def test_stored_media_ref_is_transcribed(monkeypatch):
    s3 = StoredMediaS3()
    monkeypatch.setattr(storage, "_s3_client", s3)
    harness = Harness(media_loader=load_media)

    analysis = harness.run(_submission())

    assert s3.keys == [("skillcheck-assessments", "recordings/answer.webm")]
    media, _ = harness.transcriber.calls[0]
    assert media.data == b"stored-recording"
    assert analysis.auto_decision is Decision.APPROVED
    assert FLAG_TRANSCRIPTION_TERMINAL not in analysis.flags


def test_short_recording_is_flagged_without_changing_decision():
    harness = Harness()

    analysis = harness.run(_submission(recorded_duration_ms=1200))

    assert FLAG_SHORT_RECORDING in analysis.flags
    assert analysis.auto_decision is Decision.APPROVED
    assert analysis.confidence_score == 80


def test_long_recording_is_not_flagged():
    harness = Harness()

    analysis = harness.run(_submission(recorded_duration_ms=45_000))

    assert FLAG_SHORT_RECORDING not in analysis.flags


def test_silent_recording_is_rejected_without_model_calls():
    harness = Harness(transcriber=FakeTranscriber(text="  "))

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.REJECTED
    assert FLAG_SILENT in analysis.flags
    assert harness.originality.calls == 0
    assert harness.correctness.calls == 0
    assert analysis.originality_check is None
    assert analysis.answer_check is None


def test_retryable_transcription_failure_is_pending():
    harness = Harness(
        transcriber=FakeTranscriber(error=TranscriptionError("reset", retryable=True))
    )

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.PENDING
    assert FLAG_TRANSCRIPTION_RETRYABLE in analysis.flags
    assert analysis.auto_decision_reason.startswith("Transcription failed due to network error.")


def test_retryable_download_failure_is_pending():
    async def failing_loader(media_ref):
        raise MediaDownloadError("HTTP 503", retryable=True)

    harness = Harness(media_loader=failing_loader)

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.PENDING
    assert FLAG_TRANSCRIPTION_RETRYABLE in analysis.flags
    assert harness.transcriber.calls == []


def test_terminal_transcription_failure_is_rejected():
    harness = Harness(transcriber=FakeTranscriber(error=TranscriptionError("corrupt")))

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.REJECTED
    assert FLAG_TRANSCRIPTION_TERMINAL in analysis.flags
    assert FLAG_SILENT not in analysis.flags


def test_unexpected_transcriber_error_is_classified():
    harness = Harness(transcriber=FakeTranscriber(error=ConnectionResetError()))

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.PENDING
    assert FLAG_TRANSCRIPTION_RETRYABLE in analysis.flags


def test_missing_media_is_pending_and_skips_transcription():
    harness = Harness()

    analysis = harness.run(_submission(media_ref=None))

    assert analysis.auto_decision is Decision.PENDING
    assert FLAG_NO_MEDIA in analysis.flags
    assert harness.transcriber.calls == []
    assert harness.retention.scheduled == []


def test_confident_non_original_is_rejected_without_grading():
    scripted = _verdict_json(
        is_original=False,
        confidence=85,
        reasoning="Textbook phrasing with no hesitations",
        speech_pattern="scripted",
    )
    harness = Harness(originality=(scripted,), correctness=())

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.REJECTED
    assert harness.correctness.calls == 0
    assert analysis.answer_check == CorrectnessVerdict.not_evaluated()
    assert analysis.is_reading is True
    assert analysis.tone_natural is False
    assert "NLP: Speech consistent with reading from a script/screen" in analysis.flags
    assert (
        "NLP: Speech appears scripted - Textbook phrasing with no hesitations" in analysis.flags
    )


def test_ai_generated_pattern_sets_voice_flag():
    synthetic = _verdict_json(
        is_original=False,
        confidence=95,
        reasoning="Reads like a chatbot answer",
        speech_pattern="ai_generated",
    )
    harness = Harness(originality=(synthetic,), correctness=())

    analysis = harness.run(_submission())

    assert analysis.is_ai_voice is True
    assert "NLP: Response likely generated by an AI tool" in analysis.flags
    assert analysis.auto_decision_reason.startswith("Rejected: AI-generated voice detected.")


@pytest.mark.parametrize(
    ("score", "is_correct", "decision"),
    [
        (50, True, Decision.APPROVED),
        (45, True, Decision.PENDING),
        (30, True, Decision.PENDING),
        (90, False, Decision.REJECTED),
    ],
)
def test_correctness_drives_final_decision(score, is_correct, decision):
    verdict = _verdict_json(is_correct=is_correct, score=score, summary="Graded")
    harness = Harness(correctness=(verdict,))

    analysis = harness.run(_submission())

    assert analysis.auto_decision is decision


def test_malformed_model_output_uses_defaults():
    harness = Harness(originality=("no idea",), correctness=("also no idea",))

    analysis = harness.run(_submission())

    assert analysis.originality_check.confidence == 50
    assert analysis.answer_check == CorrectnessVerdict.fallback()
    assert analysis.auto_decision is Decision.REJECTED
    assert analysis.auto_decision_reason.startswith("Incorrect answer (score: 0/100).")


def test_gateway_failure_leaves_decision_pending():
    harness = Harness(
        originality=(GatewayError("all backends down"),),
        correctness=(GatewayError("all backends down"),),
    )

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.PENDING
    assert FLAG_ORIGINALITY_UNAVAILABLE in analysis.flags
    assert FLAG_CORRECTNESS_UNAVAILABLE in analysis.flags
    assert analysis.originality_check is None
    assert analysis.answer_check is None


def test_missing_expected_answer_skips_grading():
    harness = Harness(correctness=())

    analysis = harness.run(_submission(expected_answer=None))

    assert harness.correctness.calls == 0
    assert analysis.auto_decision is Decision.PENDING


def test_analysis_is_persisted_once_with_auto_review_fields():
    harness = Harness()
    submission = _submission()

    analysis = harness.run(submission)

    assert len(harness.repository.saved) == 1
    submission_id, values = harness.repository.saved[0]
    assert submission_id == submission.submission_id
    assert values["status"] == "approved"
    assert values["reviewed_by"] is None
    assert values["review_notes"] == f"{AUTO_REVIEW_PREFIX}{analysis.auto_decision_reason}"
    assert values["analysis"] == analysis.to_payload()
    assert values["reviewed_at"] == values["updated_at"]


def test_media_deletion_is_scheduled_after_persisting():
    harness = Harness()

    harness.run(_submission())

    assert harness.retention.scheduled == [MEDIA_REF]


def test_persistence_failure_still_returns_analysis():
    harness = Harness(repository=FakeRepository(PersistenceError("database unavailable")))

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.APPROVED
    assert len(harness.repository.saved) == 1
    assert harness.retention.scheduled == []


def test_classifier_crash_is_contained_to_its_stage():
    class ExplodingClassifier:
        async def classify(self, **kwargs):
            raise AssertionError("boom")

    harness = Harness()
    harness.orchestrator._classifier = ExplodingClassifier()

    analysis = harness.run(_submission())

    assert FLAG_ORIGINALITY_UNAVAILABLE in analysis.flags
    assert harness.correctness.calls == 1
    assert analysis.auto_decision is Decision.APPROVED


def test_pipeline_error_falls_back_to_pending():
    class BrokenClassifier:
        async def classify(self, **kwargs):
            return None

    harness = Harness()
    harness.orchestrator._classifier = BrokenClassifier()

    analysis = harness.run(_submission())

    assert analysis.auto_decision is Decision.PENDING
    assert analysis.flags == ["Analysis pipeline error - AttributeError"]
    assert analysis.confidence_score == 50
    assert len(harness.repository.saved) == 1
    assert harness.retention.scheduled == [MEDIA_REF]


def test_same_inputs_give_same_outcome():
    submission = _submission()

    first = Harness().run(submission)
    second = Harness().run(submission)

    assert first.auto_decision == second.auto_decision
    assert first.confidence_score == second.confidence_score
    assert first.flags == second.flags
    assert first.details == second.details


@pytest.mark.parametrize(
    "transcriber",
    [
        FakeTranscriber(),
        FakeTranscriber(text=""),
        FakeTranscriber(error=TranscriptionError("reset", retryable=True)),
        FakeTranscriber(error=TranscriptionError("corrupt")),
    ],
)
def test_every_outcome_is_well_formed(transcriber):
    harness = Harness(transcriber=transcriber)

    analysis = harness.run(_submission(acoustic_metrics=None))

    assert 0 <= analysis.confidence_score <= 100
    assert analysis.auto_decision in set(Decision)
    assert analysis.auto_decision_reason
    assert "No audio metrics available" in analysis.flags
