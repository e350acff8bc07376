"""Sequencing of the assessment pipeline for one submission.

`PipelineOrchestrator.run` always produces exactly one `AnalysisResult` and
writes it once. Stage failures are downgraded to flags and neutral defaults
so the worst outcome of a run is a `pending` decision with an explanation.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional, Protocol
from uuid import UUID

from skillcheck.config.settings import settings
from skillcheck.services.assessment_repository import PersistenceError, get_assessment_repository
from skillcheck.services.retention import get_retention_manager
from skillcheck.services.text_generation import GatewayError
from skillcheck.services.transcribe import (
    MediaPayload,
    TranscriptionError,
    TranscriptionResult,
    get_transcription_client,
    is_retryable_error,
)
from skillcheck.telemetry import observe_decision, record_stage_failure

from .acoustics import score_acoustic_metrics
from .contracts import (
    AnalysisResult,
    CorrectnessVerdict,
    Decision,
    OriginalityVerdict,
    SpeechPattern,
)
from .correctness import CorrectnessGrader, should_grade
from .decision import combine_signals, composite_score, decide, summarise
from .ingestion import MediaDownloadError, load_media
from .originality import OriginalityClassifier, has_enough_speech, is_disqualified
from .persistence import build_review_update
from .types import DecisionOutcome, Submission

logger = logging.getLogger("skillcheck.pipelines.assessment")

MediaLoader = Callable[[str], Awaitable[MediaPayload]]

FLAG_NO_MEDIA = "No video URL provided - cannot transcribe"
FLAG_TRANSCRIPTION_RETRYABLE = (
    "Transcription failed due to network error - will retry or need manual review"
)
FLAG_TRANSCRIPTION_TERMINAL = "Transcription failed - could not extract speech"
FLAG_SILENT = "No speech detected in the recording - silent or inaudible"
FLAG_ORIGINALITY_UNAVAILABLE = "Originality check unavailable - text generation failed"
FLAG_CORRECTNESS_UNAVAILABLE = "Answer check unavailable - text generation failed"
FLAG_SHORT_RECORDING = "Recording shorter than expected - answer may be cut off"


class Transcriber(Protocol):
    async def transcribe(
        self,
        media: MediaPayload,
        language_hint: str | None = None,
    ) -> TranscriptionResult:
        ...


class AnalysisRepository(Protocol):
    async def save_analysis(self, submission_id: UUID, values: dict) -> None:
        ...


class RetentionScheduler(Protocol):
    def schedule(self, media_ref: str | None) -> bool:
        ...


class PipelineOrchestrator:
    """Run every stage for one submission and persist the outcome once."""

    def __init__(
        self,
        *,
        transcription: Transcriber | None = None,
        media_loader: MediaLoader = load_media,
        classifier: OriginalityClassifier | None = None,
        grader: CorrectnessGrader | None = None,
        repository: AnalysisRepository | None = None,
        retention: RetentionScheduler | None = None,
    ) -> None:
        self._transcription = transcription or get_transcription_client()
        self._media_loader = media_loader
        self._classifier = classifier or OriginalityClassifier()
        self._grader = grader or CorrectnessGrader()
        self._repository = repository or get_assessment_repository()
        self._retention = retention or get_retention_manager()

    async def run(self, submission: Submission) -> AnalysisResult:
        started = time.perf_counter()
        logger.info(
            "Pipeline start assessment=%s skill=%s lang=%s",
            submission.submission_id,
            submission.skill,
            submission.language_hint or "auto",
        )

        try:
            analysis = await self._analyse(submission)
        except Exception as exc:
            logger.exception("Pipeline error for assessment %s", submission.submission_id)
            record_stage_failure("pipeline", "unexpected")
            analysis = self._fallback_result(submission, exc)

        if await self._persist(submission, analysis):
            self._schedule_retention(submission.media_ref)

        elapsed = time.perf_counter() - started
        observe_decision(analysis.auto_decision.value, elapsed)
        logger.info(
            "Pipeline complete assessment=%s score=%s decision=%s in %.2fs",
            submission.submission_id,
            analysis.confidence_score,
            analysis.auto_decision.value,
            elapsed,
        )
        return analysis

    async def _analyse(self, submission: Submission) -> AnalysisResult:
        flags: list[str] = []

        acoustic = score_acoustic_metrics(submission.acoustic_metrics)
        flags.extend(acoustic.flags)
        if self._is_short_recording(submission):
            flags.append(FLAG_SHORT_RECORDING)
        logger.info("Step 1 audio score=%s flags=%s", acoustic.score, len(acoustic.flags))

        transcript, language, retryable_failure = await self._transcribe(submission, flags)
        originality = await self._check_originality(submission, transcript, language, flags)
        correctness = await self._check_correctness(
            submission, transcript, language, originality, flags
        )

        outcome = decide(
            media_present=bool(submission.media_ref),
            transcript=transcript,
            transcription_failed_retryable=retryable_failure,
            originality=originality,
            correctness=correctness,
            audio_score=acoustic.score,
        )
        logger.info("Step 5 decision=%s reason=%s", outcome.decision.value, outcome.reason[:100])

        is_reading, is_ai_voice, tone_natural = combine_signals(acoustic, originality)
        return AnalysisResult(
            confidence_score=outcome.composite,
            is_reading=is_reading,
            is_ai_voice=is_ai_voice,
            tone_natural=tone_natural,
            flags=flags,
            details=summarise(
                transcript=transcript,
                language=language,
                originality=originality,
                correctness=correctness,
                outcome=outcome,
            ),
            audio_metrics=submission.acoustic_metrics,
            transcribed_text=transcript or None,
            transcription_language=language or None,
            originality_check=originality,
            answer_check=correctness,
            auto_decision=outcome.decision,
            auto_decision_reason=outcome.reason,
        )

    async def _transcribe(
        self,
        submission: Submission,
        flags: list[str],
    ) -> tuple[str, Optional[str], bool]:
        """Return (transcript, language, failed_retryable)."""

        if not submission.media_ref:
            flags.append(FLAG_NO_MEDIA)
            return "", None, False

        try:
            media = await self._media_loader(submission.media_ref)
            result = await self._transcription.transcribe(media, submission.language_hint)
        except (TranscriptionError, MediaDownloadError) as exc:
            return "", None, self._transcription_failed(exc, exc.retryable, flags)
        except Exception as exc:
            return "", None, self._transcription_failed(exc, is_retryable_error(exc), flags)

        transcript = result.text or ""
        logger.info(
            "Step 2 transcribed (%s): %r",
            result.language,
            transcript[:150],
        )
        if not transcript.strip():
            flags.append(FLAG_SILENT)
        return transcript, result.language, False

    @staticmethod
    def _is_short_recording(submission: Submission) -> bool:
        duration_ms = submission.recorded_duration_ms
        if duration_ms is None:
            return False
        if duration_ms < settings.pipeline.min_recording_ms:
            logger.info("Short recording %sms for assessment %s", duration_ms, submission.submission_id)
            return True
        return False

    @staticmethod
    def _transcription_failed(exc: BaseException, retryable: bool, flags: list[str]) -> bool:
        kind = "retryable" if retryable else "terminal"
        logger.warning("Step 2 transcription failed (%s): %r", kind, exc)
        record_stage_failure("transcription", kind)
        flags.append(FLAG_TRANSCRIPTION_RETRYABLE if retryable else FLAG_TRANSCRIPTION_TERMINAL)
        return retryable

    async def _check_originality(
        self,
        submission: Submission,
        transcript: str,
        language: str | None,
        flags: list[str],
    ) -> OriginalityVerdict | None:
        if not has_enough_speech(transcript):
            return None

        try:
            verdict = await self._classifier.classify(
                skill=submission.skill,
                question=submission.question,
                transcript=transcript,
                language=language,
            )
        except Exception as exc:
            kind = "gateway" if isinstance(exc, GatewayError) else "error"
            logger.warning("Step 3 originality check failed (%s): %r", kind, exc)
            record_stage_failure("originality", kind)
            flags.append(FLAG_ORIGINALITY_UNAVAILABLE)
            return None

        if not verdict.is_original:
            flags.append(f"NLP: Speech appears {verdict.speech_pattern.value} - {verdict.reasoning}")
        if verdict.speech_pattern == SpeechPattern.AI_GENERATED:
            flags.append("NLP: Response likely generated by an AI tool")
        if verdict.speech_pattern == SpeechPattern.SCRIPTED:
            flags.append("NLP: Speech consistent with reading from a script/screen")
        return verdict

    async def _check_correctness(
        self,
        submission: Submission,
        transcript: str,
        language: str | None,
        originality: OriginalityVerdict | None,
        flags: list[str],
    ) -> CorrectnessVerdict | None:
        if is_disqualified(originality):
            logger.info("Step 4 skipped: answer flagged as not original")
            return CorrectnessVerdict.not_evaluated()
        if not should_grade(transcript, submission.expected_answer, originality):
            return None

        try:
            return await self._grader.grade(
                skill=submission.skill,
                question=submission.question,
                expected_answer=submission.expected_answer or "",
                transcript=transcript,
                language=language,
            )
        except Exception as exc:
            kind = "gateway" if isinstance(exc, GatewayError) else "error"
            logger.warning("Step 4 correctness check failed (%s): %r", kind, exc)
            record_stage_failure("correctness", kind)
            flags.append(FLAG_CORRECTNESS_UNAVAILABLE)
            return None

    def _fallback_result(self, submission: Submission, exc: BaseException) -> AnalysisResult:
        outcome = DecisionOutcome(
            decision=Decision.PENDING,
            reason="Automated analysis could not make a confident decision. Admin review needed.",
            composite=composite_score(score_acoustic_metrics(None).score, None, None),
        )
        return AnalysisResult(
            confidence_score=outcome.composite,
            is_reading=False,
            is_ai_voice=False,
            tone_natural=True,
            flags=[f"Analysis pipeline error - {type(exc).__name__}"],
            details=f"Auto-decision: {outcome.decision.value.upper()} - {outcome.reason}",
            audio_metrics=submission.acoustic_metrics,
            auto_decision=outcome.decision,
            auto_decision_reason=outcome.reason,
        )

    async def _persist(self, submission: Submission, analysis: AnalysisResult) -> bool:
        try:
            await self._repository.save_analysis(
                submission.submission_id,
                build_review_update(analysis),
            )
        except PersistenceError as exc:
            logger.error("Step 6 persistence failed for %s: %s", submission.submission_id, exc)
            return False
        except Exception:
            logger.exception("Step 6 unexpected persistence error for %s", submission.submission_id)
            record_stage_failure("persistence", "unexpected")
            return False
        return True

    def _schedule_retention(self, media_ref: str | None) -> None:
        if not media_ref:
            return
        try:
            self._retention.schedule(media_ref)
        except Exception:
            logger.exception("Could not schedule media deletion")


_DEFAULT_ORCHESTRATOR: PipelineOrchestrator | None = None


def get_pipeline_orchestrator() -> PipelineOrchestrator:
    """Return the orchestrator wired to the default services."""

    global _DEFAULT_ORCHESTRATOR
    if _DEFAULT_ORCHESTRATOR is None:
        _DEFAULT_ORCHESTRATOR = PipelineOrchestrator()
    return _DEFAULT_ORCHESTRATOR


__all__ = [
    "FLAG_NO_MEDIA",
    "FLAG_SILENT",
    "FLAG_SHORT_RECORDING",
    "FLAG_TRANSCRIPTION_RETRYABLE",
    "FLAG_TRANSCRIPTION_TERMINAL",
    "PipelineOrchestrator",
    "get_pipeline_orchestrator",
]
