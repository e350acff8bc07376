"""Skill assessment endpoints.

POST `/ai/analyze-assessment` runs the full verification pipeline
(`skillcheck.pipelines.assessment.PipelineOrchestrator`) for one recorded
answer and returns the analysis with its auto-decision. The pipeline never
raises: infrastructure failures surface as a `pending` decision with flags.

POST `/ai/transcribe-audio` is a thin transcription-only helper used by the
capture UI to preview what the worker said.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from skillcheck.controllers.dependencies import OrchestratorDep, TranscriberDep
from skillcheck.pipelines.assessment import MediaDownloadError, decode_base64_media, load_media
from skillcheck.services.transcribe import TranscriptionError
from skillcheck.views.assessments import (
    AnalyzeAssessmentRequest,
    AnalyzeAssessmentResponse,
    TranscribeAudioRequest,
    TranscribeAudioResponse,
    language_hint_from_locale,
)

router = APIRouter(prefix="/ai", tags=["assessments"])

logger = logging.getLogger(__name__)


@router.post("/analyze-assessment", response_model=AnalyzeAssessmentResponse)
async def analyze_assessment(
    payload: AnalyzeAssessmentRequest,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Analyse a recorded answer and persist the automated decision."""

    analysis = await orchestrator.run(payload.to_submission())
    return {"success": True, "analysis": analysis.to_payload()}


@router.post("/transcribe-audio", response_model=TranscribeAudioResponse)
async def transcribe_audio(
    payload: TranscribeAudioRequest,
    transcriber: TranscriberDep,
) -> TranscribeAudioResponse:
    """Transcribe a recording given as a URL or an inline base64 body."""

    if not payload.video_url and not payload.video_base64:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="videoUrl or videoBase64 is required",
        )

    try:
        if payload.video_base64:
            media = decode_base64_media(payload.video_base64, payload.mime_type)
        else:
            media = await load_media(payload.video_url)
        result = await transcriber.transcribe(
            media,
            language_hint_from_locale(payload.language),
        )
    except MediaDownloadError as exc:
        logger.warning("Could not load media for transcription: %s", exc)
        raise HTTPException(
            status_code=(
                status.HTTP_502_BAD_GATEWAY if exc.retryable else status.HTTP_400_BAD_REQUEST
            ),
            detail=str(exc),
        ) from exc
    except TranscriptionError as exc:
        logger.exception("Transcription failed", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    return TranscribeAudioResponse(success=True, text=result.text, language=result.language)


__all__ = ["router"]
