"""Request/response schemas for the assessment analysis endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from skillcheck.pipelines.assessment import AcousticMetrics, LocalizedText, Submission

DEFAULT_LOCALE = "en"


def language_hint_from_locale(locale: Optional[str]) -> Optional[str]:
    """The worker's UI locale is only a transcription hint when it is not English."""

    if not locale:
        return None
    cleaned = locale.strip()
    if not cleaned or cleaned.lower() == DEFAULT_LOCALE:
        return None
    return cleaned


class AnalyzeAssessmentRequest(BaseModel):
    """Payload posted by the capture flow once a recording is uploaded."""

    assessment_id: UUID = Field(..., alias="assessmentId")
    video_url: Optional[str] = Field(
        None,
        alias="videoUrl",
        description="Stored media URL (s3:// or https) or an inline data: URL",
    )
    skill: str = Field(..., min_length=1)
    expected_answer: Optional[str] = Field(None, alias="expectedAnswer")
    question: Union[Dict[str, Optional[str]], str, None] = Field(
        None,
        description="Question text keyed by locale, or a single string",
    )
    language: Optional[str] = Field(None, description="Worker UI locale (en/hi/te)")
    audio_metrics: Optional[AcousticMetrics] = Field(None, alias="audioMetrics")
    recorded_duration_ms: Optional[int] = Field(None, alias="recordedDurationMs", ge=0)

    model_config = ConfigDict(populate_by_name=True)

    def to_submission(self) -> Submission:
        return Submission(
            submission_id=self.assessment_id,
            skill=self.skill,
            question=LocalizedText.from_value(self.question, fallback=self.skill),
            expected_answer=self.expected_answer,
            media_ref=self.video_url or None,
            recorded_duration_ms=self.recorded_duration_ms,
            language_hint=language_hint_from_locale(self.language),
            acoustic_metrics=self.audio_metrics,
        )


class TranscribeAudioRequest(BaseModel):
    video_url: Optional[str] = Field(None, alias="videoUrl")
    video_base64: Optional[str] = Field(None, alias="videoBase64")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    language: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TranscribeAudioResponse(BaseModel):
    success: bool = True
    text: str
    language: Optional[str] = None


class AnalyzeAssessmentResponse(BaseModel):
    """Documented shape of the analysis response (snake_case analysis body)."""

    success: bool = True
    analysis: Dict[str, Any]


__all__ = [
    "AnalyzeAssessmentRequest",
    "AnalyzeAssessmentResponse",
    "TranscribeAudioRequest",
    "TranscribeAudioResponse",
    "language_hint_from_locale",
]
