"""Pydantic schemas used as views in the MVC architecture."""

from .assessments import (
    AnalyzeAssessmentRequest,
    AnalyzeAssessmentResponse,
    TranscribeAudioRequest,
    TranscribeAudioResponse,
)
from .common import ErrorResponse, HealthResponse

__all__ = [
    "AnalyzeAssessmentRequest",
    "AnalyzeAssessmentResponse",
    "TranscribeAudioRequest",
    "TranscribeAudioResponse",
    "ErrorResponse",
    "HealthResponse",
]
