"""Pydantic models for pipeline wire payloads and model JSON responses.

Client payloads and model output arrive in either camelCase or snake_case;
every model here accepts both and serialises with the snake_case names stored
in `skill_assessments.analysis`.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ParseError(ValueError):
    """Raised when model output is not a JSON object."""


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


class SpeechPattern(str, Enum):
    NATURAL = "natural"
    SCRIPTED = "scripted"
    MEMORIZED = "memorized"
    AI_GENERATED = "ai_generated"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


def _clean_json_payload(payload: str) -> str:
    """Take the fenced block if there is one, then trim to the outer braces."""

    if not payload:
        return ""

    cleaned = payload.strip()
    fenced = _FENCED_BLOCK.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


def _load_json_object(payload: str) -> dict[str, Any]:
    cleaned = _clean_json_payload(payload)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Model output is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Model output is not a JSON object")
    return data


class AcousticMetrics(BaseModel):
    avg_volume: float = Field(default=0.0, alias="avgVolume")
    volume_variance: float = Field(default=0.0, alias="volumeVariance")
    silence_ratio: float = Field(default=0.0, alias="silenceRatio")
    peak_count: int = Field(default=0, alias="peakCount")
    zero_crossings: int = Field(default=0, alias="zeroCrossings")
    speech_rate_variance: float = Field(default=0.0, alias="speechRateVariance")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("peak_count", "zero_crossings", mode="before")
    @classmethod
    def _non_negative_count(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(round(float(value))))

    @field_validator("silence_ratio", mode="after")
    @classmethod
    def _clamp_ratio(cls, value: float) -> float:
        return _clamp(value, 0.0, 1.0)


class OriginalityVerdict(BaseModel):
    is_original: bool = Field(alias="isOriginal")
    confidence: float = 50.0
    reasoning: str = ""
    speech_pattern: SpeechPattern = Field(default=SpeechPattern.NATURAL, alias="speechPattern")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("speech_pattern", mode="before")
    @classmethod
    def _normalise_pattern(cls, value: Any) -> str:
        if isinstance(value, SpeechPattern):
            return value.value
        cleaned = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        if cleaned in {pattern.value for pattern in SpeechPattern}:
            return cleaned
        return SpeechPattern.NATURAL.value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _clamp_confidence(self) -> "OriginalityVerdict":
        self.confidence = _clamp(self.confidence, 0.0, 100.0)
        return self

    @classmethod
    def fallback(cls) -> "OriginalityVerdict":
        return cls(
            is_original=True,
            confidence=50,
            reasoning="Could not determine originality.",
            speech_pattern=SpeechPattern.NATURAL,
        )

    @classmethod
    def from_json(cls, payload: str) -> "OriginalityVerdict":
        return cls.model_validate(_load_json_object(payload))


class CorrectnessVerdict(BaseModel):
    is_correct: bool = Field(alias="isCorrect")
    score: float = 0.0
    matched_points: List[str] = Field(default_factory=list, alias="matchedPoints")
    missed_points: List[str] = Field(default_factory=list, alias="missedPoints")
    summary: str = ""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("matched_points", "missed_points", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [str(item) for item in value]

    @field_validator("summary", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _clamp_score(self) -> "CorrectnessVerdict":
        self.score = _clamp(self.score, 0.0, 100.0)
        return self

    @classmethod
    def fallback(cls) -> "CorrectnessVerdict":
        return cls(
            is_correct=False,
            score=0,
            matched_points=[],
            missed_points=["Could not evaluate answer"],
            summary="Automated answer check failed.",
        )

    @classmethod
    def not_evaluated(cls) -> "CorrectnessVerdict":
        """Synthetic verdict used when the answer was already disqualified."""

        return cls(
            is_correct=False,
            score=0,
            matched_points=[],
            missed_points=["Answer flagged as not original, correctness not evaluated"],
            summary=(
                "Answer flagged as non-original (likely read or AI-generated). "
                "Correctness not evaluated."
            ),
        )

    @classmethod
    def from_json(cls, payload: str) -> "CorrectnessVerdict":
        return cls.model_validate(_load_json_object(payload))


class AnalysisResult(BaseModel):
    confidence_score: int = Field(ge=0, le=100)
    is_reading: bool
    is_ai_voice: bool
    tone_natural: bool
    flags: List[str] = Field(default_factory=list)
    details: str = ""
    audio_metrics: Optional[AcousticMetrics] = None
    transcribed_text: Optional[str] = None
    transcription_language: Optional[str] = None
    originality_check: Optional[OriginalityVerdict] = None
    answer_check: Optional[CorrectnessVerdict] = None
    auto_decision: Decision
    auto_decision_reason: str

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with unset optional sections omitted."""

        return self.model_dump(mode="json", exclude_none=True)


__all__ = [
    "AcousticMetrics",
    "AnalysisResult",
    "CorrectnessVerdict",
    "Decision",
    "OriginalityVerdict",
    "ParseError",
    "SpeechPattern",
]
