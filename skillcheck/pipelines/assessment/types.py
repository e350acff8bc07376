"""Typed containers shared across the assessment pipeline.

These dataclasses live in their own module so the stages (`acoustics`,
`originality`, `correctness`, `decision`, `orchestrator`) can import them
without creating circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple
from uuid import UUID

from skillcheck.services.transcribe import MediaPayload, TranscriptionResult

from .contracts import AcousticMetrics, Decision


@dataclass(frozen=True)
class LocalizedText:
    """Per-locale question text with `requested -> en -> first` lookup."""

    texts: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any, fallback: str = "") -> "LocalizedText":
        if isinstance(value, Mapping):
            texts = {
                str(locale): str(text).strip()
                for locale, text in value.items()
                if text is not None and str(text).strip()
            }
            if texts:
                return cls(texts)
        elif isinstance(value, str) and value.strip():
            return cls({"en": value.strip()})
        return cls({"en": fallback} if fallback else {})

    def resolve(self, locale: str | None = None) -> str:
        if locale and locale in self.texts:
            return self.texts[locale]
        if "en" in self.texts:
            return self.texts["en"]
        return next(iter(self.texts.values()), "")

    def render_all(self) -> str:
        return "\n".join(f"[{locale}] {text}" for locale, text in self.texts.items())


@dataclass(frozen=True)
class Submission:
    """One recorded answer handed to the pipeline. Immutable once created."""

    submission_id: UUID
    skill: str
    question: LocalizedText
    expected_answer: str | None = None
    media_ref: str | None = None
    recorded_duration_ms: int | None = None
    language_hint: str | None = None
    acoustic_metrics: AcousticMetrics | None = None


@dataclass(frozen=True)
class AcousticAssessment:
    score: int
    flags: Tuple[str, ...] = ()
    is_reading: bool = False
    is_ai_voice: bool = False
    tone_natural: bool = True


@dataclass(frozen=True)
class DecisionOutcome:
    decision: Decision
    reason: str
    composite: int


__all__ = [
    "AcousticAssessment",
    "DecisionOutcome",
    "LocalizedText",
    "MediaPayload",
    "Submission",
    "TranscriptionResult",
]
