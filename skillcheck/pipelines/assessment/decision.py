"""Decision stage (Stage 05): fuse the stage signals into one auto-decision.

Everything here is pure. The decision table is evaluated top to bottom and
the first matching case wins:

0. transcription failed for a retryable reason      -> pending
1. media present but transcript empty               -> rejected
2. not original with confidence >= 70               -> rejected
3. correctness evaluated and incorrect              -> rejected
4. correct with score >= 50                         -> approved
5. correct with 40 <= score < 50                    -> pending
6. anything else                                    -> pending
"""

from __future__ import annotations

import math

from .contracts import CorrectnessVerdict, Decision, OriginalityVerdict, SpeechPattern
from .originality import is_disqualified
from .types import AcousticAssessment, DecisionOutcome

APPROVAL_SCORE = 50
BORDERLINE_SCORE = 40

AUDIO_WEIGHT = 0.25
ORIGINALITY_WEIGHT = 0.35
CORRECTNESS_WEIGHT = 0.40

_PATTERN_LABELS = {
    SpeechPattern.AI_GENERATED: "AI-generated voice",
    SpeechPattern.SCRIPTED: "reading from a script or screen",
    SpeechPattern.MEMORIZED: "memorized or copied content",
}

_DETAIL_TRANSCRIPT_CHARS = 300


def _fmt(value: float) -> str:
    return f"{value:g}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def composite_score(
    audio_score: float,
    originality: OriginalityVerdict | None,
    correctness: CorrectnessVerdict | None,
) -> int:
    """Weighted blend of the three signals, clamped to [0, 100]."""

    if originality is None:
        originality_component = 50.0
    else:
        originality_component = 80.0 if originality.is_original else 25.0
    correctness_component = 50.0 if correctness is None else correctness.score

    raw = (
        audio_score * AUDIO_WEIGHT
        + originality_component * ORIGINALITY_WEIGHT
        + correctness_component * CORRECTNESS_WEIGHT
    )
    return max(0, min(100, round_half_up(raw)))


def decide(
    *,
    media_present: bool,
    transcript: str,
    transcription_failed_retryable: bool,
    originality: OriginalityVerdict | None,
    correctness: CorrectnessVerdict | None,
    audio_score: float,
) -> DecisionOutcome:
    composite = composite_score(audio_score, originality, correctness)

    if transcription_failed_retryable:
        return DecisionOutcome(
            Decision.PENDING,
            "Transcription failed due to network error. "
            "Assessment saved for retry when connection is restored.",
            composite,
        )

    if media_present and not (transcript or "").strip():
        return DecisionOutcome(
            Decision.REJECTED,
            "No speech detected in the recording. The video was silent or inaudible.",
            composite,
        )

    if is_disqualified(originality):
        label = _PATTERN_LABELS.get(originality.speech_pattern, "non-original content")
        return DecisionOutcome(
            Decision.REJECTED,
            f"Rejected: {label} detected. {originality.reasoning}".strip(),
            composite,
        )

    if correctness is not None:
        score = _fmt(correctness.score)
        if not correctness.is_correct:
            return DecisionOutcome(
                Decision.REJECTED,
                f"Incorrect answer (score: {score}/100). {correctness.summary}".strip(),
                composite,
            )
        if correctness.score >= APPROVAL_SCORE:
            return DecisionOutcome(
                Decision.APPROVED,
                f"Skill verified automatically. Answer score: {score}/100. {correctness.summary}".strip(),
                composite,
            )
        if correctness.score >= BORDERLINE_SCORE:
            return DecisionOutcome(
                Decision.PENDING,
                f"Borderline score ({score}/100). Needs admin review. {correctness.summary}".strip(),
                composite,
            )

    return DecisionOutcome(
        Decision.PENDING,
        "Automated analysis could not make a confident decision. Admin review needed.",
        composite,
    )


def combine_signals(
    acoustic: AcousticAssessment,
    originality: OriginalityVerdict | None,
) -> tuple[bool, bool, bool]:
    """Return (is_reading, is_ai_voice, tone_natural) across both signals."""

    pattern = originality.speech_pattern if originality is not None else None
    is_reading = acoustic.is_reading or pattern == SpeechPattern.SCRIPTED
    is_ai_voice = acoustic.is_ai_voice or pattern == SpeechPattern.AI_GENERATED
    tone_natural = acoustic.tone_natural and (pattern is None or pattern == SpeechPattern.NATURAL)
    return is_reading, is_ai_voice, tone_natural


def summarise(
    *,
    transcript: str,
    language: str | None,
    originality: OriginalityVerdict | None,
    correctness: CorrectnessVerdict | None,
    outcome: DecisionOutcome,
) -> str:
    """One-line human-readable summary stored as `details`."""

    parts: list[str] = []
    if transcript:
        parts.append(
            f'Transcription ({language or "unknown"}): "{transcript[:_DETAIL_TRANSCRIPT_CHARS]}"'
        )
    if originality is not None:
        parts.append(
            f"Originality: {originality.speech_pattern.value} "
            f"({_fmt(originality.confidence)}%) - {originality.reasoning}"
        )
    if correctness is not None:
        parts.append(f"Answer: {_fmt(correctness.score)}/100 - {correctness.summary}")
    parts.append(f"Auto-decision: {outcome.decision.value.upper()} - {outcome.reason}")
    return " | ".join(parts)


__all__ = [
    "combine_signals",
    "composite_score",
    "decide",
    "round_half_up",
    "summarise",
]
