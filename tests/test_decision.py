"""Decision table, composite score and signal fusion."""

from __future__ import annotations

import pytest

from skillcheck.pipelines.assessment import (
    AcousticAssessment,
    CorrectnessVerdict,
    Decision,
    OriginalityVerdict,
    SpeechPattern,
    combine_signals,
    composite_score,
    decide,
    summarise,
)
from skillcheck.pipelines.assessment.decision import round_half_up

TRANSCRIPT = "First I isolate the supply, then I test the circuit is dead."


def _original(confidence: float = 85) -> OriginalityVerdict:
    return OriginalityVerdict(
        is_original=True,
        confidence=confidence,
        reasoning="Natural hesitations",
        speech_pattern=SpeechPattern.NATURAL,
    )


def _not_original(confidence: float, pattern: SpeechPattern) -> OriginalityVerdict:
    return OriginalityVerdict(
        is_original=False,
        confidence=confidence,
        reasoning="Reads like a list",
        speech_pattern=pattern,
    )


def _correct(score: float, is_correct: bool = True) -> CorrectnessVerdict:
    return CorrectnessVerdict(
        is_correct=is_correct,
        score=score,
        matched_points=["isolation"],
        missed_points=[],
        summary="Covers the key steps.",
    )


def _decide(**overrides):
    arguments = {
        "media_present": True,
        "transcript": TRANSCRIPT,
        "transcription_failed_retryable": False,
        "originality": _original(),
        "correctness": _correct(70),
        "audio_score": 80,
    }
    arguments.update(overrides)
    return decide(**arguments)


def test_round_half_up_rounds_away_from_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(72.49) == 72


def test_composite_blends_weights():
    assert composite_score(80, _original(), _correct(70)) == 76


def test_composite_uses_neutral_components_when_missing():
    # 50 * 0.25 + 50 * 0.35 + 50 * 0.40
    assert composite_score(50, None, None) == 50


def test_composite_penalises_non_original():
    assert composite_score(0, _not_original(90, SpeechPattern.SCRIPTED), _correct(0)) == 9


def test_approves_correct_answer():
    outcome = _decide()

    assert outcome.decision is Decision.APPROVED
    assert outcome.composite == 76
    assert outcome.reason.startswith("Skill verified automatically. Answer score: 70/100.")


def test_retryable_transcription_failure_is_pending_first():
    outcome = _decide(
        transcript="",
        transcription_failed_retryable=True,
        originality=None,
        correctness=None,
    )

    assert outcome.decision is Decision.PENDING
    assert outcome.reason.startswith("Transcription failed due to network error.")


def test_silent_recording_is_rejected():
    outcome = _decide(transcript="   ", originality=None, correctness=None)

    assert outcome.decision is Decision.REJECTED
    assert "No speech detected" in outcome.reason


def test_missing_media_without_transcript_is_pending():
    outcome = _decide(media_present=False, transcript="", originality=None, correctness=None)

    assert outcome.decision is Decision.PENDING
    assert outcome.reason == (
        "Automated analysis could not make a confident decision. Admin review needed."
    )


@pytest.mark.parametrize(
    ("pattern", "label"),
    [
        (SpeechPattern.AI_GENERATED, "AI-generated voice"),
        (SpeechPattern.SCRIPTED, "reading from a script or screen"),
        (SpeechPattern.MEMORIZED, "memorized or copied content"),
        (SpeechPattern.NATURAL, "non-original content"),
    ],
)
def test_confident_non_original_is_rejected(pattern, label):
    outcome = _decide(
        originality=_not_original(70, pattern),
        correctness=CorrectnessVerdict.not_evaluated(),
    )

    assert outcome.decision is Decision.REJECTED
    assert outcome.reason == f"Rejected: {label} detected. Reads like a list"


def test_unsure_non_original_falls_through_to_correctness():
    outcome = _decide(originality=_not_original(69, SpeechPattern.SCRIPTED))

    assert outcome.decision is Decision.APPROVED


def test_incorrect_answer_is_rejected():
    outcome = _decide(correctness=_correct(30, is_correct=False))

    assert outcome.decision is Decision.REJECTED
    assert outcome.reason == "Incorrect answer (score: 30/100). Covers the key steps."


@pytest.mark.parametrize(
    ("score", "decision"),
    [
        (50, Decision.APPROVED),
        (49, Decision.PENDING),
        (40, Decision.PENDING),
        (39, Decision.PENDING),
    ],
)
def test_correctness_thresholds(score, decision):
    outcome = _decide(correctness=_correct(score))

    assert outcome.decision is decision


def test_borderline_reason_mentions_review():
    outcome = _decide(correctness=_correct(45))

    assert outcome.reason.startswith("Borderline score (45/100). Needs admin review.")


def test_low_but_correct_score_gets_generic_reason():
    outcome = _decide(correctness=_correct(39))

    assert outcome.reason == (
        "Automated analysis could not make a confident decision. Admin review needed."
    )


def test_missing_correctness_is_pending():
    outcome = _decide(correctness=None)

    assert outcome.decision is Decision.PENDING


def test_signals_combine_acoustic_and_originality():
    acoustic = AcousticAssessment(score=80, tone_natural=True)

    scripted = combine_signals(acoustic, _not_original(90, SpeechPattern.SCRIPTED))
    synthetic = combine_signals(acoustic, _not_original(90, SpeechPattern.AI_GENERATED))
    unknown = combine_signals(acoustic, None)

    assert scripted == (True, False, False)
    assert synthetic == (False, True, False)
    assert unknown == (False, False, True)


def test_acoustic_flags_carry_through_without_originality():
    acoustic = AcousticAssessment(score=10, is_reading=True, is_ai_voice=True, tone_natural=False)

    assert combine_signals(acoustic, _original()) == (True, True, False)


def test_summary_joins_available_sections():
    outcome = _decide()

    details = summarise(
        transcript=TRANSCRIPT,
        language="en-IN",
        originality=_original(),
        correctness=_correct(70),
        outcome=outcome,
    )

    sections = details.split(" | ")
    assert sections[0] == f'Transcription (en-IN): "{TRANSCRIPT}"'
    assert sections[1] == "Originality: natural (85%) - Natural hesitations"
    assert sections[2] == "Answer: 70/100 - Covers the key steps."
    assert sections[3].startswith("Auto-decision: APPROVED - ")


def test_summary_without_transcript_only_has_decision():
    outcome = _decide(media_present=False, transcript="", originality=None, correctness=None)

    details = summarise(
        transcript="",
        language=None,
        originality=None,
        correctness=None,
        outcome=outcome,
    )

    assert details.startswith("Auto-decision: PENDING - ")
    assert " | " not in details
