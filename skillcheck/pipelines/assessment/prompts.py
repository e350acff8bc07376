"""Prompt construction for the originality and correctness stages.

Both prompts ask the model for a single JSON object; parsing happens in the
stage modules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .types import LocalizedText

logger = logging.getLogger("skillcheck.pipelines.assessment")

ORIGINALITY_SYSTEM_PROMPT = (
    "You are an expert linguist specializing in detecting scripted vs spontaneous "
    "speech across English, Hindi, and Telugu. Analyze transcribed audio carefully. "
    "Return ONLY JSON."
)

CORRECTNESS_SYSTEM_PROMPT = (
    "You are a practical skill assessor for workers in India. You understand English, "
    "Hindi, and Telugu. Judge answers on demonstration of real knowledge across any "
    "language. Return ONLY JSON."
)

_ORIGINALITY_TEMPLATE = """Analyze this transcribed speech from a skill assessment VIDEO RECORDING.

Skill being tested: "{skill}"
Question asked (may be in multiple languages):
{question_context}

Worker's transcribed verbal answer (detected language: {language}):
"{transcript}"

The worker may answer in English, Hindi, Telugu, or a mix of languages. This is NORMAL for Indian workers.

Determine whether:
1. READING: Speech was read from a written source: formal language, no natural markers (um, uh, self-corrections), textbook-like, perfect grammar
2. MEMORIZED/COPIED: Rehearsed textbook phrases, too perfect structure, copied from internet
3. AI-GENERATED: Produced by a voice or text generation tool: perfectly fluent, no filler words, unnatural precision, robotic cadence
4. NATURAL & SPONTANEOUS: Informal, self-corrections, thinking pauses, personal experience, filler words (bilingual fillers like "matlab", "basically", "na" are natural)

Key indicators of reading/AI (any language):
- Perfect grammar and sentence structure throughout
- No self-corrections, restarts, or filler words
- Textbook definitions instead of practical examples
- Unnaturally complete sentences

Key indicators of genuine spontaneous speech:
- Self-corrections, restarts, filler words (um, uh, matlab, basically, like)
- Personal anecdotes or examples
- Incomplete sentences or restarts
- Practical/hands-on descriptions
- Language mixing (Hindi-English, Telugu-English) is a STRONG indicator of natural speech

Return ONLY valid JSON (no markdown):
{{"is_original": true, "confidence": 75, "reasoning": "brief explanation", "speech_pattern": "natural"}}"""

_CORRECTNESS_TEMPLATE = """You are an expert skill assessor for blue-collar and service jobs in India.

Question asked (in English):
"{question}"

Expected correct answer (key points):
"{expected_answer}"

Worker's verbal answer (transcribed from video, may be in English, Hindi, Telugu, or mixed):
"{transcript}"

Detected language: {language}

IMPORTANT:
- The worker may answer in ANY language (Hindi, Telugu, English, or mixed). Evaluate the CONTENT regardless of language.
- Focus on whether they demonstrate REAL PRACTICAL KNOWLEDGE, not language proficiency.
- Simple language, broken sentences, or mixed-language responses are fine. Judge the substance.
- Partial credit: if they get some key points right, give proportional score.
- A score of 50+ means the worker has basic understanding. 70+ means solid knowledge.
- Be lenient with exact wording. Practical understanding matters more than textbook answers.

Return ONLY valid JSON (no markdown):
{{"is_correct": true, "score": 72, "matched_points": ["point 1", "point 2"], "missed_points": ["missed point"], "summary": "brief 1-2 sentence assessment"}}"""


@dataclass(frozen=True)
class PromptBundle:
    system_prompt: str
    user_prompt: str


def _truncate(value: str, max_length: int = 240) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def build_originality_prompt(
    *,
    skill: str,
    question: LocalizedText,
    transcript: str,
    language: str | None,
) -> PromptBundle:
    """Embed the question in every locale plus the transcript."""

    question_context = question.render_all() or skill
    user_prompt = _ORIGINALITY_TEMPLATE.format(
        skill=skill,
        question_context=question_context,
        language=language or "unknown",
        transcript=transcript,
    )
    logger.debug("Originality prompt: %s", _truncate(user_prompt, 500))
    return PromptBundle(ORIGINALITY_SYSTEM_PROMPT, user_prompt)


def build_correctness_prompt(
    *,
    skill: str,
    question: LocalizedText,
    expected_answer: str,
    transcript: str,
    language: str | None,
) -> PromptBundle:
    """Embed the English question and the expected-answer rubric."""

    user_prompt = _CORRECTNESS_TEMPLATE.format(
        question=question.resolve("en") or skill,
        expected_answer=expected_answer,
        transcript=transcript,
        language=language or "unknown",
    )
    logger.debug("Correctness prompt: %s", _truncate(user_prompt, 500))
    return PromptBundle(CORRECTNESS_SYSTEM_PROMPT, user_prompt)


__all__ = [
    "CORRECTNESS_SYSTEM_PROMPT",
    "ORIGINALITY_SYSTEM_PROMPT",
    "PromptBundle",
    "build_correctness_prompt",
    "build_originality_prompt",
]
