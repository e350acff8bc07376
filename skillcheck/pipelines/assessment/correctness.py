"""Correctness stage (Stage 04): grade the transcript against the expected answer."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from skillcheck.services.text_generation import get_text_generation_gateway

from .contracts import CorrectnessVerdict, OriginalityVerdict, ParseError
from .originality import TextCompleter, has_enough_speech, is_disqualified
from .prompts import build_correctness_prompt
from .types import LocalizedText

logger = logging.getLogger("skillcheck.pipelines.assessment")


def should_grade(
    transcript: str | None,
    expected_answer: str | None,
    originality: OriginalityVerdict | None,
) -> bool:
    return (
        has_enough_speech(transcript)
        and bool(expected_answer and expected_answer.strip())
        and not is_disqualified(originality)
    )


class CorrectnessGrader:
    """Score transcript content against an expected-answer rubric."""

    def __init__(self, gateway: TextCompleter | None = None) -> None:
        self._gateway = gateway

    def _resolve_gateway(self) -> TextCompleter:
        if self._gateway is None:
            self._gateway = get_text_generation_gateway()
        return self._gateway

    async def grade(
        self,
        *,
        skill: str,
        question: LocalizedText,
        expected_answer: str,
        transcript: str,
        language: str | None,
    ) -> CorrectnessVerdict:
        bundle = build_correctness_prompt(
            skill=skill,
            question=question,
            expected_answer=expected_answer,
            transcript=transcript,
            language=language,
        )
        raw_response = await self._resolve_gateway().complete(
            bundle.system_prompt,
            bundle.user_prompt,
        )

        try:
            verdict = CorrectnessVerdict.from_json(raw_response)
        except (ParseError, ValidationError) as exc:
            logger.warning("Unparseable correctness response, using default: %s", exc)
            return CorrectnessVerdict.fallback()

        logger.info("Correctness: correct=%s score=%s", verdict.is_correct, verdict.score)
        return verdict


__all__ = ["CorrectnessGrader", "should_grade"]
