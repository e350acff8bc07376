"""Originality stage (Stage 03): spontaneous speech vs read, memorized or synthetic."""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from skillcheck.services.text_generation import get_text_generation_gateway

from .contracts import OriginalityVerdict, ParseError
from .prompts import build_originality_prompt
from .types import LocalizedText

logger = logging.getLogger("skillcheck.pipelines.assessment")

MIN_TRANSCRIPT_CHARS = 10
NOT_ORIGINAL_CONFIDENCE = 70


class TextCompleter(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


def has_enough_speech(transcript: str | None) -> bool:
    """True when the stripped transcript is long enough to judge."""

    return len((transcript or "").strip()) > MIN_TRANSCRIPT_CHARS


def is_disqualified(verdict: OriginalityVerdict | None) -> bool:
    """Confidently judged not original."""

    return (
        verdict is not None
        and not verdict.is_original
        and verdict.confidence >= NOT_ORIGINAL_CONFIDENCE
    )


class OriginalityClassifier:
    """Ask the text-generation gateway whether a transcript is spontaneous."""

    def __init__(self, gateway: TextCompleter | None = None) -> None:
        self._gateway = gateway

    def _resolve_gateway(self) -> TextCompleter:
        if self._gateway is None:
            self._gateway = get_text_generation_gateway()
        return self._gateway

    async def classify(
        self,
        *,
        skill: str,
        question: LocalizedText,
        transcript: str,
        language: str | None,
    ) -> OriginalityVerdict:
        """Return a verdict; malformed model output yields the neutral default.

        Gateway failures propagate as `GatewayError`.
        """

        bundle = build_originality_prompt(
            skill=skill,
            question=question,
            transcript=transcript,
            language=language,
        )
        raw_response = await self._resolve_gateway().complete(
            bundle.system_prompt,
            bundle.user_prompt,
        )

        try:
            verdict = OriginalityVerdict.from_json(raw_response)
        except (ParseError, ValidationError) as exc:
            logger.warning("Unparseable originality response, using default: %s", exc)
            return OriginalityVerdict.fallback()

        logger.info(
            "Originality: original=%s confidence=%s pattern=%s",
            verdict.is_original,
            verdict.confidence,
            verdict.speech_pattern.value,
        )
        return verdict


__all__ = [
    "MIN_TRANSCRIPT_CHARS",
    "NOT_ORIGINAL_CONFIDENCE",
    "OriginalityClassifier",
    "TextCompleter",
    "has_enough_speech",
    "is_disqualified",
]
