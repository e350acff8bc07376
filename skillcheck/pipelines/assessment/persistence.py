"""Persistence payload for Stage 07 of the assessment pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from skillcheck.models.skill_assessment import utc_now

from .contracts import AnalysisResult

AUTO_REVIEW_PREFIX = "[AUTO] "


def build_review_update(analysis: AnalysisResult, now: datetime | None = None) -> dict[str, Any]:
    """Column values written to `skill_assessments` for an automated review.

    ``reviewed_by`` stays NULL so an automated status can be told apart from
    an admin decision.
    """

    timestamp = now or utc_now()
    return {
        "analysis": analysis.to_payload(),
        "status": analysis.auto_decision.value,
        "reviewed_by": None,
        "review_notes": f"{AUTO_REVIEW_PREFIX}{analysis.auto_decision_reason}",
        "reviewed_at": timestamp,
        "updated_at": timestamp,
    }


__all__ = ["AUTO_REVIEW_PREFIX", "build_review_update"]
