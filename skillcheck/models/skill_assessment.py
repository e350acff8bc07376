"""SQLAlchemy model for recorded skill assessments."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from skillcheck.models.base import Base


def utc_now() -> datetime:
    """Timezone-aware timestamp used for audit columns."""
    return datetime.now(timezone.utc)


class SkillAssessment(Base):
    __tablename__ = "skill_assessments"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    worker_id = Column(
        String,
        nullable=True,
        index=True,
    )
    skill = Column(
        String,
        nullable=False,
        index=True,
    )
    question = Column(
        JSONB,
        nullable=True,
    )
    expected_answer = Column(
        Text,
        nullable=True,
    )
    video_url = Column(
        Text,
        nullable=True,
    )
    video_duration_ms = Column(
        Integer,
        nullable=True,
    )
    status = Column(
        String(16),
        nullable=False,
        default="pending",
        index=True,
    )
    analysis = Column(
        JSONB,
        nullable=True,
    )
    # NULL means the status was set by the automated pipeline.
    reviewed_by = Column(
        String,
        nullable=True,
    )
    review_notes = Column(
        Text,
        nullable=True,
    )
    reviewed_at = Column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


__all__ = ["SkillAssessment", "utc_now"]
