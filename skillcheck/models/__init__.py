"""SQLAlchemy models for the assessment store."""

from .base import Base
from .skill_assessment import SkillAssessment  # noqa: F401

__all__ = [
    "Base",
    "SkillAssessment",
]
