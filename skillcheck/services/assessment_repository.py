"""Repository for writing automated analysis results to `skill_assessments`."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncContextManager, Awaitable, Callable, Mapping
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from skillcheck.config.settings import settings
from skillcheck.database import session_scope
from skillcheck.models.skill_assessment import SkillAssessment
from skillcheck.telemetry import record_stage_failure

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AsyncContextManager[AsyncSession]]
SleepFn = Callable[[float], Awaitable[None]]

_TRANSIENT_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class PersistenceError(RuntimeError):
    """Raised when an analysis could not be written to the source of record."""


class AssessmentRepository:
    """Partial updates of assessment rows with bounded retry.

    Each attempt runs under its own timeout; transient failures back off
    exponentially (``backoff * 2 ** (attempt - 1)``) before the next one.
    """

    def __init__(
        self,
        session_factory: SessionScope = session_scope,
        *,
        attempts: int | None = None,
        backoff_seconds: float | None = None,
        timeout_seconds: float | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        config = settings.pipeline
        self._session_factory = session_factory
        self._attempts = max(1, attempts or config.persistence_attempts)
        self._backoff = config.persistence_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._timeout = timeout_seconds or config.persistence_timeout_seconds
        self._sleep = sleep

    async def _apply(self, submission_id: UUID, values: Mapping[str, Any]) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(SkillAssessment)
                .where(SkillAssessment.id == submission_id)
                .values(**values)
            )
            await session.commit()
            return result.rowcount

    async def save_analysis(self, submission_id: UUID, values: Mapping[str, Any]) -> None:
        """Write the review fields for one assessment, retrying transient failures."""

        for attempt in range(1, self._attempts + 1):
            try:
                rowcount = await asyncio.wait_for(
                    self._apply(submission_id, values),
                    timeout=self._timeout,
                )
            except _TRANSIENT_ERRORS as exc:
                if attempt >= self._attempts:
                    record_stage_failure("persistence", "exhausted")
                    raise PersistenceError(
                        f"Failed to persist analysis for {submission_id} after {attempt} attempts: {exc!r}"
                    ) from exc
                delay = self._backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Persist attempt %s/%s failed for assessment %s: %r; retrying in %.1fs",
                    attempt,
                    self._attempts,
                    submission_id,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue

            if not rowcount:
                record_stage_failure("persistence", "missing")
                raise PersistenceError(f"Assessment {submission_id} does not exist")

            logger.info(
                "Persisted analysis for assessment %s (status=%s)",
                submission_id,
                values.get("status"),
            )
            return


_DEFAULT_REPOSITORY: AssessmentRepository | None = None


def get_assessment_repository() -> AssessmentRepository:
    """Return the shared repository instance."""

    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = AssessmentRepository()
    return _DEFAULT_REPOSITORY


__all__ = ["AssessmentRepository", "PersistenceError", "get_assessment_repository"]
