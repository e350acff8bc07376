"""Retry behaviour of the assessment repository against a fake session."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from skillcheck.services.assessment_repository import AssessmentRepository, PersistenceError


class FakeResult:
    def __init__(self, rowcount: int) -> None:
        self.rowcount = rowcount


class FakeSession:
    def __init__(self, outcome) -> None:
        self._outcome = outcome
        self.statements: list = []
        self.commits = 0

    async def execute(self, statement):
        self.statements.append(statement)
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return FakeResult(self._outcome)

    async def commit(self):
        self.commits += 1


class FakeSessionScope:
    """Hands out one session per attempt, each with a scripted outcome."""

    def __init__(self, *outcomes) -> None:
        self._outcomes = list(outcomes)
        self.sessions: list[FakeSession] = []

    @asynccontextmanager
    async def __call__(self):
        session = FakeSession(self._outcomes.pop(0))
        self.sessions.append(session)
        yield session


def _operational_error() -> OperationalError:
    return OperationalError("UPDATE skill_assessments", {}, ConnectionRefusedError())


def _repository(scope: FakeSessionScope, sleeps: list[float]) -> AssessmentRepository:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return AssessmentRepository(
        scope,
        attempts=3,
        backoff_seconds=1.5,
        timeout_seconds=5,
        sleep=fake_sleep,
    )


def test_first_attempt_success_commits_once():
    scope = FakeSessionScope(1)
    sleeps: list[float] = []

    asyncio.run(_repository(scope, sleeps).save_analysis(uuid4(), {"status": "approved"}))

    assert len(scope.sessions) == 1
    assert scope.sessions[0].commits == 1
    assert scope.sessions[0].statements[0].table.name == "skill_assessments"
    assert sleeps == []


def test_transient_failures_back_off_exponentially():
    scope = FakeSessionScope(_operational_error(), _operational_error(), 1)
    sleeps: list[float] = []

    asyncio.run(_repository(scope, sleeps).save_analysis(uuid4(), {"status": "pending"}))

    assert len(scope.sessions) == 3
    assert sleeps == [1.5, 3.0]


def test_exhausted_retries_raise_persistence_error():
    scope = FakeSessionScope(_operational_error(), _operational_error(), _operational_error())
    sleeps: list[float] = []

    with pytest.raises(PersistenceError):
        asyncio.run(_repository(scope, sleeps).save_analysis(uuid4(), {"status": "pending"}))

    assert len(scope.sessions) == 3
    assert sleeps == [1.5, 3.0]


def test_missing_row_is_not_retried():
    scope = FakeSessionScope(0, 1)
    sleeps: list[float] = []

    with pytest.raises(PersistenceError):
        asyncio.run(_repository(scope, sleeps).save_analysis(uuid4(), {"status": "pending"}))

    assert len(scope.sessions) == 1
    assert sleeps == []
