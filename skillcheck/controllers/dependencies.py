"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from skillcheck.pipelines.assessment import PipelineOrchestrator, get_pipeline_orchestrator
from skillcheck.services.transcribe import TranscriptionClient, get_transcription_client


def get_orchestrator() -> PipelineOrchestrator:
    return get_pipeline_orchestrator()


def get_transcriber() -> TranscriptionClient:
    return get_transcription_client()


OrchestratorDep = Annotated[PipelineOrchestrator, Depends(get_orchestrator)]
TranscriberDep = Annotated[TranscriptionClient, Depends(get_transcriber)]


__all__ = ["get_orchestrator", "get_transcriber", "OrchestratorDep", "TranscriberDep"]
