"""Service layer helpers for external integrations."""

from .assessment_repository import (
    AssessmentRepository,
    PersistenceError,
    get_assessment_repository,
)
from .retention import MediaRetentionManager, get_retention_manager
from .storage import StorageError, delete_media_object, parse_media_ref
from .text_generation import (
    GatewayError,
    TextGenerationGateway,
    get_text_generation_gateway,
)
from .transcribe import (
    MediaPayload,
    TranscribeService,
    TranscriptionClient,
    TranscriptionError,
    TranscriptionResult,
    get_transcribe_service,
    get_transcription_client,
)

__all__ = [
    "AssessmentRepository",
    "PersistenceError",
    "get_assessment_repository",
    "MediaRetentionManager",
    "get_retention_manager",
    "StorageError",
    "delete_media_object",
    "parse_media_ref",
    "GatewayError",
    "TextGenerationGateway",
    "get_text_generation_gateway",
    "MediaPayload",
    "TranscribeService",
    "TranscriptionClient",
    "TranscriptionError",
    "TranscriptionResult",
    "get_transcribe_service",
    "get_transcription_client",
]
