"""Amazon Transcribe integration helpers using the Streaming API.

`TranscribeService` converts recorded media to PCM with ffmpeg and streams it
to Amazon Transcribe. `TranscriptionClient` is the pipeline-facing wrapper: it
bounds the call with a timeout and reports every failure as a
`TranscriptionError` tagged retryable or terminal.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import socket
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx
from amazon_transcribe import exceptions as transcribe_exceptions
from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from botocore import exceptions as botocore_exceptions
from fastapi.concurrency import run_in_threadpool

from skillcheck.config.settings import settings

logger = logging.getLogger(__name__)
transcript_logger = logging.getLogger("skillcheck.logs.transcript")

# Short UI locales accepted as hints; anything with a region suffix passes through.
_LANGUAGE_CODES = {
    "en": "en-IN",
    "hi": "hi-IN",
    "te": "te-IN",
}

_RETRYABLE_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.ECONNREFUSED,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.EPIPE,
    }
)

_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    socket.gaierror,
    httpx.TransportError,
    botocore_exceptions.EndpointConnectionError,
    botocore_exceptions.ConnectTimeoutError,
    botocore_exceptions.ReadTimeoutError,
    botocore_exceptions.ConnectionClosedError,
    transcribe_exceptions.ServiceUnavailableException,
    transcribe_exceptions.InternalFailureException,
    transcribe_exceptions.LimitExceededException,
)


@dataclass(frozen=True)
class MediaPayload:
    """Recorded media loaded into memory."""

    data: bytes
    mime_type: str = "video/webm"


@dataclass(frozen=True)
class TranscriptionResult:
    """Transcript text plus the language it was recognised in."""

    text: str
    language: str | None = None


class TranscriptionError(RuntimeError):
    """Raised when media could not be transcribed.

    ``retryable`` is true for transient conditions (timeouts, dropped
    connections, throttling) and false for failures that would repeat on
    resubmission (empty or corrupt media, rejected requests).
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def is_retryable_error(exc: BaseException) -> bool:
    """Classify an exception (or anything in its cause chain) as transient."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, TranscriptionError):
            return current.retryable
        if isinstance(current, _RETRYABLE_TYPES):
            return True
        if isinstance(current, OSError) and current.errno in _RETRYABLE_ERRNOS:
            return True
        current = current.__cause__
    return False


def _mapped_hint(language_hint: str | None) -> str | None:
    hint = (language_hint or "").strip()
    if not hint:
        return None
    mapped = _LANGUAGE_CODES.get(hint.lower())
    if mapped:
        return mapped
    return hint if "-" in hint else None


def resolve_language_code(language_hint: str | None, default: str | None = None) -> str:
    """Map a UI locale hint (`hi`, `te`, `en`) or full code to a Transcribe code."""

    fallback = default or settings.transcribe.default_language_code
    mapped = _mapped_hint(language_hint)
    if mapped:
        return mapped
    if language_hint:
        logger.info("Unsupported language hint %r, using %s", language_hint, fallback)
    return fallback


def stream_language_options(
    language_hint: str | None,
    *,
    default: str | None = None,
    candidates: Sequence[str] | None = None,
) -> dict[str, Any]:
    """Language arguments for ``start_stream_transcription``.

    A usable hint pins the language. Without one Transcribe identifies the
    spoken language among ``candidates``, preferring ``default``.
    """

    mapped = _mapped_hint(language_hint)
    if mapped:
        return {"language_code": mapped}

    preferred = default or settings.transcribe.default_language_code
    options = list(candidates if candidates is not None else settings.transcribe.language_options)
    if language_hint:
        logger.info("Unsupported language hint %r, identifying language", language_hint)
    # Identification needs at least two candidates.
    if len(options) < 2:
        return {"language_code": preferred}

    arguments: dict[str, Any] = {
        "language_code": None,
        "identify_language": True,
        "language_options": options,
    }
    if preferred in options:
        arguments["preferred_language"] = preferred
    return arguments


class SpeechEngine(Protocol):
    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        language_hint: str | None = None,
    ) -> TranscriptionResult:
        ...


class TranscribeService:
    """High-level facade for streaming audio to Amazon Transcribe."""

    def __init__(
        self,
        region: str,
        language_code: str = "en-IN",
        media_sample_rate_hz: int = 16000,
        media_encoding: str = "pcm",
        language_options: Sequence[str] | None = None,
    ) -> None:
        self._region = region
        self._language_code = language_code
        self._language_options = language_options
        self._media_sample_rate_hz = media_sample_rate_hz
        self._media_encoding = media_encoding

        # Ensure credentials are available to the SDK
        if settings.s3.access_key:
            os.environ["AWS_ACCESS_KEY_ID"] = settings.s3.access_key
        if settings.s3.secret_key:
            os.environ["AWS_SECRET_ACCESS_KEY"] = settings.s3.secret_key

        self._client = TranscribeStreamingClient(region=region)

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        language_hint: str | None = None,
    ) -> TranscriptionResult:
        """Stream audio to Transcribe and return the full transcript."""

        if not audio_bytes:
            raise TranscriptionError("The recorded media is empty.")

        try:
            pcm_data = await self._convert_to_pcm(audio_bytes)
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"Audio conversion failed: {exc}") from exc

        if not pcm_data:
            raise TranscriptionError("The recorded media contains no decodable audio.")

        language_args = stream_language_options(
            language_hint,
            default=self._language_code,
            candidates=self._language_options,
        )
        language_code = language_args["language_code"]

        try:
            stream = await self._client.start_stream_transcription(
                **language_args,
                media_sample_rate_hz=self._media_sample_rate_hz,
                media_encoding=self._media_encoding,
            )
            handler = _SimpleTranscriptHandler(stream.output_stream)

            async def write_chunks() -> None:
                # 8 KB of 16-bit mono PCM, paced at real time
                chunk_size = 8192
                bytes_per_sec = self._media_sample_rate_hz * 2
                sleep_time = chunk_size / bytes_per_sec

                logger.info(
                    "Starting stream language=%s bytes=%s chunk=%s",
                    language_code or "auto",
                    len(pcm_data),
                    chunk_size,
                )
                for i in range(0, len(pcm_data), chunk_size):
                    await stream.input_stream.send_audio_event(
                        audio_chunk=pcm_data[i : i + chunk_size]
                    )
                    await asyncio.sleep(sleep_time)
                await stream.input_stream.end_stream()

            await asyncio.gather(write_chunks(), handler.handle_events())
        except Exception as exc:
            logger.error("Streaming transcription failed: %r", exc)
            raise TranscriptionError(
                f"Streaming transcription failed: {exc}",
                retryable=is_retryable_error(exc),
            ) from exc

        text = handler.transcript.strip()
        logger.info("Transcription complete. Length: %s", len(text))
        return TranscriptionResult(
            text=text,
            language=handler.language_code or language_code,
        )

    async def _convert_to_pcm(self, audio_bytes: bytes) -> bytes:
        """Convert input media to raw PCM s16le via ffmpeg using a thread."""
        return await run_in_threadpool(self._convert_to_pcm_sync, audio_bytes)

    def _convert_to_pcm_sync(self, audio_bytes: bytes) -> bytes:
        """Synchronous ffmpeg conversion using a temporary file to support seeking."""

        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio_bytes)
            tmp_path = tmp_file.name

        try:
            process = subprocess.run(
                [
                    "ffmpeg",
                    "-y",
                    "-i", tmp_path,
                    "-vn",
                    "-f", "s16le",
                    "-ac", "1",
                    "-ar", str(self._media_sample_rate_hz),
                    "pipe:1",
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            if not process.stdout:
                logger.warning(
                    "ffmpeg produced empty output. stderr: %s",
                    process.stderr.decode("utf-8", errors="replace"),
                )
            return process.stdout
        except FileNotFoundError as exc:
            logger.error("ffmpeg executable not found; cannot convert media")
            raise TranscriptionError(
                "Media converter unavailable: ffmpeg is not installed",
                retryable=True,
            ) from exc
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise TranscriptionError(f"ffmpeg failed to convert media to PCM: {error_msg}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


class _SimpleTranscriptHandler(TranscriptResultStreamHandler):
    def __init__(self, transcript_result_stream):
        super().__init__(transcript_result_stream)
        self.transcript = ""
        self.language_code: str | None = None

    async def handle_transcript_event(self, transcript_event: TranscriptEvent):
        for result in transcript_event.transcript.results:
            if result.is_partial:
                continue
            detected = getattr(result, "language_code", None)
            if detected:
                self.language_code = detected
            for alt in result.alternatives:
                self.transcript += alt.transcript + " "


class TranscriptionClient:
    """Bounded, classified transcription for the assessment pipeline."""

    def __init__(
        self,
        engine: SpeechEngine | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._engine = engine
        self._timeout = timeout_seconds or settings.transcribe.timeout_seconds

    def _resolve_engine(self) -> SpeechEngine:
        if self._engine is None:
            self._engine = get_transcribe_service()
        return self._engine

    async def transcribe(
        self,
        media: MediaPayload,
        language_hint: str | None = None,
    ) -> TranscriptionResult:
        if not media.data:
            raise TranscriptionError("The recorded media is empty.")

        try:
            result = await asyncio.wait_for(
                self._resolve_engine().transcribe(media.data, language_hint=language_hint),
                timeout=self._timeout,
            )
        except TranscriptionError:
            raise
        except asyncio.TimeoutError as exc:
            raise TranscriptionError(
                f"Transcription timed out after {self._timeout:.0f}s",
                retryable=True,
            ) from exc
        except Exception as exc:
            raise TranscriptionError(
                f"Transcription failed: {exc}",
                retryable=is_retryable_error(exc),
            ) from exc

        transcript_logger.info(
            "language=%s chars=%s text=%s",
            result.language,
            len(result.text),
            result.text,
        )
        return result


_DEFAULT_SERVICE: TranscribeService | None = None
_DEFAULT_CLIENT: TranscriptionClient | None = None


def get_transcribe_service() -> TranscribeService:
    """Return a lazily-instantiated transcribe service singleton."""

    global _DEFAULT_SERVICE
    if _DEFAULT_SERVICE is None:
        _DEFAULT_SERVICE = TranscribeService(
            region=settings.transcribe.region,
            language_code=settings.transcribe.default_language_code,
            media_sample_rate_hz=settings.transcribe.sample_rate_hz,
            language_options=settings.transcribe.language_options,
        )
    return _DEFAULT_SERVICE


def get_transcription_client() -> TranscriptionClient:
    """Return the shared pipeline-facing transcription client."""

    global _DEFAULT_CLIENT
    if _DEFAULT_CLIENT is None:
        _DEFAULT_CLIENT = TranscriptionClient()
    return _DEFAULT_CLIENT


__all__ = [
    "MediaPayload",
    "SpeechEngine",
    "TranscribeService",
    "TranscriptionClient",
    "TranscriptionError",
    "TranscriptionResult",
    "get_transcribe_service",
    "get_transcription_client",
    "is_retryable_error",
    "resolve_language_code",
    "stream_language_options",
]
