"""Media ingestion helpers (Stage 02a of the assessment pipeline)."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Final
from urllib.parse import unquote_to_bytes

import httpx

from skillcheck.config.settings import settings
from skillcheck.services.storage import StorageError, fetch_media_object, parse_media_ref
from skillcheck.services.transcribe import MediaPayload, is_retryable_error

logger = logging.getLogger("skillcheck.pipelines.assessment")

_DEFAULT_MIME: Final[str] = "video/webm"


class MediaDownloadError(RuntimeError):
    """Raised when recorded media cannot be loaded."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def decode_data_url(media_ref: str) -> MediaPayload:
    """Decode an inline ``data:<mime>[;base64],<payload>`` reference."""

    header, sep, payload = media_ref.partition(",")
    if not sep:
        raise MediaDownloadError("Malformed data URL: missing payload separator")

    meta = header[len("data:"):].split(";")
    mime_type = meta[0].strip() or _DEFAULT_MIME
    try:
        if "base64" in (part.strip().lower() for part in meta[1:]):
            data = base64.b64decode(payload, validate=False)
        else:
            data = unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as exc:
        raise MediaDownloadError(f"Malformed data URL payload: {exc}") from exc
    return MediaPayload(data=data, mime_type=mime_type)


def decode_base64_media(payload: str, mime_type: str | None = None) -> MediaPayload:
    """Decode a bare base64 body (optionally itself a data URL)."""

    if payload.startswith("data:"):
        return decode_data_url(payload)
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise MediaDownloadError(f"Invalid base64 media payload: {exc}") from exc
    return MediaPayload(data=data, mime_type=mime_type or _DEFAULT_MIME)


async def load_media(
    media_ref: str,
    *,
    timeout_seconds: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> MediaPayload:
    """Resolve a media reference to bytes.

    Inline data URLs are decoded locally. Stored objects (``s3://`` refs and
    S3 https URLs) are read with the service credentials, other http(s)
    references are downloaded. Missing or forbidden media is terminal;
    server errors and transport failures are retryable.
    """

    if not media_ref:
        raise MediaDownloadError("No media reference supplied")

    stored = parse_media_ref(media_ref)
    if media_ref.startswith("data:"):
        media = decode_data_url(media_ref)
    elif stored is not None:
        try:
            data, content_type = await fetch_media_object(stored.bucket, stored.key)
        except StorageError as exc:
            raise MediaDownloadError(str(exc), retryable=exc.retryable) from exc
        mime_type = (content_type or _DEFAULT_MIME).split(";")[0].strip()
        media = MediaPayload(data=data, mime_type=mime_type or _DEFAULT_MIME)
    elif media_ref.startswith(("http://", "https://")):
        timeout = timeout_seconds or settings.pipeline.media_download_timeout_seconds
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=transport,
            ) as client:
                response = await client.get(media_ref)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise MediaDownloadError(
                f"Media download failed with HTTP {status_code}",
                retryable=status_code >= 500,
            ) from exc
        except httpx.HTTPError as exc:
            raise MediaDownloadError(
                f"Media download failed: {exc!r}",
                retryable=is_retryable_error(exc),
            ) from exc
        mime_type = response.headers.get("content-type", _DEFAULT_MIME).split(";")[0].strip()
        media = MediaPayload(data=response.content, mime_type=mime_type or _DEFAULT_MIME)
    else:
        raise MediaDownloadError("Unsupported media reference scheme")

    if not media.data:
        raise MediaDownloadError("Recorded media is empty")

    logger.info(
        "Loaded media %.1f KB (%s)",
        len(media.data) / 1024,
        media.mime_type,
    )
    return media


__all__ = ["MediaDownloadError", "decode_base64_media", "decode_data_url", "load_media"]
