"""S3 storage helpers for recorded assessment media."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlparse

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)
from fastapi.concurrency import run_in_threadpool

from skillcheck.config.settings import settings
from skillcheck.services.aws import create_boto3_client


class StorageError(RuntimeError):
    """Raised when an S3 storage operation fails.

    ``retryable`` marks throttling, server-side and connection failures;
    missing objects and denied access are permanent.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    key: str


# bucket.s3.amazonaws.com, bucket.s3.<region>.amazonaws.com, bucket.s3-<region>.amazonaws.com
_VIRTUAL_HOST = re.compile(r"^(?P<bucket>[a-z0-9][a-z0-9.\-]*)\.s3(?:[.\-][a-z0-9\-]+)?\.amazonaws\.com$")
# s3.amazonaws.com, s3.<region>.amazonaws.com, s3-<region>.amazonaws.com
_PATH_STYLE = re.compile(r"^s3(?:[.\-][a-z0-9\-]+)?\.amazonaws\.com$")

_s3_client = create_boto3_client("s3", region_name=settings.s3.region)

_TRANSIENT_CODES = frozenset(
    {"InternalError", "RequestTimeout", "ServiceUnavailable", "SlowDown", "Throttling"}
)
_TRANSIENT_BOTOCORE = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ResponseStreamingError,
)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return code in _TRANSIENT_CODES or status >= 500
    return isinstance(exc, _TRANSIENT_BOTOCORE)


def parse_media_ref(media_ref: str | None) -> StoredObject | None:
    """Derive bucket and key from a stored media reference.

    Accepts ``s3://bucket/key`` and S3 https URLs in virtual-host or
    path style. Inline ``data:`` payloads and foreign URLs return None.
    """

    if not media_ref:
        return None
    parsed = urlparse(media_ref.strip())
    scheme = parsed.scheme.lower()

    if scheme == "s3":
        key = unquote(parsed.path.lstrip("/"))
        if parsed.netloc and key:
            return StoredObject(bucket=parsed.netloc, key=key)
        return None

    if scheme not in {"http", "https"}:
        return None

    host = (parsed.hostname or "").lower()
    path = unquote(parsed.path.lstrip("/"))

    match = _VIRTUAL_HOST.match(host)
    if match and path:
        return StoredObject(bucket=match.group("bucket"), key=path)

    if _PATH_STYLE.match(host) and "/" in path:
        bucket, key = path.split("/", 1)
        if bucket and key:
            return StoredObject(bucket=bucket, key=key)

    return None


def _read_object(bucket: str, key: str) -> tuple[bytes, str | None]:
    response = _s3_client.get_object(Bucket=bucket, Key=key)
    body = response["Body"]
    try:
        return body.read(), response.get("ContentType")
    finally:
        body.close()


async def fetch_media_object(bucket: str, key: str) -> tuple[bytes, str | None]:
    """Download one stored media object; returns its bytes and content type."""

    try:
        return await run_in_threadpool(_read_object, bucket, key)
    except (BotoCoreError, ClientError) as exc:
        raise StorageError(
            f"Failed to fetch s3://{bucket}/{key}: {exc}",
            retryable=_is_transient(exc),
        ) from exc


async def delete_media_object(bucket: str, key: str) -> None:
    """Delete one stored media object."""

    if not bucket or not key:
        raise StorageError("Bucket and key are required to delete media.")
    try:
        await run_in_threadpool(_s3_client.delete_object, Bucket=bucket, Key=key)
    except (BotoCoreError, ClientError) as exc:
        raise StorageError(f"Failed to delete s3://{bucket}/{key}: {exc}") from exc


__all__ = [
    "StorageError",
    "StoredObject",
    "delete_media_object",
    "fetch_media_object",
    "parse_media_ref",
]
