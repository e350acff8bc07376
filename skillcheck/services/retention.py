"""Post-analysis media retention: delete recorded media off the critical path.

The pipeline hands a media reference to `MediaRetentionManager.schedule`,
which only enqueues it. A background worker started with the application
performs the S3 deletion with a short bounded retry. Deletion failures are
logged and counted, never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from skillcheck.config.settings import settings
from skillcheck.services.storage import StoredObject, delete_media_object, parse_media_ref
from skillcheck.telemetry import record_retention

logger = logging.getLogger(__name__)

DeleteFn = Callable[[str, str], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class MediaRetentionManager:
    """Queue-backed deletion of stored media objects."""

    def __init__(
        self,
        *,
        delete: DeleteFn = delete_media_object,
        attempts: int | None = None,
        backoff_seconds: float | None = None,
        queue_size: int | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        config = settings.pipeline
        self._delete = delete
        self._attempts = max(1, attempts or config.retention_attempts)
        self._backoff = config.retention_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._sleep = sleep
        self._queue: asyncio.Queue[StoredObject] = asyncio.Queue(
            maxsize=queue_size or config.retention_queue_size
        )
        self._worker: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def schedule(self, media_ref: str | None) -> bool:
        """Hand a media reference to the deletion queue without waiting."""

        target = parse_media_ref(media_ref)
        if target is None:
            if media_ref:
                logger.debug("Media reference is not a stored object, nothing to delete")
            record_retention("skipped")
            return False
        try:
            self._queue.put_nowait(target)
        except asyncio.QueueFull:
            logger.warning(
                "Retention queue full, dropping deletion of s3://%s/%s",
                target.bucket,
                target.key,
            )
            record_retention("dropped")
            return False
        logger.debug("Scheduled deletion of s3://%s/%s", target.bucket, target.key)
        return True

    async def purge(self, target: StoredObject) -> bool:
        """Delete one object with bounded retry. Returns whether it was deleted."""

        for attempt in range(1, self._attempts + 1):
            try:
                await self._delete(target.bucket, target.key)
            except Exception as exc:
                if attempt < self._attempts:
                    delay = self._backoff * (2 ** (attempt - 1))
                    logger.warning(
                        "Media deletion attempt %s/%s failed for s3://%s/%s: %r; retrying in %.1fs",
                        attempt,
                        self._attempts,
                        target.bucket,
                        target.key,
                        exc,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                logger.error(
                    "Giving up on media deletion for s3://%s/%s after %s attempts: %r",
                    target.bucket,
                    target.key,
                    self._attempts,
                    exc,
                )
                record_retention("failed")
                return False

            logger.info("Deleted media s3://%s/%s", target.bucket, target.key)
            record_retention("deleted")
            return True
        return False

    async def _run(self) -> None:
        while True:
            target = await self._queue.get()
            try:
                await self.purge(target)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start the background worker on the running event loop."""

        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info("Media retention worker started")

    async def drain(self) -> None:
        """Wait until every queued deletion has been attempted."""

        await self._queue.join()

    async def stop(self, *, drain: bool = True, timeout: float = 10.0) -> None:
        if self._worker is None:
            return
        if drain and self.running:
            try:
                await asyncio.wait_for(self.drain(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Stopping retention worker with %s deletions pending", self.pending)
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Media retention worker stopped")


_DEFAULT_MANAGER: MediaRetentionManager | None = None


def get_retention_manager() -> MediaRetentionManager:
    """Return the process-wide retention manager."""

    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None:
        _DEFAULT_MANAGER = MediaRetentionManager()
    return _DEFAULT_MANAGER


__all__ = ["MediaRetentionManager", "get_retention_manager"]
