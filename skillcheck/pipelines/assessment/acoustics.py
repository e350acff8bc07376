"""Acoustic feature extraction (capture side) and heuristic scoring (Stage 01).

`AcousticFeatureExtractor` reduces a stream of short time-domain frames to a
compact `AcousticMetrics` vector. `AcousticSampler` drives it on a fixed
100 ms schedule while a `CaptureDevice` records. `score_acoustic_metrics`
turns the vector into the subtractive 0-100 heuristic used by the decision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence, Union

import numpy as np

from .contracts import AcousticMetrics
from .types import AcousticAssessment

logger = logging.getLogger("skillcheck.pipelines.assessment")

SAMPLE_INTERVAL_SECONDS = 0.1
SILENCE_RMS = 0.02
PEAK_RISE = 0.05
PEAK_FLOOR = 0.05
WINDOW_FRAMES = 10

Frame = Union[Sequence[float], np.ndarray]


class FrameSource(Protocol):
    """Anything that can hand over the most recent block of audio samples."""

    def latest_frame(self) -> Optional[Frame]:
        ...


class CaptureDevice(Protocol):
    """Recording device: `start` begins capture, `stop` returns the media."""

    def start(self) -> FrameSource:
        ...

    def stop(self) -> bytes:
        ...


class AcousticFeatureExtractor:
    """Streaming accumulator over per-frame RMS volume.

    Mean and population variance are kept with Welford's update so memory
    stays constant; only the per-window averages (one per 10 frames) are
    retained for the speech-rate variance.
    """

    def __init__(self, *, window_frames: int = WINDOW_FRAMES) -> None:
        self._window_frames = window_frames
        self._frames = 0
        self._mean = 0.0
        self._m2 = 0.0
        self._silent_frames = 0
        self._peaks = 0
        self._zero_crossings = 0
        self._last_rms = 0.0
        self._window_sum = 0.0
        self._window_fill = 0
        self._window_averages: list[float] = []
        self._final: AcousticMetrics | None = None

    @property
    def frames(self) -> int:
        return self._frames

    @property
    def stopped(self) -> bool:
        return self._final is not None

    def tick(self, frame: Frame) -> None:
        """Consume one frame of samples in [-1, 1]."""

        if self._final is not None:
            return
        samples = np.asarray(frame, dtype=np.float64).ravel()
        if samples.size == 0:
            return

        rms = float(np.sqrt(np.mean(np.square(samples))))

        self._frames += 1
        delta = rms - self._mean
        self._mean += delta / self._frames
        self._m2 += delta * (rms - self._mean)

        if rms < SILENCE_RMS:
            self._silent_frames += 1
        if rms > self._last_rms + PEAK_RISE and rms > PEAK_FLOOR:
            self._peaks += 1
        self._last_rms = rms

        negative = samples < 0
        self._zero_crossings += int(np.count_nonzero(negative[1:] != negative[:-1]))

        self._window_sum += rms
        self._window_fill += 1
        if self._window_fill == self._window_frames:
            self._window_averages.append(self._window_sum / self._window_frames)
            self._window_sum = 0.0
            self._window_fill = 0

    def tick_bytes(self, frame: bytes | Sequence[int]) -> None:
        """Consume unsigned 8-bit samples centred on 128."""

        raw = np.frombuffer(bytes(frame), dtype=np.uint8).astype(np.float64)
        self.tick((raw - 128.0) / 128.0)

    def snapshot(self) -> AcousticMetrics:
        if self._final is not None:
            return self._final

        variance = self._m2 / self._frames if self._frames > 1 else 0.0
        if len(self._window_averages) > 1:
            speech_rate_variance = float(np.var(np.asarray(self._window_averages)))
        else:
            speech_rate_variance = 0.0
        silence_ratio = self._silent_frames / self._frames if self._frames else 0.0

        return AcousticMetrics(
            avg_volume=self._mean if self._frames else 0.0,
            volume_variance=max(0.0, variance),
            silence_ratio=silence_ratio,
            peak_count=self._peaks,
            zero_crossings=self._zero_crossings,
            speech_rate_variance=speech_rate_variance,
        )

    def stop(self) -> AcousticMetrics:
        """Freeze the extractor and return its final metrics."""

        if self._final is None:
            self._final = self.snapshot()
        return self._final


class AcousticSampler:
    """Fixed-interval scheduler that feeds frames to an extractor."""

    def __init__(
        self,
        source: FrameSource,
        extractor: AcousticFeatureExtractor | None = None,
        *,
        interval_seconds: float = SAMPLE_INTERVAL_SECONDS,
    ) -> None:
        self._source = source
        self.extractor = extractor or AcousticFeatureExtractor()
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._final: AcousticMetrics | None = None

    def start(self) -> None:
        if self._task is not None or self._final is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            frame = self._source.latest_frame()
            if frame is not None:
                self.extractor.tick(frame)
            await asyncio.sleep(self._interval)

    async def stop(self) -> AcousticMetrics:
        """Cancel sampling and return the final metrics. Safe to call twice."""

        if self._final is not None:
            return self._final
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._final = self.extractor.stop()
        return self._final


async def capture_with_metrics(
    device: CaptureDevice,
    duration_seconds: float,
    *,
    stop_event: asyncio.Event | None = None,
    interval_seconds: float = SAMPLE_INTERVAL_SECONDS,
) -> tuple[bytes, AcousticMetrics]:
    """Record for up to ``duration_seconds`` while sampling acoustic features.

    Setting ``stop_event`` ends the capture early; whatever media exists at
    that point is returned.
    """

    sampler = AcousticSampler(device.start(), interval_seconds=interval_seconds)
    sampler.start()
    try:
        if stop_event is None:
            await asyncio.sleep(duration_seconds)
        else:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=duration_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        metrics = await sampler.stop()
        media = device.stop()
    return media, metrics


def score_acoustic_metrics(metrics: AcousticMetrics | None) -> AcousticAssessment:
    """Subtractive heuristic over the capture metrics (baseline 80)."""

    if metrics is None:
        return AcousticAssessment(
            score=50,
            flags=("No audio metrics available",),
            is_reading=False,
            is_ai_voice=False,
            tone_natural=True,
        )

    flags: list[str] = []
    score = 80

    if metrics.volume_variance < 0.05:
        flags.append("Very low volume variance - monotone (possible AI voice)")
        score -= 20
    elif metrics.volume_variance < 0.1:
        flags.append("Low volume variance - speech may be rehearsed")
        score -= 10

    if metrics.silence_ratio < 0.08:
        flags.append("Almost no pauses - unnaturally fluent (possible AI voice)")
        score -= 15
    elif metrics.silence_ratio > 0.5:
        flags.append("Excessive silence - possible reading with long pauses")
        score -= 10

    if metrics.peak_count < 10:
        flags.append("Very few audio peaks - flat delivery (AI voice signature)")
        score -= 15
    elif metrics.peak_count < 20:
        flags.append("Low emphasis variation - possibly reading from text")
        score -= 8

    # Both speech-rate rules apply independently.
    if metrics.zero_crossings > 0 and metrics.speech_rate_variance < 0.02:
        flags.append("Extremely consistent speech rate - unnatural cadence")
        score -= 15
    if metrics.speech_rate_variance < 0.05:
        flags.append("Constant speech rate - possible reading or AI generation")
        score -= 10

    return AcousticAssessment(
        score=max(0, min(100, score)),
        flags=tuple(flags),
        is_reading=metrics.volume_variance < 0.1 and metrics.speech_rate_variance < 0.08,
        is_ai_voice=(
            metrics.volume_variance < 0.05
            and metrics.silence_ratio < 0.1
            and metrics.peak_count < 15
        ),
        tone_natural=score >= 60,
    )


__all__ = [
    "AcousticFeatureExtractor",
    "AcousticSampler",
    "CaptureDevice",
    "FrameSource",
    "capture_with_metrics",
    "score_acoustic_metrics",
]
