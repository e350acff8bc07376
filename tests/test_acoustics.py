"""Acoustic feature extraction and the heuristic audio score."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from skillcheck.pipelines.assessment import (
    AcousticFeatureExtractor,
    AcousticMetrics,
    AcousticSampler,
    capture_with_metrics,
    score_acoustic_metrics,
)


def _constant(level: float, size: int = 256) -> np.ndarray:
    return np.full(size, level, dtype=np.float64)


def test_extractor_reports_zeroes_before_any_frame():
    metrics = AcousticFeatureExtractor().snapshot()

    assert metrics.avg_volume == 0.0
    assert metrics.volume_variance == 0.0
    assert metrics.silence_ratio == 0.0
    assert metrics.peak_count == 0
    assert metrics.zero_crossings == 0
    assert metrics.speech_rate_variance == 0.0


def test_extractor_tracks_mean_variance_and_silence():
    extractor = AcousticFeatureExtractor()
    for level in (0.1, 0.3, 0.1, 0.3):
        extractor.tick(_constant(level))
    extractor.tick(np.zeros(256))

    metrics = extractor.snapshot()

    assert extractor.frames == 5
    assert metrics.avg_volume == pytest.approx(0.16)
    assert metrics.volume_variance == pytest.approx(np.var([0.1, 0.3, 0.1, 0.3, 0.0]))
    assert metrics.silence_ratio == pytest.approx(0.2)


def test_peaks_need_a_rise_above_the_floor():
    extractor = AcousticFeatureExtractor()
    # 0.04 never clears the floor; 0.5 rises sharply twice.
    for level in (0.04, 0.5, 0.5, 0.1, 0.5):
        extractor.tick(_constant(level))

    assert extractor.snapshot().peak_count == 2


def test_zero_crossings_count_sign_changes():
    extractor = AcousticFeatureExtractor()
    extractor.tick([0.5, -0.5, 0.5, -0.5])
    extractor.tick([0.2, 0.3, -0.1])

    assert extractor.snapshot().zero_crossings == 4


def test_speech_rate_variance_needs_two_full_windows():
    extractor = AcousticFeatureExtractor()
    for _ in range(10):
        extractor.tick(_constant(0.1))
    for _ in range(9):
        extractor.tick(_constant(0.3))

    assert extractor.snapshot().speech_rate_variance == 0.0

    extractor.tick(_constant(0.3))

    assert extractor.snapshot().speech_rate_variance == pytest.approx(0.01)


def test_unsigned_byte_frames_are_centred():
    extractor = AcousticFeatureExtractor()
    extractor.tick_bytes(bytes([128] * 64))

    metrics = extractor.snapshot()

    assert metrics.avg_volume == 0.0
    assert metrics.silence_ratio == 1.0


def test_stop_freezes_metrics():
    extractor = AcousticFeatureExtractor()
    extractor.tick(_constant(0.2))
    final = extractor.stop()

    extractor.tick(_constant(0.9))

    assert extractor.stopped
    assert extractor.frames == 1
    assert extractor.snapshot() == final
    assert extractor.stop() is final


def test_missing_metrics_score_neutral():
    assessment = score_acoustic_metrics(None)

    assert assessment.score == 50
    assert assessment.flags == ("No audio metrics available",)
    assert assessment.tone_natural is True
    assert assessment.is_reading is False
    assert assessment.is_ai_voice is False


def test_natural_delivery_keeps_baseline():
    metrics = AcousticMetrics(
        volume_variance=0.2,
        silence_ratio=0.2,
        peak_count=30,
        zero_crossings=100,
        speech_rate_variance=0.1,
    )

    assessment = score_acoustic_metrics(metrics)

    assert assessment.score == 80
    assert assessment.flags == ()
    assert assessment.tone_natural is True
    assert assessment.is_reading is False
    assert assessment.is_ai_voice is False


def test_flat_fluent_delivery_looks_synthetic():
    metrics = AcousticMetrics(
        volume_variance=0.01,
        silence_ratio=0.05,
        peak_count=5,
        zero_crossings=10,
        speech_rate_variance=0.01,
    )

    assessment = score_acoustic_metrics(metrics)

    assert assessment.score == 5
    assert len(assessment.flags) == 5
    assert assessment.is_ai_voice is True
    assert assessment.is_reading is True
    assert assessment.tone_natural is False


def test_cadence_rule_needs_zero_crossings():
    metrics = AcousticMetrics(
        volume_variance=0.2,
        silence_ratio=0.2,
        peak_count=30,
        zero_crossings=0,
        speech_rate_variance=0.01,
    )

    assessment = score_acoustic_metrics(metrics)

    assert assessment.score == 70
    assert assessment.flags == ("Constant speech rate - possible reading or AI generation",)


def test_camel_case_metrics_are_accepted():
    metrics = AcousticMetrics.model_validate(
        {
            "avgVolume": 0.12,
            "volumeVariance": 0.2,
            "silenceRatio": 1.7,
            "peakCount": -3,
            "zeroCrossings": 12.6,
            "speechRateVariance": 0.1,
        }
    )

    assert metrics.silence_ratio == 1.0
    assert metrics.peak_count == 0
    assert metrics.zero_crossings == 13


class _FakeSource:
    def __init__(self) -> None:
        self.reads = 0

    def latest_frame(self):
        self.reads += 1
        return [0.3, -0.3, 0.3, -0.3]


class _FakeDevice:
    def __init__(self) -> None:
        self.source = _FakeSource()
        self.stopped = False

    def start(self):
        return self.source

    def stop(self) -> bytes:
        self.stopped = True
        return b"recorded-media"


def test_sampler_stop_is_idempotent():
    async def scenario():
        sampler = AcousticSampler(_FakeSource(), interval_seconds=0.001)
        sampler.start()
        await asyncio.sleep(0.02)
        first = await sampler.stop()
        second = await sampler.stop()
        return sampler, first, second

    sampler, first, second = asyncio.run(scenario())

    assert sampler.extractor.frames >= 1
    assert first is second
    assert first.zero_crossings >= 3


def test_capture_ends_early_on_stop_event():
    device = _FakeDevice()

    async def scenario():
        stop_event = asyncio.Event()
        stop_event.set()
        return await capture_with_metrics(
            device,
            30.0,
            stop_event=stop_event,
            interval_seconds=0.001,
        )

    media, metrics = asyncio.run(scenario())

    assert media == b"recorded-media"
    assert device.stopped is True
    assert isinstance(metrics, AcousticMetrics)
