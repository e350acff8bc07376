"""Skill assessment pipeline package.

Modules are organised by the order in which `/ai/analyze-assessment` executes:

1. `acoustics`: capture-side feature extraction and heuristic audio scoring.
2. `ingestion`: resolve the media reference to bytes.
3. `originality`: spontaneous vs read/memorized/synthetic speech.
4. `correctness`: grade the transcript against the expected answer.
5. `decision`: the pure decision table and composite score.
6. `persistence`: review fields written to `skill_assessments`.
7. `orchestrator`: runs the above once per submission.

Transcription, text generation, storage and retention live in
`skillcheck.services` because they wrap external systems.
"""

from .acoustics import (
    AcousticFeatureExtractor,
    AcousticSampler,
    CaptureDevice,
    FrameSource,
    capture_with_metrics,
    score_acoustic_metrics,
)
from .contracts import (
    AcousticMetrics,
    AnalysisResult,
    CorrectnessVerdict,
    Decision,
    OriginalityVerdict,
    SpeechPattern,
)
from .correctness import CorrectnessGrader
from .decision import combine_signals, composite_score, decide, summarise
from .ingestion import MediaDownloadError, decode_base64_media, load_media
from .orchestrator import PipelineOrchestrator, get_pipeline_orchestrator
from .originality import OriginalityClassifier
from .persistence import build_review_update
from .types import AcousticAssessment, DecisionOutcome, LocalizedText, Submission

__all__ = [
    "AcousticAssessment",
    "AcousticFeatureExtractor",
    "AcousticMetrics",
    "AcousticSampler",
    "AnalysisResult",
    "CaptureDevice",
    "CorrectnessGrader",
    "CorrectnessVerdict",
    "Decision",
    "DecisionOutcome",
    "FrameSource",
    "LocalizedText",
    "MediaDownloadError",
    "OriginalityClassifier",
    "OriginalityVerdict",
    "PipelineOrchestrator",
    "SpeechPattern",
    "Submission",
    "build_review_update",
    "capture_with_metrics",
    "combine_signals",
    "composite_score",
    "decide",
    "decode_base64_media",
    "get_pipeline_orchestrator",
    "load_media",
    "score_acoustic_metrics",
    "summarise",
]
