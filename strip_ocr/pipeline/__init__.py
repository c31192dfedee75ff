"""High-level pipeline orchestration for tile → OCR → lines → vocabulary."""

from .debug import DebugSink, DirectorySink, NullSink, sink_from_env
from .process import (
    PipelineResult,
    RecognitionResult,
    TileOutcome,
    VocabularyResult,
    extract_lines,
    process_image_vocabulary,
    recognize_image,
    recognize_tiles,
)

__all__ = [
    "DebugSink",
    "DirectorySink",
    "NullSink",
    "sink_from_env",
    "PipelineResult",
    "RecognitionResult",
    "TileOutcome",
    "VocabularyResult",
    "extract_lines",
    "process_image_vocabulary",
    "recognize_image",
    "recognize_tiles",
]
