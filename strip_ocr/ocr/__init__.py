"""OCR (Optical Character Recognition) stage.

This package includes the recognition backends (OCR.space, Tesseract), the
tile-to-image coordinate merge with duplicate removal, and line grouping.
"""

from .base import OcrEngine
from .merge import (
    dedupe_by_overlap,
    dedupe_by_position,
    deduplicate,
    distance_from_edge,
    is_duplicate,
    normalize_detections,
    overlap_ratio,
)
from .ocr_space import OcrSpaceEngine, parse_ocr_response
from .reader import enclosing_box, group_detections_to_lines, join_dialogue
from .tesseract import TesseractEngine

__all__ = [
    "OcrEngine",
    "OcrSpaceEngine",
    "TesseractEngine",
    "dedupe_by_overlap",
    "dedupe_by_position",
    "deduplicate",
    "distance_from_edge",
    "enclosing_box",
    "group_detections_to_lines",
    "is_duplicate",
    "join_dialogue",
    "normalize_detections",
    "overlap_ratio",
    "parse_ocr_response",
]
