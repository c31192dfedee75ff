"""Local recognition backend built on top of pytesseract and OpenCV.

Useful for offline runs and for images the hosted service refuses.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
import pandas as pd
import pytesseract

from ..errors import ConfigError, OcrServiceError
from ..image.processing import decode_image
from ..model import BoundingBox, Detection
from .base import OcrEngine

logger = logging.getLogger(__name__)


def build_dataframe_from_tesseract(data: Dict[str, Any], conf_threshold: float = 0) -> pd.DataFrame:
    """Create and clean a DataFrame from pytesseract.image_to_data output.

    Doxygen:
    - @param data: Dict returned by `pytesseract.image_to_data(..., output_type=Output.DICT)`.
    - @param conf_threshold: Rows with confidence at or below this are dropped.
    - @return: Filtered DataFrame with text, confidence and geometry columns.
    """
    df = pd.DataFrame(data)
    if df.empty:
        return df
    df['conf'] = pd.to_numeric(df['conf'], errors='coerce').fillna(-1)
    df = df[df['conf'] > max(0, conf_threshold)].copy()
    df['text'] = df['text'].fillna('').astype(str).str.strip()
    df = df[df['text'] != '']
    return df


def detections_from_dataframe(df: pd.DataFrame) -> List[Detection]:
    if df.empty:
        return []
    return [
        Detection(
            text=str(row.text),
            bbox=BoundingBox(
                x=int(row.left),
                y=int(row.top),
                width=int(row.width),
                height=int(row.height),
            ),
        )
        for row in df.itertuples(index=False)
    ]


def preprocess_image_for_ocr(img_bgr: np.ndarray) -> np.ndarray:
    """Denoise and binarize a BGR image to improve Tesseract accuracy.

    Doxygen:
    - @param img_bgr: Input image in BGR format.
    - @return: Preprocessed BGR image.
    """
    gray = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2GRAY)
    gray = cv2.bilateralFilter(gray, d=7, sigmaColor=50, sigmaSpace=50)
    th = cv2.adaptiveThreshold(gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                               cv2.THRESH_BINARY, 31, 10)
    th = cv2.medianBlur(th, 3)
    return cv2.cvtColor(th, cv2.COLOR_GRAY2BGR)


class TesseractEngine(OcrEngine):
    """Word-level recognition with a local Tesseract install."""

    name = "tesseract"

    def __init__(self, language: str = "kor", min_confidence: float = 30, preprocess: bool = False) -> None:
        self.language = language
        self.min_confidence = min_confidence
        self.preprocess = preprocess

    def recognize(
        self, image_bytes: bytes, cancel_event: Optional[threading.Event] = None
    ) -> List[Detection]:
        img = decode_image(image_bytes)
        if self.preprocess:
            img = preprocess_image_for_ocr(img)
        rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
        try:
            data = pytesseract.image_to_data(rgb, lang=self.language, output_type=pytesseract.Output.DICT)
        except pytesseract.TesseractNotFoundError as exc:
            raise ConfigError("Tesseract executable not found; set tesseract_path in config/dependencies.json") from exc
        except pytesseract.TesseractError as exc:
            raise OcrServiceError(f"Tesseract failed: {exc}") from exc
        detections = detections_from_dataframe(build_dataframe_from_tesseract(data, self.min_confidence))
        logger.debug("Tesseract recognized %d words", len(detections))
        return detections
