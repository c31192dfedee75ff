"""OCR.space HTTP adapter.

Sends one encoded tile per request and converts the word overlay of the
response into tile-local detections. Rate-limit responses and transport
failures are retried with exponential backoff.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..config import OcrSettings
from ..errors import ConfigError, OcrServiceError, RateLimitError, ValidationError
from ..image.processing import detect_image_format
from ..model import BoundingBox, Detection
from .base import OcrEngine

logger = logging.getLogger(__name__)

OCR_SPACE_API_URL = "https://api.ocr.space/parse/image"

_WORD_FIELDS = ("WordText", "Left", "Top", "Width", "Height")


def build_form(image_bytes: bytes, settings: OcrSettings) -> Dict[str, str]:
    """Form fields for one OCR.space request."""
    mime_type, filetype = detect_image_format(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return {
        "base64Image": f"data:{mime_type};base64,{encoded}",
        "language": settings.language,
        "isOverlayRequired": "true",
        "detectOrientation": "false",
        "isCreateSearchablePdf": "false",
        "isSearchablePdfHideTextLayer": "false",
        "scale": "true" if settings.scale else "false",
        "isTable": "false",
        "OCREngine": str(settings.engine),
        "filetype": filetype,
    }


def word_to_detection(word: Mapping[str, Any]) -> Detection:
    """Convert one overlay word into a Detection.

    Doxygen:
    - @param word: Dict with WordText, Left, Top, Width, Height.
    - @return: Detection in tile-local pixels.
    - @throws ValidationError: If a field is missing, non-numeric, negative, or the text is blank.
    """
    missing = [f for f in _WORD_FIELDS if word.get(f) is None]
    if missing:
        raise ValidationError(f"OCR word is missing fields: {', '.join(missing)}")
    text = str(word["WordText"]).strip()
    if not text:
        raise ValidationError("OCR word has empty text")
    try:
        x, y, w, h = (float(word[f]) for f in _WORD_FIELDS[1:])
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"OCR word has non-numeric geometry: {exc}") from exc
    if min(x, y, w, h) < 0:
        raise ValidationError(f"OCR word {text!r} has negative geometry")
    return Detection(text=text, bbox=BoundingBox(x=x, y=y, width=w, height=h))


def parse_ocr_response(payload: Mapping[str, Any]) -> List[Detection]:
    """Extract word detections from a successful OCR.space response.

    Malformed words are logged and dropped; a response without text yields [].
    """
    results: List[Detection] = []
    parsed_results = payload.get("ParsedResults") or []
    if not parsed_results:
        logger.debug("OCR response has no parsed results (exit code %s)", payload.get("OCRExitCode"))
        return results

    dropped = 0
    for parsed in parsed_results:
        overlay = (parsed or {}).get("TextOverlay") or {}
        for line in overlay.get("Lines") or []:
            for word in (line or {}).get("Words") or []:
                try:
                    results.append(word_to_detection(word or {}))
                except ValidationError as exc:
                    dropped += 1
                    logger.warning("Dropping OCR word: %s", exc)
    logger.debug("Parsed %d words from OCR response (%d dropped)", len(results), dropped)
    return results


def _error_message(payload: Mapping[str, Any]) -> str:
    message = payload.get("ErrorMessage")
    if isinstance(message, list):
        message = "; ".join(str(m) for m in message)
    return str(message or "Unknown error")


class OcrSpaceEngine(OcrEngine):
    """OCR.space client bound to one settings object.

    Safe to share between worker threads.
    """

    name = "ocrspace"

    def __init__(
        self,
        settings: OcrSettings,
        http_client: Optional[httpx.Client] = None,
        url: str = OCR_SPACE_API_URL,
    ) -> None:
        self.settings = settings
        self.url = url
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(settings.request_timeout_s, connect=10.0)
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def recognize(
        self, image_bytes: bytes, cancel_event: Optional[threading.Event] = None
    ) -> List[Detection]:
        """Recognize one tile.

        Doxygen:
        - @param image_bytes: Encoded tile (JPEG or PNG).
        - @param cancel_event: Set to abandon retries.
        - @return: Tile-local detections; [] when the tile has no text.
        - @throws ConfigError: If no API key is configured (no request is sent).
        - @throws OcrServiceError: On HTTP errors, exhausted retries, or a non-success exit code.
        """
        if not self.settings.api_key:
            raise ConfigError("OCR_API_KEY not configured")
        if not image_bytes:
            raise ValueError("Refusing to send an empty image to OCR")

        form = build_form(image_bytes, self.settings)
        payload = self._post_with_retry(form, cancel_event)

        exit_code = payload.get("OCRExitCode")
        if exit_code != 1:
            message = _error_message(payload)
            logger.error("OCR API returned error (exit code %s): %s", exit_code, message)
            raise OcrServiceError(f"OCR failed: {message}")
        return parse_ocr_response(payload)

    def _post(self, form: Dict[str, str]) -> Dict[str, Any]:
        response = self._client.post(
            self.url,
            headers={"apikey": self.settings.api_key},
            data=form,
            timeout=self.settings.request_timeout_s,
        )
        if response.status_code == 429:
            raise RateLimitError(f"OCR API rate limit exceeded: {response.status_code}", 429)
        if response.status_code >= 400:
            raise OcrServiceError(f"OCR API HTTP error: {response.status_code}", response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise OcrServiceError(f"OCR API returned invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            # OCR.space reports some request errors as a bare JSON string
            raise OcrServiceError(f"OCR API returned unexpected payload: {payload!r}")
        return payload

    def _post_with_retry(
        self, form: Dict[str, str], cancel_event: Optional[threading.Event]
    ) -> Dict[str, Any]:
        cfg = self.settings
        last_exc: Optional[OcrServiceError] = None
        for attempt in range(cfg.max_retries + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise OcrServiceError("OCR request cancelled")
            try:
                return self._post(form)
            except RateLimitError as exc:
                last_exc = exc
            except httpx.RequestError as exc:
                last_exc = OcrServiceError(f"OCR API request failed: {exc}")

            if attempt == cfg.max_retries:
                break
            backoff = min(cfg.initial_backoff_s * (2 ** attempt), cfg.max_backoff_s)
            logger.warning(
                "OCR attempt %d/%d failed (%s); retrying in %.1fs",
                attempt + 1, cfg.max_retries + 1, last_exc, backoff,
            )
            if cancel_event is not None:
                if cancel_event.wait(backoff):
                    raise OcrServiceError("OCR request cancelled")
            else:
                time.sleep(backoff)

        logger.error("Max retries reached for OCR request: %s", last_exc)
        raise last_exc or OcrServiceError("OCR request failed")
