"""High-level pipeline: tile → OCR → merge → lines → vocabulary.

`extract_lines` is the main entry point: it turns one (possibly very tall)
image into reading-order dialogue lines. `process_image_vocabulary` adds the
LLM vocabulary step on top.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from openai import OpenAI

from ..config import OcrSettings
from ..errors import ConfigError, OcrServiceError, StripOcrError, TileBatchError, TileProcessingError
from ..image import decode_image, plan_tiles, render_tile, upscale_image
from ..llm import (
    extract_vocabulary,
    get_openrouter_client,
    get_picked_model,
    normalize_and_validate_target_language,
)
from ..model import Detection, Line, NormalizedDetection, Tile, TileFailure, VocabularyEntry
from ..ocr import OcrEngine, OcrSpaceEngine, deduplicate, group_detections_to_lines, join_dialogue, normalize_detections
from ..render import render_lines_overlay
from .debug import DebugSink, NullSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionResult:
    """Deduplicated full-image detections plus per-tile bookkeeping."""

    detections: List[Detection]
    tiles: List[Tile] = field(default_factory=list, repr=False)
    failures: List[TileFailure] = field(default_factory=list)

    @property
    def error(self) -> Optional[TileBatchError]:
        return TileBatchError(self.failures) if self.failures else None


@dataclass(frozen=True)
class PipelineResult:
    """Terminal output: reading-order lines and the detections they were built from."""

    lines: List[Line]
    detections: List[Detection] = field(default_factory=list)
    failures: List[TileFailure] = field(default_factory=list)

    @property
    def dialogue(self) -> str:
        return join_dialogue(self.lines)

    @property
    def error(self) -> Optional[TileBatchError]:
        return TileBatchError(self.failures) if self.failures else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [ln.to_dict() for ln in self.lines],
            "detections": [d.to_dict() for d in self.detections],
            "failures": [f.to_dict() for f in self.failures],
            "dialogue": self.dialogue,
        }


@dataclass(frozen=True)
class VocabularyResult:
    pipeline: PipelineResult
    vocabulary: List[VocabularyEntry]

    def to_dict(self) -> Dict[str, Any]:
        out = self.pipeline.to_dict()
        out["vocabulary"] = [v.to_dict() for v in self.vocabulary]
        return out


class TileOutcome(NamedTuple):
    detections: List[NormalizedDetection]
    failures: List[TileFailure]
    succeeded: int


def _is_empty(tile: Tile) -> bool:
    return tile.width <= 0 or tile.height <= 0 or not tile.pixel_data


def _recognize_one(
    engine: OcrEngine, tile: Tile, cancel_event: threading.Event
) -> List[Detection]:
    if cancel_event.is_set():
        raise OcrServiceError("OCR request cancelled")
    return engine.recognize(tile.pixel_data, cancel_event=cancel_event)


def recognize_tiles(
    tiles: Sequence[Tile],
    engine: OcrEngine,
    settings: OcrSettings,
    cancel_event: Optional[threading.Event] = None,
    sink: Optional[DebugSink] = None,
    indices: Optional[Sequence[int]] = None,
) -> TileOutcome:
    """Run OCR over every tile concurrently and normalize the results.

    Failed tiles are retried in later rounds (up to `settings.max_tile_rounds`).
    Retries end early once `settings.max_failed_rounds` consecutive rounds
    finish without a single success.

    Doxygen:
    - @param tiles: Rendered tiles, in top-to-bottom order.
    - @param engine: Recognition backend shared by all workers.
    - @param settings: Concurrency, rounds and failure policy.
    - @param cancel_event: Set to stop pending tiles; strict mode sets it on the first failure.
    - @param sink: Debug sink receiving per-tile OCR output.
    - @param indices: Tile numbers used in failures and artifact names; defaults to positions.
    - @return: TileOutcome with normalized detections in tile order.
    - @throws ConfigError: Immediately, regardless of failure policy.
    - @throws TileProcessingError: In strict mode, for the first failing tile.
    """
    sink = sink or NullSink()
    cancel_event = cancel_event or threading.Event()
    indices = list(indices) if indices is not None else list(range(len(tiles)))
    by_index: Dict[int, Tile] = dict(zip(indices, tiles))

    results: Dict[int, List[Detection]] = {}
    errors: Dict[int, BaseException] = {}

    pending = []
    for idx, tile in by_index.items():
        if _is_empty(tile):
            logger.warning("Skipping empty tile %d at startY=%d", idx, tile.start_y)
            continue
        pending.append(idx)

    failed_rounds = 0
    for round_no in range(1, settings.max_tile_rounds + 1):
        if not pending or cancel_event.is_set():
            break
        if round_no > 1:
            logger.warning("Retrying %d failed tile(s), round %d/%d", len(pending), round_no, settings.max_tile_rounds)

        succeeded = 0
        failed: List[int] = []
        max_workers = max(1, min(settings.max_concurrency, len(pending)))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_index = {
                executor.submit(_recognize_one, engine, by_index[idx], cancel_event): idx
                for idx in pending
            }
            for future in as_completed(future_to_index):
                idx = future_to_index[future]
                tile = by_index[idx]
                try:
                    detections = future.result()
                except ConfigError:
                    cancel_event.set()
                    for other in future_to_index:
                        other.cancel()
                    raise
                except StripOcrError as exc:
                    if settings.strict:
                        cancel_event.set()
                        for other in future_to_index:
                            other.cancel()
                        raise TileProcessingError(tile.start_y, exc, index=idx) from exc
                    logger.warning("Tile %d at startY=%d failed: %s", idx, tile.start_y, exc)
                    errors[idx] = exc
                    failed.append(idx)
                    continue
                results[idx] = detections
                errors.pop(idx, None)
                succeeded += 1
                if not detections:
                    logger.warning("Tile %d at startY=%d returned no text", idx, tile.start_y)
                logger.debug("Tile %d: %d detections", idx, len(detections))
                sink.save_json(f"tile-{idx}-ocr", [d.to_dict() for d in detections])

        pending = sorted(failed)
        failed_rounds = failed_rounds + 1 if succeeded == 0 else 0
        if pending and failed_rounds >= settings.max_failed_rounds:
            logger.warning("%d round(s) in a row without a successful tile; giving up", failed_rounds)
            break

    if cancel_event.is_set():
        for idx in by_index:
            if idx not in results and idx not in errors and not _is_empty(by_index[idx]):
                errors[idx] = OcrServiceError("OCR request cancelled")

    normalized: List[NormalizedDetection] = []
    for idx in sorted(results):
        normalized.extend(normalize_detections(by_index[idx], results[idx]))

    failures = [TileFailure(index=idx, start_y=by_index[idx].start_y, error=errors[idx]) for idx in sorted(errors)]
    return TileOutcome(normalized, failures, len(results))


def _prepare_tiles(
    image_bytes: bytes, settings: OcrSettings, sink: DebugSink
) -> Tuple[List[Tile], List[int], List[TileFailure]]:
    img = decode_image(image_bytes)
    img_h, img_w = img.shape[:2]
    specs = plan_tiles(len(image_bytes), img_h, settings.size_threshold_bytes, settings.overlap_percentage)
    logger.debug("Source image %dx%d, %d bytes", img_w, img_h, len(image_bytes))

    if len(specs) == 1 and specs[0].start_y == 0 and specs[0].height == img_h:
        # the whole image fits in one request: send the original encoding
        tiles = [Tile(start_y=0, width=img_w, height=img_h, pixel_data=image_bytes)]
        sink.save_json("tiles-metadata", [tiles[0].metadata(0)])
        return tiles, [0], []

    tiles: List[Tile] = []
    indices: List[int] = []
    failures: List[TileFailure] = []
    for idx, spec in enumerate(specs):
        try:
            tile = render_tile(img, spec, settings.jpeg_quality)
        except StripOcrError as exc:
            if settings.strict:
                raise TileProcessingError(spec.start_y, exc, index=idx) from exc
            logger.warning("Tile %d at startY=%d could not be rendered: %s", idx, spec.start_y, exc)
            failures.append(TileFailure(index=idx, start_y=spec.start_y, error=exc))
            continue
        tiles.append(tile)
        indices.append(idx)
        sink.save_image(f"tile-{idx}", tile.pixel_data)

    sink.save_json("tiles-metadata", [t.metadata(i) for i, t in zip(indices, tiles)])
    return tiles, indices, failures


def recognize_image(
    image_bytes: bytes,
    settings: OcrSettings,
    engine: Optional[OcrEngine] = None,
    sink: Optional[DebugSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RecognitionResult:
    """Tile, recognize, normalize and deduplicate one image.

    Doxygen:
    - @param image_bytes: Encoded source image.
    - @param settings: Pipeline settings.
    - @param engine: OCR backend; an OcrSpaceEngine is created (and closed) when omitted.
    - @param sink: Debug artifact sink; no-op by default.
    - @param cancel_event: Optional cancellation flag propagated to OCR calls.
    - @return: RecognitionResult with deduplicated full-image detections.
    - @throws ConfigError: On missing credentials.
    - @throws TileProcessingError: In strict mode, on the first failing tile.
    - @throws TileBatchError: In best-effort mode, when no tile succeeded.
    """
    sink = sink or NullSink()
    if settings.upscale:
        image_bytes = upscale_image(image_bytes, settings.upscale_factor, enabled=True)
    sink.save_image("original-image", image_bytes)

    tiles, indices, failures = _prepare_tiles(image_bytes, settings, sink)

    owns_engine = engine is None
    engine = engine or OcrSpaceEngine(settings)
    try:
        outcome = recognize_tiles(tiles, engine, settings, cancel_event=cancel_event, sink=sink, indices=indices)
    finally:
        if owns_engine:
            engine.close()

    failures = sorted(failures + outcome.failures, key=lambda f: f.index)
    if failures and outcome.succeeded == 0:
        logger.error("All %d tile(s) failed", len(failures))
        raise TileBatchError(failures)
    if failures:
        logger.warning("%d tile(s) failed; continuing with %d successful tile(s)", len(failures), outcome.succeeded)

    sink.save_json("normalized", [d.to_dict() for d in outcome.detections])
    detections = deduplicate(outcome.detections, settings.dedup_strategy, settings.dedup_threshold)
    sink.save_json("deduplicated", [d.to_dict() for d in detections])
    logger.info(
        "OCR complete: %d detections (%d before deduplication) from %d tile(s)",
        len(detections), len(outcome.detections), outcome.succeeded,
    )
    return RecognitionResult(detections=detections, tiles=tiles, failures=failures)


def extract_lines(
    image_bytes: bytes,
    settings: OcrSettings,
    engine: Optional[OcrEngine] = None,
    sink: Optional[DebugSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> PipelineResult:
    """Run OCR over the image and group the detections into reading-order lines."""
    sink = sink or NullSink()
    recognition = recognize_image(image_bytes, settings, engine=engine, sink=sink, cancel_event=cancel_event)
    lines = group_detections_to_lines(recognition.detections, settings.vertical_threshold)
    logger.info("Grouped %d detections into %d line(s)", len(recognition.detections), len(lines))

    sink.save_json("lines", [ln.to_dict() for ln in lines])
    if sink.enabled and lines:
        try:
            sink.save_image("lines-overlay", render_lines_overlay(image_bytes, lines))
        except (StripOcrError, ValueError) as exc:
            logger.error("Failed to render lines overlay: %s", exc)
    result = PipelineResult(lines=lines, detections=recognition.detections, failures=recognition.failures)
    sink.save_text("dialogue", result.dialogue)
    return result


def process_image_vocabulary(
    image_bytes: bytes,
    settings: OcrSettings,
    target_language: str = "english",
    engine: Optional[OcrEngine] = None,
    sink: Optional[DebugSink] = None,
    client: Optional[OpenAI] = None,
    model: Optional[str] = None,
    request_timeout: float | None = 60.0,
    cancel_event: Optional[threading.Event] = None,
) -> VocabularyResult:
    """Extract dialogue lines from the image, then study vocabulary from the dialogue.

    Doxygen:
    - @param image_bytes: Encoded source image.
    - @param settings: Pipeline settings.
    - @param target_language: Translation language name in English.
    - @param engine: OCR backend (OCR.space by default).
    - @param sink: Debug artifact sink.
    - @param client: LLM client; built from config/models.json when omitted.
    - @param model: LLM model id; read from config/models.json when omitted.
    - @param request_timeout: LLM request timeout in seconds.
    - @param cancel_event: Optional cancellation flag for OCR calls.
    - @return: VocabularyResult with the lines and the extracted entries.
    - @throws StripOcrError: If the image contains no recognizable text.
    """
    target = normalize_and_validate_target_language(target_language)
    sink = sink or NullSink()

    result = extract_lines(image_bytes, settings, engine=engine, sink=sink, cancel_event=cancel_event)
    if not result.detections:
        raise StripOcrError("No text detected in image")
    if not result.lines:
        raise StripOcrError("No dialogue lines could be grouped from the detected text")

    if client is None or model is None:
        picked_model, api_key = get_picked_model()
        model = model or picked_model
        client = client or get_openrouter_client(api_key)

    entries = extract_vocabulary(
        client,
        model,
        result.lines,
        target_language=target,
        timeout=request_timeout,
        ocr_language=settings.language,
    )
    sink.save_json("vocabulary", [e.to_dict() for e in entries])
    return VocabularyResult(pipeline=result, vocabulary=entries)
