"""Merging per-tile OCR output into one full-image detection set.

Overlapping tiles report the same word more than once. Copies are collapsed
and the copy seen furthest from its tile's horizontal cut edges wins, since
recognition degrades near a crop boundary.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from ..model import BoundingBox, Detection, NormalizedDetection, Tile

logger = logging.getLogger(__name__)

DEFAULT_OVERLAP_THRESHOLD = 0.5


def normalize_detections(tile: Tile, detections: Iterable[Detection]) -> List[NormalizedDetection]:
    """Shift tile-local detections into full-image coordinates.

    Doxygen:
    - @param tile: Tile the detections were recognized on.
    - @param detections: Detections in tile-local pixels.
    - @return: Detections with `y` offset by `tile.start_y` and `tile_context` set to the tile region.
    """
    context = tile.region
    return [
        NormalizedDetection(
            text=det.text,
            bbox=BoundingBox(
                x=det.bbox.x,
                y=det.bbox.y + tile.start_y,
                width=det.bbox.width,
                height=det.bbox.height,
            ),
            tile_context=context,
        )
        for det in detections
    ]


def distance_from_edge(det: Detection) -> float:
    """Vertical distance from the detection to the nearer edge of its tile.

    Detections without a tile context have no known edges and score 0.
    """
    context = getattr(det, "tile_context", None)
    if context is None:
        return 0.0
    from_top = det.bbox.y - context.y
    from_bottom = (context.y + context.height) - (det.bbox.y + det.bbox.height)
    return min(from_top, from_bottom)


def intersection_area(a: BoundingBox, b: BoundingBox) -> float:
    w = min(a.right, b.right) - max(a.x, b.x)
    h = min(a.bottom, b.bottom) - max(a.y, b.y)
    if w <= 0 or h <= 0:
        return 0.0
    return w * h


def overlap_ratio(a: BoundingBox, b: BoundingBox) -> float:
    """Fraction of `a` covered by `b`.

    A zero-area box has no coverage to measure; it counts as fully covered
    only by an identical box.
    """
    area = a.area
    if area <= 0:
        return 1.0 if a == b else 0.0
    return intersection_area(a, b) / area


def is_duplicate(a: BoundingBox, b: BoundingBox, threshold: float = DEFAULT_OVERLAP_THRESHOLD) -> bool:
    return max(overlap_ratio(a, b), overlap_ratio(b, a)) >= threshold


def _strip(detections: Sequence[Detection]) -> List[Detection]:
    return [Detection(text=d.text, bbox=d.bbox) for d in detections]


def _overlap_pass(detections: Sequence[Detection], threshold: float) -> List[Detection]:
    unique: List[Detection] = []
    for candidate in detections:
        for idx, kept in enumerate(unique):
            if is_duplicate(candidate.bbox, kept.bbox, threshold):
                if distance_from_edge(candidate) > distance_from_edge(kept):
                    unique[idx] = candidate
                break
        else:
            unique.append(candidate)
    return unique


def dedupe_by_overlap(
    detections: Sequence[Detection], threshold: float = DEFAULT_OVERLAP_THRESHOLD
) -> List[Detection]:
    """Collapse detections whose boxes cover each other by at least `threshold`.

    Candidates are visited once in input order against the accepted set; a
    duplicate replaces the accepted entry only when its distance from edge is
    strictly larger, so the first copy wins ties. A replacement can move an
    accepted box onto another accepted one, so passes repeat until the count
    is stable, at which point no two results are duplicates.
    """
    current = list(detections)
    while True:
        merged = _overlap_pass(current, threshold)
        if len(merged) == len(current):
            return merged
        current = merged


def dedupe_by_position(detections: Sequence[Detection]) -> List[Detection]:
    """Collapse detections sharing the same rounded top-left corner.

    Simpler than overlap matching but sensitive to sub-pixel jitter between tiles.
    """
    best: Dict[Tuple[int, int], Detection] = {}
    for det in detections:
        key = (int(round(det.bbox.x)), int(round(det.bbox.y)))
        existing = best.get(key)
        if existing is None or distance_from_edge(det) > distance_from_edge(existing):
            best[key] = det
    return list(best.values())


def deduplicate(
    detections: Sequence[Detection],
    strategy: str = "overlap",
    threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> List[Detection]:
    """Remove overlap-induced duplicates and drop tile context.

    Doxygen:
    - @param detections: Normalized detections from every tile, in tile order.
    - @param strategy: 'overlap' (default) or 'exact' (rounded top-left key).
    - @param threshold: Minimum mutual coverage treated as duplicate ('overlap' only).
    - @return: Plain detections, one per physical text element.
    - @throws ValueError: On an unknown strategy.
    """
    if strategy == "overlap":
        kept = dedupe_by_overlap(detections, threshold)
    elif strategy == "exact":
        kept = dedupe_by_position(detections)
    else:
        raise ValueError(f"Unknown dedup strategy: {strategy!r}")

    logger.debug(
        "Deduplication (%s): %d -> %d detections (removed %d)",
        strategy, len(detections), len(kept), len(detections) - len(kept),
    )
    return _strip(kept)
