"""Line grouping for deduplicated OCR detections.

This module provides:
- Clustering detections into dialogue units by vertical proximity.
- Reading-order assembly of each unit's text.
- Enclosing boxes for grouped detections.
"""

from __future__ import annotations

import logging
from functools import cmp_to_key
from typing import List, Sequence

import numpy as np

from ..model import BoundingBox, Detection, Line

logger = logging.getLogger(__name__)

DEFAULT_VERTICAL_THRESHOLD = 100
ROW_TOLERANCE_RATIO = 0.2


def sort_by_vertical_position(detections: Sequence[Detection]) -> List[Detection]:
    return sorted(detections, key=lambda d: d.bbox.y)


def group_by_proximity(sorted_detections: Sequence[Detection], threshold: float) -> List[List[Detection]]:
    """Split y-sorted detections wherever consecutive items are more than `threshold` apart.

    Doxygen:
    - @param sorted_detections: Detections sorted by ascending `bbox.y`.
    - @param threshold: Largest vertical step that stays within a group.
    - @return: Groups in top-to-bottom order; every detection is in exactly one group.
    """
    groups: List[List[Detection]] = []
    current: List[Detection] = []
    for det in sorted_detections:
        if not current or abs(det.bbox.y - current[-1].bbox.y) <= threshold:
            current.append(det)
        else:
            groups.append(current)
            current = [det]
    if current:
        groups.append(current)
    return groups


def median_height(group: Sequence[Detection]) -> float:
    """Median box height; the mean of the two middle values for even counts."""
    if not group:
        return 0.0
    return float(np.median([d.bbox.height for d in group]))


def reading_order(group: Sequence[Detection]) -> List[Detection]:
    """Sort a group left-to-right within a visual row, top-to-bottom across rows.

    Two detections share a row when their tops differ by at most 20% of the
    group's median height.
    """
    tolerance = median_height(group) * ROW_TOLERANCE_RATIO

    def _compare(a: Detection, b: Detection) -> float:
        if abs(a.bbox.y - b.bbox.y) <= tolerance:
            return a.bbox.x - b.bbox.x
        return a.bbox.y - b.bbox.y

    return sorted(group, key=cmp_to_key(_compare))


def combine_group_text(group: Sequence[Detection]) -> str:
    return " ".join(d.text for d in reading_order(group))


def enclosing_box(boxes: Sequence[BoundingBox]) -> BoundingBox:
    """Minimal rectangle containing every box.

    Doxygen:
    - @param boxes: Non-empty list of boxes.
    - @return: Combined box.
    """
    min_x = min(b.x for b in boxes)
    min_y = min(b.y for b in boxes)
    max_x = max(b.right for b in boxes)
    max_y = max(b.bottom for b in boxes)
    return BoundingBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


def finalize_line(group: Sequence[Detection]) -> Line:
    if len(group) == 1:
        return Line(text=group[0].text, bbox=group[0].bbox)
    return Line(text=combine_group_text(group), bbox=enclosing_box([d.bbox for d in group]))


def group_detections_to_lines(
    detections: Sequence[Detection], vertical_threshold: float = DEFAULT_VERTICAL_THRESHOLD
) -> List[Line]:
    """Cluster detections into reading-order lines (speech bubbles / captions).

    Doxygen:
    - @param detections: Deduplicated detections in full-image coordinates.
    - @param vertical_threshold: Max vertical step between consecutive detections of one line.
    - @return: Lines ordered top to bottom; empty for empty input.
    """
    if not detections:
        return []
    groups = group_by_proximity(sort_by_vertical_position(detections), vertical_threshold)
    lines = [finalize_line(g) for g in groups]
    logger.debug("Grouped %d detections into %d lines", len(detections), len(lines))
    return lines


def join_dialogue(lines: Sequence[Line]) -> str:
    return "\n".join(line.text for line in lines)
