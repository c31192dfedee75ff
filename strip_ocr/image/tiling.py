"""Adaptive tile planning for oversized images.

The OCR service rejects payloads above a byte limit, so a tall strip is cut
into horizontal tiles whose count grows with how far the encoded image
exceeds the limit. Neighbouring tiles share ``overlap_percentage`` of a base
tile height on each side of every cut so that text crossing a cut is seen
whole by at least one tile.
"""

from __future__ import annotations

import logging
import math
from functools import reduce
from typing import Tuple

from ..model import TileSpec

logger = logging.getLogger(__name__)

DEFAULT_SIZE_THRESHOLD = 1 * 1024 * 1024
DEFAULT_OVERLAP = 0.10


def needs_tiling(byte_length: int, size_threshold_bytes: int = DEFAULT_SIZE_THRESHOLD) -> bool:
    return byte_length >= size_threshold_bytes


def count_divisions(byte_length: int, image_height: int, size_threshold_bytes: int) -> int:
    """Number of tiles for an image, clamped to ``[1, image_height]``.

    A non-positive threshold means every payload is too big, so the image is
    cut as finely as its height allows.
    """
    if image_height <= 0:
        return 0
    if size_threshold_bytes <= 0:
        return image_height
    divisions = math.ceil(byte_length / size_threshold_bytes)
    return max(1, min(divisions, image_height))


def plan_tiles(
    byte_length: int,
    image_height: int,
    size_threshold_bytes: int = DEFAULT_SIZE_THRESHOLD,
    overlap_percentage: float = DEFAULT_OVERLAP,
) -> Tuple[TileSpec, ...]:
    """Plan horizontal tiles covering ``[0, image_height)``.

    Doxygen:
    - @param byte_length: Size of the encoded source image in bytes.
    - @param image_height: Source image height in pixels.
    - @param size_threshold_bytes: Largest payload the OCR service accepts.
    - @param overlap_percentage: Fraction of a base tile height added past each cut, in [0, 1).
    - @return: Tiles ordered top to bottom. The first starts at 0 and the last ends at `image_height`.
    - @throws ValueError: If `overlap_percentage` is outside [0, 1).
    """
    if not 0.0 <= overlap_percentage < 1.0:
        raise ValueError("overlap_percentage must be within [0.0, 1.0)")
    if image_height <= 0:
        return ()

    if size_threshold_bytes > 0 and byte_length < size_threshold_bytes:
        logger.debug("Image of %d bytes is under the %d byte threshold; single tile", byte_length, size_threshold_bytes)
        return (TileSpec(start_y=0, height=image_height),)

    divisions = count_divisions(byte_length, image_height, size_threshold_bytes)
    base_height = image_height // divisions
    remainder = image_height % divisions
    overlap_height = int(math.floor(base_height * overlap_percentage))
    last = divisions - 1
    logger.debug(
        "Tile plan: height=%d divisions=%d base=%d remainder=%d overlap=%d",
        image_height, divisions, base_height, remainder, overlap_height,
    )

    def _step(acc: Tuple[Tuple[TileSpec, ...], int], index: int) -> Tuple[Tuple[TileSpec, ...], int]:
        tiles, base_start = acc
        is_last = index == last
        start_y = 0 if index == 0 else max(0, base_start - overlap_height)
        end_y = base_start + base_height
        if is_last:
            end_y += remainder
        else:
            end_y += overlap_height
        end_y = min(image_height, end_y)
        # base_start advances by base_height only
        return tiles + (TileSpec(start_y=start_y, height=end_y - start_y),), base_start + base_height

    tiles, _ = reduce(_step, range(divisions), ((), 0))
    logger.info("Planned %d tiles for image height %d", len(tiles), image_height)
    return tiles
