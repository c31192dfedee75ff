"""Image helpers: decoding, tile rendering, upscaling and vertical stitching.

These utilities operate on encoded image bytes and numpy arrays (BGR) using
OpenCV.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from ..errors import RenderError
from ..model import Tile, TileSpec

logger = logging.getLogger(__name__)

JPEG_SOI = b"\xff\xd8"
JPEG_EOI = b"\xff\xd9"
PNG_SIGNATURE = b"\x89PNG"

DEFAULT_JPEG_QUALITY = 85
DEFAULT_UPSCALE = 2.0


def detect_image_format(data: bytes) -> Tuple[str, str]:
    """Return ``(mime_type, filetype)`` from the magic bytes; JPEG when unknown."""
    if data[:4] == PNG_SIGNATURE:
        return "image/png", "PNG"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg", "JPG"
    logger.warning("Unknown image format, defaulting to JPEG")
    return "image/jpeg", "JPG"


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into a BGR array.

    Doxygen:
    - @param data: Encoded image (PNG, JPEG, WebP, ...).
    - @return: uint8 array of shape (height, width, 3).
    - @throws RenderError: If the bytes cannot be decoded.
    """
    if not data:
        raise RenderError("Empty image buffer")
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if img is None:
        raise RenderError("Failed to decode image bytes")
    return img


def is_valid_jpeg(data: bytes) -> bool:
    return len(data) >= 4 and data[:2] == JPEG_SOI and data[-2:] == JPEG_EOI


def encode_jpeg(img: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    ok, encoded = cv2.imencode(".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RenderError("JPEG encoding failed")
    return encoded.tobytes()


def render_tile(img: np.ndarray, spec: TileSpec, quality: int = DEFAULT_JPEG_QUALITY) -> Tile:
    """Crop one planned strip out of `img` and re-encode it as JPEG.

    Doxygen:
    - @param img: Decoded source image (BGR).
    - @param spec: Planned strip; must lie inside the image.
    - @param quality: JPEG quality factor.
    - @return: Tile with full-image width and JPEG bytes.
    - @throws RenderError: On an out-of-bounds or empty region, or structurally invalid JPEG output.
    """
    img_h, img_w = img.shape[:2]
    if spec.height <= 0 or img_w <= 0:
        raise RenderError(f"Empty tile region at startY={spec.start_y}")
    if spec.start_y < 0 or spec.end_y > img_h:
        raise RenderError(
            f"Tile [{spec.start_y}, {spec.end_y}) lies outside image height {img_h}"
        )

    crop = img[spec.start_y:spec.end_y, 0:img_w]
    data = encode_jpeg(crop, quality)
    if not is_valid_jpeg(data):
        logger.error(
            "Invalid JPEG buffer generated for tile at startY=%d (start=%s, end=%s)",
            spec.start_y, data[:2] == JPEG_SOI, data[-2:] == JPEG_EOI,
        )
        raise RenderError(f"Invalid JPEG buffer generated for tile at startY={spec.start_y}")
    return Tile(start_y=spec.start_y, width=img_w, height=spec.height, pixel_data=data)


def upscale_image(data: bytes, scale: float = DEFAULT_UPSCALE, enabled: bool = False) -> bytes:
    """Lanczos-upscale an encoded image and return PNG bytes.

    Returns `data` unchanged when disabled or when the image cannot be processed.
    """
    if not enabled:
        return data
    try:
        img = decode_image(data)
        h, w = img.shape[:2]
        new_size = (int(round(w * scale)), int(round(h * scale)))
        resized = cv2.resize(img, new_size, interpolation=cv2.INTER_LANCZOS4)
        ok, encoded = cv2.imencode(".png", resized)
        if not ok:
            raise RenderError("PNG encoding failed")
    except (RenderError, cv2.error) as exc:
        logger.error("Image upscaling failed, returning original: %s", exc)
        return data
    out = encoded.tobytes()
    logger.info("Upscaled image x%.2f: %d -> %d bytes", scale, len(data), len(out))
    return out


def stitch_images(images: Sequence[bytes]) -> bytes:
    """Stack images top to bottom on a white canvas and return PNG bytes.

    Narrower images are left-aligned; the canvas is as wide as the widest one.
    """
    if not images:
        raise RenderError("No images provided for stitching")

    decoded: List[np.ndarray] = []
    for index, data in enumerate(images):
        try:
            decoded.append(decode_image(data))
        except RenderError as exc:
            raise RenderError(f"Invalid image at index {index}") from exc

    max_w = max(img.shape[1] for img in decoded)
    total_h = sum(img.shape[0] for img in decoded)
    canvas = np.full((total_h, max_w, 3), 255, dtype=np.uint8)
    y = 0
    for img in decoded:
        h, w = img.shape[:2]
        canvas[y:y + h, 0:w] = img
        y += h

    ok, encoded = cv2.imencode(".png", canvas)
    if not ok:
        raise RenderError("PNG encoding failed")
    logger.info("Stitched %d images into %dx%d", len(decoded), max_w, total_h)
    return encoded.tobytes()
