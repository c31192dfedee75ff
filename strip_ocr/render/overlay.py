"""Debug overlays: draw detection and line boxes onto the source image.

Uses PIL to draw, then converts back to numpy arrays.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ..image.processing import decode_image
from ..model import BoundingBox, Line

Color = Tuple[int, int, int]

LINE_COLOR: Color = (220, 20, 60)
LABEL_SIZE = 14


def _load_label_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default()


def draw_boxes(
    img: np.ndarray,
    boxes: Sequence[BoundingBox],
    labels: Optional[Sequence[str]] = None,
    color: Color = LINE_COLOR,
    width: int = 3,
) -> np.ndarray:
    """Draw rectangles (and optional labels above them) onto a copy of `img`.

    Doxygen:
    - @param img: Input BGR image array.
    - @param boxes: Boxes in image pixels.
    - @param labels: Optional strings aligned with `boxes`.
    - @param color: RGB outline color.
    - @param width: Outline width in pixels.
    - @return: New BGR image with the boxes drawn.
    """
    img_pil = Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
    draw = ImageDraw.Draw(img_pil)
    font = _load_label_font(LABEL_SIZE) if labels else None

    for idx, box in enumerate(boxes):
        x0, y0 = int(box.x), int(box.y)
        x1, y1 = int(box.right), int(box.bottom)
        draw.rectangle([(x0, y0), (x1, y1)], outline=color, width=width)
        if labels and idx < len(labels):
            ty = max(0, y0 - LABEL_SIZE - 4)
            # white outline keeps the label readable on dark panels
            for ox, oy in ((-1, -1), (1, -1), (-1, 1), (1, 1)):
                draw.text((x0 + ox, ty + oy), labels[idx], font=font, fill=(255, 255, 255))
            draw.text((x0, ty), labels[idx], font=font, fill=color)

    return cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)


def render_lines_overlay(image_bytes: bytes, lines: Sequence[Line]) -> bytes:
    """Return PNG bytes of the source image with numbered line boxes."""
    img = decode_image(image_bytes)
    out = draw_boxes(img, [ln.bbox for ln in lines], [str(i + 1) for i in range(len(lines))])
    ok, encoded = cv2.imencode(".png", out)
    if not ok:
        raise ValueError("PNG encoding failed")
    return encoded.tobytes()
