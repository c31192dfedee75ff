import cv2
import numpy as np

from strip_ocr.model import BoundingBox, Line
from strip_ocr.render.overlay import draw_boxes, render_lines_overlay


def test_draw_boxes_changes_outline_pixels_only():
    # White image
    img = np.full((100, 200, 3), 255, dtype=np.uint8)
    out = draw_boxes(img, [BoundingBox(x=50, y=30, width=100, height=40)])
    assert out.shape == img.shape
    # Outline drawn on the box edge, interior untouched
    assert out[30, 100].tolist() != [255, 255, 255]
    assert out[50, 100].tolist() == [255, 255, 255]
    # Input is not modified in place
    assert (img == 255).all()


def test_render_lines_overlay_returns_png():
    ok, buf = cv2.imencode(".png", np.full((120, 80, 3), 255, dtype=np.uint8))
    assert ok
    lines = [Line(text="안녕", bbox=BoundingBox(x=10, y=40, width=30, height=20))]
    out = render_lines_overlay(buf.tobytes(), lines)
    assert out[:4] == b"\x89PNG"
    decoded = cv2.imdecode(np.frombuffer(out, dtype=np.uint8), cv2.IMREAD_COLOR)
    assert decoded.shape[:2] == (120, 80)
