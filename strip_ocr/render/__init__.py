"""Rendering helpers for debug overlays."""

from .overlay import draw_boxes, render_lines_overlay

__all__ = [
    "draw_boxes",
    "render_lines_overlay",
]
