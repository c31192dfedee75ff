"""Image-level utilities: tile planning, tile rendering, upscaling, stitching."""

from .processing import (
    decode_image,
    detect_image_format,
    is_valid_jpeg,
    render_tile,
    stitch_images,
    upscale_image,
)
from .tiling import count_divisions, needs_tiling, plan_tiles

__all__ = [
    "count_divisions",
    "decode_image",
    "detect_image_format",
    "is_valid_jpeg",
    "needs_tiling",
    "plan_tiles",
    "render_tile",
    "stitch_images",
    "upscale_image",
]
