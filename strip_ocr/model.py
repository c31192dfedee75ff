"""Value types shared by every pipeline stage.

All types are frozen dataclasses so that results can cross threads and
serialization boundaries without identity semantics.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle: top-left corner plus extent, in pixels."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class Detection:
    """One OCR-reported text fragment."""

    text: str
    bbox: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "bbox": self.bbox.to_dict()}


@dataclass(frozen=True)
class NormalizedDetection(Detection):
    """Detection in full-image coordinates, tagged with its source tile region."""

    tile_context: Optional[BoundingBox] = None

    def to_detection(self) -> Detection:
        return Detection(text=self.text, bbox=self.bbox)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["tile_context"] = self.tile_context.to_dict() if self.tile_context else None
        return out


@dataclass(frozen=True)
class TileSpec:
    """Planned horizontal strip: rows ``[start_y, start_y + height)``."""

    start_y: int
    height: int

    @property
    def end_y(self) -> int:
        return self.start_y + self.height


@dataclass(frozen=True)
class Tile:
    """Rendered strip ready for recognition."""

    start_y: int
    width: int
    height: int
    pixel_data: bytes = field(repr=False)

    @property
    def region(self) -> BoundingBox:
        return BoundingBox(x=0, y=self.start_y, width=self.width, height=self.height)

    def metadata(self, index: Optional[int] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "start_y": self.start_y,
            "width": self.width,
            "height": self.height,
            "buffer_size": len(self.pixel_data),
        }
        if index is not None:
            out["index"] = index
        return out


@dataclass(frozen=True)
class Line:
    """Reading-order cluster of detections (one bubble or caption)."""

    text: str
    bbox: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "bbox": self.bbox.to_dict()}


@dataclass(frozen=True)
class TileFailure:
    """A tile whose rendering or recognition failed in best-effort mode."""

    index: int
    start_y: int
    error: BaseException

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "start_y": self.start_y, "error": self.message}


@dataclass(frozen=True)
class VocabularyEntry:
    term: str
    translation: str
    importance_score: float
    sense_key: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "BoundingBox",
    "Detection",
    "NormalizedDetection",
    "TileSpec",
    "Tile",
    "Line",
    "TileFailure",
    "VocabularyEntry",
]
