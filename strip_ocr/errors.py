"""Error taxonomy for the strip OCR pipeline."""

from __future__ import annotations

from typing import List, Sequence

from .model import TileFailure


class StripOcrError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(StripOcrError, ValueError):
    """Missing or invalid configuration (e.g. no OCR API key). Never retried."""


class RenderError(StripOcrError):
    """Tile extraction produced unusable pixel data."""


class OcrServiceError(StripOcrError):
    """The recognition service reported a failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(OcrServiceError):
    """HTTP 429 from the recognition service; retried with backoff."""


class ValidationError(StripOcrError, ValueError):
    """A recognized word is missing required fields."""


class TileProcessingError(StripOcrError):
    """Failure of one tile, annotated with the tile's position in the image."""

    def __init__(self, start_y: int, cause: BaseException, index: int | None = None) -> None:
        self.start_y = start_y
        self.cause = cause
        self.index = index
        super().__init__(f"tile at startY={start_y} failed: {type(cause).__name__}: {cause}")


class TileBatchError(StripOcrError):
    """Aggregate of every tile failure from one best-effort run."""

    def __init__(self, failures: Sequence[TileFailure]) -> None:
        self.failures: List[TileFailure] = list(failures)
        details = "; ".join(f"startY={f.start_y}: {f.message}" for f in self.failures)
        super().__init__(f"{len(self.failures)} tile(s) failed: {details}")


__all__ = [
    "StripOcrError",
    "ConfigError",
    "RenderError",
    "OcrServiceError",
    "RateLimitError",
    "ValidationError",
    "TileProcessingError",
    "TileBatchError",
]
