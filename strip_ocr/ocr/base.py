from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from ..model import Detection


class OcrEngine(ABC):
    """
    Interface for text recognition backends.

    IMPORTANT:
    - Engines return tile-local word boxes exactly as recognized.
    - A tile with no text yields an empty list, never an error.
    """

    name: str = "engine"

    @abstractmethod
    def recognize(
        self, image_bytes: bytes, cancel_event: Optional[threading.Event] = None
    ) -> List[Detection]:
        raise NotImplementedError

    def close(self) -> None:
        """Release held resources (HTTP sessions etc.)."""

    def __enter__(self) -> "OcrEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
