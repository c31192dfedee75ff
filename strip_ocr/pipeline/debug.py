"""Debug artifact sinks.

The pipeline hands intermediate stage outputs to a sink after each stage.
The default sink discards everything; `DirectorySink` keeps a timestamped
run directory under config/buffer for inspection.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "PIPELINE_DEBUG"


class DebugSink:
    """No-op sink. Subclasses persist artifacts; failures must never propagate."""

    enabled = False

    def save_json(self, name: str, data: Any) -> None:
        pass

    def save_image(self, name: str, data: bytes) -> None:
        pass

    def save_text(self, name: str, text: str) -> None:
        pass


NullSink = DebugSink


class DirectorySink(DebugSink):
    """Session directory under config/buffer/<timestamp> for pipeline artifacts.

    Debug mode keeps the directory on disk; cleanup() removes it otherwise.
    """

    enabled = True

    def __init__(self, project_root: Optional[str] = None, keep: bool = True) -> None:
        self.keep = bool(keep)
        root = project_root or os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
        base = os.path.join(root, "config", "buffer")
        ts = time.strftime("%Y%m%d-%H%M%S")
        self.base_dir = os.path.join(base, ts)
        try:
            os.makedirs(self.base_dir, exist_ok=True)
        except OSError as exc:
            logger.error("Debug artifacts disabled, cannot create %s: %s", self.base_dir, exc)
            self.enabled = False
            return
        logger.info("Debug artifacts directory: %s", self.base_dir)

    def path(self, *parts: str) -> str:
        p = os.path.join(self.base_dir, *parts)
        os.makedirs(os.path.dirname(p), exist_ok=True)
        return p

    def _write(self, name: str, mode: str, payload: Any) -> None:
        if not self.enabled:
            return
        try:
            out_path = self.path(name)
            if "b" in mode:
                with open(out_path, mode) as f:
                    f.write(payload)
            else:
                with open(out_path, mode, encoding="utf-8") as f:
                    f.write(payload)
        except OSError as exc:
            logger.error("Failed to save debug artifact %s: %s", name, exc)
            return
        logger.debug("Saved debug artifact %s", out_path)

    def save_json(self, name: str, data: Any) -> None:
        try:
            content = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialize debug artifact %s: %s", name, exc)
            return
        self._write(f"{name}.json", "w", content)

    def save_image(self, name: str, data: bytes) -> None:
        ext = ".png" if data[:4] == b"\x89PNG" else ".jpg"
        self._write(f"{name}{ext}", "wb", data)

    def save_text(self, name: str, text: str) -> None:
        self._write(f"{name}.txt", "w", text)

    def cleanup(self) -> None:
        if not self.keep:
            shutil.rmtree(self.base_dir, ignore_errors=True)


def debug_enabled() -> bool:
    return (os.getenv(DEBUG_ENV_VAR) or "").strip().lower() in {"1", "true"}


def sink_from_env(project_root: Optional[str] = None) -> DebugSink:
    if debug_enabled():
        sink = DirectorySink(project_root=project_root)
        if sink.enabled:
            return sink
    return NullSink()
