from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import pytesseract

from .errors import ConfigError

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
CONFIG_DIR = os.path.join(PROJECT_ROOT, "config")
CONFIG_PATH = os.path.join(CONFIG_DIR, "ocr.json")
DEPENDENCIES_PATH = os.path.join(CONFIG_DIR, "dependencies.json")

FAILURE_POLICIES = ("best_effort", "strict")
DEDUP_STRATEGIES = ("overlap", "exact")


def _resolve_path(base: str, relative: str) -> str:
    return os.path.abspath(os.path.join(base, relative))


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class OcrSettings:
    """Configuration for one pipeline run.

    A missing ``api_key`` is accepted here; the OCR.space adapter rejects it
    before any request is made.
    """

    api_key: str = ""
    language: str = "kor"
    engine: int = 2
    scale: bool = False

    # Tiling
    size_threshold_bytes: int = 1 * 1024 * 1024
    overlap_percentage: float = 0.10
    jpeg_quality: int = 85

    # Fan-out and failure handling
    max_concurrency: int = 4
    failure_policy: str = "best_effort"
    max_tile_rounds: int = 2
    max_failed_rounds: int = 2

    # OCR.space request policy
    max_retries: int = 3
    initial_backoff_s: float = 1.0
    max_backoff_s: float = 30.0
    request_timeout_s: float = 60.0

    # Pre-processing
    upscale: bool = False
    upscale_factor: float = 2.0

    # Post-processing
    vertical_threshold: int = 100
    dedup_strategy: str = "overlap"
    dedup_threshold: float = 0.5

    def __post_init__(self) -> None:
        if not 0.0 <= self.overlap_percentage < 1.0:
            raise ConfigError("overlap_percentage must be within [0.0, 1.0)")
        if self.size_threshold_bytes < 0:
            raise ConfigError("size_threshold_bytes must be non-negative")
        if not 1 <= self.jpeg_quality <= 100:
            raise ConfigError("jpeg_quality must be within [1, 100]")
        if self.engine not in (1, 2):
            raise ConfigError(f"engine must be 1 or 2, got {self.engine!r}")
        if self.max_concurrency < 1:
            raise ConfigError("max_concurrency must be at least 1")
        if self.max_tile_rounds < 1:
            raise ConfigError("max_tile_rounds must be at least 1")
        if self.max_failed_rounds < 1:
            raise ConfigError("max_failed_rounds must be at least 1")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be non-negative")
        if self.failure_policy not in FAILURE_POLICIES:
            raise ConfigError(
                f"failure_policy must be one of {', '.join(FAILURE_POLICIES)}; got {self.failure_policy!r}"
            )
        if self.dedup_strategy not in DEDUP_STRATEGIES:
            raise ConfigError(
                f"dedup_strategy must be one of {', '.join(DEDUP_STRATEGIES)}; got {self.dedup_strategy!r}"
            )
        if not 0.0 < self.dedup_threshold <= 1.0:
            raise ConfigError("dedup_threshold must be within (0.0, 1.0]")
        if self.vertical_threshold < 0:
            raise ConfigError("vertical_threshold must be non-negative")
        if self.upscale_factor <= 0:
            raise ConfigError("upscale_factor must be positive")

    @property
    def strict(self) -> bool:
        return self.failure_policy == "strict"

    def with_overrides(self, **overrides: Any) -> "OcrSettings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _read_json(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as cfg_file:
            data = json.load(cfg_file) or {}
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read settings from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    return data


def load_settings(path: str = CONFIG_PATH, **overrides: Any) -> OcrSettings:
    """Build settings from config/ocr.json, then the environment, then `overrides`.

    Doxygen:
    - @param path: JSON settings file; missing file means defaults.
    - @param overrides: Explicit values; None entries are ignored.
    - @return: Validated OcrSettings.
    - @throws ConfigError: If the file is malformed or a value is out of range.
    """
    known = {f.name for f in fields(OcrSettings)}
    values: Dict[str, Any] = {}
    for key, value in _read_json(path).items():
        if key in known:
            values[key] = value
        else:
            logger.warning("Ignoring unknown setting %r in %s", key, path)

    base = OcrSettings(**values)
    values["api_key"] = (os.getenv("OCR_API_KEY") or base.api_key or "").strip()
    values["language"] = (os.getenv("OCR_LANGUAGE") or base.language).strip()
    values["engine"] = _get_int("OCR_ENGINE", base.engine)
    values["scale"] = _get_bool("OCR_SCALE", base.scale)
    values["size_threshold_bytes"] = _get_int("OCR_SIZE_THRESHOLD", base.size_threshold_bytes)
    values["overlap_percentage"] = _get_float("OCR_OVERLAP", base.overlap_percentage)
    values["max_concurrency"] = _get_int("OCR_MAX_CONCURRENCY", base.max_concurrency)
    values["failure_policy"] = (os.getenv("OCR_FAILURE_POLICY") or base.failure_policy).strip().lower()
    values["upscale"] = _get_bool("ENABLE_UPSCALE", base.upscale)

    return OcrSettings(**values).with_overrides(**overrides)


def configure_tesseract(path: str = DEPENDENCIES_PATH) -> Optional[str]:
    """Point pytesseract at the executable named in config/dependencies.json."""
    if not os.path.exists(path):
        logger.debug("dependencies.json not found at %s; using tesseract from PATH", path)
        return None

    try:
        with open(path, "r", encoding="utf-8") as deps_file:
            deps = json.load(deps_file) or {}
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not load dependencies from %s: %s", path, exc)
        return None

    tess_rel = deps.get("tesseract_path")
    if not tess_rel:
        return None
    tess_abs = _resolve_path(PROJECT_ROOT, tess_rel)
    if not os.path.exists(tess_abs):
        logger.warning("Tesseract path from config does not exist: %s", tess_abs)
        return None
    pytesseract.pytesseract.tesseract_cmd = tess_abs
    return tess_abs
