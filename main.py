"""
Entry point for the strip OCR pipeline: tall image → dialogue lines (→ vocabulary).

Packages:
- strip_ocr.image: tile planning, tile rendering, upscaling, stitching
- strip_ocr.ocr: OCR.space / Tesseract backends, tile merge and line grouping
- strip_ocr.llm: OpenRouter client helpers and vocabulary extraction
- strip_ocr.pipeline: High-level orchestration (`extract_lines`, `process_image_vocabulary`)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import List

from strip_ocr.config import configure_tesseract, load_settings
from strip_ocr.errors import ConfigError, StripOcrError
from strip_ocr.image import stitch_images
from strip_ocr.llm import normalize_and_validate_target_language
from strip_ocr.ocr import OcrEngine, OcrSpaceEngine, TesseractEngine
from strip_ocr.pipeline import extract_lines, process_image_vocabulary, sink_from_env

__all__ = [
    "extract_lines",
    "process_image_vocabulary",
]


def _read_images(paths: List[str]) -> bytes:
    blobs = []
    for path in paths:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Image file not found: {path}")
        with open(path, "rb") as f:
            blobs.append(f.read())
    if len(blobs) == 1:
        return blobs[0]
    print(f"Stitching {len(blobs)} images vertically")
    return stitch_images(blobs)


def _cli() -> None:
    """CLI for extracting dialogue lines from tall comic strip images.

    --image / -i: Path to input image (repeat to stitch several images top to bottom)
    --engine: ocrspace (default) or tesseract
    --lang: OCR language code (default from config, 'kor')
    --threshold: Tile size threshold in bytes
    --overlap: Tile overlap fraction in [0, 1)
    --vertical-threshold: Line grouping distance in pixels
    --concurrency: Parallel OCR requests
    --strict: Fail on the first failing tile instead of continuing
    --json: Print the full result as JSON
    --vocab / --target: Extract study vocabulary translated to the target language
    --verbose / -v: Log pipeline progress (repeat for debug output)
    """
    import argparse

    parser = argparse.ArgumentParser(description="Extract reading-order dialogue lines from tall comic strip images.")
    parser.add_argument("--image", "-i", action="append", required=True, help="Path to input image; repeat to stitch several")
    parser.add_argument("--engine", choices=["ocrspace", "tesseract"], default="ocrspace", help="OCR backend (default: ocrspace)")
    parser.add_argument("--lang", type=str, default=None, help="OCR language code, e.g. kor, jpn, eng")
    parser.add_argument("--threshold", type=int, default=None, help="Tile size threshold in bytes (default: 1 MiB)")
    parser.add_argument("--overlap", type=float, default=None, help="Tile overlap fraction (default: 0.10)")
    parser.add_argument("--vertical-threshold", type=int, default=None, help="Max vertical distance between words of one line (default: 100)")
    parser.add_argument("--concurrency", type=int, default=None, help="Parallel OCR requests (default: 4)")
    parser.add_argument("--strict", action="store_true", help="Abort on the first failing tile")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--vocab", action="store_true", help="Extract vocabulary with the LLM from config/models.json")
    parser.add_argument("--target", "-t", type=str, default="english", help="Vocabulary target language (default: english)")
    parser.add_argument("--timeout", type=float, default=60.0, help="LLM request timeout in seconds (0 or negative for none)")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase log verbosity")

    args = parser.parse_args()

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings(
            language=args.lang,
            size_threshold_bytes=args.threshold,
            overlap_percentage=args.overlap,
            vertical_threshold=args.vertical_threshold,
            max_concurrency=args.concurrency,
            failure_policy="strict" if args.strict else None,
        )
        target = normalize_and_validate_target_language(args.target) if args.vocab else None
    except ConfigError as e:
        print(str(e))
        raise SystemExit(2)

    try:
        image_bytes = _read_images(args.image)
    except (OSError, StripOcrError) as e:
        print(str(e))
        raise SystemExit(2)

    engine: OcrEngine
    if args.engine == "tesseract":
        configure_tesseract()
        engine = TesseractEngine(language=settings.language)
    else:
        engine = OcrSpaceEngine(settings)

    sink = sink_from_env()
    timeout_value = None if args.timeout is not None and args.timeout <= 0 else args.timeout
    try:
        with engine:
            if args.vocab:
                outcome = process_image_vocabulary(
                    image_bytes,
                    settings,
                    target_language=target,
                    engine=engine,
                    sink=sink,
                    request_timeout=timeout_value,
                )
                result = outcome.pipeline
                payload = outcome.to_dict()
            else:
                result = extract_lines(image_bytes, settings, engine=engine, sink=sink)
                payload = result.to_dict()
    except StripOcrError as e:
        print(f"Error: {e}")
        raise SystemExit(1)

    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        for line in result.lines:
            print(line.text)
        if args.vocab:
            print()
            for entry in outcome.vocabulary:
                print(f"{entry.term}\t{entry.translation}\t{entry.importance_score:g}\t{entry.sense_key}")

    if result.failures:
        print(f"Warning: {len(result.failures)} tile(s) failed: {result.error}", file=sys.stderr)
    print(f"Lines extracted: {len(result.lines)}", file=sys.stderr)


if __name__ == "__main__":
    _cli()
