import json
import threading
from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from strip_ocr.config import OcrSettings
from strip_ocr.errors import ConfigError, OcrServiceError, StripOcrError, TileBatchError, TileProcessingError
from strip_ocr.model import BoundingBox, Detection, Tile
from strip_ocr.ocr.base import OcrEngine
from strip_ocr.pipeline import DebugSink, extract_lines, process_image_vocabulary, recognize_image, recognize_tiles

HEIGHT = 300
WIDTH = 50


def _noise_png():
    rng = np.random.default_rng(0)
    img = rng.integers(0, 256, (HEIGHT, WIDTH, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


IMAGE = _noise_png()


def _settings(**kw):
    # threshold of a third of the payload -> three tiles: (0,110), (90,120), (190,110)
    opts = {
        "api_key": "unused",
        "size_threshold_bytes": (len(IMAGE) + 2) // 3,
        "overlap_percentage": 0.1,
        "vertical_threshold": 50,
        "max_concurrency": 3,
    }
    opts.update(kw)
    return OcrSettings(**opts)


def _tile_height(image_bytes):
    img = cv2.imdecode(np.frombuffer(image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
    return img.shape[0]


class FakeEngine(OcrEngine):
    """Returns one word 10px below each tile's top edge; `fail` decides failures per call."""

    def __init__(self, fail=None):
        self.fail = fail or (lambda height, attempt: None)
        self.calls = []
        self._lock = threading.Lock()

    def recognize(self, image_bytes, cancel_event=None):
        height = _tile_height(image_bytes)
        with self._lock:
            attempt = sum(1 for h in self.calls if h == height)
            self.calls.append(height)
        exc = self.fail(height, attempt)
        if exc is not None:
            raise exc
        return [Detection(text=f"h{height}", bbox=BoundingBox(x=5, y=10, width=20, height=12))]


class RecordingSink(DebugSink):
    enabled = True

    def __init__(self):
        self.names = []

    def save_json(self, name, data):
        json.dumps(data, default=str)
        self.names.append(name)

    def save_image(self, name, data):
        assert data
        self.names.append(name)

    def save_text(self, name, text):
        self.names.append(name)


def test_tiles_are_recognized_and_normalized():
    engine = FakeEngine()
    result = extract_lines(IMAGE, _settings(), engine=engine)
    assert sorted(engine.calls) == [110, 110, 120]
    assert [d.bbox.y for d in result.detections] == [10, 100, 200]
    assert len(result.lines) == 3
    assert result.failures == []
    assert result.error is None
    assert result.dialogue.count("\n") == 2


def test_small_image_sends_original_bytes():
    seen = []

    class Capture(FakeEngine):
        def recognize(self, image_bytes, cancel_event=None):
            seen.append(image_bytes)
            return super().recognize(image_bytes, cancel_event)

    result = recognize_image(IMAGE, _settings(size_threshold_bytes=len(IMAGE) + 1), engine=Capture())
    assert seen == [IMAGE]
    assert len(result.tiles) == 1
    assert result.detections[0].bbox.y == 10


def test_best_effort_keeps_successful_tiles():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("boom") if h == 120 else None)
    result = extract_lines(IMAGE, _settings(), engine=engine)
    assert [f.start_y for f in result.failures] == [90]
    assert [d.bbox.y for d in result.detections] == [10, 200]
    assert isinstance(result.error, TileBatchError)
    assert "startY=90" in str(result.error)
    # failed tile gets one more round
    assert engine.calls.count(120) == 2


def test_failed_tile_recovers_in_next_round():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("flaky") if h == 120 and attempt == 0 else None)
    result = recognize_image(IMAGE, _settings(), engine=engine)
    assert result.failures == []
    assert len(result.detections) == 3


def test_all_tiles_failing_raises_aggregate():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("down"))
    with pytest.raises(TileBatchError) as info:
        recognize_image(IMAGE, _settings(), engine=engine)
    assert [f.start_y for f in info.value.failures] == [0, 90, 190]
    # every tile gets both rounds
    assert len(engine.calls) == 6


def test_whole_round_failing_is_retried():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("E101 timed out") if attempt == 0 else None)
    result = extract_lines(IMAGE, _settings(max_tile_rounds=2), engine=engine)
    assert result.failures == []
    assert [d.bbox.y for d in result.detections] == [10, 100, 200]
    assert len(engine.calls) == 6


def test_consecutive_failed_rounds_stop_retrying():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("down"))
    with pytest.raises(TileBatchError):
        recognize_image(IMAGE, _settings(max_tile_rounds=5, max_failed_rounds=2), engine=engine)
    assert len(engine.calls) == 6


def test_strict_mode_raises_tile_error():
    engine = FakeEngine(fail=lambda h, attempt: OcrServiceError("boom") if h == 120 else None)
    with pytest.raises(TileProcessingError) as info:
        recognize_image(IMAGE, _settings(failure_policy="strict", max_concurrency=1), engine=engine)
    assert info.value.start_y == 90
    assert isinstance(info.value.cause, OcrServiceError)


def test_config_error_propagates_in_best_effort_mode():
    engine = FakeEngine(fail=lambda h, attempt: ConfigError("OCR_API_KEY not configured"))
    with pytest.raises(ConfigError):
        recognize_image(IMAGE, _settings(), engine=engine)


def test_missing_api_key_with_default_engine():
    with pytest.raises(ConfigError):
        extract_lines(IMAGE, _settings(api_key=""))


def test_cancelled_run_reports_every_tile():
    event = threading.Event()
    event.set()
    engine = FakeEngine()
    tiles = [Tile(start_y=0, width=10, height=10, pixel_data=b"x"), Tile(start_y=8, width=10, height=10, pixel_data=b"y")]
    outcome = recognize_tiles(tiles, engine, _settings(), cancel_event=event)
    assert engine.calls == []
    assert outcome.succeeded == 0
    assert [f.index for f in outcome.failures] == [0, 1]


def test_empty_tiles_are_never_sent():
    engine = FakeEngine()
    outcome = recognize_tiles([Tile(start_y=0, width=10, height=0, pixel_data=b"")], engine, _settings())
    assert engine.calls == []
    assert outcome.detections == [] and outcome.failures == []


def test_debug_sink_receives_every_stage():
    sink = RecordingSink()
    extract_lines(IMAGE, _settings(), engine=FakeEngine(), sink=sink)
    for name in ("original-image", "tiles-metadata", "tile-0", "tile-2-ocr", "normalized",
                 "deduplicated", "lines", "lines-overlay", "dialogue"):
        assert name in sink.names


def _stub_client(content, requests):
    def create(**kwargs):
        requests.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_process_image_vocabulary():
    requests = []
    reply = json.dumps([{"term": "h110", "translation": "tile", "importanceScore": 5, "senseKey": "tile"}])
    outcome = process_image_vocabulary(
        IMAGE, _settings(), target_language="English", engine=FakeEngine(),
        client=_stub_client(reply, requests), model="test/model",
    )
    assert [v.term for v in outcome.vocabulary] == ["h110"]
    assert requests[0]["model"] == "test/model"
    assert "h120" in requests[0]["messages"][0]["content"]
    assert outcome.to_dict()["vocabulary"][0]["importance_score"] == 5.0


def test_process_image_vocabulary_without_text():
    class Blank(FakeEngine):
        def recognize(self, image_bytes, cancel_event=None):
            return []

    requests = []
    with pytest.raises(StripOcrError, match="No text"):
        process_image_vocabulary(IMAGE, _settings(), engine=Blank(), client=_stub_client("[]", requests), model="m")
    assert requests == []
