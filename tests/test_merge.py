import pytest

from strip_ocr.model import BoundingBox, Detection, NormalizedDetection, Tile
from strip_ocr.ocr.merge import (
    dedupe_by_overlap,
    dedupe_by_position,
    deduplicate,
    distance_from_edge,
    is_duplicate,
    normalize_detections,
    overlap_ratio,
)


def _det(text, x, y, w, h, ctx_y=None, ctx_h=None):
    bbox = BoundingBox(x=x, y=y, width=w, height=h)
    if ctx_y is None:
        return Detection(text=text, bbox=bbox)
    return NormalizedDetection(
        text=text, bbox=bbox, tile_context=BoundingBox(x=0, y=ctx_y, width=800, height=ctx_h)
    )


def test_normalize_offsets_y_and_sets_context():
    tile = Tile(start_y=900, width=800, height=1200, pixel_data=b"x")
    out = normalize_detections(tile, [_det("안녕", 10, 20, 30, 40)])
    assert len(out) == 1
    assert out[0].bbox == BoundingBox(x=10, y=920, width=30, height=40)
    assert out[0].tile_context == BoundingBox(x=0, y=900, width=800, height=1200)
    assert out[0].text == "안녕"


def test_normalize_first_tile_is_identity():
    tile = Tile(start_y=0, width=800, height=1100, pixel_data=b"x")
    det = _det("hello", 5, 7, 11, 13)
    assert normalize_detections(tile, [det])[0].bbox == det.bbox


def test_normalize_empty():
    tile = Tile(start_y=0, width=10, height=10, pixel_data=b"x")
    assert normalize_detections(tile, []) == []


def test_distance_from_edge_uses_nearer_edge():
    det = _det("a", 0, 100, 10, 20, ctx_y=0, ctx_h=600)
    assert distance_from_edge(det) == 100
    det = _det("a", 0, 560, 10, 20, ctx_y=0, ctx_h=600)
    assert distance_from_edge(det) == 20
    assert distance_from_edge(_det("a", 0, 0, 1, 1)) == 0.0


def test_overlap_ratio_directional():
    small = BoundingBox(x=0, y=0, width=10, height=10)
    big = BoundingBox(x=0, y=0, width=20, height=20)
    assert overlap_ratio(small, big) == 1.0
    assert overlap_ratio(big, small) == 0.25
    assert is_duplicate(big, small)


def test_zero_area_boxes_only_match_identical_boxes():
    point = BoundingBox(x=5, y=5, width=0, height=0)
    assert is_duplicate(point, BoundingBox(x=5, y=5, width=0, height=0))
    assert not is_duplicate(point, BoundingBox(x=0, y=0, width=10, height=10))


def test_copies_from_two_tiles_collapse_to_one():
    first = _det("word", 100, 200, 50, 30, ctx_y=0, ctx_h=600)
    second = _det("word", 100, 200, 50, 30, ctx_y=500, ctx_h=600)
    out = deduplicate([first, second])
    assert len(out) == 1
    assert out[0] == Detection(text="word", bbox=BoundingBox(x=100, y=200, width=50, height=30))


def test_deeper_copy_replaces_edge_copy():
    # seen near the bottom cut of tile 0, then well inside tile 1
    edge = _det("edge", 10, 580, 40, 15, ctx_y=0, ctx_h=600)
    inner = _det("inner", 11, 581, 40, 15, ctx_y=500, ctx_h=600)
    out = dedupe_by_overlap([edge, inner])
    assert [d.text for d in out] == ["inner"]


def test_tie_keeps_first_copy():
    a = _det("a", 0, 300, 10, 10, ctx_y=0, ctx_h=600)
    b = _det("b", 0, 300, 10, 10, ctx_y=0, ctx_h=600)
    assert [d.text for d in dedupe_by_overlap([a, b])] == ["a"]


def test_non_overlapping_pass_through_in_order():
    dets = [_det(str(i), i * 100, 50, 40, 20, ctx_y=0, ctx_h=600) for i in range(5)]
    out = deduplicate(dets)
    assert [d.text for d in out] == ["0", "1", "2", "3", "4"]
    assert all(type(d) is Detection for d in out)


def test_deduplicate_is_idempotent():
    dets = [
        _det("a", 100, 200, 50, 30, ctx_y=0, ctx_h=600),
        _det("a", 101, 201, 50, 30, ctx_y=500, ctx_h=600),
        _det("b", 400, 540, 60, 30, ctx_y=0, ctx_h=600),
        _det("b", 402, 541, 60, 30, ctx_y=500, ctx_h=600),
        _det("c", 10, 900, 30, 30, ctx_y=500, ctx_h=600),
    ]
    once = deduplicate(dets)
    assert deduplicate(once) == once
    assert len(once) == 3


def test_exact_strategy_groups_by_rounded_corner():
    a = _det("a", 100.2, 199.8, 50, 30, ctx_y=0, ctx_h=600)
    b = _det("b", 99.9, 200.4, 50, 30, ctx_y=150, ctx_h=600)
    out = dedupe_by_position([a, b])
    # b sits 50px from its top edge versus a's 200px
    assert [d.text for d in out] == ["a"]
    assert len(deduplicate([a, b], strategy="exact")) == 1


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        deduplicate([], strategy="nearest")


def test_empty_input():
    assert deduplicate([]) == []
    assert dedupe_by_position([]) == []
