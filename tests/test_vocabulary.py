import json
from types import SimpleNamespace

import pytest

from strip_ocr.errors import StripOcrError
from strip_ocr.llm.vocabulary import extract_vocabulary, parse_vocabulary
from strip_ocr.model import BoundingBox, Line


def _client(content, requests):
    def create(**kwargs):
        requests.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


ENTRIES = [
    {"term": "안녕하다", "translation": "to be well", "importanceScore": 8, "senseKey": "greeting"},
    {"term": "친구", "translation": "friend", "importanceScore": "6.5", "senseKey": "person"},
]


def test_parse_bare_array():
    entries = parse_vocabulary(json.dumps(ENTRIES, ensure_ascii=False))
    assert [e.term for e in entries] == ["안녕하다", "친구"]
    assert entries[1].importance_score == 6.5
    assert entries[0].sense_key == "greeting"


def test_parse_fenced_object():
    text = "```json\n" + json.dumps({"vocabulary": ENTRIES}, ensure_ascii=False) + "\n```"
    assert len(parse_vocabulary(text)) == 2


def test_incomplete_entries_are_dropped():
    items = ENTRIES + [{"term": "x", "translation": "", "importanceScore": 1, "senseKey": "k"},
                       {"term": "y", "translation": "y", "importanceScore": "high", "senseKey": "k"},
                       "nonsense"]
    assert len(parse_vocabulary(json.dumps(items))) == 2


def test_unparsable_response_raises():
    with pytest.raises(StripOcrError):
        parse_vocabulary("I could not find any words.")


def test_extract_vocabulary_sends_dialogue_prompt():
    requests = []
    lines = [
        Line(text="안녕 친구", bbox=BoundingBox(x=0, y=0, width=10, height=10)),
        Line(text="잘 지냈어?", bbox=BoundingBox(x=0, y=200, width=10, height=10)),
    ]
    entries = extract_vocabulary(
        _client(json.dumps(ENTRIES), requests), "test/model", lines,
        target_language="english", source_language="korean",
    )
    assert len(entries) == 2
    prompt = requests[0]["messages"][0]["content"]
    assert "안녕 친구\n잘 지냈어?" in prompt
    assert "korean" in prompt and "english" in prompt
    assert requests[0]["model"] == "test/model"


def test_extract_vocabulary_requests_json_object():
    requests = []
    reply = json.dumps({"vocabulary": ENTRIES}, ensure_ascii=False)
    entries = extract_vocabulary(_client(reply, requests), "m", "안녕 친구", source_language="korean")
    assert [e.term for e in entries] == ["안녕하다", "친구"]
    assert requests[0]["response_format"] == {"type": "json_object"}
    assert "JSON object" in requests[0]["messages"][0]["content"]


def test_empty_dialogue_makes_no_request():
    requests = []
    assert extract_vocabulary(_client("[]", requests), "m", "   ") == []
    assert extract_vocabulary(_client("[]", requests), "m", []) == []
    assert requests == []
