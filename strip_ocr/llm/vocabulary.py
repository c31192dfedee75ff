"""Vocabulary extraction from recognized dialogue via an OpenRouter-compatible client.

The dialogue (one line per dialogue unit) is sent in a single prompt; the
model answers in JSON mode with a `vocabulary` list of study entries which
are validated into `VocabularyEntry` values.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from openai import OpenAI

from ..errors import StripOcrError
from ..model import Line, VocabularyEntry
from .client import chat_completion
from .language_detector import resolve_source_language

logger = logging.getLogger(__name__)

_ROOT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
PROMPTS_PATH = os.path.join(_ROOT_DIR, "config", "prompts.json")

_DEFAULT_PROMPTS = {
    "vocabulary": (
        "You are a language tutor preparing study material from comic dialogue. "
        "The dialogue below is written in {source_language}. Extract the words a learner "
        "should study and translate each one to {target_language}. "
        "Respond strictly with a JSON object (no explanations and no code blocks) like "
        "{\"vocabulary\": [{term: string, translation: string, importanceScore: number 1-10, senseKey: string}]}. "
        "'term' is the dictionary form in {source_language}; 'senseKey' is a short English tag "
        "that distinguishes the meaning used in this dialogue.\n\n"
        "Dialogue:\n{dialogue}"
    ),
}

_REQUIRED_FIELDS = ("term", "translation", "importanceScore", "senseKey")
_ITEMS_KEYS = ("vocabulary", "items", "words")
JSON_OBJECT_FORMAT = {"type": "json_object"}


def _load_prompts(path: str = PROMPTS_PATH) -> Dict[str, str]:
    prompts = dict(_DEFAULT_PROMPTS)
    if not os.path.exists(path):
        return prompts
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring prompt overrides in %s: %s", path, exc)
        return prompts
    if isinstance(data, dict):
        prompts.update({str(k): v for k, v in data.items() if isinstance(v, str)})
    return prompts


def _fill_prompt_template(tmpl: str, **values: str) -> str:
    """Fill only the named placeholders; literal braces in examples are preserved."""
    safe = tmpl.replace("{", "{{").replace("}", "}}")
    for key in values:
        safe = safe.replace("{{" + key + "}}", "{" + key + "}")
    return safe.format(**values)


def _strip_code_fence(text: str) -> str:
    s = text.strip()
    if s.startswith("```"):
        parts = s.split("```")
        if len(parts) >= 3:
            s = parts[1]
            if "\n" in s:
                first_line, rest = s.split("\n", 1)
                if first_line.strip().lower() in ("json", "javascript"):
                    s = rest
    return s.strip()


def _extract_json_payload(response_text: str) -> Any:
    """Return the first JSON array or object found in a model response, or None.

    Doxygen:
    - @param response_text: Raw text returned by the model.
    - @return: Parsed list/dict, or None when nothing parses.
    """
    if not response_text:
        return None
    s = _strip_code_fence(response_text)
    for opener, closer in (("[", "]"), ("{", "}")):
        start = s.find(opener)
        end = s.rfind(closer)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(s[start:end + 1])
        except json.JSONDecodeError:
            continue
    return None


def _entries_from_payload(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _ITEMS_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def parse_vocabulary(response_text: str) -> List[VocabularyEntry]:
    """Parse a model response into vocabulary entries, dropping incomplete ones.

    Doxygen:
    - @param response_text: Raw model output (bare or fenced JSON).
    - @return: Entries in response order.
    - @throws StripOcrError: If no JSON array/object can be found.
    """
    payload = _extract_json_payload(response_text)
    if payload is None:
        raise StripOcrError("Vocabulary response is not valid JSON")

    entries: List[VocabularyEntry] = []
    dropped = 0
    for item in _entries_from_payload(payload):
        if not isinstance(item, dict) or any(item.get(k) in (None, "") for k in _REQUIRED_FIELDS):
            dropped += 1
            continue
        try:
            score = float(item["importanceScore"])
        except (TypeError, ValueError):
            dropped += 1
            continue
        entries.append(
            VocabularyEntry(
                term=str(item["term"]).strip(),
                translation=str(item["translation"]).strip(),
                importance_score=score,
                sense_key=str(item["senseKey"]).strip(),
            )
        )
    if dropped:
        logger.warning("Dropped %d incomplete vocabulary entries", dropped)
    return entries


def _dialogue_text(source: Union[str, Sequence[Line], Sequence[str]]) -> str:
    if isinstance(source, str):
        return source.strip()
    parts = [ln.text if isinstance(ln, Line) else str(ln) for ln in source]
    return "\n".join(p for p in parts if p.strip())


def extract_vocabulary(
    client: OpenAI,
    model: str,
    dialogue: Union[str, Sequence[Line], Sequence[str]],
    target_language: str = "english",
    source_language: Optional[str] = None,
    timeout: float | None = 60.0,
    ocr_language: Optional[str] = None,
) -> List[VocabularyEntry]:
    """Ask the model for study vocabulary found in `dialogue`.

    Doxygen:
    - @param client: OpenAI instance created by `get_openrouter_client`.
    - @param model: Target model id.
    - @param dialogue: Newline-joined dialogue text, or the grouped lines.
    - @param target_language: Translation language name in English.
    - @param source_language: Dialogue language name; detected when omitted.
    - @param timeout: Request timeout in seconds.
    - @param ocr_language: OCR language code used as a detection fallback (e.g. 'kor').
    - @return: Parsed vocabulary entries; empty when the dialogue is empty.
    """
    text = _dialogue_text(dialogue)
    if not text:
        return []

    src_name = source_language or resolve_source_language(text.split("\n"), ocr_language)
    if not src_name:
        logger.warning("Could not determine dialogue language; prompting without it")
        src_name = "the original language"

    tmpl = _load_prompts().get("vocabulary", _DEFAULT_PROMPTS["vocabulary"])
    prompt = _fill_prompt_template(
        tmpl,
        source_language=src_name,
        target_language=target_language,
        dialogue=text,
    )
    out = chat_completion(
        client,
        model,
        messages=[{"role": "user", "content": prompt}],
        timeout=timeout,
        response_format=JSON_OBJECT_FORMAT,
    )
    entries = parse_vocabulary(out)
    logger.info("Extracted %d vocabulary entries", len(entries))
    return entries


__all__ = [
    "PROMPTS_PATH",
    "extract_vocabulary",
    "parse_vocabulary",
]
