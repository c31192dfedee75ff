"""Source-language detection for OCR dialogue and target-language validation."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from langdetect import DetectorFactory, LangDetectException, detect_langs

from ..errors import ConfigError

DetectorFactory.seed = 0

MIN_DETECTION_PROB = 0.5

_LANG_CODE_TO_ENGLISH = {
    "en": "english",
    "ko": "korean",
    "ja": "japanese",
    "zh-cn": "chinese",
    "zh-tw": "chinese",
    "ru": "russian",
    "de": "german",
    "fr": "french",
    "es": "spanish",
    "it": "italian",
    "pt": "portuguese",
}

# OCR.space / Tesseract three-letter language codes
_OCR_LANGUAGE_TO_ENGLISH = {
    "eng": "english",
    "kor": "korean",
    "jpn": "japanese",
    "chs": "chinese",
    "cht": "chinese",
    "chi_sim": "chinese",
    "chi_tra": "chinese",
    "rus": "russian",
    "ger": "german",
    "deu": "german",
    "fre": "french",
    "fra": "french",
    "spa": "spanish",
    "ita": "italian",
    "por": "portuguese",
}

_ALLOWED_TARGET_LANGUAGES = set(_LANG_CODE_TO_ENGLISH.values())


def _sample_text(texts: Iterable[str], limit: int = 4000) -> str:
    chunks: List[str] = []
    total_len = 0
    for t in texts:
        s = str(t or "").strip()
        if not s:
            continue
        chunks.append(s)
        total_len += len(s)
        if total_len >= limit:
            break
    return "\n".join(chunks)


def detect_source_language(texts: Iterable[str]) -> Tuple[str | None, float | None]:
    sample = _sample_text(texts)
    if not sample:
        return None, None
    try:
        candidates = detect_langs(sample)
    except LangDetectException:
        return None, None
    if not candidates:
        return None, None
    best = max(candidates, key=lambda c: c.prob)
    lang = best.lang
    code = lang if lang in ("zh-cn", "zh-tw") else lang.split("-")[0]
    return code, float(best.prob)


def map_lang_code_to_english_name(code: str | None) -> str | None:
    if not code:
        return None
    code = code.lower()
    if code in _LANG_CODE_TO_ENGLISH:
        return _LANG_CODE_TO_ENGLISH[code]
    return _LANG_CODE_TO_ENGLISH.get(code.split("-")[0])


def ocr_language_name(ocr_language: str | None) -> str | None:
    """English name for an OCR engine language code such as 'kor'."""
    if not ocr_language:
        return None
    return _OCR_LANGUAGE_TO_ENGLISH.get(ocr_language.strip().lower())


def resolve_source_language(texts: Iterable[str], ocr_language: str | None = None) -> str | None:
    """Name the dialogue language: confident detection first, then the OCR language hint."""
    code, prob = detect_source_language(texts)
    if code and (prob or 0.0) >= MIN_DETECTION_PROB:
        name = map_lang_code_to_english_name(code)
        if name:
            return name
    return ocr_language_name(ocr_language)


def normalize_and_validate_target_language(name: str) -> str:
    if not name:
        raise ConfigError(
            "Target language name must be provided in English, e.g. 'english', 'german', 'spanish'."
        )
    norm = str(name).strip().lower()
    if norm not in _ALLOWED_TARGET_LANGUAGES:
        allowed = ", ".join(sorted(_ALLOWED_TARGET_LANGUAGES))
        raise ConfigError(
            f"Target language must be specified in English. Got: '{name}'. "
            f"Allowed values: {allowed}."
        )
    return norm


__all__ = [
    "detect_source_language",
    "map_lang_code_to_english_name",
    "normalize_and_validate_target_language",
    "ocr_language_name",
    "resolve_source_language",
]
