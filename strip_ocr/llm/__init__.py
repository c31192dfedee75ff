"""LLM (Large Language Model) integration package.

This package provides utilities to work with web LLM providers via
OpenRouter-compatible clients, including request helpers and vocabulary
extraction from recognized dialogue.
"""

from .client import (
    CONFIG_PATH,
    get_picked_model,
    get_openrouter_client,
    chat_completion,
)
from .language_detector import (
    detect_source_language,
    normalize_and_validate_target_language,
    resolve_source_language,
)
from .vocabulary import extract_vocabulary, parse_vocabulary

__all__ = [
    "CONFIG_PATH",
    "get_picked_model",
    "get_openrouter_client",
    "chat_completion",
    "detect_source_language",
    "normalize_and_validate_target_language",
    "resolve_source_language",
    "extract_vocabulary",
    "parse_vocabulary",
]
