"""Client utilities for interacting with OpenRouter-compatible LLMs.

This module contains configuration loading and convenience helpers to
create a client and perform simple chat completions.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from openai import OpenAI

from ..errors import ConfigError

# Path to the JSON configuration file with models and keys
CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config", "models.json")
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _load_config(path: str = CONFIG_PATH) -> Dict:
    """Load and return the JSON configuration.

    Doxygen:
    - @param path: Absolute path to the JSON configuration file.
    - @return: Parsed configuration dictionary.
    - @throws ConfigError: If the file is missing or is not valid JSON.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"LLM model configuration not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"LLM model configuration is not valid JSON: {exc}") from exc


def get_picked_model(path: str = CONFIG_PATH) -> Tuple[str, str]:
    """Return the selected model id and its API key as a tuple.

    The configuration file must contain the following structure:
    - model_number_picked: integer index into the "models" array
    - models: list of items with fields:
      - provider: string (e.g., "openrouter")
      - model: string (e.g., "google/gemini-2.5-flash")
      - api_key: string

    Doxygen:
    - @param path: Absolute path to the JSON configuration file.
    - @return: (model, api_key) pair.
    - @throws ConfigError: If index is invalid or fields are missing.
    """
    cfg = _load_config(path)
    models: List[Dict] = cfg.get("models", [])
    idx = cfg.get("model_number_picked")

    if not isinstance(idx, int):
        raise ConfigError("Config must include integer 'model_number_picked'.")
    if idx < 0 or idx >= len(models):
        raise ConfigError("'model_number_picked' is out of range for available models.")

    item = models[idx]
    model = item.get("model")
    api_key = item.get("api_key")
    if not model or not api_key:
        raise ConfigError("Selected model entry must include both 'model' and 'api_key'.")
    return model, api_key


def get_openrouter_client(api_key: str) -> OpenAI:
    if not api_key:
        raise ConfigError("LLM API key not configured")
    return OpenAI(
        base_url=OPENROUTER_BASE_URL,
        api_key=api_key,
    )


def chat_completion(
    client: OpenAI,
    model: str,
    messages: List[Dict[str, str]],
    timeout: float | None = 60.0,
    response_format: Optional[Dict[str, Any]] = None,
) -> str:
    """Send a chat completion request and return text content.

    Doxygen:
    - @param client: OpenAI instance created by `get_openrouter_client`.
    - @param model: Target model identifier.
    - @param messages: List of role/content dictionaries for the chat.
    - @param timeout: Request timeout in seconds; None disables timeout.
    - @param response_format: Optional structured-output hint, e.g. {"type": "json_object"}.
    - @return: Text content of the first completion choice.
    """
    kwargs: Dict[str, Any] = {"model": model, "messages": messages, "timeout": timeout}
    if response_format is not None:
        kwargs["response_format"] = response_format
    completion = client.chat.completions.create(**kwargs)
    return completion.choices[0].message.content or ""
