"""Centralized configuration loader for CellMind."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

load_dotenv(ENV_PATH)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-3-5-sonnet-20240620"
DEFAULT_CREDENTIALS_PATH = Path.home() / ".cellmind" / "credentials.json"

DEFAULT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "prompt": ("prompt", "query", "question", "instruction"),
    "data_range": ("range", "data", "area", "selection"),
    "include_previous": ("previous", "include", "prior", "last"),
}


@dataclass
class Settings:
    anthropic_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4000
    temperature: float = 0.7
    api_url: str = ANTHROPIC_API_URL
    anthropic_version: str = "2023-06-01"
    request_timeout: float = 60.0
    max_retries: int = 0
    credentials_path: Path = DEFAULT_CREDENTIALS_PATH
    log_level: str = "INFO"
    column_keywords: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_KEYWORDS))


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid value for {name}: {raw!r}") from exc


def _env_keywords(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    keywords = tuple(word.strip().lower() for word in raw.split(",") if word.strip())
    return keywords or default


def get_settings() -> Settings:
    temperature = _env_number("CELLMIND_TEMPERATURE", 0.7, float)
    if not 0.0 <= temperature <= 1.0:
        raise RuntimeError(f"CELLMIND_TEMPERATURE must be between 0 and 1, got {temperature}")

    max_tokens = _env_number("CELLMIND_MAX_TOKENS", 4000, int)
    if max_tokens <= 0:
        raise RuntimeError(f"CELLMIND_MAX_TOKENS must be positive, got {max_tokens}")

    credentials_path = os.getenv("CELLMIND_CREDENTIALS_PATH")

    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        model=os.getenv("CELLMIND_MODEL") or DEFAULT_MODEL,
        max_tokens=max_tokens,
        temperature=temperature,
        api_url=os.getenv("CELLMIND_API_URL") or ANTHROPIC_API_URL,
        anthropic_version=os.getenv("CELLMIND_ANTHROPIC_VERSION") or "2023-06-01",
        request_timeout=_env_number("CELLMIND_REQUEST_TIMEOUT", 60.0, float),
        max_retries=max(0, _env_number("CELLMIND_MAX_RETRIES", 0, int)),
        credentials_path=Path(credentials_path).expanduser() if credentials_path else DEFAULT_CREDENTIALS_PATH,
        log_level=(os.getenv("CELLMIND_LOG_LEVEL") or "INFO").upper(),
        column_keywords={
            "prompt": _env_keywords("CELLMIND_PROMPT_KEYWORDS", DEFAULT_KEYWORDS["prompt"]),
            "data_range": _env_keywords("CELLMIND_RANGE_KEYWORDS", DEFAULT_KEYWORDS["data_range"]),
            "include_previous": _env_keywords("CELLMIND_INCLUDE_KEYWORDS", DEFAULT_KEYWORDS["include_previous"]),
        },
    )
