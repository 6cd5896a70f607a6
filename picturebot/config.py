"""Configuration for PictureBot."""

import os
from typing import Optional

from dotenv import load_dotenv

# Pick up a .env file next to the project if there is one
load_dotenv()


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _int(name: str, default: int) -> int:
    return int(_float(name, default))


# Telegram bot token (required)
TELEGRAM_BOT_TOKEN: Optional[str] = os.environ.get("TELEGRAM_BOT_TOKEN")

# Intent service: "luis" or "openai"
INTENT_BACKEND: str = os.environ.get("INTENT_BACKEND", "luis").strip().lower()

LUIS_APP_ID: Optional[str] = os.environ.get("LUIS_APP_ID")
LUIS_KEY: Optional[str] = os.environ.get("LUIS_KEY")
LUIS_ENDPOINT: Optional[str] = os.environ.get("LUIS_ENDPOINT")

OPENAI_API_KEY: Optional[str] = os.environ.get("OPENAI_API_KEY")
OPENAI_INTENT_MODEL: str = os.environ.get("OPENAI_INTENT_MODEL", "gpt-4.1-mini")

# Azure Cognitive Search (primary picture index)
SEARCH_SERVICE_NAME: Optional[str] = os.environ.get("SEARCH_SERVICE_NAME")
SEARCH_QUERY_KEY: Optional[str] = os.environ.get("SEARCH_QUERY_KEY")
SEARCH_INDEX_NAME: str = os.environ.get("SEARCH_INDEX_NAME", "images")

# Bing image search (fallback)
BING_SEARCH_KEY: Optional[str] = os.environ.get("BING_SEARCH_KEY")
BING_SEARCH_ENDPOINT: str = os.environ.get(
    "BING_SEARCH_ENDPOINT", "https://api.bing.microsoft.com/v7.0/images/search"
)

# Conversation state: Redis in production, memory otherwise
REDIS_URL: Optional[str] = os.environ.get("REDIS_URL")

INTENT_THRESHOLD: float = _float("INTENT_THRESHOLD", 0.65)
FALLBACK_IMAGE_COUNT: int = _int("FALLBACK_IMAGE_COUNT", 5)
if FALLBACK_IMAGE_COUNT < 1:
    raise RuntimeError(f"FALLBACK_IMAGE_COUNT must be at least 1, got {FALLBACK_IMAGE_COUNT}")
TURN_TIMEOUT_SEC: float = _float("TURN_TIMEOUT_SEC", 30.0)
HTTP_TIMEOUT_SEC: float = _float("HTTP_TIMEOUT_SEC", 10.0)
