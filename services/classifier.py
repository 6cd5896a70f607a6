# services/classifier.py
"""OpenAI-backed intent classifier, a drop-in for LUIS."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx
import openai as openai_pkg
from openai import AsyncOpenAI

from .models import IntentResult, ServiceError

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

PROMPT_INTENTS_PATH = os.path.join(BASE_DIR, "prompt_intents.txt")

KNOWN_INTENTS = ("SearchPictures", "Share", "Order", "Help", "None")


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise RuntimeError(f"Prompt file not found at {path!r}.") from exc


def _safe_json_loads(s: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(s)
        return obj if isinstance(obj, dict) else None
    except ValueError:
        return None


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(max(score, 0.0), 1.0)


def parse_classification(raw: str) -> IntentResult:
    """Turn the model's JSON answer into an IntentResult.

    Unknown intents and unreadable output come back as an empty intent with a
    zero score, which the dialog treats as "not understood".
    """
    obj = _safe_json_loads(raw)
    if not obj:
        logger.warning("Intent classifier returned non-JSON output")
        return IntentResult(name=None, score=0.0)

    name = obj.get("intent")
    if name not in KNOWN_INTENTS or name == "None":
        return IntentResult(name=None, score=0.0)

    entities = obj.get("entities")
    if not isinstance(entities, dict):
        entities = {}
    entities = {k: v for k, v in entities.items() if v not in (None, "", [])}

    return IntentResult(name=name, score=_clamp_score(obj.get("score")), entities=entities)


class OpenAIIntentClassifier:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4.1-mini",
        client: Optional[AsyncOpenAI] = None,
        timeout: float = 10.0,
    ):
        if client is None:
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is not set")
            # Short timeout and no retries: the dialog apologises and moves on.
            client = AsyncOpenAI(
                api_key=api_key,
                max_retries=0,
                timeout=httpx.Timeout(timeout, connect=5.0),
            )
        self._client = client
        self.model = model
        self.instructions = _read_text(PROMPT_INTENTS_PATH)

    async def classify(self, text: str) -> IntentResult:
        try:
            resp = await self._client.responses.create(
                model=self.model,
                instructions=self.instructions,
                input=[{"role": "user", "content": [{"type": "input_text", "text": text}]}],
                text={"format": {"type": "json_object"}},
                max_output_tokens=200,
                temperature=0,
            )
        except openai_pkg.OpenAIError as exc:
            raise ServiceError(f"Intent classification failed: {exc}") from exc

        result = parse_classification((resp.output_text or "").strip())
        logger.debug("Classifier top intent %s (%.2f)", result.name, result.score)
        return result
