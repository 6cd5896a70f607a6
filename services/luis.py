# services/luis.py
"""LUIS v3 prediction client (the probabilistic intent service)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .models import IntentResult, ServiceError

logger = logging.getLogger(__name__)


class LuisRecognizer:
    """Calls the LUIS prediction endpoint and returns the top-scoring intent.

    The score is returned as-is; deciding whether it is good enough belongs to
    the caller.
    """

    def __init__(
        self,
        app_id: str,
        key: str,
        endpoint: str,
        slot: str = "production",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.app_id = app_id
        self.key = key
        self.endpoint = endpoint.rstrip("/")
        self.slot = slot
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def predict_url(self) -> str:
        return f"{self.endpoint}/luis/prediction/v3.0/apps/{self.app_id}/slots/{self.slot}/predict"

    async def classify(self, text: str) -> IntentResult:
        params = {
            "subscription-key": self.key,
            "query": text,
            "show-all-intents": "true",
        }
        try:
            resp = await self._http.get(self.predict_url, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceError(f"LUIS prediction failed: {exc}") from exc

        return parse_prediction(payload)

    async def aclose(self) -> None:
        await self._http.aclose()


def parse_prediction(payload: Dict[str, Any]) -> IntentResult:
    prediction = payload.get("prediction")
    if not isinstance(prediction, dict):
        raise ServiceError("LUIS response has no prediction")

    intents = prediction.get("intents") or {}
    top = prediction.get("topIntent")

    # topIntent can be missing when the app was published without it
    if not top and intents:
        top = max(intents, key=lambda name: float((intents[name] or {}).get("score") or 0))

    score = 0.0
    if top and isinstance(intents.get(top), dict):
        score = float(intents[top].get("score") or 0.0)

    entities = prediction.get("entities") or {}
    logger.debug("LUIS top intent %s (%.2f)", top, score)
    return IntentResult(name=top, score=score, entities=dict(entities))
