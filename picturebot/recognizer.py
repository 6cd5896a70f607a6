"""Intent recognition: cheap regex matching in front of the intent service."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Tuple

from services import IntentResult

logger = logging.getLogger(__name__)

FACET = "facet"

DEFAULT_PATTERNS: List[Tuple[str, str]] = [
    ("SearchPics", r"search picture(?:s)*(.*)|search pic(?:s)*(.*)"),
    ("Share", r"share picture(?:s)*(.*)|share pic(?:s)*(.*)"),
    ("Order", r"order picture(?:s)*(.*)|order print(?:s)*(.*)|order pic(?:s)*(.*)"),
    ("Help", r"help(.*)"),
]

_leading_filler = re.compile(r"^(?:of|for|about|with)\b\s*", flags=re.I)


class IntentService(Protocol):
    async def classify(self, text: str) -> IntentResult: ...


class RegExpRecognizer:
    """Ordered table of intent patterns; the first pattern that matches wins."""

    def __init__(self, patterns: Optional[List[Tuple[str, str]]] = None):
        self._intents: List[Tuple[str, re.Pattern]] = []
        for name, pattern in patterns if patterns is not None else DEFAULT_PATTERNS:
            self.add_intent(name, pattern)

    def add_intent(self, name: str, pattern: str) -> "RegExpRecognizer":
        self._intents.append((name, re.compile(pattern, flags=re.I)))
        return self

    def recognize(self, text: str) -> Optional[IntentResult]:
        text = (text or "").strip()
        if not text:
            return None

        for name, pattern in self._intents:
            m = pattern.search(text)
            if not m:
                continue
            entities: Dict[str, Any] = {}
            captured = next((g.strip() for g in m.groups() if g and g.strip()), "")
            captured = _leading_filler.sub("", captured).strip()
            if captured:
                entities[FACET] = captured
            return IntentResult(name=name, score=1.0, entities=entities)

        return None


class IntentRecognizer:
    """Resolves the intent of a turn.

    A result already attached to the turn by the regex recognizer is returned
    as-is. Otherwise the intent service is asked and its top intent is returned
    whatever the score; the dialog applies the threshold.
    """

    def __init__(self, service: IntentService):
        self.service = service

    async def resolve_intent(self, turn: Any) -> IntentResult:
        recognized: Optional[IntentResult] = getattr(turn, "recognized", None)
        if recognized is not None and recognized.name:
            return recognized

        result = await self.service.classify(turn.text)
        logger.info("Intent service: %s (%.2f)", result.name, result.score)
        return result


def get_search_query(entities: Optional[Dict[str, Any]]) -> Optional[str]:
    """Pull the search text out of the facet slot, if there is one."""
    if not entities:
        return None

    value = entities.get(FACET)
    while isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None:
        return None

    query = str(value).replace('"', "").strip("[]").strip()
    return query or None
