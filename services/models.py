"""Shared result types returned by the service clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ServiceError(RuntimeError):
    """An external service could not be reached or returned garbage."""


@dataclass
class IntentResult:
    name: Optional[str]
    score: float = 0.0
    entities: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """One found picture, whichever backend produced it."""

    key: Optional[str]
    title: str
    image_url: str
    source_url: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
