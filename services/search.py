# services/search.py
"""Picture search: Azure Cognitive Search index first, Bing images second."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import SearchHit, ServiceError

logger = logging.getLogger(__name__)

SEARCH_API_VERSION = "2023-11-01"
BING_IMAGES_ENDPOINT = "https://api.bing.microsoft.com/v7.0/images/search"

# index field -> SearchHit attribute
DEFAULT_FIELD_MAP: Dict[str, str] = {
    "key": "rid",
    "title": "FileName",
    "image_url": "BlobUri",
    "description": "Caption",
    "tags": "Tags",
}


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if str(t).strip()]
    return []


def to_search_hit(record: Dict[str, Any], field_map: Optional[Dict[str, str]] = None) -> SearchHit:
    """Map one index document onto a SearchHit."""
    fm = field_map or DEFAULT_FIELD_MAP
    image_url = _as_str(record.get(fm["image_url"])) or ""
    return SearchHit(
        key=_as_str(record.get(fm["key"])),
        title=_as_str(record.get(fm["title"])) or image_url,
        image_url=image_url,
        source_url=image_url or None,
        description=_as_str(record.get(fm["description"])),
        tags=_as_tags(record.get(fm["tags"])),
    )


def image_to_search_hit(item: Dict[str, Any]) -> SearchHit:
    """Map one Bing image result onto a SearchHit."""
    content_url = _as_str(item.get("contentUrl")) or ""
    return SearchHit(
        key=_as_str(item.get("imageId")),
        title=_as_str(item.get("name")) or content_url,
        image_url=content_url,
        source_url=_as_str(item.get("hostPageUrl")),
        description=None,
    )


# ─────────────────────────────────────────────
# Clients
# ─────────────────────────────────────────────

class SearchIndexClient:
    """Documents search against one Azure Cognitive Search index."""

    def __init__(
        self,
        service_name: str,
        index_name: str,
        query_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.service_name = service_name
        self.index_name = index_name
        self.query_key = query_key
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def search_url(self) -> str:
        return f"https://{self.service_name}.search.windows.net/indexes/{self.index_name}/docs/search"

    async def search(self, text: str) -> List[Dict[str, Any]]:
        try:
            resp = await self._http.post(
                self.search_url,
                params={"api-version": SEARCH_API_VERSION},
                headers={"api-key": self.query_key},
                json={"search": text, "queryType": "simple", "searchMode": "any"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceError(f"Index search failed: {exc}") from exc

        records = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise ServiceError("Index search response has no value list")
        return [r for r in records if isinstance(r, dict)]

    async def aclose(self) -> None:
        await self._http.aclose()


class ImageSearchClient:
    """Bing Image Search v7."""

    def __init__(
        self,
        key: str,
        endpoint: str = BING_IMAGES_ENDPOINT,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.key = key
        self.endpoint = endpoint
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def search(self, text: str, count: int) -> List[Dict[str, Any]]:
        try:
            resp = await self._http.get(
                self.endpoint,
                params={"q": text, "count": count},
                headers={"Ocp-Apim-Subscription-Key": self.key},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceError(f"Image search failed: {exc}") from exc

        items = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ServiceError("Image search response has no value list")
        return [i for i in items if isinstance(i, dict)]

    async def aclose(self) -> None:
        await self._http.aclose()


# ─────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────

class SearchOrchestrator:
    """Primary index lookup plus the optional image-search fallback."""

    def __init__(
        self,
        index: SearchIndexClient,
        images: ImageSearchClient,
        fallback_count: int = 5,
        field_map: Optional[Dict[str, str]] = None,
    ):
        if fallback_count < 1:
            raise ValueError(f"fallback_count must be at least 1, got {fallback_count}")
        self.index = index
        self.images = images
        self.fallback_count = fallback_count
        self.field_map = field_map

    async def search_primary(self, query: str) -> List[SearchHit]:
        """Relevance-ordered hits; an empty list means "nothing found"."""
        records = await self.index.search(query)
        hits = [to_search_hit(r, self.field_map) for r in records]
        logger.info("Primary search for %r: %d hit(s)", query, len(hits))
        return hits

    async def search_fallback(self, query: str) -> List[SearchHit]:
        items = await self.images.search(query, self.fallback_count)
        hits = [image_to_search_hit(i) for i in items[: self.fallback_count]]
        logger.info("Fallback search for %r: %d image(s)", query, len(hits))
        return hits

    async def aclose(self) -> None:
        await self.index.aclose()
        await self.images.aclose()
