# anidojo/catalog.py
"""
Read-only client for the Jikan v4 catalog (https://jikan.moe/).

Every failure (network error, non-2xx status including 429, undecodable
body) surfaces as CatalogUnavailable. There is no retry here; callers show
a retry affordance instead.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from anidojo.models import AnimeSummary
from anidojo.normalizer import normalize, normalize_many, MalformedRecord

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.jikan.moe/v4"
DEFAULT_TIMEOUT = 10

class CatalogUnavailable(Exception):
    """The catalog could not be reached or returned something unusable."""
    pass

@dataclass
class CatalogPage:
    items: List[AnimeSummary]
    has_next_page: bool = False
    current_page: int = 1

class JikanCatalog:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("catalog request failed: %s %s", url, e)
            raise CatalogUnavailable(f"catalog unreachable: {e}") from e
        if resp.status_code == 429:
            logger.warning("catalog rate limited: %s", url)
            raise CatalogUnavailable("catalog rate limit reached")
        if not 200 <= resp.status_code < 300:
            logger.warning("catalog returned %s for %s", resp.status_code, url)
            raise CatalogUnavailable(f"catalog request failed: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogUnavailable("catalog returned invalid JSON") from e
        if not isinstance(data, dict):
            raise CatalogUnavailable("catalog returned an unexpected payload")
        return data

    def _page(self, data: Dict[str, Any], page: int) -> CatalogPage:
        pagination = data.get("pagination") or {}
        return CatalogPage(
            items=normalize_many(data.get("data") or []),
            has_next_page=bool(pagination.get("has_next_page", False)),
            current_page=int(pagination.get("current_page") or page),
        )

    def search(self, query: str, page: int = 1, limit: int = 20) -> CatalogPage:
        data = self._get("/anime", {"q": query, "page": page, "limit": limit})
        return self._page(data, page)

    def get_by_id(self, anime_id: int) -> AnimeSummary:
        data = self._get(f"/anime/{int(anime_id)}")
        try:
            return normalize(data.get("data"))
        except MalformedRecord as e:
            raise CatalogUnavailable(f"catalog returned an unusable record: {e}") from e

    def current_season(self, page: int = 1, limit: int = 20) -> CatalogPage:
        data = self._get("/seasons/now", {"page": page, "limit": limit})
        return self._page(data, page)

    def discover(self, filters=None, limit: int = 20) -> CatalogPage:
        """Popular anime narrowed by RecommendationFilters, for mood recommendations."""
        params: Dict[str, Any] = {"limit": limit, "order_by": "popularity"}
        if filters is not None:
            lo, hi = filters.score_range
            if lo > 1:
                params["min_score"] = lo
            if hi < 10:
                params["max_score"] = hi
            if len(filters.types) == 1:
                params["type"] = filters.types[0].lower()
        return self._page(self._get("/anime", params), 1)

    def genres(self) -> List[str]:
        data = self._get("/genres/anime")
        return [g["name"] for g in data.get("data") or [] if isinstance(g, dict) and g.get("name")]

class LatestRequestGuard:
    """
    Hands out increasing sequence numbers so results that arrive after a
    newer request was started can be recognised and dropped.
    """

    def __init__(self):
        self._seq = 0

    def begin(self) -> int:
        self._seq += 1
        return self._seq

    def is_current(self, token: int) -> bool:
        return token == self._seq
