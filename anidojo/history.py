# anidojo/history.py
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from anidojo.models import now_iso
from anidojo.repo import RepoError, SEARCH_REGION, RECOMMENDATION_REGION

logger = logging.getLogger(__name__)

SEARCH_HISTORY_LIMIT = 10

def _write(repo, region: str, items: List[Any]) -> bool:
    try:
        repo.write(region, items)
    except RepoError as e:
        logger.warning("%s not persisted: %s", region, e)
        return False
    return True

class SearchHistory:
    """Recent search terms, most recent first."""

    def __init__(self, repo, limit: int = SEARCH_HISTORY_LIMIT):
        self.repo = repo
        self.limit = limit

    def all(self) -> List[str]:
        return [q for q in self.repo.read(SEARCH_REGION) if isinstance(q, str)][:self.limit]

    def recent(self, n: int = 5) -> List[str]:
        return self.all()[:n]

    def record(self, query: str) -> bool:
        q = (query or "").strip()
        if not q:
            return True
        items = [q] + [x for x in self.all() if x != q]
        return _write(self.repo, SEARCH_REGION, items[:self.limit])

    def remove(self, query: str) -> bool:
        return _write(self.repo, SEARCH_REGION, [x for x in self.all() if x != query])

    def clear(self) -> bool:
        try:
            self.repo.clear(SEARCH_REGION)
        except RepoError as e:
            logger.warning("search history not cleared: %s", e)
            return False
        return True

class RecommendationHistory:
    """Saved recommendation sets, newest first."""

    def __init__(self, repo, clock: Callable[[], str] = now_iso):
        self.repo = repo
        self.clock = clock

    def all(self) -> List[Dict[str, Any]]:
        return [s for s in self.repo.read(RECOMMENDATION_REGION) if isinstance(s, dict)]

    def add(self, moods: List[str], filters: Dict[str, Any], recommendations: List[Dict[str, Any]],
            name: Optional[str] = None) -> Tuple[Dict[str, Any], bool]:
        """Save a set at the front; returns ``(entry, persisted)``."""
        entry = {
            "id": uuid.uuid4().hex,
            "date": self.clock(),
            "moods": list(moods),
            "filters": filters,
            "recommendations": recommendations,
        }
        if name and name.strip():
            entry["name"] = name.strip()
        persisted = _write(self.repo, RECOMMENDATION_REGION, [entry] + self.all())
        if persisted:
            logger.info("Saved recommendation set id=%s (%d items)", entry["id"], len(recommendations))
        return entry, persisted

    def name_latest(self, name: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        """Name the newest set; returns ``(entry, persisted)``, entry None when there is nothing to name."""
        sets = self.all()
        if not sets or not name or not name.strip():
            return None, False
        sets[0]["name"] = name.strip()
        persisted = _write(self.repo, RECOMMENDATION_REGION, sets)
        return sets[0], persisted

    def clear(self) -> bool:
        try:
            self.repo.clear(RECOMMENDATION_REGION)
        except RepoError as e:
            logger.warning("recommendation history not cleared: %s", e)
            return False
        return True
