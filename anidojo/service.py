from typing import List, Optional, Tuple, Dict, Any, Iterable
from dataclasses import replace
import logging

from anidojo.models import ListEntry, Review, ViewConfig, AnimeSummary, DEFAULT_USER_ID, now_iso
from anidojo.stores import (
    ListStore, ReviewStore, MutationResult, SaveResult,
    ValidationError, NotFoundError, DuplicateEntryError,
)
from anidojo.history import SearchHistory, RecommendationHistory, SEARCH_HISTORY_LIMIT
from anidojo.catalog import CatalogUnavailable, CatalogPage, LatestRequestGuard
from anidojo.recommend import RecommendationFilters, Recommendations, MoodRequiredError, rank, explain
from anidojo import views
from anidojo import stats as stats_engine

logger = logging.getLogger(__name__)

# exported review fields, in download order
REVIEW_EXPORT_FIELDS = ("title", "animeId", "rating", "body", "status", "createdAt", "updatedAt", "helpfulVotes")

class DojoService:
    """
    Facade over the list/review stores, the history regions and the catalog.
    The repository is injected (SqliteRepo or InMemoryRepo from anidojo.repo);
    the catalog is optional so the stores work fully offline.
    """

    def __init__(self, repo, catalog=None, user_id: str = DEFAULT_USER_ID,
                 clock=now_iso, search_history_limit: int = SEARCH_HISTORY_LIMIT):
        self.repo = repo
        self.catalog = catalog
        self.user_id = user_id
        self.lists = ListStore(repo, clock=clock)
        self.reviews = ReviewStore(repo, clock=clock)
        self.search_history = SearchHistory(repo, limit=search_history_limit)
        self.recommendation_history = RecommendationHistory(repo, clock=clock)
        self._search_guard = LatestRequestGuard()
        logger.debug("DojoService initialized with repo %s", type(repo).__name__)

    def _require_catalog(self):
        if self.catalog is None:
            raise CatalogUnavailable("no catalog configured")
        return self.catalog

    # ---- List ----
    def list_entries(self, tab: str = "all", q: str = "", sort: str = "title-asc") -> List[ListEntry]:
        """Filtered and sorted projection of the list."""
        return views.list_view(self.lists.snapshot(), ViewConfig(tab, q or "", sort))

    def get_entry(self, anime_id: int) -> ListEntry:
        e = self.lists.get(anime_id)
        if e is None:
            raise NotFoundError(f"anime {anime_id} is not in the list")
        return e

    def add_entry(self, entry: ListEntry) -> MutationResult:
        return self.lists.add(entry)

    def add_from_catalog(self, anime_id: int, **fields) -> MutationResult:
        """Fetch an anime from the catalog and add it to the list."""
        if self.lists.get(anime_id) is not None:
            raise DuplicateEntryError(f"anime {anime_id} is already in the list")
        summary = self._require_catalog().get_by_id(anime_id)
        return self.lists.add_from_summary(summary, **fields)

    def update_entry(self, anime_id: int, patch: Dict[str, Any]) -> MutationResult:
        return self.lists.update(anime_id, patch)

    def increment_episode(self, anime_id: int) -> MutationResult:
        return self.lists.increment_episode(anime_id)

    def remove_entry(self, anime_id: int) -> MutationResult:
        return self.lists.remove(anime_id)

    def bulk_remove_entries(self, anime_ids: Iterable[int]) -> MutationResult:
        return self.lists.bulk_remove(anime_ids)

    def list_stats(self) -> stats_engine.ListStats:
        return self.lists.stats()

    def tab_counts(self) -> Dict[str, int]:
        return views.tab_counts(self.lists.snapshot())

    # ---- Reviews ----
    def my_reviews(self, tab: str = "all", q: str = "", sort: str = "newest") -> List[Review]:
        return views.review_view(self.reviews.for_user(self.user_id), ViewConfig(tab, q or "", sort))

    def review_for_anime(self, anime_id: int) -> Optional[Review]:
        """Existing review for pre-filling the edit form, if any."""
        return self.reviews.find_by_anime_id(anime_id, self.user_id)

    def save_review_draft(self, review: Review) -> SaveResult:
        return self.reviews.save_draft(replace(review, user_id=self.user_id))

    def publish_review(self, review: Review) -> SaveResult:
        return self.reviews.publish(replace(review, user_id=self.user_id))

    def delete_review(self, review_id: str) -> MutationResult:
        return self.reviews.delete(review_id)

    def bulk_delete_reviews(self, review_ids: Iterable[str]) -> MutationResult:
        return self.reviews.bulk_delete(review_ids)

    def review_stats(self, now: Optional[str] = None) -> stats_engine.ReviewStats:
        return self.reviews.stats(self.user_id, now=now)

    # ---- Catalog ----
    def search_catalog(self, query: str, page: int = 1, limit: int = 20) -> Optional[CatalogPage]:
        """
        Search the catalog and remember the query. Returns None when a newer
        search started while this one was in flight.
        """
        token = self._search_guard.begin()
        result = self._require_catalog().search(query, page=page, limit=limit)
        if not self._search_guard.is_current(token):
            logger.debug("discarding stale search results for %r", query)
            return None
        if page == 1:
            self.search_history.record(query)
        return result

    # ---- Recommendations ----
    def recommend(self, moods: List[str], filters: Optional[RecommendationFilters] = None,
                  candidates: Optional[List[AnimeSummary]] = None, save: bool = True) -> Recommendations:
        """
        Rank candidates (fetched from the catalog when not given) for the
        selected moods and record the set in the recommendation history.
        """
        if not moods:
            logger.warning("recommend called without moods")
            raise MoodRequiredError("select at least one mood")
        filters = filters or RecommendationFilters()
        if candidates is None:
            candidates = self._require_catalog().discover(filters).items
        recs = rank(candidates, moods, filters)
        if save and recs.top_pick is not None:
            ordered = [recs.top_pick] + recs.ranked
            _, recs.persisted = self.recommendation_history.add(
                moods, filters.to_dict(),
                [dict(a.to_dict(), matchPercentage=recs.matches[a.id]) for a in ordered])
            if not recs.persisted:
                logger.warning("recommendation set for moods %s was not saved", moods)
        logger.info("Recommended %d anime for moods %s", len(recs.ranked) + (recs.top_pick is not None), moods)
        return recs

    def explain(self, anime: AnimeSummary, moods: List[str]) -> str:
        return explain(anime, moods)

    # ---- Import / Export ----
    def export_list(self) -> List[dict]:
        """Full list as persisted dicts, ready for JSON."""
        rows = [e.to_dict() for e in self.lists.snapshot()]
        logger.info("Exported %d list entries", len(rows))
        return rows

    def export_reviews(self, review_ids: Optional[Iterable[str]] = None) -> List[dict]:
        """Selected reviews (all of the user's when no ids are given)."""
        wanted = set(review_ids) if review_ids else None
        out = []
        for r in self.reviews.for_user(self.user_id):
            if wanted is not None and r.id not in wanted:
                continue
            d = r.to_dict()
            out.append({k: d[k] for k in REVIEW_EXPORT_FIELDS})
        logger.info("Exported %d reviews", len(out))
        return out

    def import_list_rows(self, rows: List[dict]) -> Tuple[int, List[str]]:
        """
        Import list entries from exported rows (camelCase keys, animeId and
        title required). Returns (created_count, errors).
        """
        created = 0
        errors: List[str] = []
        for i, r in enumerate(rows):
            try:
                if not isinstance(r, dict):
                    raise ValidationError({"row": "must be an object"})
                entry = ListEntry.from_dict(r)
                result = self.lists.add(replace(entry, date_added=None, last_updated=None))
                if not result.ok:
                    raise result.validation
                created += 1
            except (ValidationError, DuplicateEntryError) as e:
                msg = f"row {i+1}: {e}"
                logger.warning("import row failed: %s", msg)
                errors.append(msg)
            except (KeyError, TypeError, ValueError) as e:
                msg = f"row {i+1}: malformed row ({e})"
                logger.warning("import row failed: %s", msg)
                errors.append(msg)
        logger.info("Import completed: created=%s errors=%d", created, len(errors))
        return created, errors
