# anidojo/stores.py
"""
List Store and Review Store.

Both keep their collection in memory, and every mutation writes the whole
collection back to its region before returning. A failed write is reported
through ``persisted=False`` on the returned result; it never escapes as an
exception. Subscribers receive a ChangeEvent after each mutation and should
treat any statistics they hold as stale.
"""
import copy
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from anidojo.models import (
    ListEntry, Review, AnimeSummary, now_iso, parse_iso, unique_tags,
    WATCH_STATUSES, PRIORITIES, SUB_RATINGS, RECOMMENDATIONS,
    MAX_TAGS, MAX_NOTES, DEFAULT_USER_ID,
)
from anidojo.repo import RepoError, LIST_REGION, REVIEW_REGION
from anidojo import stats as stats_engine

logger = logging.getLogger(__name__)

TITLE_MAX = 100
BODY_MIN = 100
BODY_MAX = 10000

# Exceptions
class ValidationError(Exception):
    """Field-level validation failure; ``errors`` maps field name -> message."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))

class NotFoundError(Exception):
    """Raised when an entity is not found."""
    pass

class DuplicateEntryError(Exception):
    """Raised when adding an anime that is already in the list."""
    pass

@dataclass(frozen=True)
class ChangeEvent:
    region: str
    action: str  # add / update / remove / bulk-remove / save / delete / bulk-delete
    snapshot: Tuple[Any, ...]
    persisted: bool

@dataclass(frozen=True)
class MutationResult:
    value: Any
    snapshot: Tuple[Any, ...]
    persisted: bool
    validation: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.validation is None

@dataclass(frozen=True)
class SaveResult:
    review: Optional[Review]
    persisted: bool
    validation: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.validation is None

class _RegionStore:
    region = ""

    def __init__(self, repo, clock: Callable[[], str] = now_iso):
        self.repo = repo
        self.clock = clock
        self._listeners: List[Callable[[ChangeEvent], None]] = []
        self._items: List[Any] = self._load()

    def _from_dict(self, d: Dict[str, Any]):
        raise NotImplementedError

    def _load(self) -> List[Any]:
        items = []
        for i, d in enumerate(self.repo.read(self.region)):
            try:
                items.append(self._from_dict(d))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("%s: dropping unreadable item %d (%s)", self.region, i, e)
        logger.debug("loaded %d items from %s", len(items), self.region)
        return items

    def reload(self) -> None:
        self._items = self._load()

    def snapshot(self) -> Tuple[Any, ...]:
        return tuple(copy.deepcopy(x) for x in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _persist(self) -> bool:
        try:
            self.repo.write(self.region, [x.to_dict() for x in self._items])
        except RepoError as e:
            logger.warning("%s not persisted: %s", self.region, e)
            return False
        return True

    def _commit(self, action: str, items: List[Any], value: Any = None) -> MutationResult:
        self._items = items
        persisted = self._persist()
        snap = self.snapshot()
        event = ChangeEvent(self.region, action, snap, persisted)
        for listener in list(self._listeners):
            listener(event)
        return MutationResult(copy.deepcopy(value), snap, persisted)

    def _unchanged(self, value: Any) -> MutationResult:
        return MutationResult(value, self.snapshot(), True)

    def _rejected(self, action: str, key: Any, errors: Dict[str, str]) -> MutationResult:
        logger.warning("%s rejected for %s: %s", action, key, errors)
        return MutationResult(None, self.snapshot(), False, ValidationError(errors))

    def _stamp(self, floor: Optional[str] = None) -> str:
        stamp = self.clock()
        # never let a timestamp run behind the creation time
        if floor and parse_iso(stamp) < parse_iso(floor):
            return floor
        return stamp

# required int fields, then optional ones
_ENTRY_INTS = ("anime_id", "episodes_watched", "rewatch_count")
_ENTRY_OPTIONAL_INTS = ("total_episodes", "user_score", "year")
_ENTRY_OPTIONAL_TEXT = ("title_english", "title_japanese", "image_url", "media_type",
                        "start_date", "finish_date", "notes", "priority")

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

def _is_str_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(x, str) for x in value)

def entry_type_errors(entry: ListEntry) -> Dict[str, str]:
    """Shape checks; values arriving from JSON may be of any type."""
    errors: Dict[str, str] = {}
    for name in _ENTRY_INTS:
        if not _is_int(getattr(entry, name)):
            errors[name] = "must be an integer"
    for name in _ENTRY_OPTIONAL_INTS:
        value = getattr(entry, name)
        if value is not None and not _is_int(value):
            errors[name] = "must be an integer"
    if not isinstance(entry.title, str):
        errors["title"] = "must be text"
    for name in _ENTRY_OPTIONAL_TEXT:
        value = getattr(entry, name)
        if value is not None and not isinstance(value, str):
            errors[name] = "must be text"
    if not isinstance(entry.watch_status, str):
        errors["watch_status"] = "invalid"
    if not isinstance(entry.favorite, bool):
        errors["favorite"] = "must be true or false"
    for name in ("tags", "genres"):
        if not _is_str_list(getattr(entry, name)):
            errors[name] = "must be a list of strings"
    return errors

def entry_errors(entry: ListEntry) -> Dict[str, str]:
    errors = entry_type_errors(entry)
    if errors:
        return errors
    if not entry.title.strip():
        errors["title"] = "required"
    if entry.watch_status not in WATCH_STATUSES:
        errors["watch_status"] = "invalid"
    if entry.total_episodes is not None and entry.total_episodes < 0:
        errors["total_episodes"] = "must be >= 0"
    if entry.episodes_watched < 0:
        errors["episodes_watched"] = "must be >= 0"
    elif entry.total_episodes is not None and entry.episodes_watched > entry.total_episodes:
        errors["episodes_watched"] = "exceeds total episodes"
    if entry.user_score is not None and not 0 <= entry.user_score <= 10:
        errors["user_score"] = "must be 0-10"
    if entry.notes and len(entry.notes) > MAX_NOTES:
        errors["notes"] = "too long"
    if len(unique_tags(entry.tags)) > MAX_TAGS:
        errors["tags"] = f"at most {MAX_TAGS} tags"
    if entry.rewatch_count < 0:
        errors["rewatch_count"] = "must be >= 0"
    if entry.priority is not None and entry.priority not in PRIORITIES:
        errors["priority"] = "invalid"
    return errors

class ListStore(_RegionStore):
    """The user's anime list, one entry per anime id."""
    region = LIST_REGION

    def _from_dict(self, d):
        return ListEntry.from_dict(d)

    def get(self, anime_id: int) -> Optional[ListEntry]:
        for e in self._items:
            if e.anime_id == anime_id:
                return copy.deepcopy(e)
        return None

    def _require(self, anime_id: int) -> ListEntry:
        for e in self._items:
            if e.anime_id == anime_id:
                return e
        logger.debug("list entry %s not found", anime_id)
        raise NotFoundError(f"anime {anime_id} is not in the list")

    def add(self, entry: ListEntry) -> MutationResult:
        """
        Add a new entry. Timestamps are assigned here. Field errors come back
        on ``result.validation`` and nothing is written.
        """
        errors = entry_errors(entry)
        if errors:
            return self._rejected("add", entry.anime_id, errors)
        if any(e.anime_id == entry.anime_id for e in self._items):
            logger.warning("attempt to add duplicate list entry anime=%s", entry.anime_id)
            raise DuplicateEntryError(f"anime {entry.anime_id} is already in the list")
        stamp = self._stamp()
        stored = replace(entry, tags=unique_tags(entry.tags), genres=list(entry.genres or []),
                         date_added=stamp, last_updated=stamp)
        result = self._commit("add", self._items + [stored], stored)
        logger.info("Added list entry anime=%s status=%s", stored.anime_id, stored.watch_status)
        return result

    def add_from_summary(self, summary: AnimeSummary, **fields) -> MutationResult:
        entry = ListEntry(
            anime_id=summary.id,
            title=summary.title,
            title_english=summary.title_english,
            title_japanese=summary.title_japanese,
            image_url=summary.image_url,
            media_type=summary.media_type,
            total_episodes=summary.total_episodes,
            genres=list(summary.genres),
            year=summary.year,
        )
        return self.add(replace(entry, **fields))

    def update(self, anime_id: int, patch: Dict[str, Any]) -> MutationResult:
        """
        Merge ``patch`` (attribute name -> value) over the stored entry.
        Reaching the episode total marks the entry completed.
        """
        return self._apply(anime_id, patch, "update")

    def _apply(self, anime_id: int, patch: Dict[str, Any], action: str) -> MutationResult:
        current = self._require(anime_id)
        allowed = set(ListEntry.field_names())
        unknown = {k: "unknown field" for k in patch if k not in allowed}
        if unknown:
            return self._rejected(action, anime_id, unknown)
        if "anime_id" in patch and patch["anime_id"] != anime_id:
            return self._rejected(action, anime_id, {"anime_id": "cannot be changed"})
        changes = {k: v for k, v in patch.items() if k not in ("anime_id", "date_added", "last_updated")}
        if isinstance(changes.get("tags"), list):
            changes["tags"] = unique_tags(changes["tags"])
        merged = replace(current, **changes)
        # the clamp below compares numbers
        errors = entry_type_errors(merged)
        if errors:
            return self._rejected(action, anime_id, errors)

        total = merged.total_episodes
        if total is not None and total >= 0:
            reached = merged.episodes_watched >= total if "episodes_watched" in changes else merged.episodes_watched > total
            if reached:
                merged = replace(merged, episodes_watched=total, watch_status="completed")

        errors = entry_errors(merged)
        if errors:
            return self._rejected(action, anime_id, errors)
        merged = replace(merged, last_updated=self._stamp(floor=current.date_added))
        items = [merged if e.anime_id == anime_id else e for e in self._items]
        result = self._commit(action, items, merged)
        logger.info("Updated list entry anime=%s eps=%s status=%s", anime_id, merged.episodes_watched, merged.watch_status)
        return result

    def increment_episode(self, anime_id: int) -> MutationResult:
        current = self._require(anime_id)
        target = current.episodes_watched + 1
        if current.total_episodes is not None:
            target = min(target, current.total_episodes)
        return self._apply(anime_id, {"episodes_watched": target}, "increment")

    def remove(self, anime_id: int) -> MutationResult:
        """Remove an entry. Removing an absent id is a no-op with value False."""
        if not any(e.anime_id == anime_id for e in self._items):
            logger.debug("remove: anime %s not in list", anime_id)
            return self._unchanged(False)
        result = self._commit("remove", [e for e in self._items if e.anime_id != anime_id], True)
        logger.info("Removed list entry anime=%s", anime_id)
        return result

    def bulk_remove(self, anime_ids: Iterable[int]) -> MutationResult:
        """Remove every listed id in a single write; value is the number removed."""
        targets = set(anime_ids)
        kept = [e for e in self._items if e.anime_id not in targets]
        removed = len(self._items) - len(kept)
        if removed == 0:
            return self._unchanged(0)
        result = self._commit("bulk-remove", kept, removed)
        logger.info("Bulk removed %d list entries", removed)
        return result

    def stats(self) -> stats_engine.ListStats:
        return stats_engine.list_stats(self._items)

def review_structure_errors(review: Review) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if isinstance(review.anime_id, bool) or not isinstance(review.anime_id, int):
        errors["anime_id"] = "must be an integer"
    if not review.user_id or not str(review.user_id).strip():
        errors["user_id"] = "required"
    if review.overall_rating is not None and not 1 <= review.overall_rating <= 5:
        errors["overall_rating"] = "must be 1-5"
    for name, value in (review.sub_ratings or {}).items():
        if name not in SUB_RATINGS:
            errors[f"{name}_rating"] = "unknown rating"
        elif value is not None and not 1 <= value <= 5:
            errors[f"{name}_rating"] = "must be 1-5"
    if len(unique_tags(review.tags)) > MAX_TAGS:
        errors["tags"] = f"at most {MAX_TAGS} tags"
    if review.watch_status not in WATCH_STATUSES:
        errors["watch_status"] = "invalid"
    if review.recommendation is not None and review.recommendation not in RECOMMENDATIONS:
        errors["recommendation"] = "invalid"
    if review.episodes_watched is not None and review.episodes_watched < 0:
        errors["episodes_watched"] = "must be >= 0"
    return errors

def review_publish_errors(review: Review) -> Dict[str, str]:
    errors = review_structure_errors(review)
    if not review.overall_rating:
        errors.setdefault("overall_rating", "required")
    title = review.title or ""
    if not title.strip():
        errors["title"] = "required"
    elif len(title) > TITLE_MAX:
        errors["title"] = "too long"
    body = review.body or ""
    if len(body) < BODY_MIN:
        errors["body"] = "too short"
    elif len(body) > BODY_MAX:
        errors["body"] = "too long"
    return errors

def new_review_id() -> str:
    return f"review_{uuid.uuid4().hex}"

class ReviewStore(_RegionStore):
    """Reviews keyed by id; at most one per (user, anime)."""
    region = REVIEW_REGION

    def _from_dict(self, d):
        return Review.from_dict(d)

    def get(self, review_id: str) -> Optional[Review]:
        for r in self._items:
            if r.id == review_id:
                return copy.deepcopy(r)
        return None

    def find_by_anime_id(self, anime_id: int, user_id: str = DEFAULT_USER_ID) -> Optional[Review]:
        for r in self._items:
            if r.anime_id == anime_id and r.user_id == user_id:
                return copy.deepcopy(r)
        return None

    def for_user(self, user_id: str = DEFAULT_USER_ID) -> Tuple[Review, ...]:
        return tuple(copy.deepcopy(r) for r in self._items if r.user_id == user_id)

    def save_draft(self, review: Review) -> SaveResult:
        errors = review_structure_errors(review)
        if errors:
            logger.warning("draft rejected for anime=%s: %s", review.anime_id, errors)
            return SaveResult(None, False, ValidationError(errors))
        return self._save(review, "draft")

    def publish(self, review: Review) -> SaveResult:
        """Validate and publish. Nothing is written when validation fails."""
        errors = review_publish_errors(review)
        if errors:
            logger.warning("publish rejected for anime=%s: %s", review.anime_id, errors)
            return SaveResult(None, False, ValidationError(errors))
        return self._save(review, "published")

    def _save(self, review: Review, lifecycle: str) -> SaveResult:
        existing = None
        if review.id:
            existing = next((r for r in self._items if r.id == review.id), None)
            # a review never moves to another anime or user
            if existing is not None and (existing.anime_id, existing.user_id) != (review.anime_id, review.user_id):
                errors = {"id": "belongs to a review of another anime"}
                logger.warning("save rejected for review=%s: %s", review.id, errors)
                return SaveResult(None, False, ValidationError(errors))
        if existing is None:
            existing = next((r for r in self._items
                             if r.anime_id == review.anime_id and r.user_id == review.user_id), None)
        if existing is not None:
            stored = replace(review, id=existing.id, created_at=existing.created_at,
                             helpful_votes=existing.helpful_votes, lifecycle_status=lifecycle,
                             tags=unique_tags(review.tags), updated_at=self._stamp(floor=existing.created_at))
            items = [stored if r.id == existing.id else r for r in self._items]
        else:
            stamp = self._stamp()
            stored = replace(review, id=review.id or new_review_id(), created_at=stamp, updated_at=stamp,
                             helpful_votes=0, lifecycle_status=lifecycle, tags=unique_tags(review.tags))
            items = self._items + [stored]
        result = self._commit("save", items, stored)
        logger.info("Saved review id=%s anime=%s status=%s", stored.id, stored.anime_id, lifecycle)
        return SaveResult(result.value, result.persisted)

    def mark_helpful(self, review_id: str) -> MutationResult:
        current = next((r for r in self._items if r.id == review_id), None)
        if current is None:
            raise NotFoundError(f"review {review_id} not found")
        bumped = replace(current, helpful_votes=current.helpful_votes + 1)
        return self._commit("update", [bumped if r.id == review_id else r for r in self._items], bumped)

    def delete(self, review_id: str) -> MutationResult:
        if not any(r.id == review_id for r in self._items):
            logger.debug("delete: review %s not found", review_id)
            return self._unchanged(False)
        result = self._commit("delete", [r for r in self._items if r.id != review_id], True)
        logger.info("Deleted review id=%s", review_id)
        return result

    def bulk_delete(self, review_ids: Iterable[str]) -> MutationResult:
        targets = set(review_ids)
        kept = [r for r in self._items if r.id not in targets]
        removed = len(self._items) - len(kept)
        if removed == 0:
            return self._unchanged(0)
        result = self._commit("bulk-delete", kept, removed)
        logger.info("Bulk deleted %d reviews", removed)
        return result

    def stats(self, user_id: str = DEFAULT_USER_ID, now: Optional[str] = None) -> stats_engine.ReviewStats:
        return stats_engine.review_stats([r for r in self._items if r.user_id == user_id], now=now)
