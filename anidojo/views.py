# anidojo/views.py
"""
Pure view pipeline: filter by tab, then by search text, then sort.
Sorting relies on ``sorted`` being stable, so ties keep source order.
"""
import locale
from typing import Dict, Iterable, List, Optional, Sequence

from anidojo.models import ListEntry, Review, ViewConfig, WATCH_STATUSES, parse_iso

ALL_TAB = "all"
LIST_SORT_KEYS = ("title-asc", "title-desc", "score-high", "score-low", "date-added", "last-updated", "progress")
REVIEW_TABS = (ALL_TAB, "published", "draft")
REVIEW_SORT_KEYS = ("newest", "oldest", "highest-rated", "lowest-rated", "most-helpful")

class UnknownSortKey(ValueError):
    pass

def progress(entry: ListEntry) -> float:
    """Fraction watched; unknown or zero total counts as 0."""
    if not entry.total_episodes:
        return 0.0
    return entry.episodes_watched / entry.total_episodes

def progress_percent(entry: ListEntry) -> int:
    return round(min(progress(entry), 1.0) * 100)

def display_title(entry) -> str:
    return entry.title_english or entry.title or ""

def _title_key(entry):
    t = display_title(entry)
    # collation follows the process locale (LC_COLLATE)
    return (locale.strxfrm(t.casefold()), t)

# sort key -> (key function, descending)
_LIST_SORTS: Dict[str, tuple] = {
    "title-asc": (_title_key, False),
    "title-desc": (_title_key, True),
    "score-high": (lambda e: e.user_score or 0, True),
    "score-low": (lambda e: e.user_score or 0, False),
    "date-added": (lambda e: parse_iso(e.date_added), True),
    "last-updated": (lambda e: parse_iso(e.last_updated), True),
    "progress": (progress, True),
}

_REVIEW_SORTS: Dict[str, tuple] = {
    "newest": (lambda r: parse_iso(r.updated_at), True),
    "oldest": (lambda r: parse_iso(r.updated_at), False),
    "highest-rated": (lambda r: r.overall_rating or 0, True),
    "lowest-rated": (lambda r: r.overall_rating or 0, False),
    "most-helpful": (lambda r: r.helpful_votes or 0, True),
}

def _contains(query: str, *values) -> bool:
    for v in values:
        if v and query in v.lower():
            return True
    return False

def entry_matches(entry: ListEntry, query: str) -> bool:
    q = query.lower()
    return _contains(q, entry.title, entry.title_english, entry.notes) or _contains(q, *(entry.tags or []))

def review_matches(review: Review, query: str) -> bool:
    q = query.lower()
    return _contains(q, review.title, review.anime_title, review.body) or _contains(q, *(review.tags or []))

def _sorted(items: List, sorts: Dict[str, tuple], sort_key: str) -> List:
    if sort_key not in sorts:
        raise UnknownSortKey(f"unknown sort key: {sort_key}")
    key, descending = sorts[sort_key]
    return sorted(items, key=key, reverse=descending)

def list_view(entries: Iterable[ListEntry], config: Optional[ViewConfig] = None) -> List[ListEntry]:
    cfg = config or ViewConfig()
    out = list(entries)
    if cfg.active_tab and cfg.active_tab != ALL_TAB:
        out = [e for e in out if e.watch_status == cfg.active_tab]
    if cfg.search_query:
        out = [e for e in out if entry_matches(e, cfg.search_query)]
    return _sorted(out, _LIST_SORTS, cfg.sort_key or "title-asc")

def review_view(reviews: Iterable[Review], config: Optional[ViewConfig] = None) -> List[Review]:
    cfg = config or ViewConfig(sort_key="newest")
    out = list(reviews)
    if cfg.active_tab and cfg.active_tab != ALL_TAB:
        out = [r for r in out if r.lifecycle_status == cfg.active_tab]
    if cfg.search_query:
        out = [r for r in out if review_matches(r, cfg.search_query)]
    return _sorted(out, _REVIEW_SORTS, cfg.sort_key or "newest")

def tab_counts(entries: Iterable[ListEntry]) -> Dict[str, int]:
    counts = {ALL_TAB: 0}
    counts.update({s: 0 for s in WATCH_STATUSES})
    for e in entries:
        counts[ALL_TAB] += 1
        if e.watch_status in counts:
            counts[e.watch_status] += 1
    return counts

# bulk selection helpers
def toggle_selection(selected: Sequence, item_id) -> List:
    return [x for x in selected if x != item_id] if item_id in selected else list(selected) + [item_id]

def select_all(selected: Sequence, visible_ids: Sequence) -> List:
    """Select every visible id, or clear the selection when all are already selected."""
    if len(selected) == len(visible_ids) and set(selected) == set(visible_ids):
        return []
    return list(visible_ids)
