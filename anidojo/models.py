# anidojo/models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Any

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def parse_iso(value: Optional[str]) -> float:
    """Timestamp in seconds for an ISO string; unparseable or missing -> 0."""
    if not value:
        return 0.0
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()

WATCH_STATUSES = ("watching", "completed", "on-hold", "dropped", "plan-to-watch")
AIR_STATUSES = ("airing", "finished", "not-yet-aired")
PRIORITIES = ("low", "medium", "high")
LIFECYCLE_STATUSES = ("draft", "published")
SUB_RATINGS = ("story", "animation", "sound", "character", "enjoyment")
RECOMMENDATIONS = ("highly-recommend", "recommend", "mixed", "not-recommend", "strongly-not-recommend")

MAX_TAGS = 5
MAX_NOTES = 500
DEFAULT_USER_ID = "current_user"

def unique_tags(tags) -> List[str]:
    """Deduplicate tags (case-sensitive) keeping first-seen order."""
    out: List[str] = []
    for t in tags or []:
        if t not in out:
            out.append(t)
    return out

@dataclass(frozen=True)
class AnimeSummary:
    id: int
    title: str
    title_english: Optional[str] = None
    title_japanese: Optional[str] = None
    image_url: Optional[str] = None
    media_type: Optional[str] = None  # TV / Movie / OVA ...
    total_episodes: Optional[int] = None  # None -> unknown
    air_status: str = "not-yet-aired"
    year: Optional[int] = None
    genres: Tuple[str, ...] = ()
    score: Optional[float] = None  # 0.0-10.0
    synopsis: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "titleEnglish": self.title_english,
            "titleJapanese": self.title_japanese,
            "imageUrl": self.image_url,
            "type": self.media_type,
            "episodes": self.total_episodes,
            "status": self.air_status,
            "year": self.year,
            "genres": list(self.genres),
            "score": self.score,
            "synopsis": self.synopsis,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AnimeSummary":
        return cls(
            id=int(d["id"]),
            title=d["title"],
            title_english=d.get("titleEnglish"),
            title_japanese=d.get("titleJapanese"),
            image_url=d.get("imageUrl"),
            media_type=d.get("type"),
            total_episodes=d.get("episodes"),
            air_status=d.get("status") or "not-yet-aired",
            year=d.get("year"),
            genres=tuple(d.get("genres") or ()),
            score=d.get("score"),
            synopsis=d.get("synopsis"),
        )

# attribute name -> persisted (camelCase) key, in persisted order
_ENTRY_KEYS = (
    ("anime_id", "animeId"),
    ("title", "title"),
    ("title_english", "titleEnglish"),
    ("title_japanese", "titleJapanese"),
    ("image_url", "image"),
    ("media_type", "type"),
    ("total_episodes", "episodes"),
    ("watch_status", "status"),
    ("episodes_watched", "episodesWatched"),
    ("user_score", "score"),
    ("start_date", "startDate"),
    ("finish_date", "finishDate"),
    ("notes", "notes"),
    ("tags", "tags"),
    ("favorite", "favorite"),
    ("rewatch_count", "rewatchCount"),
    ("priority", "priority"),
    ("date_added", "dateAdded"),
    ("last_updated", "lastUpdated"),
    ("genres", "genres"),
    ("year", "year"),
)

@dataclass
class ListEntry:
    anime_id: int
    title: str
    title_english: Optional[str] = None
    title_japanese: Optional[str] = None
    image_url: Optional[str] = None
    media_type: Optional[str] = None
    total_episodes: Optional[int] = None  # None -> unknown / ongoing
    watch_status: str = "plan-to-watch"
    episodes_watched: int = 0
    user_score: Optional[int] = None  # 0-10
    start_date: Optional[str] = None
    finish_date: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    favorite: bool = False
    rewatch_count: int = 0
    priority: Optional[str] = None  # low / medium / high
    date_added: Optional[str] = None
    last_updated: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: _copy(getattr(self, attr)) for attr, key in _ENTRY_KEYS}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ListEntry":
        kwargs = {attr: _copy(d[key]) for attr, key in _ENTRY_KEYS if d.get(key) is not None}
        kwargs["anime_id"] = int(d["animeId"])
        kwargs["title"] = str(d["title"])
        return cls(**kwargs)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(attr for attr, _ in _ENTRY_KEYS)

_REVIEW_KEYS = (
    ("id", "id"),
    ("anime_id", "animeId"),
    ("user_id", "userId"),
    ("overall_rating", "rating"),
    ("title", "title"),
    ("body", "body"),
    ("contains_spoilers", "spoilers"),
    ("watch_status", "watchStatus"),
    ("episodes_watched", "episodesWatched"),
    ("tags", "tags"),
    ("pros", "pros"),
    ("cons", "cons"),
    ("recommendation", "recommendation"),
    ("lifecycle_status", "status"),
    ("created_at", "createdAt"),
    ("updated_at", "updatedAt"),
    ("helpful_votes", "helpfulVotes"),
    ("anime_title", "animeTitle"),
)

@dataclass
class Review:
    anime_id: int
    user_id: str = DEFAULT_USER_ID
    id: Optional[str] = None  # assigned on first save
    overall_rating: Optional[int] = None  # 1-5, required to publish
    sub_ratings: Dict[str, int] = field(default_factory=dict)
    title: str = ""
    body: str = ""
    contains_spoilers: bool = False
    watch_status: str = "completed"
    episodes_watched: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    pros: Optional[str] = None
    cons: Optional[str] = None
    recommendation: Optional[str] = None
    lifecycle_status: str = "draft"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    helpful_votes: int = 0
    anime_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {key: _copy(getattr(self, attr)) for attr, key in _REVIEW_KEYS}
        # sub ratings are flattened the way the review form stored them
        for name in SUB_RATINGS:
            d[f"{name}Rating"] = self.sub_ratings.get(name)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Review":
        kwargs = {attr: _copy(d[key]) for attr, key in _REVIEW_KEYS if d.get(key) is not None}
        kwargs["anime_id"] = int(d["animeId"])
        # the browser form stored 0 for "not rated"
        if not kwargs.get("overall_rating"):
            kwargs["overall_rating"] = None
        kwargs["sub_ratings"] = {
            name: int(d[f"{name}Rating"]) for name in SUB_RATINGS if d.get(f"{name}Rating")
        }
        return cls(**kwargs)

@dataclass
class ViewConfig:
    active_tab: str = "all"
    search_query: str = ""
    sort_key: str = "title-asc"

def _copy(value):
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value
