# anidojo/recommend.py
"""
Mood-based recommendation scoring.

A match percentage is the average of the criteria that apply to a request:
mood/genre overlap (0-100) plus four flat +20 checks for score range, year
range, media type and airing status.
"""
import logging
import math
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from anidojo.models import AnimeSummary

logger = logging.getLogger(__name__)

FLAT_CRITERION = 20

class MoodRequiredError(Exception):
    """Raised when a recommendation is requested without any mood."""
    pass

@dataclass(frozen=True)
class Mood:
    id: str
    name: str
    genres: Tuple[str, ...]
    description: str = ""

MOODS: Dict[str, Mood] = {m.id: m for m in (
    Mood("excited", "Excited", ("Action", "Shounen", "Sports", "Mecha"),
         "High-energy anime with intense action and battles"),
    Mood("relaxed", "Relaxed", ("Slice of Life", "Iyashikei", "Comedy", "Drama"),
         "Calm and healing anime to unwind with"),
    Mood("curious", "Curious", ("Mystery", "Psychological", "Thriller", "Supernatural"),
         "Mind-bending stories that make you think"),
    Mood("nostalgic", "Nostalgic", ("Classic", "Retro", "Old School"),
         "Timeless classics and retro anime"),
    Mood("romantic", "Romantic", ("Romance", "Shoujo", "Drama", "Josei"),
         "Heartwarming love stories and relationships"),
    Mood("adventurous", "Adventurous", ("Adventure", "Fantasy", "Isekai", "Action"),
         "Epic journeys and fantastical worlds"),
)}

def _default_year_range() -> Tuple[int, int]:
    return (1960, date.today().year)

@dataclass
class RecommendationFilters:
    genres: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    statuses: List[str] = field(default_factory=list)
    score_range: Tuple[float, float] = (1, 10)
    year_range: Tuple[int, int] = field(default_factory=_default_year_range)
    episode_range: Tuple[int, int] = (1, 1000)
    exclude_genres: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        for k in ("score_range", "year_range", "episode_range"):
            d[k] = list(d[k])
        return d

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, object]]) -> "RecommendationFilters":
        d = d or {}
        out = cls()
        for k in ("genres", "types", "statuses", "exclude_genres"):
            if d.get(k):
                setattr(out, k, [str(x) for x in d[k]])
        for k in ("score_range", "year_range", "episode_range"):
            if d.get(k):
                lo, hi = d[k]
                setattr(out, k, (lo, hi))
        return out

@dataclass
class Recommendations:
    top_pick: Optional[AnimeSummary]
    ranked: List[AnimeSummary]
    matches: Dict[int, int]  # anime id -> match percentage
    persisted: bool = True  # False when saving to the history failed

def mood_genres(moods: Sequence[str]) -> List[str]:
    """Genres of the selected moods, deduplicated in selection order."""
    out: List[str] = []
    for mood_id in moods:
        mood = MOODS.get(mood_id)
        if mood is None:
            logger.debug("ignoring unknown mood %s", mood_id)
            continue
        for g in mood.genres:
            if g not in out:
                out.append(g)
    return out

def _genre_hit(mood_genre: str, anime_genres: Iterable[str]) -> bool:
    m = mood_genre.lower()
    return any(m in g.lower() or g.lower() in m for g in anime_genres)

def _in_range(value, bounds) -> bool:
    lo, hi = bounds
    return value is not None and lo <= value <= hi

def score(anime: AnimeSummary, moods: Sequence[str], filters: Optional[RecommendationFilters] = None) -> int:
    if not moods:
        raise MoodRequiredError("select at least one mood")
    filters = filters or RecommendationFilters()
    total = 0.0
    criteria = 0

    wanted = mood_genres(moods)
    if wanted:
        criteria += 1
        hits = sum(1 for g in wanted if _genre_hit(g, anime.genres))
        total += hits / len(wanted) * 100

    criteria += 1
    if anime.score and _in_range(anime.score, filters.score_range):
        total += FLAT_CRITERION
    criteria += 1
    if anime.year and _in_range(anime.year, filters.year_range):
        total += FLAT_CRITERION
    criteria += 1
    if not filters.types or (anime.media_type and anime.media_type in filters.types):
        total += FLAT_CRITERION
    criteria += 1
    if not filters.statuses or anime.air_status in filters.statuses:
        total += FLAT_CRITERION

    # half rounds up
    return int(math.floor(total / criteria + 0.5)) if criteria else 0

def _excluded(anime: AnimeSummary, filters: RecommendationFilters) -> bool:
    banned = {g.lower() for g in filters.exclude_genres}
    return any(g.lower() in banned for g in anime.genres)

def rank(results: Iterable[AnimeSummary], moods: Sequence[str],
         filters: Optional[RecommendationFilters] = None) -> Recommendations:
    """Score every candidate, then split off the best one as the top pick."""
    if not moods:
        raise MoodRequiredError("select at least one mood")
    filters = filters or RecommendationFilters()
    candidates = [a for a in results if not _excluded(a, filters)]
    matches = {a.id: score(a, moods, filters) for a in candidates}
    ordered = sorted(candidates, key=lambda a: (matches[a.id], a.score or 0), reverse=True)
    logger.debug("ranked %d candidates for moods %s", len(ordered), list(moods))
    if not ordered:
        return Recommendations(None, [], matches)
    return Recommendations(ordered[0], ordered[1:], matches)

def explain(anime: AnimeSummary, moods: Sequence[str]) -> str:
    names = " and ".join(MOODS[m].name for m in moods if m in MOODS)
    genres = ", ".join(anime.genres[:3]) or "several genres"
    kind = (anime.media_type or "anime").lower()
    return (f"Perfect for when you're feeling {names.lower()}. This {kind} combines {genres} "
            f"to create an engaging experience that matches your current mood.")
