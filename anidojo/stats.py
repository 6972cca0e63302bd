# anidojo/stats.py
"""
Statistics over list and review snapshots.

Everything is recomputed from the collection passed in; nothing is cached
between calls, so the numbers can never drift from the store.
"""
import math
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from anidojo.models import WATCH_STATUSES, parse_iso

MINUTES_PER_EPISODE = 24
TOP_GENRES = 10

@dataclass
class ListStats:
    totalAnime: int = 0
    episodesWatched: int = 0
    daysWatched: int = 0
    meanScore: float = 0
    standardDeviation: float = 0
    watching: int = 0
    completed: int = 0
    onHold: int = 0
    dropped: int = 0
    planToWatch: int = 0
    favorites: int = 0
    completionRate: float = 0
    scoreDistribution: Dict[int, int] = field(default_factory=dict)
    genreCounts: Dict[str, int] = field(default_factory=dict)
    topGenres: List[Dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

@dataclass
class ReviewStats:
    totalReviews: int = 0
    drafts: int = 0
    averageScore: float = 0
    reviewsThisMonth: int = 0
    reviewsThisYear: int = 0
    totalHelpfulVotes: int = 0
    ratingDistribution: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

_STATUS_FIELDS = {
    "watching": "watching",
    "completed": "completed",
    "on-hold": "onHold",
    "dropped": "dropped",
    "plan-to-watch": "planToWatch",
}

def mean_and_stddev(values: List[float]):
    """Mean and population standard deviation; both 0 for no values."""
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)

def top_counts(counts: Dict[str, int], limit: int = TOP_GENRES) -> List[Dict[str, object]]:
    # sorted() is stable, so equal counts keep first-encountered order
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [{"genre": g, "count": c} for g, c in ranked[:limit]]

def list_stats(entries: Iterable) -> ListStats:
    status_counts = {s: 0 for s in WATCH_STATUSES}
    distribution = {i: 0 for i in range(0, 11)}
    genre_counts: Dict[str, int] = OrderedDict()
    scores: List[float] = []
    total = episodes = favorites = 0

    for e in entries:
        total += 1
        episodes += e.episodes_watched or 0
        if e.watch_status in status_counts:
            status_counts[e.watch_status] += 1
        if e.favorite:
            favorites += 1
        if e.user_score is not None:
            scores.append(e.user_score)
            if e.user_score in distribution:
                distribution[e.user_score] += 1
        for g in e.genres or []:
            genre_counts[g] = genre_counts.get(g, 0) + 1

    mean, stddev = mean_and_stddev(scores)
    out = ListStats(
        totalAnime=total,
        episodesWatched=episodes,
        daysWatched=round(episodes * MINUTES_PER_EPISODE / 1440),
        meanScore=round(mean, 2),
        standardDeviation=round(stddev, 2),
        favorites=favorites,
        completionRate=round(status_counts["completed"] * 100 / total, 1) if total else 0,
        scoreDistribution=distribution,
        genreCounts=dict(genre_counts),
        topGenres=top_counts(genre_counts),
    )
    for status, attr in _STATUS_FIELDS.items():
        setattr(out, attr, status_counts[status])
    return out

def _as_datetime(value: Optional[str]) -> datetime:
    return datetime.fromtimestamp(parse_iso(value), tz=timezone.utc)

def review_stats(reviews: Iterable, now: Optional[str] = None) -> ReviewStats:
    """Stats over published reviews; ``now`` (ISO) anchors the month/year counters."""
    today = _as_datetime(now) if now else datetime.now(timezone.utc)
    distribution = {i: 0 for i in range(1, 6)}
    ratings: List[float] = []
    published = drafts = this_month = this_year = helpful = 0

    for r in reviews:
        if r.lifecycle_status != "published":
            drafts += 1
            continue
        published += 1
        if r.overall_rating is not None:
            ratings.append(r.overall_rating)
            if r.overall_rating in distribution:
                distribution[r.overall_rating] += 1
        helpful += r.helpful_votes or 0
        created = _as_datetime(r.created_at)
        if created.year == today.year:
            this_year += 1
            if created.month == today.month:
                this_month += 1

    mean, _ = mean_and_stddev(ratings)
    return ReviewStats(
        totalReviews=published,
        drafts=drafts,
        averageScore=round(mean, 1),
        reviewsThisMonth=this_month,
        reviewsThisYear=this_year,
        totalHelpfulVotes=helpful,
        ratingDistribution=distribution,
    )
