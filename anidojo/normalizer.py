# anidojo/normalizer.py
"""
Turns raw catalog (Jikan v4) anime objects into AnimeSummary values.
Nothing past this module should look at raw catalog payloads.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from anidojo.models import AnimeSummary

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "Currently Airing": "airing",
    "Finished Airing": "finished",
}
FALLBACK_AIR_STATUS = "not-yet-aired"

class MalformedRecord(ValueError):
    """Raised when a catalog record lacks an id or a title."""
    pass

def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None

def _opt_int(value: Any, minimum: int = 0) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n >= minimum else None

def _opt_score(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        s = float(value)
    except (TypeError, ValueError):
        return None
    return s if 0.0 <= s <= 10.0 else None

def _image(raw: Dict[str, Any]) -> Optional[str]:
    images = raw.get("images") or {}
    jpg = images.get("jpg") or {}
    return _opt_str(jpg.get("large_image_url") or jpg.get("image_url") or raw.get("image_url"))

def _year(raw: Dict[str, Any]) -> Optional[int]:
    year = _opt_int(raw.get("year"), minimum=1)
    if year is not None:
        return year
    # fall back to the start of the airing window
    aired = raw.get("aired") or {}
    start = ((aired.get("prop") or {}).get("from") or {})
    return _opt_int(start.get("year"), minimum=1)

def _genres(raw: Dict[str, Any]) -> tuple:
    out: List[str] = []
    for g in raw.get("genres") or []:
        name = g.get("name") if isinstance(g, dict) else g
        name = _opt_str(name)
        if name and name not in out:
            out.append(name)
    return tuple(out)

def map_air_status(status: Any) -> str:
    return STATUS_MAP.get(status, FALLBACK_AIR_STATUS) if isinstance(status, str) else FALLBACK_AIR_STATUS

def normalize(raw: Dict[str, Any]) -> AnimeSummary:
    """Convert one catalog record. Optional fields may be missing or null."""
    if not isinstance(raw, dict):
        raise MalformedRecord("catalog record must be an object")
    anime_id = _opt_int(raw.get("mal_id", raw.get("id")), minimum=1)
    if anime_id is None:
        raise MalformedRecord("catalog record has no usable id")
    title = _opt_str(raw.get("title")) or _opt_str(raw.get("title_english"))
    if not title:
        raise MalformedRecord(f"catalog record {anime_id} has no title")
    return AnimeSummary(
        id=anime_id,
        title=title,
        title_english=_opt_str(raw.get("title_english")),
        title_japanese=_opt_str(raw.get("title_japanese")),
        image_url=_image(raw),
        media_type=_opt_str(raw.get("type")),
        total_episodes=_opt_int(raw.get("episodes")),
        air_status=map_air_status(raw.get("status")),
        year=_year(raw),
        genres=_genres(raw),
        score=_opt_score(raw.get("score")),
        synopsis=_opt_str(raw.get("synopsis")),
    )

def normalize_many(records: Iterable[Dict[str, Any]]) -> List[AnimeSummary]:
    out = []
    for raw in records or []:
        try:
            out.append(normalize(raw))
        except MalformedRecord as e:
            logger.warning("skipping catalog record: %s", e)
    return out
