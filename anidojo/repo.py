import sqlite3
import json
import logging
from typing import List, Dict, Any, Optional
from anidojo.models import now_iso
import os
from contextlib import contextmanager

logger = logging.getLogger(__name__)

# Named persisted regions, one JSON array each
LIST_REGION = "animeEntries"
REVIEW_REGION = "reviews"
SEARCH_REGION = "searchHistory"
RECOMMENDATION_REGION = "recommendationHistory"
REGIONS = (LIST_REGION, REVIEW_REGION, SEARCH_REGION, RECOMMENDATION_REGION)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS regions (
    name TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# --- Exceptions ---
class RepoError(Exception):
    """Raised when a region could not be written."""
    pass

def _decode(region: str, payload: Optional[str]) -> List[Any]:
    """Parse a stored payload; absent or corrupt data reads as an empty region."""
    if payload is None:
        return []
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        logger.warning("region %s holds corrupt JSON, treating as empty", region)
        return []
    if not isinstance(data, list):
        logger.warning("region %s is not a JSON array, treating as empty", region)
        return []
    return data

def _encode(region: str, items: List[Any]) -> str:
    try:
        return json.dumps(list(items), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise RepoError(f"region {region} is not serializable: {e}") from e

# --- SQLite repo ---
class SqliteRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path
        if os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)

    @contextmanager
    def conn(self):
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        finally:
            con.close()

    def ensure_schema(self) -> None:
        with self.conn() as c:
            c.executescript(SCHEMA_SQL)

    def read(self, region: str) -> List[Any]:
        try:
            with self.conn() as c:
                r = c.execute("SELECT payload FROM regions WHERE name = ?", (region,)).fetchone()
        except sqlite3.Error as e:
            logger.warning("could not read region %s: %s", region, e)
            return []
        return _decode(region, r["payload"] if r else None)

    def write(self, region: str, items: List[Any]) -> None:
        """Replace the whole region in one transaction."""
        payload = _encode(region, items)
        try:
            with self.conn() as c:
                c.execute(
                    "INSERT INTO regions (name, payload, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(name) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at",
                    (region, payload, now_iso()))
        except sqlite3.Error as e:
            raise RepoError(f"could not write region {region}: {e}") from e

    def clear(self, region: str) -> None:
        try:
            with self.conn() as c:
                c.execute("DELETE FROM regions WHERE name = ?", (region,))
        except sqlite3.Error as e:
            raise RepoError(f"could not clear region {region}: {e}") from e

# --- In-memory repo (simple, used for unit tests) ---
class InMemoryRepo:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        # payloads stay serialized so readers never share objects with writers
        self._regions: Dict[str, str] = dict(initial or {})

    def read(self, region: str) -> List[Any]:
        return _decode(region, self._regions.get(region))

    def write(self, region: str, items: List[Any]) -> None:
        self._regions[region] = _encode(region, items)

    def clear(self, region: str) -> None:
        self._regions.pop(region, None)

    def raw(self, region: str) -> Optional[str]:
        return self._regions.get(region)
