# scripts/init_db.py
import sqlite3
import os
from anidojo.repo import SCHEMA_SQL, REGIONS

DB = os.path.join("data", "anidojo.db")
os.makedirs(os.path.dirname(DB), exist_ok=True)
with sqlite3.connect(DB) as c:
    c.executescript(SCHEMA_SQL)
    cur = c.execute("SELECT name FROM regions")
    present = {r[0] for r in cur.fetchall()}
    print("initialized db at", DB)
    print("regions present:", ", ".join(sorted(present & set(REGIONS))) or "none")
