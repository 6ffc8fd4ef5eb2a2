"""
SQLite persistence for the CFP engine.

Stores businesses, crawl jobs, fingerprint history (append-only) and
published knowledge-base entities.
"""

import os
import sqlite3
import json
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

# Default path; override with CFP_DB_PATH
DEFAULT_DB_DIR = "data"
DEFAULT_DB_NAME = "cfp.db"

# Businesses not crawled for this long are picked up again when catch_missed is on
STALE_CRAWL_DAYS = 30

BUSINESS_FIELDS = (
    "name", "url", "category", "city", "state", "country", "tier",
    "status", "crawl_data", "last_crawled_at", "next_crawl_at",
    "wikidata_qid", "wikidata_published_at", "error_message", "notability_summary",
)
_JSON_FIELDS = ("crawl_data",)


def get_db_path() -> str:
    """Return path to SQLite DB file."""
    path = os.getenv("CFP_DB_PATH")
    if path:
        return path
    os.makedirs(DEFAULT_DB_DIR, exist_ok=True)
    return os.path.join(DEFAULT_DB_DIR, DEFAULT_DB_NAME)


def _get_conn() -> sqlite3.Connection:
    """Get connection with row factory for dict-like rows."""
    conn = sqlite3.connect(get_db_path(), timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db() -> None:
    """Create tables if they do not exist."""
    conn = _get_conn()
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS businesses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                url TEXT,
                category TEXT,
                city TEXT,
                state TEXT,
                country TEXT DEFAULT 'US',
                tier TEXT NOT NULL DEFAULT 'free',
                status TEXT NOT NULL DEFAULT 'pending',
                crawl_data TEXT,
                last_crawled_at TEXT,
                next_crawl_at TEXT,
                wikidata_qid TEXT,
                wikidata_published_at TEXT,
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS crawl_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                business_id INTEGER NOT NULL,
                job_type TEXT NOT NULL DEFAULT 'initial_crawl',
                status TEXT NOT NULL DEFAULT 'queued',
                error_message TEXT,
                started_at TEXT,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (business_id) REFERENCES businesses(id)
            );

            CREATE TABLE IF NOT EXISTS fingerprints (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                business_id INTEGER NOT NULL,
                visibility_score INTEGER NOT NULL,
                mention_rate REAL,
                sentiment_score REAL,
                accuracy_score REAL,
                avg_rank_position REAL,
                llm_results_json TEXT NOT NULL,
                competitive_leaderboard_json TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (business_id) REFERENCES businesses(id)
            );

            CREATE TABLE IF NOT EXISTS wikidata_entities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                business_id INTEGER NOT NULL,
                qid TEXT NOT NULL,
                entity_json TEXT NOT NULL,
                published_to TEXT NOT NULL,
                notability_json TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (business_id) REFERENCES businesses(id)
            );

            CREATE INDEX IF NOT EXISTS idx_crawl_jobs_business ON crawl_jobs(business_id);
            CREATE INDEX IF NOT EXISTS idx_fingerprints_business ON fingerprints(business_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_entities_business ON wikidata_entities(business_id);
        """)
        conn.commit()
        # Optional columns (migration for existing DBs)
        for sql in [
            "ALTER TABLE businesses ADD COLUMN notability_summary TEXT",
        ]:
            try:
                conn.execute(sql)
                conn.commit()
            except sqlite3.OperationalError:
                pass  # column already exists
    finally:
        conn.close()


# =============================================================================
# BUSINESSES
# =============================================================================

def _business_row(row: sqlite3.Row) -> Dict[str, Any]:
    out = dict(row)
    for key in _JSON_FIELDS:
        out[key] = json.loads(out[key]) if out.get(key) else None
    return out


def create_business(
    name: str,
    url: Optional[str] = None,
    category: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    country: str = "US",
    tier: str = "free",
) -> int:
    """Insert a business in status 'pending'; return its id."""
    if not name or not name.strip():
        raise ValueError("Business name is required")
    now = _now()
    conn = _get_conn()
    try:
        cur = conn.execute(
            """INSERT INTO businesses (name, url, category, city, state, country, tier, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)""",
            (name.strip(), url, category, city, state, country or "US", tier or "free", now, now)
        )
        conn.commit()
        business_id = cur.lastrowid
    finally:
        conn.close()
    logger.info("Created business %s (%s)", business_id, name)
    return business_id


def get_business(business_id: int) -> Optional[Dict]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM businesses WHERE id = ?", (business_id,)).fetchone()
        return _business_row(row) if row else None
    finally:
        conn.close()


def list_businesses(limit: int = 100, status: Optional[str] = None) -> List[Dict]:
    """List businesses, newest first. Optionally filter by status."""
    conn = _get_conn()
    try:
        if status:
            rows = conn.execute(
                "SELECT * FROM businesses WHERE status = ? ORDER BY id DESC LIMIT ?",
                (status, limit)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM businesses ORDER BY id DESC LIMIT ?",
                (limit,)
            ).fetchall()
        return [_business_row(r) for r in rows]
    finally:
        conn.close()


def update_business(business_id: int, **fields: Any) -> None:
    """Update whitelisted business columns; crawl_data is stored as JSON."""
    unknown = set(fields) - set(BUSINESS_FIELDS)
    if unknown:
        raise ValueError(f"Unknown business fields: {sorted(unknown)}")
    if not fields:
        return
    values = []
    for key, value in fields.items():
        if key in _JSON_FIELDS and value is not None:
            value = json.dumps(value, default=str)
        values.append(value)
    assignments = ", ".join(f"{key} = ?" for key in fields)
    conn = _get_conn()
    try:
        conn.execute(
            f"UPDATE businesses SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, _now(), business_id)
        )
        conn.commit()
    finally:
        conn.close()


def list_due_businesses(now: Optional[datetime] = None, catch_missed: bool = True) -> List[Dict]:
    """
    Businesses whose scheduled crawl is due.

    Due = next_crawl_at <= now. With catch_missed, also businesses never
    crawled or last crawled more than STALE_CRAWL_DAYS ago.
    """
    now = now or datetime.now(timezone.utc)
    now_iso = now.isoformat()
    stale_iso = (now - timedelta(days=STALE_CRAWL_DAYS)).isoformat()
    conn = _get_conn()
    try:
        if catch_missed:
            rows = conn.execute(
                """SELECT * FROM businesses
                   WHERE (next_crawl_at IS NOT NULL AND next_crawl_at <= ?)
                      OR last_crawled_at IS NULL
                      OR last_crawled_at < ?
                   ORDER BY id""",
                (now_iso, stale_iso)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM businesses WHERE next_crawl_at IS NOT NULL AND next_crawl_at <= ? ORDER BY id",
                (now_iso,)
            ).fetchall()
        return [_business_row(r) for r in rows]
    finally:
        conn.close()


# =============================================================================
# CRAWL JOBS
# =============================================================================

def create_crawl_job(business_id: int, job_type: str = "initial_crawl") -> int:
    now = _now()
    conn = _get_conn()
    try:
        cur = conn.execute(
            """INSERT INTO crawl_jobs (business_id, job_type, status, started_at, created_at)
               VALUES (?, ?, 'running', ?, ?)""",
            (business_id, job_type, now, now)
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def update_crawl_job(job_id: int, status: str, error_message: Optional[str] = None) -> None:
    """Mark a crawl job completed / failed."""
    conn = _get_conn()
    try:
        conn.execute(
            "UPDATE crawl_jobs SET status = ?, error_message = ?, completed_at = ? WHERE id = ?",
            (status, error_message, _now(), job_id)
        )
        conn.commit()
    finally:
        conn.close()


def get_crawl_job(job_id: int) -> Optional[Dict]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM crawl_jobs WHERE id = ?", (job_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_crawl_jobs(business_id: int) -> List[Dict]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM crawl_jobs WHERE business_id = ? ORDER BY id DESC",
            (business_id,)
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


# =============================================================================
# FINGERPRINTS (append-only)
# =============================================================================

def insert_fingerprint(analysis: Dict) -> int:
    """Append a fingerprint row from FingerprintAnalysis.to_dict(); return its id."""
    conn = _get_conn()
    try:
        cur = conn.execute(
            """INSERT INTO fingerprints (business_id, visibility_score, mention_rate, sentiment_score,
                   accuracy_score, avg_rank_position, llm_results_json, competitive_leaderboard_json, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                analysis["business_id"],
                analysis["visibility_score"],
                analysis.get("mention_rate"),
                analysis.get("sentiment_score"),
                analysis.get("accuracy_score"),
                analysis.get("avg_rank_position"),
                json.dumps(analysis.get("llm_results") or [], default=str),
                json.dumps(analysis["competitive_leaderboard"]) if analysis.get("competitive_leaderboard") else None,
                analysis.get("generated_at") or _now(),
            )
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def _fingerprint_row(row: sqlite3.Row, business_name: Optional[str] = None) -> Dict:
    return {
        "id": row["id"],
        "business_id": row["business_id"],
        "business_name": business_name,
        "visibility_score": row["visibility_score"],
        "mention_rate": row["mention_rate"],
        "sentiment_score": row["sentiment_score"],
        "accuracy_score": row["accuracy_score"],
        "avg_rank_position": row["avg_rank_position"],
        "llm_results": json.loads(row["llm_results_json"]) if row["llm_results_json"] else [],
        "competitive_leaderboard": (
            json.loads(row["competitive_leaderboard_json"]) if row["competitive_leaderboard_json"] else None
        ),
        "generated_at": row["created_at"],
        "created_at": row["created_at"],
    }


def list_fingerprints(business_id: int, limit: int = 50) -> List[Dict]:
    """Fingerprint history, newest first."""
    conn = _get_conn()
    try:
        rows = conn.execute(
            """SELECT f.*, b.name AS business_name FROM fingerprints f
               LEFT JOIN businesses b ON b.id = f.business_id
               WHERE f.business_id = ? ORDER BY f.created_at DESC, f.id DESC LIMIT ?""",
            (business_id, limit)
        ).fetchall()
        return [_fingerprint_row(r, r["business_name"]) for r in rows]
    finally:
        conn.close()


def get_latest_fingerprint(business_id: int) -> Optional[Dict]:
    rows = list_fingerprints(business_id, limit=1)
    return rows[0] if rows else None


# =============================================================================
# PUBLISHED ENTITIES
# =============================================================================

def insert_wikidata_entity(
    business_id: int,
    qid: str,
    entity: Dict,
    published_to: str,
    notability: Optional[Dict] = None,
) -> int:
    now = _now()
    conn = _get_conn()
    try:
        cur = conn.execute(
            """INSERT INTO wikidata_entities (business_id, qid, entity_json, published_to, notability_json, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                business_id,
                qid,
                json.dumps(entity, default=str),
                published_to,
                json.dumps(notability, default=str) if notability else None,
                now,
            )
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def list_wikidata_entities(business_id: int) -> List[Dict]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM wikidata_entities WHERE business_id = ? ORDER BY id DESC",
            (business_id,)
        ).fetchall()
        return [
            {
                "id": r["id"],
                "business_id": r["business_id"],
                "qid": r["qid"],
                "entity": json.loads(r["entity_json"]),
                "published_to": r["published_to"],
                "notability": json.loads(r["notability_json"]) if r["notability_json"] else None,
                "created_at": r["created_at"],
            }
            for r in rows
        ]
    finally:
        conn.close()
