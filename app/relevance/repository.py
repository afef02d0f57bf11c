"""
Relevance Context Record Loader

Read-only queries that fetch the raw rows a UserRelevanceContext is
projected from. No writes, one connection per call site.
"""

import logging
import os
from datetime import date, timedelta
from typing import Any, Dict, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)


def get_db():
    """Get database connection, or None if unavailable."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL not configured")
        return None
    try:
        return psycopg2.connect(database_url, cursor_factory=RealDictCursor)
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        return None


def _fetch_one(cur, query: str, params: tuple) -> Optional[Dict[str, Any]]:
    cur.execute(query, params)
    row = cur.fetchone()
    return dict(row) if row else None


def load_user_records(
    conn,
    user_id: str,
    bloodwork_days: int = 90,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Fetch all rows needed for build_user_context().

    Returns:
        Dict with keys profile, protocol_status, peptide_protocols,
        bloodwork, daily_goals (rows are plain dicts or None)
    """
    since = (today or date.today()) - timedelta(days=bloodwork_days)
    cur = conn.cursor()
    try:
        profile = _fetch_one(cur, """
            SELECT protocol_mode, goal_type, age, gender, weight, target_weight
            FROM profiles
            WHERE user_id = %s
        """, (user_id,))

        protocol_status = _fetch_one(cur, """
            SELECT current_phase
            FROM user_protocol_status
            WHERE user_id = %s
        """, (user_id,))

        cur.execute("""
            SELECT peptides, is_active
            FROM peptide_protocols
            WHERE user_id = %s AND is_active = true
        """, (user_id,))
        peptide_protocols = [dict(r) for r in cur.fetchall()]

        bloodwork = _fetch_one(cur, """
            SELECT *
            FROM user_bloodwork
            WHERE user_id = %s AND test_date >= %s
            ORDER BY test_date DESC
            LIMIT 1
        """, (user_id, since))

        daily_goals = _fetch_one(cur, """
            SELECT calorie_deficit, goal_type
            FROM daily_goals
            WHERE user_id = %s
        """, (user_id,))
    finally:
        cur.close()

    return {
        "profile": profile,
        "protocol_status": protocol_status,
        "peptide_protocols": peptide_protocols,
        "bloodwork": bloodwork,
        "daily_goals": daily_goals,
    }
