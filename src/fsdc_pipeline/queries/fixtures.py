"""
Dashboard read model.

Shapes stored fixtures into the payload the dashboard consumes:

    {
        "finished_matches": [{id, round, home, away, home_score, away_score, match_date, status}],
        "upcoming_fixtures": [{id, round, home, away, kickoff, status}],
    }
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.types import FINISHED_TABLE, UPCOMING_TABLE

if TYPE_CHECKING:
    from ..pg_connection import PostgresDB


FINISHED_QUERY = f"""
    SELECT
        fixture_id AS id,
        round_num AS round,
        home_team AS home,
        away_team AS away,
        home_score,
        away_score,
        match_date,
        status
    FROM {FINISHED_TABLE}
    ORDER BY round_num DESC, match_date DESC NULLS LAST
"""

UPCOMING_QUERY = f"""
    SELECT
        fixture_id AS id,
        round_num AS round,
        home_team AS home,
        away_team AS away,
        kickoff_time AS kickoff,
        status
    FROM {UPCOMING_TABLE}
    ORDER BY round_num ASC, kickoff_time ASC NULLS LAST
"""


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value


def get_fixtures_overview(db: "PostgresDB") -> dict[str, list[dict[str, Any]]]:
    """Finished matches (latest round first) and upcoming fixtures (next round first)."""
    finished = db.fetchall(FINISHED_QUERY)
    upcoming = db.fetchall(UPCOMING_QUERY)

    for row in finished:
        row["match_date"] = _iso(row["match_date"])
    for row in upcoming:
        row["kickoff"] = _iso(row["kickoff"])

    return {
        "finished_matches": finished,
        "upcoming_fixtures": upcoming,
    }
