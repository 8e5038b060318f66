"""
Persistence of extracted stat rows.

Runs on a caller-supplied connection so the rows land in the same
transaction as the queue/archive move in FixtureLedger.complete_match().
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from ..core.types import GOALKEEPER_STATS_TABLE, PLAYER_STATS_TABLE, TEAM_STATS_TABLE
from ..query_builder import cached_upsert
from .extractor import (
    ExtractionResult,
    GoalkeeperStatRow,
    PlayerStatRow,
    TeamStatRow,
    row_columns,
    row_values,
)

if TYPE_CHECKING:
    import psycopg

logger = logging.getLogger(__name__)

PLAYER_CONFLICT_KEYS = ("player_id", "game_id", "venue")
TEAM_CONFLICT_KEYS = ("team_name", "game_id", "venue")

# (table, row type, conflict keys)
STAT_TABLES = (
    (PLAYER_STATS_TABLE, PlayerStatRow, PLAYER_CONFLICT_KEYS),
    (GOALKEEPER_STATS_TABLE, GoalkeeperStatRow, PLAYER_CONFLICT_KEYS),
    (TEAM_STATS_TABLE, TeamStatRow, TEAM_CONFLICT_KEYS),
)


def _upsert_rows(
    conn: "psycopg.Connection",
    table: str,
    row_type: type,
    conflict_keys: tuple[str, ...],
    rows: Sequence,
) -> int:
    if not rows:
        return 0
    query = cached_upsert(table, row_columns(row_type), conflict_keys)
    with conn.cursor() as cur:
        cur.executemany(query, [row_values(row) for row in rows])
    return len(rows)


def save_extraction(conn: "psycopg.Connection", result: ExtractionResult) -> int:
    """
    Upsert every row of an extraction. Does not commit.

    Returns:
        Number of rows written
    """
    by_type = {
        PlayerStatRow: result.players,
        GoalkeeperStatRow: result.goalkeepers,
        TeamStatRow: result.teams,
    }
    written = 0
    for table, row_type, conflict_keys in STAT_TABLES:
        written += _upsert_rows(conn, table, row_type, conflict_keys, by_type[row_type])
    logger.debug("Upserted %d stat rows", written)
    return written
