"""
Database schema for the fixtures pipeline.

All statements are idempotent (CREATE ... IF NOT EXISTS) so init_schema()
can run at the start of every pipeline run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .core.types import (
    ARCHIVE_TABLE,
    FINISHED_TABLE,
    GOALKEEPER_STATS_TABLE,
    PLAYER_STATS_TABLE,
    QUEUE_TABLE,
    STATUS_TABLE,
    SYNC_LOG_TABLE,
    TEAM_STATS_TABLE,
    UPCOMING_TABLE,
)

if TYPE_CHECKING:
    from .pg_connection import PostgresDB

logger = logging.getLogger(__name__)

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {UPCOMING_TABLE} (
    id SERIAL PRIMARY KEY,
    fixture_id TEXT NOT NULL UNIQUE,
    round_num INTEGER NOT NULL DEFAULT 0,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    kickoff_time TIMESTAMPTZ,
    status TEXT,
    status_group INTEGER NOT NULL DEFAULT 0,
    full_data JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_upcoming_round ON {UPCOMING_TABLE} (round_num);
CREATE INDEX IF NOT EXISTS idx_upcoming_kickoff ON {UPCOMING_TABLE} (kickoff_time);

CREATE TABLE IF NOT EXISTS {FINISHED_TABLE} (
    id SERIAL PRIMARY KEY,
    fixture_id TEXT NOT NULL UNIQUE,
    round_num INTEGER NOT NULL DEFAULT 0,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    home_score INTEGER NOT NULL DEFAULT 0,
    away_score INTEGER NOT NULL DEFAULT 0,
    match_date TIMESTAMPTZ,
    status TEXT,
    full_data JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_finished_round ON {FINISHED_TABLE} (round_num);
CREATE INDEX IF NOT EXISTS idx_finished_date ON {FINISHED_TABLE} (match_date);

CREATE TABLE IF NOT EXISTS {QUEUE_TABLE} (
    id SERIAL PRIMARY KEY,
    fixture_id TEXT NOT NULL UNIQUE,
    round_num INTEGER NOT NULL DEFAULT 0,
    home_team TEXT NOT NULL,
    away_team TEXT NOT NULL,
    home_score INTEGER NOT NULL DEFAULT 0,
    away_score INTEGER NOT NULL DEFAULT 0,
    match_date TIMESTAMPTZ,
    full_data JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_queue_order ON {QUEUE_TABLE} (round_num, match_date);

CREATE TABLE IF NOT EXISTS {ARCHIVE_TABLE} (
    id SERIAL PRIMARY KEY,
    fixture_id TEXT NOT NULL UNIQUE,
    round_num INTEGER NOT NULL DEFAULT 0,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS {STATUS_TABLE} (
    id SERIAL PRIMARY KEY,
    fixture_id TEXT NOT NULL UNIQUE,
    round_num INTEGER NOT NULL DEFAULT 0,
    home_team TEXT,
    away_team TEXT,
    match_date TIMESTAMPTZ,
    fetch_status TEXT NOT NULL DEFAULT 'pending',
    fetch_attempts INTEGER NOT NULL DEFAULT 0,
    fetch_error TEXT,
    fetch_completed_at TIMESTAMPTZ,
    process_status TEXT NOT NULL DEFAULT 'pending',
    process_attempts INTEGER NOT NULL DEFAULT 0,
    process_error TEXT,
    process_completed_at TIMESTAMPTZ,
    save_status TEXT NOT NULL DEFAULT 'pending',
    save_error TEXT,
    save_completed_at TIMESTAMPTZ,
    overall_status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_status_overall ON {STATUS_TABLE} (overall_status);

CREATE TABLE IF NOT EXISTS {PLAYER_STATS_TABLE} (
    id SERIAL PRIMARY KEY,
    player_id TEXT NOT NULL,
    player_name TEXT NOT NULL,
    team_name TEXT NOT NULL,
    shirt_number INTEGER,
    round_num INTEGER NOT NULL DEFAULT 0,
    game_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    mp INTEGER NOT NULL DEFAULT 1,
    minutes INTEGER NOT NULL DEFAULT 0,
    goals INTEGER NOT NULL DEFAULT 0,
    xg DOUBLE PRECISION NOT NULL DEFAULT 0,
    npxg DOUBLE PRECISION NOT NULL DEFAULT 0,
    assists INTEGER NOT NULL DEFAULT 0,
    xa DOUBLE PRECISION NOT NULL DEFAULT 0,
    penalties_scored INTEGER NOT NULL DEFAULT 0,
    penalties_missed INTEGER NOT NULL DEFAULT 0,
    game_timestamp TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (player_id, game_id, venue)
);

CREATE TABLE IF NOT EXISTS {GOALKEEPER_STATS_TABLE} (
    id SERIAL PRIMARY KEY,
    player_id TEXT NOT NULL,
    player_name TEXT NOT NULL,
    team_name TEXT NOT NULL,
    shirt_number INTEGER,
    round_num INTEGER NOT NULL DEFAULT 0,
    game_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    mp INTEGER NOT NULL DEFAULT 1,
    minutes INTEGER NOT NULL DEFAULT 0,
    goals_conceded INTEGER NOT NULL DEFAULT 0,
    clean_sheets INTEGER NOT NULL DEFAULT 0,
    saves INTEGER NOT NULL DEFAULT 0,
    xg_prevented DOUBLE PRECISION NOT NULL DEFAULT 0,
    penalties_saved INTEGER NOT NULL DEFAULT 0,
    penalties_faced INTEGER NOT NULL DEFAULT 0,
    game_timestamp TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (player_id, game_id, venue)
);

CREATE TABLE IF NOT EXISTS {TEAM_STATS_TABLE} (
    id SERIAL PRIMARY KEY,
    team_name TEXT NOT NULL,
    round_num INTEGER NOT NULL DEFAULT 0,
    game_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    mp INTEGER NOT NULL DEFAULT 1,
    goals_for INTEGER NOT NULL DEFAULT 0,
    goals_against INTEGER NOT NULL DEFAULT 0,
    penalties_scored INTEGER NOT NULL DEFAULT 0,
    penalties_missed INTEGER NOT NULL DEFAULT 0,
    penalties_conceded INTEGER NOT NULL DEFAULT 0,
    xg_for DOUBLE PRECISION NOT NULL DEFAULT 0,
    npxg_for DOUBLE PRECISION NOT NULL DEFAULT 0,
    xg_against DOUBLE PRECISION NOT NULL DEFAULT 0,
    npxg_against DOUBLE PRECISION NOT NULL DEFAULT 0,
    score_str TEXT NOT NULL,
    npscore_str TEXT NOT NULL,
    game_timestamp TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (team_name, game_id, venue)
);

CREATE TABLE IF NOT EXISTS {SYNC_LOG_TABLE} (
    id SERIAL PRIMARY KEY,
    run_id TEXT NOT NULL UNIQUE,
    source TEXT NOT NULL,
    finished_fetched INTEGER NOT NULL DEFAULT 0,
    unfinished_fetched INTEGER NOT NULL DEFAULT 0,
    matches_queued INTEGER NOT NULL DEFAULT 0,
    matches_processed INTEGER NOT NULL DEFAULT 0,
    matches_failed INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'running',
    error_message TEXT,
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    completed_at TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS idx_sync_log_status ON {SYNC_LOG_TABLE} (status);
"""

ALL_TABLES = (
    UPCOMING_TABLE,
    FINISHED_TABLE,
    QUEUE_TABLE,
    ARCHIVE_TABLE,
    STATUS_TABLE,
    PLAYER_STATS_TABLE,
    GOALKEEPER_STATS_TABLE,
    TEAM_STATS_TABLE,
    SYNC_LOG_TABLE,
)


def init_schema(db: "PostgresDB") -> None:
    """Create all pipeline tables and indexes if they do not exist."""
    logger.info("Initializing fixtures schema...")
    db.executescript(SCHEMA_SQL)
    logger.info("Fixtures schema ready (%d tables)", len(ALL_TABLES))
