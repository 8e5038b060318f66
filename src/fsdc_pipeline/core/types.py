"""
Core types and constants for the fixtures pipeline.

This module provides:
- Status enums for the match processing state machine
- The provider's status-group codes
- Venue designation
- Table name constants shared by the ledger, schema and queries
"""

from enum import Enum, IntEnum


class StageStatus(str, Enum):
    """Status of a single processing stage (fetch, process, save)."""

    pending = "pending"
    processing = "processing"
    success = "success"
    failed = "failed"


class OverallStatus(str, Enum):
    """Overall status of a match in the processing pipeline."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class Stage(str, Enum):
    """Processing stages, in execution order."""

    fetch = "fetch"
    process = "process"
    save = "save"


class StatusGroup(IntEnum):
    """365scores coarse match state (``statusGroup``)."""

    unknown = 0
    scheduled = 2
    live = 3
    finished = 4


class Venue(str, Enum):
    """Home or away designation within one match."""

    home = "home"
    away = "away"

    @property
    def opponent(self) -> "Venue":
        return Venue.away if self is Venue.home else Venue.home


class SyncStatus(str, Enum):
    """Terminal status of a pipeline run in the sync log."""

    running = "running"
    success = "success"
    failed = "failed"


# Maximum stored length of any error message
ERROR_MESSAGE_LIMIT = 500

# =============================================================================
# Table names
# =============================================================================

UPCOMING_TABLE = "upcoming_fixtures"
FINISHED_TABLE = "finished_matches"
QUEUE_TABLE = "unprocessed_fixtures"
ARCHIVE_TABLE = "processed_fixtures"
STATUS_TABLE = "match_processing_status"
PLAYER_STATS_TABLE = "player_match_stats"
GOALKEEPER_STATS_TABLE = "goalkeeper_match_stats"
TEAM_STATS_TABLE = "team_match_stats"
SYNC_LOG_TABLE = "sync_log"


def truncate_error(message: object) -> str:
    """Render an error for storage, capped at ERROR_MESSAGE_LIMIT characters."""
    return str(message)[:ERROR_MESSAGE_LIMIT]
