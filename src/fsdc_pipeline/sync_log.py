"""
Run audit log.

One sync_log row per pipeline invocation: opened as "running", then
closed as "success" with counts or as "failed" with a truncated error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .core.types import SYNC_LOG_TABLE, SyncStatus, truncate_error

if TYPE_CHECKING:
    from .pg_connection import PostgresDB

logger = logging.getLogger(__name__)


class SyncLog:
    """Writes the sync_log entry for one run."""

    def __init__(self, db: "PostgresDB", run_id: str, source: str = "fixtures-pipeline"):
        self.db = db
        self.run_id = run_id
        self.source = source

    def start(self) -> None:
        self.db.execute(
            f"""
            INSERT INTO {SYNC_LOG_TABLE} (run_id, source, status, started_at)
            VALUES (%s, %s, %s, NOW())
            """,
            (self.run_id, self.source, SyncStatus.running.value),
        )
        logger.info(f"Sync {self.run_id} started")

    def complete(
        self,
        finished_fetched: int = 0,
        unfinished_fetched: int = 0,
        matches_queued: int = 0,
        matches_processed: int = 0,
        matches_failed: int = 0,
    ) -> None:
        self.db.execute(
            f"""
            UPDATE {SYNC_LOG_TABLE}
            SET status = %s,
                finished_fetched = %s,
                unfinished_fetched = %s,
                matches_queued = %s,
                matches_processed = %s,
                matches_failed = %s,
                completed_at = NOW()
            WHERE run_id = %s
            """,
            (
                SyncStatus.success.value,
                finished_fetched,
                unfinished_fetched,
                matches_queued,
                matches_processed,
                matches_failed,
                self.run_id,
            ),
        )
        logger.info(f"Sync {self.run_id} completed")

    def fail(self, error: object) -> None:
        self.db.execute(
            f"""
            UPDATE {SYNC_LOG_TABLE}
            SET status = %s,
                error_message = %s,
                completed_at = NOW()
            WHERE run_id = %s
            """,
            (SyncStatus.failed.value, truncate_error(error), self.run_id),
        )
        logger.error(f"Sync {self.run_id} failed: {error}")


def recent_runs(db: "PostgresDB", limit: int = 5, status: Optional[SyncStatus] = None) -> list[dict]:
    """Most recent sync_log rows, newest first."""
    if status is None:
        return db.fetchall(
            f"SELECT * FROM {SYNC_LOG_TABLE} ORDER BY started_at DESC LIMIT %s",
            (limit,),
        )
    return db.fetchall(
        f"SELECT * FROM {SYNC_LOG_TABLE} WHERE status = %s ORDER BY started_at DESC LIMIT %s",
        (SyncStatus(status).value, limit),
    )
