"""
Fixture ledger: the persistent lifecycle of every match.

Record sets:
    upcoming_fixtures        scheduled/live snapshot, overwritten each run
    finished_matches         every match seen finished, with final score
    unprocessed_fixtures     finished matches awaiting stats extraction
    processed_fixtures       archive of matches whose stats are stored
    match_processing_status  per-stage status of every queued match

A match id is in at most one of {unprocessed, processed} at any time.
The move between them happens only in complete_match(), in the same
transaction as the stat rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Optional

import psycopg
from psycopg.types.json import Jsonb

from ..core.types import (
    ARCHIVE_TABLE,
    FINISHED_TABLE,
    QUEUE_TABLE,
    STATUS_TABLE,
    UPCOMING_TABLE,
    OverallStatus,
    Stage,
    StageStatus,
    truncate_error,
)
from ..providers.base import Match
from ..query_builder import build_upsert
from ..stats.repository import save_extraction

if TYPE_CHECKING:
    from ..pg_connection import PostgresDB
    from ..stats.extractor import ExtractionResult

logger = logging.getLogger(__name__)

UPCOMING_COLUMNS = (
    "fixture_id", "round_num", "home_team", "away_team",
    "kickoff_time", "status", "status_group", "full_data",
)
FINISHED_COLUMNS = (
    "fixture_id", "round_num", "home_team", "away_team",
    "home_score", "away_score", "match_date", "status", "full_data",
)

# xmax = 0 only for rows created by this statement
UPSERT_UPCOMING_SQL = (
    build_upsert(UPCOMING_TABLE, UPCOMING_COLUMNS, ("fixture_id",))
    + "\n        RETURNING (xmax = 0) AS inserted"
)
UPSERT_FINISHED_SQL = (
    build_upsert(FINISHED_TABLE, FINISHED_COLUMNS, ("fixture_id",))
    + "\n        RETURNING (xmax = 0) AS inserted"
)

ENQUEUE_SQL = f"""
    INSERT INTO {QUEUE_TABLE}
        (fixture_id, round_num, home_team, away_team, home_score, away_score, match_date, full_data)
    SELECT %s::text, %s::int, %s::text, %s::text, %s::int, %s::int, %s::timestamptz, %s::jsonb
    WHERE NOT EXISTS (SELECT 1 FROM {ARCHIVE_TABLE} WHERE fixture_id = %s)
    ON CONFLICT (fixture_id) DO NOTHING
"""

CREATE_STATUS_SQL = f"""
    INSERT INTO {STATUS_TABLE} (fixture_id, round_num, home_team, away_team, match_date)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (fixture_id) DO NOTHING
"""

NEXT_QUEUED_SQL = f"""
    SELECT
        q.fixture_id, q.round_num, q.home_team, q.away_team,
        q.home_score, q.away_score, q.match_date,
        s.overall_status
    FROM {QUEUE_TABLE} q
    LEFT JOIN {STATUS_TABLE} s ON s.fixture_id = q.fixture_id
    WHERE (s.overall_status IS NULL OR s.overall_status <> %s)
      AND NOT (q.fixture_id = ANY(%s::text[]))
    ORDER BY q.round_num ASC, q.match_date ASC NULLS LAST, q.id ASC
    LIMIT 1
"""

STALE_ERROR = "Processing abandoned by a previous run"


@dataclass
class UpsertResult:
    """Counts for a multi-row ledger write."""
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "failed": self.failed,
            "deleted": self.deleted,
            "errors": self.errors,
        }


@dataclass
class QueuedMatch:
    """A queue entry eligible for processing."""
    match_id: str
    round_num: int
    home_team: str
    away_team: str
    home_score: int = 0
    away_score: int = 0
    match_date: Optional[datetime] = None
    overall_status: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "QueuedMatch":
        return cls(
            match_id=row["fixture_id"],
            round_num=row["round_num"],
            home_team=row["home_team"],
            away_team=row["away_team"],
            home_score=row["home_score"],
            away_score=row["away_score"],
            match_date=row["match_date"],
            overall_status=row.get("overall_status"),
        )


def _upcoming_params(match: Match) -> tuple:
    return (
        match.match_id,
        match.round_num,
        match.home_team,
        match.away_team,
        match.kickoff,
        match.status,
        int(match.status_group),
        Jsonb(match.raw),
    )


def _finished_params(match: Match) -> tuple:
    return (
        match.match_id,
        match.round_num,
        match.home_team,
        match.away_team,
        match.home_score,
        match.away_score,
        match.kickoff,
        match.status,
        Jsonb(match.raw),
    )


class FixtureLedger:
    """
    PostgreSQL-backed match lifecycle store.

    Every multi-statement operation runs inside PostgresDB.transaction(),
    so a failure leaves no partial state behind.
    """

    def __init__(self, db: "PostgresDB"):
        self.db = db

    # =========================================================================
    # Reads
    # =========================================================================

    def is_first_run(self) -> bool:
        """True while no finished match has ever been recorded."""
        row = self.db.fetchone(f"SELECT COUNT(*) AS count FROM {FINISHED_TABLE}")
        return not row or row["count"] == 0

    def get_upcoming_ids(self) -> set[str]:
        rows = self.db.fetchall(f"SELECT fixture_id FROM {UPCOMING_TABLE}")
        return {row["fixture_id"] for row in rows}

    def get_oldest_queued_unlocked(
        self,
        exclude_ids: Iterable[str] = (),
    ) -> Optional[QueuedMatch]:
        """
        Oldest queued match (by round, then match date) not currently processing.

        Args:
            exclude_ids: Matches already attempted in this run
        """
        row = self.db.fetchone(
            NEXT_QUEUED_SQL,
            (OverallStatus.processing.value, list(exclude_ids)),
        )
        return QueuedMatch.from_row(row) if row else None

    def get_status(self, match_id: str) -> Optional[dict[str, Any]]:
        return self.db.fetchone(
            f"SELECT * FROM {STATUS_TABLE} WHERE fixture_id = %s",
            (match_id,),
        )

    def counts(self) -> dict[str, int]:
        """Row counts per record set plus a breakdown of overall statuses."""
        counts: dict[str, int] = {}
        for table in (UPCOMING_TABLE, FINISHED_TABLE, QUEUE_TABLE, ARCHIVE_TABLE):
            row = self.db.fetchone(f"SELECT COUNT(*) AS count FROM {table}")
            counts[table] = row["count"] if row else 0

        rows = self.db.fetchall(
            f"SELECT overall_status, COUNT(*) AS count FROM {STATUS_TABLE} GROUP BY overall_status"
        )
        for status in OverallStatus:
            counts[f"status_{status.value}"] = 0
        for row in rows:
            counts[f"status_{row['overall_status']}"] = row["count"]
        return counts

    # =========================================================================
    # Upcoming snapshot
    # =========================================================================

    def upsert_upcoming(self, matches: Iterable[Match]) -> UpsertResult:
        """Insert or refresh upcoming rows; one bad match never stops the rest."""
        result = UpsertResult()
        for match in matches:
            try:
                with self.db.transaction() as conn:
                    row = conn.execute(UPSERT_UPCOMING_SQL, _upcoming_params(match)).fetchone()
                if row and row["inserted"]:
                    result.inserted += 1
                else:
                    result.updated += 1
            except psycopg.Error as e:
                logger.error(f"Failed to upsert upcoming match {match.match_id}: {e}")
                result.failed += 1
                result.errors.append(f"{match.match_id}: {truncate_error(e)}")
        return result

    def sync_upcoming(
        self,
        matches: list[Match],
        keep_ids: Iterable[str] = (),
    ) -> UpsertResult:
        """
        Make the upcoming snapshot equal to ``matches`` plus ``keep_ids``.

        Rows for any other id are deleted.
        """
        result = self.upsert_upcoming(matches)
        retained = sorted({m.match_id for m in matches} | set(keep_ids))
        result.deleted = self.db.execute(
            f"DELETE FROM {UPCOMING_TABLE} WHERE NOT (fixture_id = ANY(%s::text[]))",
            (retained,),
        )
        logger.info(
            f"Upcoming snapshot synced: {result.inserted} new, {result.updated} updated, "
            f"{result.deleted} removed, {result.failed} failed"
        )
        return result

    # =========================================================================
    # Finished + queue
    # =========================================================================

    def upsert_finished(self, match: Match) -> bool:
        """Insert or refresh a finished record. Returns True if newly inserted."""
        with self.db.transaction() as conn:
            row = conn.execute(UPSERT_FINISHED_SQL, _finished_params(match)).fetchone()
        return bool(row and row["inserted"])

    def mark_finished(self, match: Match) -> bool:
        """
        Record a match as finished and queue it for stats extraction.

        In one transaction:
            1. upsert the finished record
            2. enqueue it unless already queued or archived
            3. create its status record if none exists
            4. drop it from the upcoming snapshot

        Returns:
            True if the match was newly queued
        """
        with self.db.transaction() as conn:
            conn.execute(UPSERT_FINISHED_SQL, _finished_params(match))
            cur = conn.execute(
                ENQUEUE_SQL,
                (
                    match.match_id, match.round_num, match.home_team, match.away_team,
                    match.home_score, match.away_score, match.kickoff, Jsonb(match.raw),
                    match.match_id,
                ),
            )
            queued = cur.rowcount == 1
            conn.execute(
                CREATE_STATUS_SQL,
                (match.match_id, match.round_num, match.home_team, match.away_team, match.kickoff),
            )
            conn.execute(
                f"DELETE FROM {UPCOMING_TABLE} WHERE fixture_id = %s",
                (match.match_id,),
            )

        if queued:
            logger.info(
                f"Queued finished match {match.match_id}: "
                f"{match.home_team} {match.home_score}-{match.away_score} {match.away_team}"
            )
        return queued

    def mark_finished_batch(self, matches: Iterable[Match]) -> UpsertResult:
        """mark_finished() per match; ``inserted`` counts newly queued matches."""
        result = UpsertResult()
        for match in matches:
            try:
                if self.mark_finished(match):
                    result.inserted += 1
                else:
                    result.updated += 1
            except psycopg.Error as e:
                logger.error(f"Failed to mark match {match.match_id} finished: {e}")
                result.failed += 1
                result.errors.append(f"{match.match_id}: {truncate_error(e)}")
        return result

    # =========================================================================
    # Processing status
    # =========================================================================

    def start_processing(self, match_id: str) -> None:
        self.db.execute(
            f"""
            INSERT INTO {STATUS_TABLE} (fixture_id, overall_status)
            VALUES (%s, %s)
            ON CONFLICT (fixture_id) DO UPDATE SET
                overall_status = EXCLUDED.overall_status,
                updated_at = NOW()
            """,
            (match_id, OverallStatus.processing.value),
        )

    def start_stage(self, match_id: str, stage: Stage) -> None:
        """Mark a stage processing; fetch and process also count an attempt."""
        stage = Stage(stage)
        attempts = (
            f", {stage.value}_attempts = {stage.value}_attempts + 1"
            if stage in (Stage.fetch, Stage.process)
            else ""
        )
        self.db.execute(
            f"""
            UPDATE {STATUS_TABLE}
            SET {stage.value}_status = %s{attempts}, updated_at = NOW()
            WHERE fixture_id = %s
            """,
            (StageStatus.processing.value, match_id),
        )

    def mark_stage_success(self, match_id: str, stage: Stage) -> None:
        stage = Stage(stage)
        self.db.execute(
            f"""
            UPDATE {STATUS_TABLE}
            SET {stage.value}_status = %s,
                {stage.value}_error = NULL,
                {stage.value}_completed_at = NOW(),
                updated_at = NOW()
            WHERE fixture_id = %s
            """,
            (StageStatus.success.value, match_id),
        )

    def mark_stage_failed(
        self,
        match_id: str,
        stage: Stage,
        error: object,
        also_failed: Iterable[Stage] = (),
    ) -> None:
        """
        Mark ``stage`` (and any ``also_failed`` stages) failed with ``error``
        and the match overall failed.
        """
        stages = [Stage(stage)] + [Stage(s) for s in also_failed]
        message = truncate_error(error)
        assignments = []
        params: list[Any] = []
        for s in stages:
            assignments.append(f"{s.value}_status = %s, {s.value}_error = %s")
            params.extend([StageStatus.failed.value, message])

        self.db.execute(
            f"""
            UPDATE {STATUS_TABLE}
            SET {", ".join(assignments)},
                overall_status = %s,
                updated_at = NOW()
            WHERE fixture_id = %s
            """,
            (*params, OverallStatus.failed.value, match_id),
        )

    def reset_stale_processing(self, older_than_minutes: int) -> int:
        """
        Release matches left "processing" by a crashed run.

        The in-flight stage is marked failed with a note and the match
        goes back to overall "pending" so the batch loop can pick it up.

        Returns:
            Number of matches reset
        """
        cases = ",\n                ".join(
            f"{s.value}_status = CASE WHEN {s.value}_status = %(processing)s "
            f"THEN %(failed)s ELSE {s.value}_status END, "
            f"{s.value}_error = CASE WHEN {s.value}_status = %(processing)s "
            f"THEN %(note)s ELSE {s.value}_error END"
            for s in Stage
        )
        reset = self.db.execute(
            f"""
            UPDATE {STATUS_TABLE}
            SET {cases},
                overall_status = %(pending)s,
                updated_at = NOW()
            WHERE overall_status = %(processing)s
              AND updated_at < NOW() - make_interval(mins => %(minutes)s)
            """,
            {
                "processing": OverallStatus.processing.value,
                "failed": StageStatus.failed.value,
                "pending": OverallStatus.pending.value,
                "note": STALE_ERROR,
                "minutes": older_than_minutes,
            },
        )
        if reset:
            logger.warning(f"Reset {reset} stale processing match(es) older than {older_than_minutes}m")
        return reset

    # =========================================================================
    # Completion
    # =========================================================================

    def complete_match(self, match_id: str, extraction: "ExtractionResult") -> int:
        """
        Persist a match's stats and move it from the queue to the archive.

        One transaction: stat upserts, archive insert, queue delete, save
        stage success, overall completed.

        Returns:
            Number of stat rows written
        """
        with self.db.transaction() as conn:
            written = save_extraction(conn, extraction)
            conn.execute(
                f"""
                INSERT INTO {ARCHIVE_TABLE} (fixture_id, round_num)
                SELECT fixture_id, round_num FROM {QUEUE_TABLE} WHERE fixture_id = %s
                ON CONFLICT (fixture_id) DO NOTHING
                """,
                (match_id,),
            )
            conn.execute(f"DELETE FROM {QUEUE_TABLE} WHERE fixture_id = %s", (match_id,))
            conn.execute(
                f"""
                UPDATE {STATUS_TABLE}
                SET save_status = %s,
                    save_error = NULL,
                    save_completed_at = NOW(),
                    overall_status = %s,
                    updated_at = NOW()
                WHERE fixture_id = %s
                """,
                (StageStatus.success.value, OverallStatus.completed.value, match_id),
            )
        return written
