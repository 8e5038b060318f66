"""
Pipeline runner: one "run once" invocation.

    1. open the connection pool (DATABASE_URL is required)
    2. ensure the schema exists
    3. open the sync_log entry
    4. reconcile fixtures, then drain the unprocessed queue
    5. close the sync_log entry with counts, or with the error
    6. close the pool

Every component receives the same PostgresDB; nothing holds a global
connection.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from .core.config import Settings, get_settings
from .fixtures.ledger import FixtureLedger
from .fixtures.processor import BatchProcessor, BatchResult
from .fixtures.reconciler import FixtureReconciler, ReconcileMode, ReconcileResult
from .pg_connection import PostgresDB
from .providers.base import FixtureSource
from .providers.scores365 import Scores365Client
from .schema import init_schema
from .sync_log import SyncLog

logger = logging.getLogger(__name__)

SYNC_SOURCE = "fixtures-pipeline"


@dataclass
class RunResult:
    """Outcome of one pipeline run."""
    run_id: str
    reconcile: Optional[ReconcileResult] = None
    batch: Optional[BatchResult] = None
    success: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "reconcile": self.reconcile.to_dict() if self.reconcile else None,
            "batch": self.batch.to_dict() if self.batch else None,
            "success": self.success,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
        }


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"run-{stamp}-{uuid.uuid4().hex[:8]}"


def _finished_count(reconcile: ReconcileResult) -> int:
    if reconcile.mode is ReconcileMode.bootstrap:
        return reconcile.finished_fetched
    return reconcile.newly_finished


async def run_pipeline(
    settings: Optional[Settings] = None,
    source: Optional[FixtureSource] = None,
) -> RunResult:
    """
    Run reconciliation and one batch drain.

    Args:
        settings: Pipeline settings (defaults to get_settings())
        source: Fixture source; a Scores365Client is built (and closed) when omitted

    Raises:
        ValueError: If no database URL is configured
        Exception: Whatever aborted the run, after it is recorded in sync_log
    """
    settings = settings or get_settings()
    start = time.monotonic()
    result = RunResult(run_id=new_run_id())

    db = PostgresDB(settings.database_url, max_pool_size=settings.database_pool_size)
    db.open()
    owns_source = source is None
    if source is None:
        source = Scores365Client.from_settings(settings)

    try:
        init_schema(db)
        sync = SyncLog(db, result.run_id, source=SYNC_SOURCE)
        sync.start()

        try:
            ledger = FixtureLedger(db)

            result.reconcile = await FixtureReconciler(ledger, source).run()

            processor = BatchProcessor(
                ledger,
                source,
                max_matches=settings.batch_max_matches,
                max_seconds=settings.batch_max_seconds,
                stale_after_minutes=settings.stale_processing_minutes,
            )
            result.batch = await processor.run()

            sync.complete(
                finished_fetched=_finished_count(result.reconcile),
                unfinished_fetched=result.reconcile.upcoming_fetched,
                matches_queued=result.reconcile.queued,
                matches_processed=result.batch.succeeded,
                matches_failed=result.batch.failed,
            )
            result.success = True
        except Exception as e:
            result.error = str(e)
            sync.fail(e)
            raise
    finally:
        result.duration_seconds = round(time.monotonic() - start, 3)
        if owns_source and hasattr(source, "close"):
            await source.close()
        db.close()

    logger.info(f"Run {result.run_id} finished in {result.duration_seconds:.1f}s")
    return result
