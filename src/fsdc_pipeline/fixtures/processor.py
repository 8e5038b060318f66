"""
Batch processor: drains the unprocessed queue within a run budget.

Each match goes through three tracked stages:
    fetch    detail payload from the provider
    process  stats extraction (pure)
    save     stat rows + queue -> archive move, one transaction

A failure at any stage is written to the match's status row and the
loop moves on. A failed match stays in the queue and is picked up again
by a later run; within one run it is never retried.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from ..core.types import Stage, truncate_error
from ..providers.base import FixtureSource
from ..stats.extractor import extract

if TYPE_CHECKING:
    from .ledger import FixtureLedger, QueuedMatch

logger = logging.getLogger(__name__)


@dataclass
class MatchOutcome:
    """Result of processing one queued match."""
    match_id: str
    success: bool
    stage: Optional[Stage] = None
    rows_written: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "success": self.success,
            "stage": self.stage.value if self.stage else None,
            "rows_written": self.rows_written,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Result of one batch run."""
    found: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    stale_reset: int = 0
    budget_exhausted: bool = False
    outcomes: list[MatchOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "stale_reset": self.stale_reset,
            "budget_exhausted": self.budget_exhausted,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


class BatchProcessor:
    """
    Processes queued matches one at a time, oldest round first.

    Usage:
        processor = BatchProcessor(ledger, source, max_matches=50)
        result = await processor.run()
    """

    def __init__(
        self,
        ledger: "FixtureLedger",
        source: FixtureSource,
        max_matches: Optional[int] = None,
        max_seconds: Optional[float] = None,
        stale_after_minutes: Optional[int] = None,
    ):
        """
        Args:
            ledger: Fixture ledger
            source: Source of match-detail payloads
            max_matches: Stop after this many matches (None = until the queue is empty)
            max_seconds: Do not start a new match after this many seconds
            stale_after_minutes: Release "processing" matches older than this first
        """
        self.ledger = ledger
        self.source = source
        self.max_matches = max_matches
        self.max_seconds = max_seconds
        self.stale_after_minutes = stale_after_minutes

    async def run(self) -> BatchResult:
        result = BatchResult()
        start = time.monotonic()

        if self.stale_after_minutes:
            result.stale_reset = self.ledger.reset_stale_processing(self.stale_after_minutes)

        attempted: set[str] = set()
        while True:
            if self.max_matches is not None and result.processed >= self.max_matches:
                result.budget_exhausted = True
                break
            if self.max_seconds is not None and time.monotonic() - start >= self.max_seconds:
                result.budget_exhausted = True
                break

            queued = self.ledger.get_oldest_queued_unlocked(exclude_ids=attempted)
            if queued is None:
                break

            attempted.add(queued.match_id)
            result.found += 1

            try:
                outcome = await self.process_match(queued)
            except Exception as e:
                # Status bookkeeping itself failed; leave the match for a later run
                logger.error(f"Skipping match {queued.match_id}: {e}")
                result.skipped += 1
                result.errors.append(f"{queued.match_id}: {truncate_error(e)}")
                continue

            result.processed += 1
            result.outcomes.append(outcome)
            if outcome.success:
                result.succeeded += 1
            else:
                result.failed += 1
                result.errors.append(f"{outcome.match_id}: {outcome.error}")

        result.duration_seconds = round(time.monotonic() - start, 3)
        if result.found == 0:
            logger.info("No unprocessed matches found")
        logger.info(
            f"Batch complete: {result.succeeded} succeeded, {result.failed} failed "
            f"in {result.duration_seconds:.1f}s"
            + (" (budget exhausted)" if result.budget_exhausted else "")
        )
        return result

    async def process_match(self, queued: "QueuedMatch") -> MatchOutcome:
        """Run fetch, process and save for one match. Never raises for match-level errors."""
        match_id = queued.match_id
        logger.info(
            f"Processing {match_id}: {queued.home_team} vs {queued.away_team} "
            f"(round {queued.round_num})"
        )
        self.ledger.start_processing(match_id)

        # -- Stage 1: fetch ------------------------------------------------
        self.ledger.start_stage(match_id, Stage.fetch)
        try:
            game = await self.source.fetch_match_detail(match_id)
        except Exception as e:
            return self._fail(match_id, Stage.fetch, e)
        self.ledger.mark_stage_success(match_id, Stage.fetch)

        # -- Stage 2: process ----------------------------------------------
        self.ledger.start_stage(match_id, Stage.process)
        try:
            extraction = extract(game, match_id=match_id)
        except Exception as e:
            return self._fail(match_id, Stage.process, e)
        self.ledger.mark_stage_success(match_id, Stage.process)

        # -- Stage 3: save -------------------------------------------------
        self.ledger.start_stage(match_id, Stage.save)
        try:
            written = self.ledger.complete_match(match_id, extraction)
        except Exception as e:
            return self._fail(match_id, Stage.save, e, also_failed=(Stage.process,))

        logger.info(f"Match {match_id} complete: {written} stat rows saved")
        return MatchOutcome(match_id=match_id, success=True, rows_written=written)

    def _fail(
        self,
        match_id: str,
        stage: Stage,
        error: Exception,
        also_failed: tuple[Stage, ...] = (),
    ) -> MatchOutcome:
        message = truncate_error(error) or type(error).__name__
        logger.error(f"Match {match_id} failed at {stage.value} stage: {message}")
        self.ledger.mark_stage_failed(match_id, stage, message, also_failed=also_failed)
        return MatchOutcome(match_id=match_id, success=False, stage=stage, error=message)
