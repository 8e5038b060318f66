"""
Fixture reconciliation.

Decides, once per run, which matches have moved from the upcoming
snapshot to finished.

Two modes:
- bootstrap: the ledger has never recorded a finished match. Full
  history and the upcoming list are fetched concurrently; every
  historical match is marked finished and the upcoming list is stored
  as-is.
- incremental: only matches that were in the stored snapshot but are
  absent from the fresh upcoming fetch are candidates. Each candidate's
  detail decides its fate (finished, still live, or rescheduled).

The provider is never asked for per-match detail of matches still
listed as upcoming.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ..core.types import truncate_error
from ..providers.base import FixtureSource, Match

if TYPE_CHECKING:
    from .ledger import FixtureLedger

logger = logging.getLogger(__name__)


class ReconcileMode(str, Enum):
    bootstrap = "bootstrap"
    incremental = "incremental"


@dataclass
class ReconcileResult:
    """Result of one reconciliation pass."""
    mode: ReconcileMode
    finished_fetched: int = 0
    upcoming_fetched: int = 0
    candidates: int = 0
    newly_finished: int = 0
    still_live: int = 0
    rescheduled: int = 0
    detail_errors: int = 0
    queued: int = 0
    upcoming_stored: int = 0
    upcoming_removed: int = 0
    failures: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "finished_fetched": self.finished_fetched,
            "upcoming_fetched": self.upcoming_fetched,
            "candidates": self.candidates,
            "newly_finished": self.newly_finished,
            "still_live": self.still_live,
            "rescheduled": self.rescheduled,
            "detail_errors": self.detail_errors,
            "queued": self.queued,
            "upcoming_stored": self.upcoming_stored,
            "upcoming_removed": self.upcoming_removed,
            "failures": self.failures,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


class FixtureReconciler:
    """
    Reconciles the provider's fixture lists with the ledger.

    Usage:
        reconciler = FixtureReconciler(ledger, source)
        result = await reconciler.run()
    """

    def __init__(self, ledger: "FixtureLedger", source: FixtureSource):
        self.ledger = ledger
        self.source = source

    async def run(self) -> ReconcileResult:
        """Run bootstrap or incremental reconciliation, whichever applies."""
        start = time.monotonic()
        if self.ledger.is_first_run():
            logger.info("No finished matches recorded, bootstrapping from full history")
            result = await self.bootstrap()
        else:
            result = await self.incremental()
        result.duration_seconds = round(time.monotonic() - start, 3)

        logger.info(
            f"Reconciliation ({result.mode.value}) complete: "
            f"{result.queued} queued, {result.newly_finished} newly finished, "
            f"{result.still_live} live, {result.rescheduled} rescheduled, "
            f"{result.detail_errors} detail errors"
        )
        return result

    async def bootstrap(self) -> ReconcileResult:
        """
        Seed the ledger from the full season.

        Fetch errors propagate: a run that cannot see the history has
        nothing safe to write.
        """
        result = ReconcileResult(mode=ReconcileMode.bootstrap)
        history, upcoming = await asyncio.gather(
            self.source.fetch_finished_history(),
            self.source.fetch_upcoming(),
        )
        result.finished_fetched = len(history)
        result.upcoming_fetched = len(upcoming)
        logger.info(f"Bootstrap fetched {len(history)} finished and {len(upcoming)} upcoming matches")

        finished = self.ledger.mark_finished_batch(history)
        result.queued = finished.inserted
        result.newly_finished = finished.inserted
        result.failures += finished.failed
        result.errors.extend(finished.errors)

        # Anything listed as finished must not also sit in the upcoming snapshot
        finished_ids = {m.match_id for m in history}
        stored = self.ledger.sync_upcoming(
            [m for m in upcoming if m.match_id not in finished_ids]
        )
        result.upcoming_stored = stored.total
        result.upcoming_removed = stored.deleted
        result.failures += stored.failed
        result.errors.extend(stored.errors)
        return result

    async def incremental(self) -> ReconcileResult:
        """Detect matches that left the upcoming list since the last run."""
        result = ReconcileResult(mode=ReconcileMode.incremental)

        fresh = await self.source.fetch_upcoming()
        result.upcoming_fetched = len(fresh)

        stored_ids = self.ledger.get_upcoming_ids()
        fresh_ids = {m.match_id for m in fresh}
        candidates = sorted(stored_ids - fresh_ids)
        result.candidates = len(candidates)
        if candidates:
            logger.info(f"{len(candidates)} match(es) left the upcoming list: {candidates}")

        keep_ids: set[str] = set()
        for match_id in candidates:
            outcome = await self._check_candidate(match_id, result)
            if outcome is not None:
                keep_ids.add(outcome)

        synced = self.ledger.sync_upcoming(fresh, keep_ids=keep_ids)
        result.upcoming_stored = synced.total
        result.upcoming_removed = synced.deleted
        result.failures += synced.failed
        result.errors.extend(synced.errors)
        return result

    async def _check_candidate(
        self,
        match_id: str,
        result: ReconcileResult,
    ) -> Optional[str]:
        """
        Fetch one candidate's detail and act on its status group.

        Returns:
            The match id if its upcoming row must be kept, else None
        """
        try:
            game = await self.source.fetch_match_detail(match_id)
            match = Match.from_payload(game)
            # The ledger id wins over whatever the detail payload carries
            match.match_id = match_id
        except Exception as e:
            logger.warning(f"Detail check failed for match {match_id}, keeping it for next run: {e}")
            result.detail_errors += 1
            result.errors.append(f"{match_id}: {truncate_error(e)}")
            return match_id

        if match.is_finished:
            try:
                if self.ledger.mark_finished(match):
                    result.queued += 1
                result.newly_finished += 1
                return None
            except Exception as e:
                logger.error(f"Failed to mark match {match_id} finished: {e}")
                result.failures += 1
                result.errors.append(f"{match_id}: {truncate_error(e)}")
                return match_id

        if match.is_live:
            logger.info(f"Match {match_id} is live, keeping it upcoming")
            result.still_live += 1
        else:
            logger.info(
                f"Match {match_id} left the list with status group {match.status_group}, "
                f"refreshing it as upcoming"
            )
            result.rescheduled += 1

        refreshed = self.ledger.upsert_upcoming([match])
        result.failures += refreshed.failed
        result.errors.extend(refreshed.errors)
        return match_id
