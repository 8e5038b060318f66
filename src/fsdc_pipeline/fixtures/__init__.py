"""
Fixture lifecycle: ledger, reconciliation and queue draining.

Usage:
    from fsdc_pipeline.fixtures import FixtureLedger, FixtureReconciler, BatchProcessor

    ledger = FixtureLedger(db)
    await FixtureReconciler(ledger, source).run()
    await BatchProcessor(ledger, source, max_matches=50).run()
"""

from .ledger import FixtureLedger, QueuedMatch, UpsertResult
from .processor import BatchProcessor, BatchResult, MatchOutcome
from .reconciler import FixtureReconciler, ReconcileMode, ReconcileResult

__all__ = [
    "BatchProcessor",
    "BatchResult",
    "FixtureLedger",
    "FixtureReconciler",
    "MatchOutcome",
    "QueuedMatch",
    "ReconcileMode",
    "ReconcileResult",
    "UpsertResult",
]
