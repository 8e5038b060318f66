"""
FSDC Fixtures Pipeline

Ingests football fixtures and match statistics from the 365scores web API
into PostgreSQL, tracking every match from upcoming through finished to
processed.

Key Features:
- Bootstrap vs incremental reconciliation of the upcoming snapshot
- Resumable per-stage processing status (fetch, process, save)
- Player, goalkeeper and team stat rows with non-penalty xG
- Idempotent upserts throughout, so re-runs never duplicate rows

Usage:
    import asyncio
    from fsdc_pipeline import run_pipeline, get_settings

    result = asyncio.run(run_pipeline(get_settings()))
"""

from .core.config import Settings, get_settings
from .pg_connection import PostgresDB
from .pipeline import RunResult, run_pipeline

__version__ = "1.0.0"

__all__ = [
    "PostgresDB",
    "RunResult",
    "Settings",
    "get_settings",
    "run_pipeline",
]
