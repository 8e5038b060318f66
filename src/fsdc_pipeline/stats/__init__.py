"""
Stats extraction: parse a match-detail payload, derive stat rows, persist them.

Usage:
    from fsdc_pipeline.stats import extract

    result = extract(game)
    result.players, result.goalkeepers, result.teams
"""

from .extractor import (
    ExtractionResult,
    GoalkeeperStatRow,
    PlayerStatRow,
    TeamStatRow,
    extract,
)
from .payload import MatchDataError, MatchDetail, parse_match_detail
from .repository import save_extraction

__all__ = [
    "ExtractionResult",
    "GoalkeeperStatRow",
    "MatchDataError",
    "MatchDetail",
    "PlayerStatRow",
    "TeamStatRow",
    "extract",
    "parse_match_detail",
    "save_extraction",
]
