"""
Base fixture source protocol and the canonical match record.

Defines the interface every fixture source implements and the one place
where loosely-shaped provider game objects become a validated Match.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.types import StatusGroup

UNKNOWN_TEAM = "Unknown"


class ProviderError(Exception):
    """Raised when the provider answers 2xx but the payload is unusable."""
    pass


def to_int(value: Any, default: int = 0) -> int:
    """Coerce an int-like provider value, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a provider ISO-8601 timestamp; None when absent or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def competitor_name(competitor: Any) -> str:
    if isinstance(competitor, dict):
        name = competitor.get("name")
        if isinstance(name, str) and name.strip():
            return name
    return UNKNOWN_TEAM


def fallback_match_id(round_num: int, home_team: str, away_team: str) -> str:
    """Deterministic id for a game the provider sent without one."""
    return re.sub(r"\s+", "_", f"{round_num}_{home_team}_{away_team}")


@dataclass
class Match:
    """
    Canonical match record.

    Attributes:
        match_id: Provider id as text (or the round/teams composite)
        round_num: Round number (0 when unknown)
        home_team / away_team: Team names ("Unknown" when absent)
        home_score / away_score: Final or current score (0 when absent)
        kickoff: Start time, None when absent or malformed
        status: Provider status text
        status_group: Provider status-group code
        raw: The complete provider game object, kept for replay/debugging
    """

    match_id: str
    round_num: int = 0
    home_team: str = UNKNOWN_TEAM
    away_team: str = UNKNOWN_TEAM
    home_score: int = 0
    away_score: int = 0
    kickoff: Optional[datetime] = None
    status: str = "scheduled"
    status_group: int = StatusGroup.unknown
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_finished(self) -> bool:
        return self.status_group == StatusGroup.finished

    @property
    def is_live(self) -> bool:
        return self.status_group == StatusGroup.live

    @classmethod
    def from_payload(cls, game: dict[str, Any], default_status: Optional[str] = None) -> "Match":
        """
        Build a Match from a provider game object.

        Default rules:
            - missing team name -> "Unknown"
            - missing or negative score -> 0 (competitor score, then game-level score)
            - missing round -> 0
            - missing or malformed start time -> None
            - missing status text -> ``default_status``, or when that is None
              "finished" for status group 4 and "scheduled" otherwise
            - missing id -> "<round>_<home>_<away>" with whitespace as "_"
        """
        if not isinstance(game, dict):
            raise ProviderError(f"Expected a game object, got {type(game).__name__}")

        home = game.get("homeCompetitor")
        away = game.get("awayCompetitor")
        home_team = competitor_name(home)
        away_team = competitor_name(away)
        round_num = to_int(game.get("roundNum"))

        raw_id = game.get("id")
        if raw_id is None or raw_id == "":
            match_id = fallback_match_id(round_num, home_team, away_team)
        else:
            match_id = str(raw_id)

        status_group = to_int(game.get("statusGroup"))
        if default_status is None:
            default_status = "finished" if status_group == StatusGroup.finished else "scheduled"
        status = game.get("statusText") or game.get("status") or default_status

        return cls(
            match_id=match_id,
            round_num=round_num,
            home_team=home_team,
            away_team=away_team,
            home_score=_score(home, game.get("homeScore")),
            away_score=_score(away, game.get("awayScore")),
            kickoff=parse_timestamp(game.get("startTime")),
            status=str(status),
            status_group=status_group,
            raw=game,
        )


def _score(competitor: Any, game_level: Any) -> int:
    value = competitor.get("score") if isinstance(competitor, dict) else None
    if value is None:
        value = game_level
    return max(0, to_int(value))


class FixtureSource(ABC):
    """
    Abstract interface for fixture sources.

    The source is responsible for HTTP, pagination, competition/season
    filtering and canonicalisation. It never touches the database.
    """

    provider_name: str = ""

    @abstractmethod
    async def fetch_upcoming(self) -> list[Match]:
        """All scheduled/live matches for the configured competition and season."""
        ...

    @abstractmethod
    async def fetch_finished_history(self) -> list[Match]:
        """All finished matches for the configured competition and season."""
        ...

    @abstractmethod
    async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
        """The raw detail ``game`` object for one match."""
        ...
