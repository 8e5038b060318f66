"""
Stats extraction engine.

Pure derivation of per-player, per-goalkeeper and per-team rows from a
parsed MatchDetail. Nothing here touches the network or the database,
so the same payload always yields the same rows.

Stat type codes (365scores lineup ``stats[].type``):
    23 saves                26 assists
    27 goals ("2 (1Pk)")    30 minutes
    35 goals conceded       44 penalties saved ("saved/faced")
    76 xG                   78 xA
    83 xG prevented

Position id 1 is a goalkeeper; every other position is outfield.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Optional

from ..core.types import Venue
from .payload import (
    Competitor,
    LineupPlayer,
    MatchDetail,
    leading_number,
    parse_match_detail,
)

logger = logging.getLogger(__name__)

STAT_SAVES = 23
STAT_ASSISTS = 26
STAT_GOALS = 27
STAT_MINUTES = 30
STAT_GOALS_CONCEDED = 35
STAT_PENALTIES_SAVED = 44
STAT_XG = 76
STAT_XA = 78
STAT_XG_PREVENTED = 83

GOALKEEPER_POSITION = 1
XG_PRECISION = 3

_PENALTY_GOALS = re.compile(r"(\d+)\s*Pk")


def penalty_goals(value: Any) -> int:
    """Penalty goals encoded in a goals value, e.g. ``"2 (1Pk)"`` -> 1."""
    if not isinstance(value, str):
        return 0
    match = _PENALTY_GOALS.search(value)
    return int(match.group(1)) if match else 0


def saved_and_faced(value: Any) -> tuple[int, int]:
    """Split a ``"saved/faced"`` penalties value; (0, 0) when malformed."""
    if not isinstance(value, str) or "/" not in value:
        return 0, 0
    saved, _, faced = value.partition("/")
    return int(leading_number(saved)), int(leading_number(faced))


def round_xg(value: float) -> float:
    return round(value, XG_PRECISION)


# =============================================================================
# Row types
# =============================================================================


@dataclass
class PlayerStatRow:
    """One outfield player's figures for one match."""

    player_id: str
    player_name: str
    team_name: str
    shirt_number: Optional[int]
    round_num: int
    game_id: str
    venue: str
    mp: int = 1
    minutes: int = 0
    goals: int = 0
    xg: float = 0.0
    npxg: float = 0.0
    assists: int = 0
    xa: float = 0.0
    penalties_scored: int = 0
    penalties_missed: int = 0
    game_timestamp: Optional[datetime] = None


@dataclass
class GoalkeeperStatRow:
    """One goalkeeper's figures for one match."""

    player_id: str
    player_name: str
    team_name: str
    shirt_number: Optional[int]
    round_num: int
    game_id: str
    venue: str
    mp: int = 1
    minutes: int = 0
    goals_conceded: int = 0
    clean_sheets: int = 0
    saves: int = 0
    xg_prevented: float = 0.0
    penalties_saved: int = 0
    penalties_faced: int = 0
    game_timestamp: Optional[datetime] = None


@dataclass
class TeamStatRow:
    """
    One team's figures for one match.

    ``score_str`` and ``npscore_str`` are always home-first, so both
    rows of a match carry the same strings.
    """

    team_name: str
    round_num: int
    game_id: str
    venue: str
    mp: int = 1
    goals_for: int = 0
    goals_against: int = 0
    penalties_scored: int = 0
    penalties_missed: int = 0
    penalties_conceded: int = 0
    xg_for: float = 0.0
    npxg_for: float = 0.0
    xg_against: float = 0.0
    npxg_against: float = 0.0
    score_str: str = "0-0"
    npscore_str: str = "0-0"
    game_timestamp: Optional[datetime] = None


def row_columns(row_type: type) -> tuple[str, ...]:
    """Column names of a row dataclass, in field order."""
    return tuple(f.name for f in fields(row_type))


def row_values(row: Any) -> tuple:
    return tuple(getattr(row, f.name) for f in fields(row))


@dataclass
class ExtractionResult:
    """All rows derived from one match."""

    players: list[PlayerStatRow] = field(default_factory=list)
    goalkeepers: list[GoalkeeperStatRow] = field(default_factory=list)
    teams: list[TeamStatRow] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.players) + len(self.goalkeepers) + len(self.teams)

    def team(self, venue: Venue | str) -> Optional[TeamStatRow]:
        venue = Venue(venue).value
        return next((t for t in self.teams if t.venue == venue), None)


# =============================================================================
# Extraction
# =============================================================================


@dataclass
class PenaltyMap:
    """Per-player penalty xG and missed-penalty counts for one match."""

    xg: dict[str, float] = field(default_factory=dict)
    missed: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_detail(cls, detail: MatchDetail) -> "PenaltyMap":
        penalty_map = cls()
        for event in detail.penalties:
            penalty_map.xg[event.player_id] = penalty_map.xg.get(event.player_id, 0.0) + event.xg
            if not event.scored:
                penalty_map.missed[event.player_id] = penalty_map.missed.get(event.player_id, 0) + 1
        return penalty_map


@dataclass
class _TeamTotals:
    xg: float = 0.0
    npxg: float = 0.0
    penalties_scored: int = 0
    penalties_missed: int = 0


def extract(payload: MatchDetail | dict[str, Any], match_id: Optional[str] = None) -> ExtractionResult:
    """
    Derive every stat row for one match.

    Accepts either a parsed MatchDetail or the raw ``game`` object. Both
    teams are handled in the same pass because each team's "against"
    figures are the opponent's "for" figures.

    Raises:
        MatchDataError: If a raw payload is missing a competitor
    """
    detail = payload if isinstance(payload, MatchDetail) else parse_match_detail(payload, match_id)
    penalties = PenaltyMap.from_detail(detail)
    result = ExtractionResult()
    totals: dict[Venue, _TeamTotals] = {}

    for venue, competitor, opponent in (
        (Venue.home, detail.home, detail.away),
        (Venue.away, detail.away, detail.home),
    ):
        team_totals = _TeamTotals()
        for player in competitor.players:
            minutes = int(leading_number(player.stat(STAT_MINUTES)))
            if minutes <= 0:
                continue

            if player.position_id == GOALKEEPER_POSITION:
                result.goalkeepers.append(
                    _goalkeeper_row(detail, player, competitor, opponent, venue, minutes)
                )
                continue

            row = _player_row(detail, player, competitor, venue, minutes, penalties)
            result.players.append(row)
            team_totals.xg += row.xg
            team_totals.npxg += row.npxg
            team_totals.penalties_scored += row.penalties_scored
            team_totals.penalties_missed += row.penalties_missed

        totals[venue] = team_totals

    result.teams = [
        _team_row(detail, Venue.home, totals),
        _team_row(detail, Venue.away, totals),
    ]

    logger.debug(
        "Extracted match %s: %d players, %d goalkeepers",
        detail.match_id, len(result.players), len(result.goalkeepers),
    )
    return result


def _player_row(
    detail: MatchDetail,
    player: LineupPlayer,
    competitor: Competitor,
    venue: Venue,
    minutes: int,
    penalties: PenaltyMap,
) -> PlayerStatRow:
    goals_value = player.stat(STAT_GOALS)
    xg = leading_number(player.stat(STAT_XG))
    npxg = max(0.0, xg - penalties.xg.get(player.player_id, 0.0))

    return PlayerStatRow(
        player_id=player.player_id,
        player_name=player.name,
        team_name=competitor.name,
        shirt_number=player.shirt_number,
        round_num=detail.round_num,
        game_id=detail.match_id,
        venue=venue.value,
        minutes=minutes,
        goals=int(leading_number(goals_value)),
        xg=round_xg(xg),
        npxg=round_xg(npxg),
        assists=int(leading_number(player.stat(STAT_ASSISTS))),
        xa=round_xg(leading_number(player.stat(STAT_XA))),
        penalties_scored=penalty_goals(goals_value),
        penalties_missed=penalties.missed.get(player.player_id, 0),
        game_timestamp=detail.kickoff,
    )


def _goalkeeper_row(
    detail: MatchDetail,
    player: LineupPlayer,
    competitor: Competitor,
    opponent: Competitor,
    venue: Venue,
    minutes: int,
) -> GoalkeeperStatRow:
    if player.has_stat(STAT_GOALS_CONCEDED):
        conceded = int(leading_number(player.stat(STAT_GOALS_CONCEDED)))
    else:
        conceded = opponent.score
    saved, faced = saved_and_faced(player.stat(STAT_PENALTIES_SAVED))

    return GoalkeeperStatRow(
        player_id=player.player_id,
        player_name=player.name,
        team_name=competitor.name,
        shirt_number=player.shirt_number,
        round_num=detail.round_num,
        game_id=detail.match_id,
        venue=venue.value,
        minutes=minutes,
        goals_conceded=conceded,
        clean_sheets=1 if conceded == 0 else 0,
        saves=int(leading_number(player.stat(STAT_SAVES))),
        xg_prevented=round_xg(leading_number(player.stat(STAT_XG_PREVENTED))),
        penalties_saved=saved,
        penalties_faced=faced,
        game_timestamp=detail.kickoff,
    )


def _team_row(
    detail: MatchDetail,
    venue: Venue,
    totals: dict[Venue, _TeamTotals],
) -> TeamStatRow:
    own, other = totals[venue], totals[venue.opponent]
    competitor = detail.home if venue is Venue.home else detail.away
    opponent = detail.away if venue is Venue.home else detail.home

    home_np = max(0, detail.home.score - totals[Venue.home].penalties_scored)
    away_np = max(0, detail.away.score - totals[Venue.away].penalties_scored)

    return TeamStatRow(
        team_name=competitor.name,
        round_num=detail.round_num,
        game_id=detail.match_id,
        venue=venue.value,
        goals_for=competitor.score,
        goals_against=opponent.score,
        penalties_scored=own.penalties_scored,
        penalties_missed=own.penalties_missed,
        penalties_conceded=other.penalties_scored,
        xg_for=round_xg(own.xg),
        npxg_for=round_xg(own.npxg),
        xg_against=round_xg(other.xg),
        npxg_against=round_xg(other.npxg),
        score_str=f"{detail.home.score}-{detail.away.score}",
        npscore_str=f"{home_np}-{away_np}",
        game_timestamp=detail.kickoff,
    )
