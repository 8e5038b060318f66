"""
Match-detail payload parsing.

Turns the raw 365scores ``game`` object into a MatchDetail: both
competitors with their lineups, player names resolved from the members
list, and the penalty events from the chart timeline.

Every default is applied here so the extractor only ever sees complete
records. The only structural failure is a missing home or away
competitor, which raises MatchDataError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..providers.base import (
    UNKNOWN_TEAM,
    ProviderError,
    parse_timestamp,
    to_int,
)

UNKNOWN_PLAYER = "Unknown Player"

# chartEvents subType for penalty kicks
PENALTY_SUBTYPE = 9
GOAL_OUTCOME = "Goal"

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")


class MatchDataError(ProviderError):
    """Raised when a match-detail payload lacks a required object."""
    pass


def leading_number(value: Any) -> float:
    """
    Numeric prefix of a stat value, 0.0 when there is none.

    >>> leading_number("2 (1Pk)")
    2.0
    >>> leading_number("0.45")
    0.45
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    return float(match.group(1)) if match else 0.0


@dataclass
class LineupPlayer:
    player_id: str
    name: str
    position_id: int = 0
    shirt_number: Optional[int] = None
    stats: dict[int, Any] = field(default_factory=dict)

    def stat(self, stat_type: int) -> Any:
        """Raw value of a stat type, None when absent."""
        return self.stats.get(stat_type)

    def has_stat(self, stat_type: int) -> bool:
        return self.stats.get(stat_type) is not None


@dataclass
class Competitor:
    name: str
    score: int
    players: list[LineupPlayer] = field(default_factory=list)


@dataclass
class PenaltyEvent:
    player_id: str
    xg: float
    scored: bool


@dataclass
class MatchDetail:
    match_id: str
    round_num: int
    kickoff: Optional[datetime]
    home: Competitor
    away: Competitor
    penalties: list[PenaltyEvent] = field(default_factory=list)


def parse_match_detail(game: Any, match_id: Optional[str] = None) -> MatchDetail:
    """
    Build a MatchDetail from a raw ``game`` object.

    Args:
        game: The ``game`` object of a /web/game/ response
        match_id: Ledger id of the match; defaults to the payload id

    Raises:
        MatchDataError: If the payload is not an object or a competitor is missing
    """
    if not isinstance(game, dict):
        raise MatchDataError("Match detail payload is not an object")

    home = game.get("homeCompetitor")
    away = game.get("awayCompetitor")
    if not isinstance(home, dict):
        raise MatchDataError("Match detail has no home competitor")
    if not isinstance(away, dict):
        raise MatchDataError("Match detail has no away competitor")

    if match_id is None:
        match_id = str(game.get("id", ""))

    names = _member_names(game.get("members"))

    return MatchDetail(
        match_id=match_id,
        round_num=to_int(game.get("roundNum")),
        kickoff=parse_timestamp(game.get("startTime")),
        home=_parse_competitor(home, names),
        away=_parse_competitor(away, names),
        penalties=_parse_penalties(game.get("chartEvents")),
    )


def _member_names(members: Any) -> dict[str, str]:
    # Usually a list of {id, name}; tolerate an id -> member mapping too
    if isinstance(members, dict):
        members = list(members.values())
    if not isinstance(members, list):
        return {}

    names = {}
    for member in members:
        if not isinstance(member, dict) or member.get("id") is None:
            continue
        name = member.get("name")
        if isinstance(name, str) and name.strip():
            names[str(member["id"])] = name
    return names


def _parse_competitor(competitor: dict[str, Any], names: dict[str, str]) -> Competitor:
    name = competitor.get("name")
    if not isinstance(name, str) or not name.strip():
        name = UNKNOWN_TEAM

    lineups = competitor.get("lineups")
    members = lineups.get("members") if isinstance(lineups, dict) else None

    players = []
    for member in members if isinstance(members, list) else []:
        if not isinstance(member, dict) or member.get("id") is None:
            continue
        player_id = str(member["id"])
        position = member.get("position")
        shirt = member.get("shirtNum")
        players.append(
            LineupPlayer(
                player_id=player_id,
                name=names.get(player_id, UNKNOWN_PLAYER),
                position_id=to_int(position.get("id")) if isinstance(position, dict) else 0,
                shirt_number=to_int(shirt) or None,
                stats=_parse_stats(member.get("stats")),
            )
        )

    return Competitor(
        name=name,
        score=max(0, to_int(competitor.get("score"))),
        players=players,
    )


def _parse_stats(stats: Any) -> dict[int, Any]:
    parsed: dict[int, Any] = {}
    if not isinstance(stats, list):
        return parsed
    for stat in stats:
        if not isinstance(stat, dict) or stat.get("type") is None:
            continue
        value = stat.get("value")
        if value is not None:
            parsed[to_int(stat["type"])] = value
    return parsed


def _parse_penalties(chart_events: Any) -> list[PenaltyEvent]:
    events = chart_events.get("events") if isinstance(chart_events, dict) else None
    if not isinstance(events, list):
        return []

    penalties = []
    for event in events:
        if not isinstance(event, dict) or to_int(event.get("subType")) != PENALTY_SUBTYPE:
            continue
        if event.get("playerId") is None:
            continue
        outcome = event.get("outcome")
        outcome_name = outcome.get("name") if isinstance(outcome, dict) else None
        penalties.append(
            PenaltyEvent(
                player_id=str(event["playerId"]),
                xg=leading_number(event.get("xg")),
                scored=outcome_name == GOAL_OUTCOME,
            )
        )
    return penalties
