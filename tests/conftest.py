"""
Pytest configuration for fsdc-pipeline tests.

Provides payload builders shaped like 365scores responses, a scripted
FixtureSource, and an in-memory ledger with the same contract as
FixtureLedger so engine tests run without PostgreSQL.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import pytest

from fsdc_pipeline.core.types import OverallStatus, Stage, StageStatus, StatusGroup, truncate_error
from fsdc_pipeline.fixtures.ledger import QueuedMatch, UpsertResult
from fsdc_pipeline.providers.base import FixtureSource, Match, ProviderError


def pytest_configure(config):
    """Load DATABASE_URL from a local .env file if it is not already set."""
    env_file = os.path.join(os.path.dirname(__file__), "..", ".env")
    if os.path.exists(env_file):
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    if key not in os.environ:
                        os.environ[key] = value


# =============================================================================
# Payload builders
# =============================================================================

COMPETITION_ID = 649
SEASON_NUM = 53
KICKOFF = datetime(2025, 9, 1, 18, 0, tzinfo=timezone.utc)


def make_game(
    game_id: int,
    round_num: int = 1,
    home: str = "Al Hilal",
    away: str = "Al Nassr",
    home_score: Optional[int] = None,
    away_score: Optional[int] = None,
    status_group: int = StatusGroup.scheduled,
    status_text: Optional[str] = None,
    start_time: Optional[datetime] = None,
    **extra: Any,
) -> dict[str, Any]:
    """A list-endpoint game object."""
    start = start_time or KICKOFF + timedelta(days=7 * (round_num - 1), hours=game_id % 5)
    home_competitor: dict[str, Any] = {"id": game_id * 10, "name": home}
    away_competitor: dict[str, Any] = {"id": game_id * 10 + 1, "name": away}
    if home_score is not None:
        home_competitor["score"] = home_score
    if away_score is not None:
        away_competitor["score"] = away_score

    game = {
        "id": game_id,
        "competitionId": COMPETITION_ID,
        "seasonNum": SEASON_NUM,
        "roundNum": round_num,
        "startTime": start.isoformat(),
        "statusGroup": int(status_group),
        "homeCompetitor": home_competitor,
        "awayCompetitor": away_competitor,
    }
    if status_text:
        game["statusText"] = status_text
    game.update(extra)
    return game


def make_finished_game(game_id: int, round_num: int = 1, home_score: int = 2, away_score: int = 1, **kw) -> dict[str, Any]:
    return make_game(
        game_id,
        round_num=round_num,
        home_score=home_score,
        away_score=away_score,
        status_group=StatusGroup.finished,
        status_text="Ended",
        **kw,
    )


def stat(stat_type: int, value: Any) -> dict[str, Any]:
    return {"type": stat_type, "value": value}


def lineup_member(
    player_id: int,
    stats: list[dict[str, Any]],
    position_id: int = 3,
    shirt: Optional[int] = None,
) -> dict[str, Any]:
    member: dict[str, Any] = {"id": player_id, "position": {"id": position_id}, "stats": stats}
    if shirt is not None:
        member["shirtNum"] = shirt
    return member


def make_detail(
    game_id: int = 1001,
    round_num: int = 3,
    home: str = "Al Hilal",
    away: str = "Al Nassr",
    home_score: int = 2,
    away_score: int = 1,
    home_lineup: Optional[list[dict[str, Any]]] = None,
    away_lineup: Optional[list[dict[str, Any]]] = None,
    members: Optional[list[dict[str, Any]]] = None,
    penalty_events: Optional[list[dict[str, Any]]] = None,
    status_group: int = StatusGroup.finished,
) -> dict[str, Any]:
    """A /web/game/ ``game`` object."""
    return {
        "id": game_id,
        "roundNum": round_num,
        "startTime": KICKOFF.isoformat(),
        "statusGroup": int(status_group),
        "statusText": "Ended" if status_group == StatusGroup.finished else "Scheduled",
        "homeCompetitor": {
            "id": 1,
            "name": home,
            "score": home_score,
            "lineups": {"members": home_lineup or []},
        },
        "awayCompetitor": {
            "id": 2,
            "name": away,
            "score": away_score,
            "lineups": {"members": away_lineup or []},
        },
        "members": members or [],
        "chartEvents": {"events": penalty_events or []},
    }


def penalty_event(player_id: int, xg: float, outcome: str = "Goal") -> dict[str, Any]:
    return {"subType": 9, "playerId": player_id, "xg": xg, "outcome": {"name": outcome}}


def simple_detail(game_id: int, round_num: int = 1) -> dict[str, Any]:
    """A complete detail payload with one goalkeeper and one outfield player per side."""
    base = game_id * 100
    return make_detail(
        game_id=game_id,
        round_num=round_num,
        home_lineup=[
            lineup_member(base + 1, [stat(30, "90"), stat(23, "3"), stat(35, "1")], position_id=1, shirt=1),
            lineup_member(base + 2, [stat(30, "90"), stat(27, "2"), stat(76, "1.1")], shirt=9),
        ],
        away_lineup=[
            lineup_member(base + 3, [stat(30, "90"), stat(23, "5"), stat(35, "2")], position_id=1, shirt=1),
            lineup_member(base + 4, [stat(30, "90"), stat(27, "1"), stat(76, "0.4")], shirt=10),
        ],
        members=[
            {"id": base + 1, "name": "Home Keeper"},
            {"id": base + 2, "name": "Home Striker"},
            {"id": base + 3, "name": "Away Keeper"},
            {"id": base + 4, "name": "Away Striker"},
        ],
    )


# =============================================================================
# Test doubles
# =============================================================================


class FakeSource(FixtureSource):
    """Scripted FixtureSource; detail values that are exceptions are raised."""

    provider_name = "fake"

    def __init__(
        self,
        history: Optional[list[dict[str, Any]]] = None,
        upcoming: Optional[list[dict[str, Any]]] = None,
        details: Optional[dict[str, Any]] = None,
        upcoming_error: Optional[Exception] = None,
    ):
        self.history = history or []
        self.upcoming = upcoming or []
        self.details = details or {}
        self.upcoming_error = upcoming_error
        self.detail_calls: list[str] = []
        self.closed = False

    async def fetch_upcoming(self) -> list[Match]:
        if self.upcoming_error:
            raise self.upcoming_error
        return [Match.from_payload(g) for g in self.upcoming]

    async def fetch_finished_history(self) -> list[Match]:
        return [Match.from_payload(g, default_status="finished") for g in self.history]

    async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
        self.detail_calls.append(match_id)
        detail = self.details.get(match_id)
        if isinstance(detail, Exception):
            raise detail
        if detail is None:
            raise ProviderError(f"No game data for ID {match_id}")
        return detail

    async def close(self) -> None:
        self.closed = True


def _new_status(match: Match) -> dict[str, Any]:
    return {
        "fixture_id": match.match_id,
        "round_num": match.round_num,
        "fetch_status": StageStatus.pending.value,
        "fetch_attempts": 0,
        "fetch_error": None,
        "process_status": StageStatus.pending.value,
        "process_attempts": 0,
        "process_error": None,
        "save_status": StageStatus.pending.value,
        "save_error": None,
        "overall_status": OverallStatus.pending.value,
        "updated_at": datetime.now(timezone.utc),
    }


class InMemoryLedger:
    """Dict-backed ledger with FixtureLedger's contract."""

    def __init__(self):
        self.upcoming: dict[str, Match] = {}
        self.finished: dict[str, Match] = {}
        self.queue: dict[str, QueuedMatch] = {}
        self.archive: dict[str, int] = {}
        self.status: dict[str, dict[str, Any]] = {}
        self.stats: dict[str, Any] = {}
        self.fail_complete: set[str] = set()

    # -- Reads ---------------------------------------------------------------

    def is_first_run(self) -> bool:
        return not self.finished

    def get_upcoming_ids(self) -> set[str]:
        return set(self.upcoming)

    def get_oldest_queued_unlocked(self, exclude_ids: Iterable[str] = ()) -> Optional[QueuedMatch]:
        excluded = set(exclude_ids)
        eligible = [
            q for q in self.queue.values()
            if q.match_id not in excluded
            and self.status.get(q.match_id, {}).get("overall_status") != OverallStatus.processing.value
        ]
        if not eligible:
            return None
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        return min(eligible, key=lambda q: (q.round_num, q.match_date or far_future))

    def get_status(self, match_id: str) -> Optional[dict[str, Any]]:
        return self.status.get(match_id)

    def counts(self) -> dict[str, int]:
        return {
            "upcoming_fixtures": len(self.upcoming),
            "finished_matches": len(self.finished),
            "unprocessed_fixtures": len(self.queue),
            "processed_fixtures": len(self.archive),
        }

    # -- Writes --------------------------------------------------------------

    def upsert_upcoming(self, matches: Iterable[Match]) -> UpsertResult:
        result = UpsertResult()
        for match in matches:
            if match.match_id in self.upcoming:
                result.updated += 1
            else:
                result.inserted += 1
            self.upcoming[match.match_id] = match
        return result

    def sync_upcoming(self, matches: list[Match], keep_ids: Iterable[str] = ()) -> UpsertResult:
        result = self.upsert_upcoming(matches)
        retained = {m.match_id for m in matches} | set(keep_ids)
        for match_id in list(self.upcoming):
            if match_id not in retained:
                del self.upcoming[match_id]
                result.deleted += 1
        return result

    def upsert_finished(self, match: Match) -> bool:
        inserted = match.match_id not in self.finished
        self.finished[match.match_id] = match
        return inserted

    def mark_finished(self, match: Match) -> bool:
        self.upsert_finished(match)
        queued = False
        if match.match_id not in self.queue and match.match_id not in self.archive:
            self.queue[match.match_id] = QueuedMatch(
                match_id=match.match_id,
                round_num=match.round_num,
                home_team=match.home_team,
                away_team=match.away_team,
                home_score=match.home_score,
                away_score=match.away_score,
                match_date=match.kickoff,
            )
            queued = True
        self.status.setdefault(match.match_id, _new_status(match))
        self.upcoming.pop(match.match_id, None)
        return queued

    def mark_finished_batch(self, matches: Iterable[Match]) -> UpsertResult:
        result = UpsertResult()
        for match in matches:
            if self.mark_finished(match):
                result.inserted += 1
            else:
                result.updated += 1
        return result

    def _touch(self, match_id: str, **fields: Any) -> None:
        row = self.status.setdefault(match_id, _new_status(Match(match_id=match_id)))
        row.update(fields)
        row["updated_at"] = datetime.now(timezone.utc)

    def start_processing(self, match_id: str) -> None:
        self._touch(match_id, overall_status=OverallStatus.processing.value)

    def start_stage(self, match_id: str, stage: Stage) -> None:
        row = self.status[match_id]
        fields: dict[str, Any] = {f"{stage.value}_status": StageStatus.processing.value}
        if stage in (Stage.fetch, Stage.process):
            fields[f"{stage.value}_attempts"] = row[f"{stage.value}_attempts"] + 1
        self._touch(match_id, **fields)

    def mark_stage_success(self, match_id: str, stage: Stage) -> None:
        self._touch(match_id, **{f"{stage.value}_status": StageStatus.success.value, f"{stage.value}_error": None})

    def mark_stage_failed(self, match_id, stage, error, also_failed=()) -> None:
        fields: dict[str, Any] = {"overall_status": OverallStatus.failed.value}
        for s in (stage, *also_failed):
            fields[f"{s.value}_status"] = StageStatus.failed.value
            fields[f"{s.value}_error"] = truncate_error(error)
        self._touch(match_id, **fields)

    def reset_stale_processing(self, older_than_minutes: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        reset = 0
        for row in self.status.values():
            if row["overall_status"] == OverallStatus.processing.value and row["updated_at"] < cutoff:
                for s in Stage:
                    if row[f"{s.value}_status"] == StageStatus.processing.value:
                        row[f"{s.value}_status"] = StageStatus.failed.value
                        row[f"{s.value}_error"] = "Processing abandoned by a previous run"
                row["overall_status"] = OverallStatus.pending.value
                reset += 1
        return reset

    def complete_match(self, match_id: str, extraction) -> int:
        if match_id in self.fail_complete:
            raise RuntimeError(f"simulated write failure for {match_id}")
        self.stats[match_id] = extraction
        queued = self.queue.pop(match_id, None)
        if queued is not None:
            self.archive[match_id] = queued.round_num
        self._touch(
            match_id,
            save_status=StageStatus.success.value,
            overall_status=OverallStatus.completed.value,
        )
        return extraction.row_count


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def database_url():
    """Live database URL; skips the test when none is configured."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url
