"""
PostgreSQL integration tests for the fixture ledger.

These run against DATABASE_URL inside a throwaway schema
(fsdc_pipeline_test), dropped and recreated for every test:
- Schema bootstrap is idempotent
- Bootstrap/incremental reconciliation counts
- Queue -> archive move with stat rows in one transaction
- Re-running extraction does not duplicate stat rows
- Stale "processing" rows are released
"""

import os
from urllib.parse import quote

import psycopg
import pytest

from conftest import FakeSource, make_detail, make_finished_game, make_game, simple_detail
from fsdc_pipeline.core.types import Stage
from fsdc_pipeline.fixtures.ledger import FixtureLedger
from fsdc_pipeline.fixtures.processor import BatchProcessor
from fsdc_pipeline.fixtures.reconciler import FixtureReconciler
from fsdc_pipeline.pg_connection import PostgresDB
from fsdc_pipeline.providers.base import Match
from fsdc_pipeline.queries.fixtures import get_fixtures_overview
from fsdc_pipeline.schema import init_schema
from fsdc_pipeline.stats import extract
from fsdc_pipeline.sync_log import SyncLog, recent_runs

TEST_SCHEMA = "fsdc_pipeline_test"

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.getenv("DATABASE_URL"),
        reason="DATABASE_URL environment variable not set",
    ),
]


def _schema_url(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}options={quote(f'-c search_path={TEST_SCHEMA}')}"


@pytest.fixture
def db(database_url):
    with psycopg.connect(database_url, autocommit=True) as conn:
        conn.execute(f"DROP SCHEMA IF EXISTS {TEST_SCHEMA} CASCADE")
        conn.execute(f"CREATE SCHEMA {TEST_SCHEMA}")

    pg = PostgresDB(_schema_url(database_url), max_pool_size=2)
    pg.open()
    init_schema(pg)
    yield pg
    pg.close()

    with psycopg.connect(database_url, autocommit=True) as conn:
        conn.execute(f"DROP SCHEMA IF EXISTS {TEST_SCHEMA} CASCADE")


@pytest.fixture
def pg_ledger(db):
    return FixtureLedger(db)


class TestPostgresDBConnection:

    def test_connection_requires_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValueError, match="DATABASE_URL"):
            PostgresDB()

    def test_fetchone(self, db):
        assert db.fetchone("SELECT 1 AS test") == {"test": 1}

    def test_transaction_rolls_back(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO processed_fixtures (fixture_id, round_num) VALUES (%s, %s)",
                    ("rollback", 1),
                )
                raise RuntimeError("abort")
        assert db.fetchone("SELECT COUNT(*) AS count FROM processed_fixtures")["count"] == 0

    def test_schema_is_idempotent(self, db):
        init_schema(db)
        init_schema(db)


class TestLedger:

    def test_upsert_upcoming_insert_then_update(self, pg_ledger):
        match = Match.from_payload(make_game(1))
        assert pg_ledger.upsert_upcoming([match]).inserted == 1

        match.status = "Postponed"
        result = pg_ledger.upsert_upcoming([match])
        assert result.updated == 1
        row = pg_ledger.db.fetchone("SELECT status FROM upcoming_fixtures WHERE fixture_id = %s", ("1",))
        assert row["status"] == "Postponed"

    def test_mark_finished_queues_once(self, pg_ledger):
        match = Match.from_payload(make_finished_game(1))
        pg_ledger.upsert_upcoming([Match.from_payload(make_game(1))])

        assert pg_ledger.mark_finished(match)
        assert not pg_ledger.mark_finished(match)

        counts = pg_ledger.counts()
        assert counts["finished_matches"] == 1
        assert counts["unprocessed_fixtures"] == 1
        assert counts["upcoming_fixtures"] == 0
        assert counts["status_pending"] == 1

    def test_complete_match_is_atomic_and_idempotent(self, pg_ledger):
        pg_ledger.mark_finished(Match.from_payload(make_finished_game(1)))
        extraction = extract(simple_detail(1), match_id="1")

        pg_ledger.complete_match("1", extraction)
        pg_ledger.complete_match("1", extraction)

        counts = pg_ledger.counts()
        assert counts["unprocessed_fixtures"] == 0
        assert counts["processed_fixtures"] == 1
        assert pg_ledger.db.fetchone("SELECT COUNT(*) AS count FROM player_match_stats")["count"] == 2
        assert pg_ledger.db.fetchone("SELECT COUNT(*) AS count FROM team_match_stats")["count"] == 2
        assert pg_ledger.get_status("1")["overall_status"] == "completed"

    def test_mark_finished_skips_archived(self, pg_ledger):
        match = Match.from_payload(make_finished_game(1))
        pg_ledger.mark_finished(match)
        pg_ledger.complete_match("1", extract(simple_detail(1), match_id="1"))

        assert not pg_ledger.mark_finished(match)
        assert pg_ledger.counts()["unprocessed_fixtures"] == 0

    def test_oldest_queued_skips_processing_and_excluded(self, pg_ledger):
        for game_id, round_num in ((1, 3), (2, 1), (3, 2)):
            pg_ledger.mark_finished(Match.from_payload(make_finished_game(game_id, round_num=round_num)))

        assert pg_ledger.get_oldest_queued_unlocked().match_id == "2"
        pg_ledger.start_processing("2")
        assert pg_ledger.get_oldest_queued_unlocked().match_id == "3"
        assert pg_ledger.get_oldest_queued_unlocked(exclude_ids={"3"}).match_id == "1"

    def test_stage_transitions(self, pg_ledger):
        pg_ledger.mark_finished(Match.from_payload(make_finished_game(1)))
        pg_ledger.start_processing("1")
        pg_ledger.start_stage("1", Stage.fetch)
        pg_ledger.mark_stage_success("1", Stage.fetch)
        pg_ledger.start_stage("1", Stage.process)
        pg_ledger.mark_stage_failed("1", Stage.process, "z" * 800)

        status = pg_ledger.get_status("1")
        assert status["fetch_status"] == "success"
        assert status["fetch_attempts"] == 1
        assert status["fetch_completed_at"] is not None
        assert status["process_status"] == "failed"
        assert len(status["process_error"]) == 500
        assert status["overall_status"] == "failed"

    def test_reset_stale_processing(self, pg_ledger):
        pg_ledger.mark_finished(Match.from_payload(make_finished_game(1)))
        pg_ledger.start_processing("1")
        pg_ledger.start_stage("1", Stage.fetch)
        pg_ledger.db.execute(
            "UPDATE match_processing_status SET updated_at = NOW() - INTERVAL '2 hours' WHERE fixture_id = %s",
            ("1",),
        )

        assert pg_ledger.reset_stale_processing(30) == 1
        status = pg_ledger.get_status("1")
        assert status["overall_status"] == "pending"
        assert status["fetch_status"] == "failed"
        assert status["fetch_error"]
        assert pg_ledger.get_oldest_queued_unlocked().match_id == "1"


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_bootstrap_incremental_and_drain(self, pg_ledger, db):
        upcoming = [make_game(i, round_num=9) for i in range(101, 107)]
        source = FakeSource(
            history=[make_finished_game(i, round_num=i) for i in range(1, 9)],
            upcoming=upcoming,
        )
        await FixtureReconciler(pg_ledger, source).run()

        counts = pg_ledger.counts()
        assert counts["finished_matches"] == 8
        assert counts["unprocessed_fixtures"] == 8
        assert counts["upcoming_fixtures"] == 6

        source.upcoming = upcoming[1:]
        source.details = {"101": make_detail(game_id=101, round_num=9)}
        await FixtureReconciler(pg_ledger, source).run()

        counts = pg_ledger.counts()
        assert counts["unprocessed_fixtures"] == 9
        assert counts["upcoming_fixtures"] == 5

        overview = get_fixtures_overview(db)
        assert len(overview["finished_matches"]) == 9
        assert len(overview["upcoming_fixtures"]) == 5
        assert set(overview["finished_matches"][0]) == {
            "id", "round", "home", "away", "home_score", "away_score", "match_date", "status",
        }
        assert set(overview["upcoming_fixtures"][0]) == {"id", "round", "home", "away", "kickoff", "status"}

        source.details = {"1": simple_detail(1), "2": RuntimeError("detail down"), "3": simple_detail(3)}
        result = await BatchProcessor(pg_ledger, source, max_matches=3).run()

        assert result.succeeded == 2
        assert result.failed == 1
        counts = pg_ledger.counts()
        assert counts["processed_fixtures"] == 2
        assert counts["unprocessed_fixtures"] == 7
        overlap = db.fetchone(
            "SELECT COUNT(*) AS count FROM unprocessed_fixtures u "
            "JOIN processed_fixtures p ON p.fixture_id = u.fixture_id"
        )
        assert overlap["count"] == 0


class TestSyncLog:

    def test_complete_and_fail(self, db):
        ok = SyncLog(db, "run-ok")
        ok.start()
        ok.complete(finished_fetched=8, unfinished_fetched=6, matches_queued=8)

        bad = SyncLog(db, "run-bad")
        bad.start()
        bad.fail("e" * 900)

        runs = {r["run_id"]: r for r in recent_runs(db, limit=10)}
        assert runs["run-ok"]["status"] == "success"
        assert runs["run-ok"]["matches_queued"] == 8
        assert runs["run-ok"]["completed_at"] is not None
        assert runs["run-bad"]["status"] == "failed"
        assert len(runs["run-bad"]["error_message"]) == 500
