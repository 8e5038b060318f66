"""
365scores client: fixtures, results and match details.

Extends BaseApiClient for HTTP infrastructure. All 365scores-specific
knowledge (endpoint paths, cursor fields, competition/season filtering)
lives here; the rest of the pipeline sees canonical Match records.

Key design decisions:
- The fixtures endpoint pages forward (``paging.nextPage``) while the
  results endpoint pages backward (``paging.previousPage``)
- Cursor values are relative URLs that already carry the query string;
  follow-up pages send exactly that query and nothing else
- Any non-2xx page aborts pagination; partial lists are never returned
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..core.config import Settings
from ..core.http import BaseApiClient
from .base import FixtureSource, Match, ProviderError

logger = logging.getLogger(__name__)

FIXTURES_PATH = "/web/games/fixtures/"
RESULTS_PATH = "/web/games/results/"
GAME_PATH = "/web/game/"

BASE_PARAMS: dict[str, Any] = {
    "appTypeId": 5,
    "langId": 1,
    "timezoneName": "UTC",
    "userCountryId": 1,
}

NEXT_PAGE = "nextPage"
PREVIOUS_PAGE = "previousPage"


class Scores365Client(BaseApiClient, FixtureSource):
    """Fetches one competition-season from 365scores."""

    BASE_URL = "https://webws.365scores.com"
    provider_name = "365scores"

    def __init__(
        self,
        competition_id: int = 649,
        season_num: int = 53,
        *,
        base_url: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        requests_per_minute: int = 120,
        timeout: float = 30.0,
        max_retries: int = 1,
        max_pages: int = 200,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            headers=headers or {"Accept": "application/json"},
            requests_per_minute=requests_per_minute,
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )
        self.competition_id = competition_id
        self.season_num = season_num
        self.max_pages = max_pages

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Scores365Client":
        return cls(
            competition_id=settings.competition_id,
            season_num=settings.season_num,
            base_url=settings.provider_base_url,
            headers=settings.provider_headers,
            requests_per_minute=settings.provider_requests_per_minute,
            timeout=settings.provider_timeout,
            max_retries=settings.provider_max_retries,
            max_pages=settings.provider_max_pages,
            transport=transport,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def fetch_upcoming(self) -> list[Match]:
        """Scheduled and live games, paging forward."""
        games = await self._collect_pages(FIXTURES_PATH, NEXT_PAGE, "upcoming")
        return [Match.from_payload(g, default_status="scheduled") for g in games]

    async def fetch_finished_history(self) -> list[Match]:
        """Finished games, paging backward through the season."""
        games = await self._collect_pages(RESULTS_PATH, PREVIOUS_PAGE, "results")
        return [Match.from_payload(g, default_status="finished") for g in games]

    async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
        """Return the raw ``game`` object for one match."""
        logger.debug("Fetching details for game %s", match_id)
        data = await self._get(GAME_PATH, {**BASE_PARAMS, "gameId": match_id})
        game = data.get("game") if isinstance(data, dict) else None
        if not isinstance(game, dict):
            raise ProviderError(f"No game data for ID {match_id}")
        return game

    # =========================================================================
    # Pagination + filtering
    # =========================================================================

    async def _collect_pages(
        self,
        path: str,
        cursor_field: str,
        label: str,
    ) -> list[dict[str, Any]]:
        """Follow ``paging.<cursor_field>`` until exhausted, aggregating games."""
        games: list[dict[str, Any]] = []
        seen_cursors: set[str] = set()
        next_path: Optional[str] = path
        params: Optional[dict[str, Any]] = {**BASE_PARAMS, "competitions": self.competition_id}
        page = 0

        while next_path:
            page += 1
            if page > self.max_pages:
                raise ProviderError(
                    f"{label}: exceeded {self.max_pages} pages, aborting pagination"
                )

            data = await self._get(next_path, params)
            page_games = data.get("games") if isinstance(data, dict) else None
            if isinstance(page_games, list):
                kept = [g for g in page_games if self._in_scope(g)]
                games.extend(kept)
                logger.info(
                    "%s page %d: %d games, %d in competition/season",
                    label, page, len(page_games), len(kept),
                )

            paging = data.get("paging") if isinstance(data, dict) else None
            cursor = paging.get(cursor_field) if isinstance(paging, dict) else None
            if not cursor or cursor in seen_cursors:
                break
            seen_cursors.add(cursor)
            # Cursor already carries its own query string
            cursor_url = httpx.URL(cursor)
            next_path, params = cursor_url.path, dict(cursor_url.params)

        logger.info("Total %s games fetched: %d (%d pages)", label, len(games), page)
        return games

    def _in_scope(self, game: Any) -> bool:
        """Keep games of the configured season and competition."""
        if not isinstance(game, dict):
            return False
        if game.get("seasonNum") != self.season_num:
            return False

        competition_id = game.get("competitionId")
        if competition_id is not None:
            return competition_id == self.competition_id

        competitions = game.get("competitions")
        if isinstance(competitions, list):
            return any(
                isinstance(c, dict) and c.get("id") == self.competition_id
                for c in competitions
            )

        # Endpoint is already filtered by the competitions query param
        return True
