"""
Targeted data fetching for analyst questions.

Design:
- Team ids are resolved first (one search per missing id). If either side
  cannot be resolved the bundle stays empty and nothing else is fetched.
- A baseline (form, h2h, standings, stats, injuries) is always requested;
  lineups / events / squads only when a tag asks for them and the fixture
  id (where needed) is known.
- Every category is its own task with its own timeout. Tasks are joined
  with gather over never-raising wrappers: a failed category is logged,
  recorded in bundle.failures and left as None. Siblings are unaffected.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, Field

from analyst.config import Settings, get_settings
from analyst.etl.api_football import APIBudgetExceeded
from analyst.etl.base import (
    FixtureState,
    HeadToHeadMatch,
    InjuryRecord,
    LineupRecord,
    MatchEvent,
    SportsDataProvider,
    SquadPlayer,
    Standing,
    TeamForm,
    TeamStatistics,
)
from analyst.etl.competitions import current_season, get_league_id
from analyst.llm.need_detector import LINEUPS, LIVE, SQUAD
from analyst.match_context import MatchContext
from analyst.telemetry import record_fetch_outcome

logger = logging.getLogger(__name__)

BASELINE_CATEGORIES = (
    "home_form",
    "away_form",
    "head_to_head",
    "standings",
    "home_stats",
    "away_stats",
    "home_injuries",
    "away_injuries",
)

H2H_LAST = 10


class TargetedDataBundle(BaseModel):
    """Whatever was fetched for one question. Every data field is optional."""

    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    league_id: Optional[int] = None
    season: Optional[int] = None

    home_form: Optional[TeamForm] = None
    away_form: Optional[TeamForm] = None
    head_to_head: Optional[list[HeadToHeadMatch]] = None
    standings: Optional[list[Standing]] = None
    home_stats: Optional[TeamStatistics] = None
    away_stats: Optional[TeamStatistics] = None
    home_injuries: Optional[list[InjuryRecord]] = None
    away_injuries: Optional[list[InjuryRecord]] = None

    lineups: Optional[tuple[LineupRecord, LineupRecord]] = None
    events: Optional[list[MatchEvent]] = None
    fixture: Optional[FixtureState] = None
    home_squad: Optional[list[SquadPlayer]] = None
    away_squad: Optional[list[SquadPlayer]] = None

    # category -> reason, for categories that failed or timed out
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.home_team_id is None or self.away_team_id is None

    def fetched_categories(self) -> list[str]:
        """Names of data fields that are present."""
        data_fields = BASELINE_CATEGORIES + ("lineups", "events", "fixture", "home_squad", "away_squad")
        return [name for name in data_fields if getattr(self, name) is not None]

    def to_snapshot(self) -> dict:
        """JSON-safe dict for the per-room snapshot cache."""
        return self.model_dump(mode="json", exclude={"failures"})

    @classmethod
    def from_snapshot(cls, data: dict) -> "TargetedDataBundle":
        return cls.model_validate(data)


@dataclass
class FetchOutcome:
    """Settled result of one category fetch: a value or an error, never both."""

    category: str
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TargetedFetchOrchestrator:
    """Resolve identifiers and fan out concurrent, failure-isolated fetches."""

    def __init__(
        self,
        provider: SportsDataProvider,
        settings: Optional[Settings] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ):
        self.provider = provider
        self.settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else self.settings.ANALYST_FETCH_TIMEOUT_SECONDS
        self.retries = retries if retries is not None else self.settings.ANALYST_FETCH_RETRIES

    async def fetch(self, match: MatchContext, tags: frozenset[str]) -> TargetedDataBundle:
        """
        Build a bundle for the question's tags.

        Never raises for provider failures: an unresolved team yields an
        empty bundle, a failed category is simply absent.
        """
        ids = await self._resolve_team_ids(match)
        if ids is None:
            return TargetedDataBundle()

        home_id, away_id = ids
        league_id = match.league_id or get_league_id(
            match.league_name, default=self.settings.ANALYST_DEFAULT_LEAGUE_ID
        )
        season = current_season(match.kickoff)

        bundle = TargetedDataBundle(
            home_team_id=home_id,
            away_team_id=away_id,
            league_id=league_id,
            season=season,
        )

        plan = self._plan(match, tags, home_id, away_id, league_id, season)
        outcomes = await asyncio.gather(
            *(self._settle(category, factory) for category, factory in plan.items())
        )

        for outcome in outcomes:
            if outcome.ok:
                setattr(bundle, outcome.category, outcome.value)
            else:
                bundle.failures[outcome.category] = outcome.error

        logger.info(
            f"[FETCH] {match.home_team} vs {match.away_team}: tags={sorted(tags)} "
            f"fetched={bundle.fetched_categories()} failed={sorted(bundle.failures)}"
        )
        return bundle

    def _plan(
        self,
        match: MatchContext,
        tags: frozenset[str],
        home_id: int,
        away_id: int,
        league_id: int,
        season: int,
    ) -> dict[str, Callable[[], Awaitable[Any]]]:
        """Map category -> coroutine factory. Factories so a retry gets a fresh coroutine."""
        p = self.provider
        plan: dict[str, Callable[[], Awaitable[Any]]] = {
            "home_form": lambda: p.get_team_form(home_id),
            "away_form": lambda: p.get_team_form(away_id),
            "head_to_head": lambda: p.get_head_to_head(home_id, away_id, H2H_LAST),
            "standings": lambda: p.get_standings(league_id, season),
            "home_stats": lambda: p.get_team_statistics(home_id, league_id, season),
            "away_stats": lambda: p.get_team_statistics(away_id, league_id, season),
            "home_injuries": lambda: p.get_injuries(home_id),
            "away_injuries": lambda: p.get_injuries(away_id),
        }

        fixture_id = match.fixture_id
        if LINEUPS in tags and fixture_id:
            plan["lineups"] = lambda: p.get_lineups(fixture_id)
        if LIVE in tags and fixture_id:
            plan["events"] = lambda: p.get_events(fixture_id)
            plan["fixture"] = lambda: p.get_fixture(fixture_id)
        if SQUAD in tags:
            plan["home_squad"] = lambda: p.get_squad(home_id)
            plan["away_squad"] = lambda: p.get_squad(away_id)

        return plan

    async def _resolve_team_ids(self, match: MatchContext) -> Optional[tuple[int, int]]:
        """Search for any missing team id. None if either side stays unresolved."""
        home_id, away_id = match.home_team_id, match.away_team_id
        if home_id is not None and away_id is not None:
            return home_id, away_id

        lookups = []
        if home_id is None:
            lookups.append(self._settle("home_team_id", lambda: self.provider.search_team(match.home_team)))
        if away_id is None:
            lookups.append(self._settle("away_team_id", lambda: self.provider.search_team(match.away_team)))

        for outcome in await asyncio.gather(*lookups):
            if outcome.category == "home_team_id" and outcome.ok:
                home_id = outcome.value
            elif outcome.category == "away_team_id" and outcome.ok:
                away_id = outcome.value

        if home_id is None or away_id is None:
            logger.warning(
                f"[FETCH] Could not resolve team ids for {match.home_team} ({home_id}) "
                f"vs {match.away_team} ({away_id}); answering without data"
            )
            return None
        return home_id, away_id

    async def _settle(self, category: str, factory: Callable[[], Awaitable[Any]]) -> FetchOutcome:
        """Run one fetch with timeout and bounded retry. Never raises."""
        attempts = 1 + max(0, self.retries)
        error = "not attempted"

        for attempt in range(attempts):
            retryable = False
            try:
                value = await asyncio.wait_for(factory(), timeout=self.timeout)
                record_fetch_outcome(category, "ok" if value else "empty")
                return FetchOutcome(category=category, value=value)
            except asyncio.TimeoutError:
                error = f"timeout after {self.timeout}s"
                retryable = True
            except (httpx.TimeoutException, httpx.TransportError) as e:
                error = f"{type(e).__name__}: {e}"
                retryable = True
            except APIBudgetExceeded as e:
                error = str(e)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"

            if not retryable or attempt == attempts - 1:
                break
            logger.info(f"[FETCH] {category} attempt {attempt + 1}/{attempts} failed ({error}), retrying")

        outcome = "timeout" if error.startswith("timeout") else "error"
        record_fetch_outcome(category, outcome)
        logger.warning(f"[FETCH] {category} omitted: {error}")
        return FetchOutcome(category=category, error=error)
