"""Shared fakes and builders for analyst tests."""

import asyncio
from typing import Optional

import pytest

from analyst.config import Settings
from analyst.etl.api_football import build_team_form
from analyst.etl.base import (
    FixtureState,
    FormResult,
    HeadToHeadMatch,
    InjuryRecord,
    LineupPlayer,
    LineupRecord,
    MatchEvent,
    SportsDataProvider,
    SquadPlayer,
    Standing,
    TeamForm,
    TeamStatistics,
)
from analyst.llm.gateway import COMPLETED, ChatPrompt, LLMResult, ModelGateway
from analyst.match_context import MatchContext

HOME_ID = 42
AWAY_ID = 49
HOME = "Arsenal"
AWAY = "Chelsea"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment: memory stores, no keys, no provider throttling."""
    values = dict(
        DATABASE_URL="sqlite:///:memory:",
        RAPIDAPI_KEY="test-key",
        RAPIDAPI_HOST="v3.football.api-sports.io",
        API_REQUESTS_PER_MINUTE=0,
        API_DAILY_BUDGET=0,
        API_KEY="",
        ANALYST_STORE_BACKEND="memory",
        ANALYST_FETCH_TIMEOUT_SECONDS=1.0,
        ANALYST_FETCH_RETRIES=1,
        GEMINI_API_KEY="",
        OPENAI_API_KEY="",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_form(team_id: int, name: str, results: str) -> TeamForm:
    """Most recent first: make_form(1, "X", "WWDL")."""
    goals = {"W": (2, 0), "D": (1, 1), "L": (0, 1)}
    matches = [
        FormResult(opponent="Opponent", home=True, result=r, goals_for=goals[r][0], goals_against=goals[r][1])
        for r in results
    ]
    return build_team_form(team_id, name, matches)


def make_form_with_score(team_id: int, name: str, form_score: int, win_streak: int = 0) -> TeamForm:
    form = make_form(team_id, name, "")
    form.form_score = form_score
    form.win_streak = win_streak
    return form


def make_standings(home_rank: int = 3, away_rank: int = 4, home_points: int = 50, away_points: int = 48) -> list[Standing]:
    rows = {
        home_rank: Standing(rank=home_rank, team_id=HOME_ID, team_name=HOME, points=home_points, played=20),
        away_rank: Standing(rank=away_rank, team_id=AWAY_ID, team_name=AWAY, points=away_points, played=20),
    }
    table = []
    for rank in range(1, 21):
        table.append(rows.get(rank) or Standing(rank=rank, team_id=1000 + rank, team_name=f"Team {rank}",
                                                points=60 - rank * 2, played=20))
    return table


class FakeProvider(SportsDataProvider):
    """
    Scriptable provider.

    `fail[method] = exc` raises on every call, `delay[method] = s` sleeps first.
    Every call is appended to `calls` as (method, args).
    """

    def __init__(self):
        self.team_ids = {HOME.lower(): HOME_ID, AWAY.lower(): AWAY_ID}
        self.forms = {HOME_ID: make_form(HOME_ID, HOME, "WWWDL"), AWAY_ID: make_form(AWAY_ID, AWAY, "LDWLL")}
        self.stats = {
            HOME_ID: TeamStatistics(team_id=HOME_ID, team_name=HOME, played=20, wins=13, goals_for=42,
                                    goals_against=15, clean_sheets=8),
            AWAY_ID: TeamStatistics(team_id=AWAY_ID, team_name=AWAY, played=20, wins=9, goals_for=28,
                                    goals_against=25, clean_sheets=4),
        }
        self.standings = make_standings()
        self.injuries = {
            HOME_ID: [InjuryRecord("Bukayo Saka", "Missing Fixture", "Hamstring")],
            AWAY_ID: [],
        }
        self.h2h = [
            HeadToHeadMatch("2025-03-01", HOME, AWAY, 2, 1),
            HeadToHeadMatch("2024-10-01", AWAY, HOME, 1, 1),
            HeadToHeadMatch("2024-04-01", HOME, AWAY, 5, 0),
        ]
        self.lineups = (
            LineupRecord(HOME_ID, HOME, "4-3-3", "Arteta", [LineupPlayer("Raya", 22, "G")]),
            LineupRecord(AWAY_ID, AWAY, "4-2-3-1", "Maresca", [LineupPlayer("Sanchez", 1, "G")]),
        )
        self.events = [
            MatchEvent(minute=12, type="Goal", detail="Normal Goal", team_name=HOME, player_name="Saka"),
            MatchEvent(minute=30, type="subst", detail="Substitution 1", team_name=AWAY, player_name="Mudryk"),
        ]
        self.fixture = FixtureState(fixture_id=1001, status="2H", elapsed=63, home_goals=1, away_goals=0,
                                    venue_name="Emirates Stadium")
        self.squads = {
            HOME_ID: [SquadPlayer("Raya", 29, 22, "Goalkeeper"), SquadPlayer("Saka", 23, 7, "Attacker")],
            AWAY_ID: [SquadPlayer("Palmer", 23, 20, "Midfielder")],
        }
        self.fail: dict[str, BaseException] = {}
        self.delay: dict[str, float] = {}
        self.calls: list[tuple] = []
        self.closed = False

    async def _call(self, method: str, *args):
        self.calls.append((method, args))
        if method in self.delay:
            await asyncio.sleep(self.delay[method])
        if method in self.fail:
            raise self.fail[method]

    def called(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def search_team(self, name: str) -> Optional[int]:
        await self._call("search_team", name)
        return self.team_ids.get(name.lower())

    async def get_team_form(self, team_id):
        await self._call("get_team_form", team_id)
        return self.forms.get(team_id)

    async def get_team_statistics(self, team_id, league_id, season):
        await self._call("get_team_statistics", team_id, league_id, season)
        return self.stats.get(team_id)

    async def get_standings(self, league_id, season):
        await self._call("get_standings", league_id, season)
        return self.standings

    async def get_injuries(self, team_id):
        await self._call("get_injuries", team_id)
        return self.injuries.get(team_id, [])

    async def get_lineups(self, fixture_id):
        await self._call("get_lineups", fixture_id)
        return self.lineups

    async def get_events(self, fixture_id):
        await self._call("get_events", fixture_id)
        return self.events

    async def get_fixture(self, fixture_id):
        await self._call("get_fixture", fixture_id)
        return self.fixture

    async def get_squad(self, team_id):
        await self._call("get_squad", team_id)
        return self.squads.get(team_id, [])

    async def get_head_to_head(self, team_a, team_b, last=10):
        await self._call("get_head_to_head", team_a, team_b, last)
        return self.h2h

    async def close(self):
        self.closed = True


class FakeGateway(ModelGateway):
    """Returns a fixed LLMResult (or raises `error`) and keeps every prompt."""

    provider = "fake"

    def __init__(self, result: Optional[LLMResult] = None, error: Optional[BaseException] = None):
        super().__init__(make_settings())
        self.result = result or completed("Arsenal should edge it 2-1.")
        self.error = error
        self.prompts: list[ChatPrompt] = []
        self.calls: list[dict] = []

    async def complete(self, prompt, max_tokens=None, temperature=None):
        self.prompts.append(prompt)
        self.calls.append({"max_tokens": max_tokens, "temperature": temperature})
        if self.error is not None:
            raise self.error
        return self.result


def completed(text: str, finish_reason: str = "STOP") -> LLMResult:
    return LLMResult(
        status=COMPLETED,
        text=text,
        tokens_in=100,
        tokens_out=20,
        exec_ms=5,
        model_version="fake-1",
        finish_reason=finish_reason,
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def match() -> MatchContext:
    return MatchContext(home_team=HOME, away_team=AWAY, league_name="Premier League")


async def make_sql_backend():
    """Fresh in-memory SQLite engine with tables created. Caller disposes the engine."""
    from analyst.database import create_engine, create_session_factory, init_db

    engine = create_engine("sqlite:///:memory:")
    await init_db(engine)
    return engine, create_session_factory(engine)
