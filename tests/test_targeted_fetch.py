"""Tests for TargetedFetchOrchestrator: id resolution, fan-out and partial failure."""

import asyncio

import httpx
import pytest

from analyst.etl.api_football import APIBudgetExceeded
from analyst.etl.targeted_fetch import BASELINE_CATEGORIES, TargetedDataBundle, TargetedFetchOrchestrator
from analyst.llm.need_detector import LINEUPS, LIVE, SQUAD
from analyst.match_context import MatchContext, MatchMode

from conftest import AWAY, AWAY_ID, HOME, HOME_ID, FakeProvider, make_settings


def orchestrator(provider, **kwargs) -> TargetedFetchOrchestrator:
    return TargetedFetchOrchestrator(provider, make_settings(), **kwargs)


class TestIdResolution:
    @pytest.mark.asyncio
    async def test_unresolved_team_returns_empty_bundle(self, provider, match):
        provider.team_ids.pop(AWAY.lower())
        bundle = await orchestrator(provider).fetch(match, frozenset({LINEUPS, SQUAD}))

        assert bundle.is_empty
        assert bundle.fetched_categories() == []
        assert {name for name, _ in provider.calls} == {"search_team"}, "no data fetch after failed resolution"

    @pytest.mark.asyncio
    async def test_search_raising_returns_empty_bundle(self, provider, match):
        provider.fail["search_team"] = RuntimeError("provider down")
        bundle = await orchestrator(provider, retries=0).fetch(match, frozenset())
        assert bundle.is_empty
        assert provider.called("get_team_form") == 0

    @pytest.mark.asyncio
    async def test_known_ids_skip_search(self, provider):
        match = MatchContext(HOME, AWAY, home_team_id=HOME_ID, away_team_id=AWAY_ID)
        bundle = await orchestrator(provider).fetch(match, frozenset())
        assert provider.called("search_team") == 0
        assert (bundle.home_team_id, bundle.away_team_id) == (HOME_ID, AWAY_ID)

    @pytest.mark.asyncio
    async def test_only_missing_id_is_searched(self, provider):
        match = MatchContext(HOME, AWAY, home_team_id=HOME_ID)
        await orchestrator(provider).fetch(match, frozenset())
        assert provider.calls.count(("search_team", (AWAY,))) == 1
        assert provider.called("search_team") == 1


class TestPlan:
    @pytest.mark.asyncio
    async def test_baseline_always_fetched(self, provider, match):
        bundle = await orchestrator(provider).fetch(match, frozenset())
        assert set(bundle.fetched_categories()) == set(BASELINE_CATEGORIES)
        assert bundle.lineups is None
        assert provider.called("get_squad") == 0

    @pytest.mark.asyncio
    async def test_league_and_season(self, provider):
        from datetime import datetime

        match = MatchContext(HOME, AWAY, league_name="La Liga", kickoff=datetime(2025, 3, 1))
        bundle = await orchestrator(provider).fetch(match, frozenset())
        assert (bundle.league_id, bundle.season) == (140, 2024)
        assert ("get_standings", (140, 2024)) in provider.calls

    @pytest.mark.asyncio
    async def test_lineups_need_fixture_id(self, provider, match):
        bundle = await orchestrator(provider).fetch(match, frozenset({LINEUPS}))
        assert provider.called("get_lineups") == 0
        assert bundle.lineups is None

        with_fixture = MatchContext(HOME, AWAY, fixture_id=1001)
        bundle = await orchestrator(provider).fetch(with_fixture, frozenset({LINEUPS}))
        assert bundle.lineups[0].formation == "4-3-3"

    @pytest.mark.asyncio
    async def test_live_fetches_events_and_fixture(self, provider):
        match = MatchContext(HOME, AWAY, fixture_id=1001, mode=MatchMode.LIVE)
        bundle = await orchestrator(provider).fetch(match, frozenset({LIVE}))
        assert bundle.fixture.elapsed == 63
        assert len(bundle.events) == 2

    @pytest.mark.asyncio
    async def test_squad_needs_no_fixture(self, provider, match):
        bundle = await orchestrator(provider).fetch(match, frozenset({SQUAD}))
        assert [p.name for p in bundle.home_squad] == ["Raya", "Saka"]
        assert provider.called("get_squad") == 2

    @pytest.mark.asyncio
    async def test_empty_results_stay_distinct_from_missing(self, provider, match):
        provider.lineups = None
        m = MatchContext(HOME, AWAY, fixture_id=1001)
        bundle = await orchestrator(provider).fetch(m, frozenset({LINEUPS}))
        assert bundle.lineups is None
        assert bundle.away_injuries == []
        assert "lineups" not in bundle.failures


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_single_failure_keeps_siblings(self, provider, match):
        provider.fail["get_standings"] = RuntimeError("boom")
        bundle = await orchestrator(provider).fetch(match, frozenset())

        assert bundle.standings is None
        assert "standings" in bundle.failures
        assert bundle.home_form is not None
        assert bundle.head_to_head is not None
        assert set(bundle.fetched_categories()) == set(BASELINE_CATEGORIES) - {"standings"}

    @pytest.mark.asyncio
    async def test_non_transport_errors_are_not_retried(self, provider, match):
        provider.fail["get_standings"] = ValueError("bad payload")
        await orchestrator(provider, retries=3).fetch(match, frozenset())
        assert provider.called("get_standings") == 1

    @pytest.mark.asyncio
    async def test_budget_exhaustion_is_not_retried(self, provider, match):
        provider.fail["get_injuries"] = APIBudgetExceeded("budget")
        bundle = await orchestrator(provider, retries=2).fetch(match, frozenset())
        assert provider.called("get_injuries") == 2  # once per side
        assert bundle.home_injuries is None
        assert bundle.failures["home_injuries"] == "budget"

    @pytest.mark.asyncio
    async def test_transport_error_retried_once(self, provider, match):
        provider.fail["get_head_to_head"] = httpx.ConnectError("refused")
        bundle = await orchestrator(provider, retries=1).fetch(match, frozenset())
        assert provider.called("get_head_to_head") == 2
        assert "ConnectError" in bundle.failures["head_to_head"]

    @pytest.mark.asyncio
    async def test_timeout_omits_category_without_blocking_others(self, provider, match):
        provider.delay["get_team_statistics"] = 5
        orch = orchestrator(provider, timeout=0.05, retries=1)

        bundle = await asyncio.wait_for(orch.fetch(match, frozenset()), timeout=2)

        assert bundle.home_stats is None and bundle.away_stats is None
        assert bundle.failures["home_stats"].startswith("timeout")
        assert provider.called("get_team_statistics") == 4, "one retry per side"
        assert bundle.home_form is not None


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_round_trip(self, provider):
        match = MatchContext(HOME, AWAY, fixture_id=1001)
        bundle = await orchestrator(provider).fetch(match, frozenset({LINEUPS, LIVE, SQUAD}))
        bundle.failures["x"] = "ignored"

        restored = TargetedDataBundle.from_snapshot(bundle.to_snapshot())

        assert restored.failures == {}
        assert restored.home_form.win_streak == bundle.home_form.win_streak
        assert restored.home_form.results_string == "WWWDL"
        assert restored.lineups[1].team_name == AWAY
        assert restored.standings[2].team_name == HOME
        assert restored.fetched_categories() == bundle.fetched_categories()
