"""Tests for insight extraction, insight stores and the learning handler."""

from datetime import timedelta

import pytest

from analyst.etl.base import HeadToHeadMatch
from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.events.bus import ANALYSIS_COMPLETED, Event
from analyst.learning import (
    AnalysisSnapshot,
    InMemoryInsightStore,
    Insight,
    InsightCategory,
    InsightExtractor,
    InsightSource,
    LearningHandler,
    SQLInsightStore,
    extract_question_topics,
    format_insights,
)
from analyst.models import utcnow

from conftest import AWAY, AWAY_ID, HOME, HOME_ID, FakeProvider, make_form, make_sql_backend, make_standings


def bundle_from(provider: FakeProvider, **overrides) -> TargetedDataBundle:
    values = dict(
        home_team_id=HOME_ID,
        away_team_id=AWAY_ID,
        home_form=provider.forms[HOME_ID],
        away_form=provider.forms[AWAY_ID],
        head_to_head=provider.h2h,
        standings=provider.standings,
        home_stats=provider.stats[HOME_ID],
        away_stats=provider.stats[AWAY_ID],
        home_injuries=provider.injuries[HOME_ID],
        away_injuries=provider.injuries[AWAY_ID],
    )
    values.update(overrides)
    return TargetedDataBundle(**values)


def insight(subject="Arsenal", text="Arsenal look sharp", created_at=None, match_key=None) -> Insight:
    return Insight(
        category=InsightCategory.TEAM,
        subject=subject,
        text=text,
        source=InsightSource.API_DATA,
        confidence=0.9,
        match_key=match_key,
        created_at=created_at or utcnow(),
    )


class TestInsightRules:
    def test_confidence_outside_unit_interval_rejected(self):
        with pytest.raises(ValueError):
            Insight(InsightCategory.TEAM, "X", "t", InsightSource.API_DATA, confidence=1.5)

    def test_empty_bundle_yields_nothing(self, match):
        assert InsightExtractor().extract(TargetedDataBundle(), match) == []

    def test_four_game_streak_yields_one_streak_insight(self, provider, match):
        bundle = bundle_from(provider, home_form=make_form(HOME_ID, HOME, "WWWWL"))
        texts = [i.text for i in InsightExtractor().extract(bundle, match)]
        assert [t for t in texts if "winning streak" in t] == [f"{HOME} are on a 4-game winning streak"]

    def test_short_streak_yields_none(self, provider, match):
        bundle = bundle_from(provider, home_form=make_form(HOME_ID, HOME, "WLWWW"))
        texts = [i.text for i in InsightExtractor().extract(bundle, match)]
        assert not any("winning streak" in t for t in texts)
        assert f"{HOME} in excellent form (80/100)" in texts

    def test_full_bundle_rules(self, provider, match):
        insights = InsightExtractor().extract(bundle_from(provider), match)
        texts = [i.text for i in insights]

        assert f"{HOME} have a strong attack (2.10 goals per game)" in texts
        assert f"{HOME} have a solid defense (8 clean sheets)" in texts
        assert f"{HOME} injury concerns: Bukayo Saka" in texts
        assert f"In the last 3 meetings: {HOME} 2 wins, 1 draws, {AWAY} 0 wins" in texts
        assert f"Tight matchup! Only 2 points separate {HOME} and {AWAY}" in texts
        assert not any(t.startswith(AWAY) for t in texts), "away side meets no threshold"
        assert all(i.source == InsightSource.API_DATA for i in insights)
        assert all(i.match_key == match.pair_key for i in insights)

    def test_wide_points_gap_is_not_tight(self, provider, match):
        bundle = bundle_from(provider, standings=make_standings(home_points=60, away_points=40))
        assert not any("Tight matchup" in i.text for i in InsightExtractor().extract(bundle, match))

    def test_small_h2h_sample_skipped(self, provider, match):
        bundle = bundle_from(provider, head_to_head=provider.h2h[:2])
        assert not any(i.category == InsightCategory.MATCH for i in InsightExtractor().extract(bundle, match))

    def test_unplayed_meetings_do_not_count_towards_h2h_sample(self, provider, match):
        meetings = [
            HeadToHeadMatch("2026-11-01", HOME, AWAY, None, None),
            HeadToHeadMatch("2026-05-01", AWAY, HOME, None, None),
            HeadToHeadMatch("2025-03-01", HOME, AWAY, 2, 1),
        ]
        bundle = bundle_from(provider, head_to_head=meetings)
        assert not any(i.category == InsightCategory.MATCH for i in InsightExtractor().extract(bundle, match))

    def test_h2h_counts_only_played_meetings(self, provider, match):
        bundle = bundle_from(provider, head_to_head=provider.h2h + [HeadToHeadMatch("2026-11-01", HOME, AWAY, None, None)])
        texts = [i.text for i in InsightExtractor().extract(bundle, match)]
        assert f"In the last 3 meetings: {HOME} 2 wins, 1 draws, {AWAY} 0 wins" in texts

    def test_question_topics(self, match):
        assert extract_question_topics("Any injury news? What's the likely lineup?") == ["lineups", "injuries"]
        assert extract_question_topics("") == []

        fan = InsightExtractor().from_question("How do they defend? Clean sheet likely?", match)
        assert [i.text for i in fan] == ["Fans often ask about defense for this matchup"]
        assert fan[0].source == InsightSource.FAN_QUESTION


class TestFormatInsights:
    def test_grouped_by_category(self):
        text = format_insights([
            insight(text="Arsenal on a run"),
            Insight(InsightCategory.LEAGUE, "A vs B", "Tight one", InsightSource.API_DATA, 0.8),
            insight(text="Arsenal solid"),
        ])
        assert text.splitlines() == [
            "LEARNED INSIGHTS (from previous analysis):",
            "TEAM:",
            "- Arsenal on a run",
            "- Arsenal solid",
            "LEAGUE:",
            "- Tight one",
        ]

    def test_empty(self):
        assert format_insights([]) == ""


class InsightStoreContract:
    """Behaviour shared by every InsightStore backend."""

    async def make_store(self):
        raise NotImplementedError

    @pytest.mark.asyncio
    async def test_find_by_subject_newest_first(self):
        store, cleanup = await self.make_store()
        try:
            now = utcnow()
            await store.add_insights([
                insight(text="old", created_at=now - timedelta(hours=2)),
                insight(subject="Chelsea", text="blue"),
                insight(text="new", created_at=now),
            ])
            found = await store.find_insights(["arsenal"])
            assert [i.text for i in found] == ["new", "old"]
            assert [i.text for i in await store.find_insights(["arsenal"], limit=1)] == ["new"]
        finally:
            await cleanup()

    @pytest.mark.asyncio
    async def test_find_by_match_key(self):
        store, cleanup = await self.make_store()
        try:
            await store.add_insights([insight(subject="A vs B", text="keyed", match_key="Arsenal-Chelsea")])
            found = await store.find_insights(["Liverpool"], match_key="Arsenal-Chelsea")
            assert [i.text for i in found] == ["keyed"]
            assert found[0].category == InsightCategory.TEAM
        finally:
            await cleanup()

    @pytest.mark.asyncio
    async def test_snapshot_overwritten(self):
        store, cleanup = await self.make_store()
        try:
            assert await store.get_snapshot("room-1") is None
            await store.upsert_snapshot(AnalysisSnapshot("room-1", HOME, AWAY, {"v": 1}, ["first"]))
            await store.upsert_snapshot(AnalysisSnapshot("room-1", HOME, AWAY, {"v": 2}, ["second"]))

            snapshot = await store.get_snapshot("room-1")
            assert snapshot.bundle == {"v": 2}
            assert snapshot.insights == ["second"]
        finally:
            await cleanup()

    @pytest.mark.asyncio
    async def test_timestamps_come_back_timezone_aware(self):
        store, cleanup = await self.make_store()
        try:
            await store.add_insights([Insight(InsightCategory.TEAM, HOME, "stamped", InsightSource.API_DATA, 0.9)])
            await store.upsert_snapshot(AnalysisSnapshot("room-1", HOME, AWAY, {}))

            found = await store.find_insights([HOME])
            assert found[0].created_at.tzinfo is not None
            assert (await store.get_snapshot("room-1")).updated_at.tzinfo is not None
        finally:
            await cleanup()


class TestInMemoryInsightStore(InsightStoreContract):
    async def make_store(self):
        async def cleanup():
            pass

        return InMemoryInsightStore(), cleanup


class TestSQLInsightStore(InsightStoreContract):
    async def make_store(self):
        engine, session_factory = await make_sql_backend()
        return SQLInsightStore(session_factory), engine.dispose


class FailingStore(InMemoryInsightStore):
    async def add_insights(self, insights):
        raise RuntimeError("db down")


class TestLearningHandler:
    def event(self, bundle, match, question="", room_id="room-1", fresh=True) -> Event:
        return Event(ANALYSIS_COMPLETED, {
            "bundle": bundle,
            "match": match,
            "question": question,
            "room_id": room_id,
            "fresh": fresh,
        })

    @pytest.mark.asyncio
    async def test_writes_insights_and_snapshot(self, provider, match):
        store = InMemoryInsightStore()
        await LearningHandler(store)(self.event(bundle_from(provider), match, "any injury news?"))

        found = await store.find_insights([HOME], match_key=match.pair_key, limit=50)
        assert any("injury concerns" in i.text for i in found)
        assert any(i.source == InsightSource.FAN_QUESTION for i in found)

        snapshot = await store.get_snapshot("room-1")
        assert snapshot is not None
        assert TargetedDataBundle.from_snapshot(snapshot.bundle).home_team_id == HOME_ID
        assert f"{HOME} injury concerns: Bukayo Saka" in snapshot.insights

    @pytest.mark.asyncio
    async def test_no_snapshot_without_room(self, provider, match):
        store = InMemoryInsightStore()
        await LearningHandler(store)(self.event(bundle_from(provider), match, room_id=None))
        assert store._snapshots == {}
        assert await store.find_insights([HOME]) != []

    @pytest.mark.asyncio
    async def test_reused_bundle_only_records_question(self, provider, match):
        store = InMemoryInsightStore()
        await LearningHandler(store)(self.event(bundle_from(provider), match, "predict the score", fresh=False))

        found = await store.find_insights([], match_key=match.pair_key, limit=50)
        assert {i.source for i in found} == {InsightSource.FAN_QUESTION}
        assert await store.get_snapshot("room-1") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_contained(self, provider, match):
        store = FailingStore()
        await LearningHandler(store)(self.event(bundle_from(provider), match, "lineup?"))
        assert await store.get_snapshot("room-1") is not None, "snapshot still written after insight failure"
