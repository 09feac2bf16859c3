"""
AnalystService: the question -> answer pipeline.

    question -> detect_needs -> TargetedFetchOrchestrator (or room snapshot)
             -> history + learned insights -> ResponseGenerator
             -> ConversationStore -> ANALYSIS_COMPLETED (learning, async)

answer() returns non-empty text whenever ai_enabled is True, regardless of
provider, model or store failures.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from analyst.config import Settings, get_settings
from analyst.conversation.store import (
    ConversationStore,
    ConversationTurn,
    InMemoryConversationStore,
    SQLConversationStore,
    conversation_key as default_conversation_key,
)
from analyst.etl.api_football import APIFootballProvider
from analyst.etl.base import SportsDataProvider
from analyst.etl.targeted_fetch import TargetedDataBundle, TargetedFetchOrchestrator
from analyst.events.bus import ANALYSIS_COMPLETED, EventBus
from analyst.learning.handlers import LearningHandler
from analyst.learning.insights import Insight, format_insights
from analyst.learning.store import InMemoryInsightStore, InsightStore, SQLInsightStore
from analyst.llm.gateway import get_model_gateway
from analyst.llm.need_detector import detect_needs
from analyst.llm.response_generator import ResponseGenerator
from analyst.match_context import MatchContext
from analyst.ml.prediction import Prediction, PredictionEngine, PredictionInputs, inputs_from_bundle

logger = logging.getLogger(__name__)


class AnalystService:
    def __init__(
        self,
        orchestrator: TargetedFetchOrchestrator,
        generator: ResponseGenerator,
        conversations: ConversationStore,
        insights: InsightStore,
        bus: EventBus,
        engine: Optional[PredictionEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.orchestrator = orchestrator
        self.generator = generator
        self.conversations = conversations
        self.insights = insights
        self.bus = bus
        self.engine = engine or PredictionEngine()

    async def answer(
        self,
        question: str,
        match: MatchContext,
        conversation_key: Optional[str] = None,
        room_id: Optional[str] = None,
        ai_enabled: bool = True,
    ) -> Optional[str]:
        """
        Answer a fan question about one fixture.

        Returns None (and does nothing else) when the room has AI disabled.
        """
        if not ai_enabled:
            logger.debug(f"[ALEX] AI disabled for room {room_id}, skipping")
            return None

        tags = detect_needs(question)
        key = conversation_key or default_conversation_key(room_id, match)

        bundle, fresh = await self._load_bundle(match, tags, room_id)
        history = await self._history(key)
        insights_text = await self._insights_text(match)

        answer = await self.generator.generate(question, match, bundle, history, insights_text, tags)

        try:
            await self.conversations.append_exchange(key, question, answer.text)
        except Exception as e:
            logger.error(f"[ALEX] Failed to persist exchange for {key}: {e}")

        self.bus.emit(ANALYSIS_COMPLETED, {
            "conversation_key": key,
            "room_id": room_id,
            "match": match,
            "question": question,
            "bundle": bundle,
            "fresh": fresh,
        })

        logger.info(
            f"[ALEX] Answered {match.pair_key} key={key} tags={sorted(tags)} "
            f"fallback={answer.used_fallback} intent={answer.intent.value}"
        )
        return answer.text

    async def predict(self, match: MatchContext, form_inputs: Optional[PredictionInputs] = None) -> Prediction:
        """Standalone prediction. Fetches the baseline when no inputs are supplied."""
        if form_inputs is None:
            bundle = await self.orchestrator.fetch(match, frozenset())
            form_inputs = inputs_from_bundle(bundle, match)

        prediction = self.engine.predict(
            form_inputs, match.home_team, match.away_team, jitter=self.settings.ANALYST_PREDICTION_JITTER
        )
        logger.info(
            f"[PREDICT] {match.pair_key}: {prediction.home_win}/{prediction.draw}/{prediction.away_win} "
            f"score={prediction.predicted_home_goals}-{prediction.predicted_away_goals}"
        )
        return prediction

    async def learned_insights(self, home_team: str, away_team: str, limit: Optional[int] = None) -> list[Insight]:
        return await self.insights.find_insights(
            [home_team, away_team],
            match_key=f"{home_team}-{away_team}",
            limit=limit or self.settings.ANALYST_INSIGHTS_LIMIT,
        )

    # ── Pipeline steps ───────────────────────────────────────────────────────

    async def _load_bundle(
        self, match: MatchContext, tags: frozenset[str], room_id: Optional[str]
    ) -> tuple[TargetedDataBundle, bool]:
        """(bundle, fresh). Untagged follow-ups reuse the room snapshot when one exists."""
        if not tags and room_id:
            try:
                snapshot = await self.insights.get_snapshot(room_id)
            except Exception as e:
                logger.warning(f"[ALEX] Snapshot read failed for room {room_id}: {e}")
                snapshot = None
            if snapshot is not None:
                try:
                    bundle = TargetedDataBundle.from_snapshot(snapshot.bundle)
                    logger.info(f"[ALEX] Reusing snapshot for room {room_id} ({snapshot.updated_at})")
                    return bundle, False
                except ValueError as e:
                    logger.warning(f"[ALEX] Discarding unreadable snapshot for room {room_id}: {e}")

        try:
            return await self.orchestrator.fetch(match, tags), True
        except Exception as e:
            logger.error(f"[ALEX] Targeted fetch failed for {match.pair_key}: {e}", exc_info=True)
            return TargetedDataBundle(), True

    async def _history(self, key: str) -> list[ConversationTurn]:
        try:
            return await self.conversations.recent(key, self.settings.ANALYST_HISTORY_WINDOW)
        except Exception as e:
            logger.warning(f"[ALEX] History read failed for {key}: {e}")
            return []

    async def _insights_text(self, match: MatchContext) -> str:
        try:
            insights = await self.learned_insights(match.home_team, match.away_team)
        except Exception as e:
            logger.warning(f"[ALEX] Insight read failed for {match.pair_key}: {e}")
            return ""
        return format_insights(insights, limit=self.settings.ANALYST_PROMPT_INSIGHTS)

    async def close(self) -> None:
        await self.orchestrator.provider.close()
        if self.generator.gateway is not None:
            await self.generator.gateway.close()


def build_service(
    settings: Optional[Settings] = None,
    provider: Optional[SportsDataProvider] = None,
    session_factory: Optional[sessionmaker] = None,
    bus: Optional[EventBus] = None,
) -> AnalystService:
    """
    Wire a service from settings.

    ANALYST_STORE_BACKEND=memory keeps history and insights in process;
    "database" uses the SQL stores on `session_factory` (default: the app's).
    The LearningHandler is subscribed to the bus; the caller starts the bus.
    """
    settings = settings or get_settings()
    window = settings.ANALYST_HISTORY_WINDOW

    if settings.ANALYST_STORE_BACKEND == "memory":
        conversations: ConversationStore = InMemoryConversationStore(window=window)
        insights: InsightStore = InMemoryInsightStore()
    else:
        if session_factory is None:
            from analyst.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        conversations = SQLConversationStore(session_factory, window=window)
        insights = SQLInsightStore(session_factory)

    bus = bus or EventBus()
    bus.subscribe(ANALYSIS_COMPLETED, LearningHandler(insights))

    return AnalystService(
        orchestrator=TargetedFetchOrchestrator(provider or APIFootballProvider(settings), settings),
        generator=ResponseGenerator(get_model_gateway(settings), settings=settings),
        conversations=conversations,
        insights=insights,
        bus=bus,
        settings=settings,
    )
