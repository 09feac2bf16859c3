"""Event bus handler that turns a completed analysis into stored insights."""

import logging
from typing import Optional

from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.events.bus import Event
from analyst.learning.insights import InsightExtractor
from analyst.learning.store import AnalysisSnapshot, InsightStore
from analyst.match_context import MatchContext
from analyst.telemetry import record_insights_written

logger = logging.getLogger(__name__)


class LearningHandler:
    """
    Handles ANALYSIS_COMPLETED events.

    Payload keys:
        bundle: TargetedDataBundle
        match: MatchContext
        question: str
        room_id: Optional[str]
        fresh: bool, False when the bundle came from a snapshot

    Each step is best-effort; one failing does not stop the next.
    """

    __name__ = "learning_handler"

    def __init__(self, store: InsightStore, extractor: Optional[InsightExtractor] = None):
        self.store = store
        self.extractor = extractor or InsightExtractor()

    async def __call__(self, event: Event) -> None:
        bundle: TargetedDataBundle = event.payload["bundle"]
        match: MatchContext = event.payload["match"]
        question: str = event.payload.get("question", "")
        room_id: Optional[str] = event.payload.get("room_id")
        fresh: bool = event.payload.get("fresh", True)

        if fresh and not bundle.is_empty:
            await self._learn_from_bundle(bundle, match, room_id)

        try:
            fan_insights = self.extractor.from_question(question, match)
            written = await self.store.add_insights(fan_insights)
            record_insights_written("fan_question", written)
        except Exception as e:
            logger.warning(f"[LEARN] Failed to store fan-question insights for {match.pair_key}: {e}")

    async def _learn_from_bundle(
        self, bundle: TargetedDataBundle, match: MatchContext, room_id: Optional[str]
    ) -> None:
        insights = []
        try:
            insights = self.extractor.extract(bundle, match)
            written = await self.store.add_insights(insights)
            record_insights_written("api_data", written)
            logger.info(f"[LEARN] Stored {written} insights for {match.pair_key}")
        except Exception as e:
            logger.warning(f"[LEARN] Failed to store insights for {match.pair_key}: {e}")

        if not room_id:
            return
        try:
            await self.store.upsert_snapshot(AnalysisSnapshot(
                room_id=room_id,
                home_team=match.home_team,
                away_team=match.away_team,
                bundle=bundle.to_snapshot(),
                insights=[i.text for i in insights],
            ))
        except Exception as e:
            logger.warning(f"[LEARN] Failed to update snapshot for room {room_id}: {e}")
