"""
Insight persistence and the per-room analysis snapshot.

Insights: append-only writes; reads filter by subject substring (case
insensitive) or exact match key, most recent first, capped.

Snapshots: one row per room, overwritten on every refresh. No expiry; any
question that carries data tags refreshes it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from analyst.learning.insights import Insight, InsightCategory, InsightSource
from analyst.models import AnalysisContextCache, AnalystInsight, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


@dataclass
class AnalysisSnapshot:
    room_id: str
    home_team: str
    away_team: str
    bundle: dict  # TargetedDataBundle.to_snapshot()
    insights: list[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utcnow)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timezone-aware columns back naive
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _matches(insight: Insight, subjects: list[str], match_key: Optional[str]) -> bool:
    if match_key is not None and insight.match_key == match_key:
        return True
    subject = insight.subject.lower()
    return any(s.lower() in subject for s in subjects if s)


class InsightStore(ABC):
    """Append-only insight log plus room snapshots."""

    @abstractmethod
    async def add_insights(self, insights: Iterable[Insight]) -> int:
        """Append insights. Returns how many were written."""
        pass

    @abstractmethod
    async def find_insights(
        self,
        subjects: list[str],
        match_key: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[Insight]:
        """Insights whose subject contains any of `subjects` or whose match_key matches, newest first."""
        pass

    @abstractmethod
    async def upsert_snapshot(self, snapshot: AnalysisSnapshot) -> None:
        pass

    @abstractmethod
    async def get_snapshot(self, room_id: str) -> Optional[AnalysisSnapshot]:
        pass


class InMemoryInsightStore(InsightStore):
    def __init__(self):
        self._insights: list[Insight] = []
        self._snapshots: dict[str, AnalysisSnapshot] = {}
        self._lock = asyncio.Lock()

    async def add_insights(self, insights: Iterable[Insight]) -> int:
        batch = list(insights)
        async with self._lock:
            self._insights.extend(batch)
        return len(batch)

    async def find_insights(
        self,
        subjects: list[str],
        match_key: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[Insight]:
        # Stable sort keeps later appends ahead on equal timestamps
        newest_first = sorted(
            reversed(self._insights), key=lambda i: i.created_at, reverse=True
        )
        return [i for i in newest_first if _matches(i, subjects, match_key)][:limit]

    async def upsert_snapshot(self, snapshot: AnalysisSnapshot) -> None:
        self._snapshots[snapshot.room_id] = snapshot

    async def get_snapshot(self, room_id: str) -> Optional[AnalysisSnapshot]:
        return self._snapshots.get(room_id)


class SQLInsightStore(InsightStore):
    """Insights in analyst_insights, snapshots in analysis_context_cache."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def add_insights(self, insights: Iterable[Insight]) -> int:
        rows = [
            AnalystInsight(
                category=i.category.value,
                subject=i.subject,
                text=i.text,
                source=i.source.value,
                confidence=i.confidence,
                match_key=i.match_key,
                created_at=i.created_at,
            )
            for i in insights
        ]
        if not rows:
            return 0
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return len(rows)

    async def find_insights(
        self,
        subjects: list[str],
        match_key: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[Insight]:
        conditions = [AnalystInsight.subject.ilike(f"%{s}%") for s in subjects if s]
        if match_key is not None:
            conditions.append(AnalystInsight.match_key == match_key)
        if not conditions:
            return []

        async with self.session_factory() as session:
            result = await session.execute(
                select(AnalystInsight)
                .where(or_(*conditions))
                .order_by(AnalystInsight.created_at.desc(), AnalystInsight.id.desc())
                .limit(limit)
            )
            rows = result.scalars().all()

        return [
            Insight(
                category=InsightCategory(row.category),
                subject=row.subject,
                text=row.text,
                source=InsightSource(row.source),
                confidence=row.confidence,
                match_key=row.match_key,
                created_at=_as_utc(row.created_at),
            )
            for row in rows
        ]

    async def upsert_snapshot(self, snapshot: AnalysisSnapshot) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AnalysisContextCache).where(AnalysisContextCache.room_id == snapshot.room_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = AnalysisContextCache(room_id=snapshot.room_id, home_team=snapshot.home_team,
                                           away_team=snapshot.away_team)
                session.add(row)
            row.home_team = snapshot.home_team
            row.away_team = snapshot.away_team
            row.bundle = snapshot.bundle
            row.insights = list(snapshot.insights)
            row.updated_at = snapshot.updated_at
            await session.commit()

    async def get_snapshot(self, room_id: str) -> Optional[AnalysisSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AnalysisContextCache).where(AnalysisContextCache.room_id == room_id)
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return AnalysisSnapshot(
            room_id=row.room_id,
            home_team=row.home_team,
            away_team=row.away_team,
            bundle=row.bundle or {},
            insights=list(row.insights or []),
            updated_at=_as_utc(row.updated_at),
        )
