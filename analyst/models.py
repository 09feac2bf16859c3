"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp_column(index: bool = False) -> Column:
    return Column(DateTime(timezone=True), nullable=False, index=index)


class AnalystInsight(SQLModel, table=True):
    """Append-only learned fact about a team, player, match or league."""

    __tablename__ = "analyst_insights"

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = Field(max_length=20, index=True, description="team, player, match, league")
    subject: str = Field(max_length=255, index=True, description="Team name or 'Home vs Away'")
    text: str = Field(description="Insight sentence shown to the model")
    source: str = Field(max_length=20, description="api_data, fan_question, match_event")
    confidence: float = Field(description="0.0 - 1.0")
    match_key: Optional[str] = Field(
        default=None, max_length=255, index=True, description="'Home-Away' pair key"
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp_column(index=True))


class AnalysisContextCache(SQLModel, table=True):
    """Best known current state per room. Overwritten on every refresh, never versioned."""

    __tablename__ = "analysis_context_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: str = Field(max_length=255, unique=True, index=True)
    home_team: str = Field(max_length=255)
    away_team: str = Field(max_length=255)
    bundle: dict = Field(
        default_factory=dict, sa_column=Column(JSON), description="TargetedDataBundle snapshot"
    )
    insights: list = Field(
        default_factory=list, sa_column=Column(JSON), description="Insight texts from this refresh"
    )
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp_column())


class ConversationTurnRecord(SQLModel, table=True):
    """One message of an analyst conversation."""

    __tablename__ = "analyst_conversation_turns"
    __table_args__ = (UniqueConstraint("conversation_key", "seq", name="uq_conversation_seq"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_key: str = Field(max_length=255, index=True, description="Room id or 'Home-Away'")
    seq: int = Field(description="Per-conversation monotonically increasing position")
    role: str = Field(max_length=20, description="user or assistant")
    content: str
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp_column())
