"""
Learning cache: insights extracted from fetched data and fan questions,
plus the per-room analysis snapshot.
"""

from analyst.learning.handlers import LearningHandler
from analyst.learning.insights import (
    Insight,
    InsightCategory,
    InsightExtractor,
    InsightSource,
    extract_question_topics,
    format_insights,
)
from analyst.learning.store import (
    AnalysisSnapshot,
    InMemoryInsightStore,
    InsightStore,
    SQLInsightStore,
)

__all__ = [
    "AnalysisSnapshot",
    "InMemoryInsightStore",
    "Insight",
    "InsightCategory",
    "InsightExtractor",
    "InsightSource",
    "InsightStore",
    "LearningHandler",
    "SQLInsightStore",
    "extract_question_topics",
    "format_insights",
]
