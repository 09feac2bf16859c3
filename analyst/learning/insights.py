"""
Rule-based insight extraction.

Each rule reads one fact out of a fetched bundle and emits a short sentence
with a fixed confidence. Insights are append-only: a later refresh adds new
rows, it never edits old ones.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from analyst.etl.base import HeadToHeadMatch
from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.match_context import MatchContext
from analyst.ml.prediction import find_standing
from analyst.models import utcnow

logger = logging.getLogger(__name__)


class InsightCategory(str, Enum):
    TEAM = "team"
    PLAYER = "player"
    MATCH = "match"
    LEAGUE = "league"


class InsightSource(str, Enum):
    API_DATA = "api_data"
    FAN_QUESTION = "fan_question"
    MATCH_EVENT = "match_event"


@dataclass(frozen=True)
class Insight:
    category: InsightCategory
    subject: str
    text: str
    source: InsightSource
    confidence: float
    match_key: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Insight confidence must be within [0, 1], got {self.confidence}")


# Rule thresholds and confidences
WIN_STREAK_MIN = 3
EXCELLENT_FORM = 80
H2H_MIN_SAMPLE = 3
TIGHT_POINTS_GAP = 3
STRONG_ATTACK_GPG = 2.0
SOLID_DEFENSE_CLEAN_SHEETS = 5
MAX_INJURY_NAMES = 3

CONFIDENCE = {
    "win_streak": 0.9,
    "excellent_form": 0.85,
    "head_to_head": 0.9,
    "tight_matchup": 0.85,
    "injuries": 0.8,
    "strong_attack": 0.85,
    "solid_defense": 0.8,
    "fan_question": 0.6,
}

QUESTION_TOPICS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("lineup", "starting"), "lineups"),
    (("injur",), "injuries"),
    (("tactic", "formation"), "tactics"),
    (("predict",), "predictions"),
    (("score", "goal"), "scoring"),
    (("defense", "defence", "clean sheet"), "defense"),
    (("player",), "players"),
    (("history", "h2h", "head to head"), "history"),
    (("table", "standing"), "standings"),
)


class InsightExtractor:
    """Fixed rule set over a bundle. Pure: no I/O."""

    def extract(self, bundle: TargetedDataBundle, match: MatchContext) -> list[Insight]:
        if bundle.is_empty:
            return []

        key = match.pair_key
        insights: list[Insight] = []

        def team_insight(team: str, text: str, rule: str) -> None:
            insights.append(Insight(
                category=InsightCategory.TEAM,
                subject=team,
                text=text,
                source=InsightSource.API_DATA,
                confidence=CONFIDENCE[rule],
                match_key=key,
            ))

        sides = (
            (match.home_team, bundle.home_form, bundle.home_stats, bundle.home_injuries),
            (match.away_team, bundle.away_form, bundle.away_stats, bundle.away_injuries),
        )
        for team, form, stats, injuries in sides:
            if form is not None:
                if form.win_streak >= WIN_STREAK_MIN:
                    team_insight(team, f"{team} are on a {form.win_streak}-game winning streak", "win_streak")
                if form.form_score >= EXCELLENT_FORM:
                    team_insight(team, f"{team} in excellent form ({form.form_score}/100)", "excellent_form")
            if stats is not None:
                gpg = stats.goals_per_game
                if gpg > STRONG_ATTACK_GPG:
                    team_insight(team, f"{team} have a strong attack ({gpg:.2f} goals per game)", "strong_attack")
                if stats.clean_sheets > SOLID_DEFENSE_CLEAN_SHEETS:
                    team_insight(
                        team, f"{team} have a solid defense ({stats.clean_sheets} clean sheets)", "solid_defense"
                    )
            if injuries:
                names = ", ".join(i.player_name for i in injuries[:MAX_INJURY_NAMES])
                team_insight(team, f"{team} injury concerns: {names}", "injuries")

        played = [m for m in bundle.head_to_head or [] if m.home_goals is not None and m.away_goals is not None]
        if len(played) >= H2H_MIN_SAMPLE:
            insights.append(self._head_to_head_insight(played, match))

        if bundle.standings:
            home_row = find_standing(bundle.standings, bundle.home_team_id, match.home_team)
            away_row = find_standing(bundle.standings, bundle.away_team_id, match.away_team)
            if home_row is not None and away_row is not None and home_row is not away_row:
                gap = abs(home_row.points - away_row.points)
                if gap <= TIGHT_POINTS_GAP:
                    insights.append(Insight(
                        category=InsightCategory.LEAGUE,
                        subject=f"{match.home_team} vs {match.away_team}",
                        text=f"Tight matchup! Only {gap} points separate {match.home_team} and {match.away_team}",
                        source=InsightSource.API_DATA,
                        confidence=CONFIDENCE["tight_matchup"],
                        match_key=key,
                    ))

        logger.debug(f"[LEARN] Extracted {len(insights)} insights for {key}")
        return insights

    def _head_to_head_insight(self, meetings: list[HeadToHeadMatch], match: MatchContext) -> Insight:
        """Aggregate W/D/L over played meetings from the home side's perspective, whichever venue each was at."""
        home_name = match.home_team.lower()
        wins = draws = losses = 0
        for m in meetings:
            if m.home_goals == m.away_goals:
                draws += 1
                continue
            home_side_won = m.home_goals > m.away_goals
            our_team_was_home = home_name in m.home_team.lower() or m.home_team.lower() in home_name
            if home_side_won == our_team_was_home:
                wins += 1
            else:
                losses += 1

        return Insight(
            category=InsightCategory.MATCH,
            subject=f"{match.home_team} vs {match.away_team}",
            text=(
                f"In the last {len(meetings)} meetings: {match.home_team} {wins} wins, "
                f"{draws} draws, {match.away_team} {losses} wins"
            ),
            source=InsightSource.API_DATA,
            confidence=CONFIDENCE["head_to_head"],
            match_key=match.pair_key,
        )

    def from_question(self, question: str, match: MatchContext) -> list[Insight]:
        """What fans keep asking about for this pairing."""
        return [
            Insight(
                category=InsightCategory.MATCH,
                subject=f"{match.home_team} vs {match.away_team}",
                text=f"Fans often ask about {topic} for this matchup",
                source=InsightSource.FAN_QUESTION,
                confidence=CONFIDENCE["fan_question"],
                match_key=match.pair_key,
            )
            for topic in extract_question_topics(question)
        ]


def extract_question_topics(question: str) -> list[str]:
    text = (question or "").lower()
    return [topic for keywords, topic in QUESTION_TOPICS if any(k in text for k in keywords)]


def format_insights(insights: list[Insight], limit: int = 10) -> str:
    """Render the learned-insights block for the model context. Empty string for none."""
    if not insights:
        return ""

    grouped: dict[str, list[str]] = {}
    for insight in insights[:limit]:
        grouped.setdefault(insight.category.value, []).append(insight.text)

    lines = ["LEARNED INSIGHTS (from previous analysis):"]
    for category, texts in grouped.items():
        lines.append(f"{category.upper()}:")
        lines.extend(f"- {text}" for text in texts)
    return "\n".join(lines)
