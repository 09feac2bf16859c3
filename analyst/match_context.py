"""Per-request match description supplied by the room layer."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class MatchMode(str, Enum):
    """Phase of the match the room is discussing."""

    PRE_MATCH = "pre_match"
    LIVE = "live"
    POST_MATCH = "post_match"


@dataclass(frozen=True)
class MatchContext:
    """Immutable input describing the fixture a question is about."""

    home_team: str
    away_team: str
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    fixture_id: Optional[int] = None
    league_id: Optional[int] = None
    league_name: Optional[str] = None
    mode: MatchMode = MatchMode.PRE_MATCH
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    venue: Optional[str] = None
    kickoff: Optional[datetime] = None

    @property
    def pair_key(self) -> str:
        """Team-pair key used when no room id is available."""
        return f"{self.home_team}-{self.away_team}"

    def describe(self) -> str:
        """One-paragraph summary used in the model context message."""
        lines = [f"Match: {self.home_team} vs {self.away_team}"]
        if self.league_name:
            lines.append(f"Competition: {self.league_name}")
        lines.append(f"Mode: {self.mode.value}")
        if self.home_score is not None and self.away_score is not None:
            lines.append(f"Score: {self.home_team} {self.home_score}-{self.away_score} {self.away_team}")
        if self.venue:
            lines.append(f"Venue: {self.venue}")
        if self.kickoff:
            lines.append(f"Kickoff: {self.kickoff.strftime('%Y-%m-%d %H:%M')} UTC")
        return "\n".join(lines)
