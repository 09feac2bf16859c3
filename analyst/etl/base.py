"""Abstract base class for sports data providers and the records they return."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FormResult:
    """One finished match from a team's point of view."""

    opponent: str
    home: bool
    result: str  # "W", "D" or "L"
    goals_for: int
    goals_against: int


@dataclass
class TeamForm:
    """Recent-match summary for a team (derived, not persisted as-is)."""

    team_id: int
    team_name: str
    last_matches: list[FormResult] = field(default_factory=list)
    form_score: int = 0  # 0-100: 20 per win, 10 per draw
    win_streak: int = 0
    unbeaten_streak: int = 0

    @property
    def results_string(self) -> str:
        return "".join(m.result for m in self.last_matches)

    @property
    def goals_scored(self) -> int:
        return sum(m.goals_for for m in self.last_matches)

    @property
    def goals_conceded(self) -> int:
        return sum(m.goals_against for m in self.last_matches)


@dataclass
class Standing:
    """A single row of a league table."""

    rank: int
    team_id: Optional[int]
    team_name: str
    points: int = 0
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_diff: int = 0
    form: str = ""


@dataclass
class InjuryRecord:
    """A player listed as unavailable."""

    player_name: str
    type: Optional[str] = None  # "Missing Fixture", "Questionable"
    reason: Optional[str] = None  # "Knee Injury", "Suspended"


@dataclass
class LineupPlayer:
    name: str
    number: Optional[int] = None
    pos: Optional[str] = None


@dataclass
class LineupRecord:
    """Confirmed lineup for one side of a fixture."""

    team_id: Optional[int]
    team_name: str
    formation: Optional[str] = None
    coach: Optional[str] = None
    starting_xi: list[LineupPlayer] = field(default_factory=list)
    substitutes: list[LineupPlayer] = field(default_factory=list)


@dataclass
class MatchEvent:
    """Goal, card, substitution or VAR decision."""

    minute: Optional[int]
    type: str  # "Goal", "Card", "subst", "Var"
    detail: Optional[str] = None  # "Normal Goal", "Yellow Card", ...
    team_name: Optional[str] = None
    player_name: Optional[str] = None
    assist_name: Optional[str] = None
    extra_minute: Optional[int] = None

    @property
    def is_goal_or_card(self) -> bool:
        return self.type in ("Goal", "Card")


@dataclass
class FixtureState:
    """Score and status of a fixture."""

    fixture_id: int
    status: str  # NS, 1H, HT, 2H, FT, ...
    elapsed: Optional[int] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    venue_name: Optional[str] = None

    @property
    def status_label(self) -> str:
        return FIXTURE_STATUS_LABELS.get(self.status, self.status)


@dataclass
class SquadPlayer:
    name: str
    age: Optional[int] = None
    number: Optional[int] = None
    position: Optional[str] = None


@dataclass
class HeadToHeadMatch:
    """A past meeting between the two teams."""

    date: Optional[str]
    home_team: str
    away_team: str
    home_goals: Optional[int]
    away_goals: Optional[int]


@dataclass
class TeamStatistics:
    """Season statistics for a team in a league."""

    team_id: int
    team_name: str
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goals_avg_home: float = 0.0
    goals_avg_away: float = 0.0
    clean_sheets: int = 0
    failed_to_score: int = 0
    yellow_cards: int = 0
    red_cards: int = 0

    @property
    def goals_per_game(self) -> float:
        if self.played <= 0:
            return 0.0
        return self.goals_for / self.played


FIXTURE_STATUS_LABELS = {
    "TBD": "Scheduled",
    "NS": "Not started",
    "1H": "First half",
    "HT": "Half time",
    "2H": "Second half",
    "ET": "Extra time",
    "BT": "Break (extra time)",
    "P": "Penalties",
    "SUSP": "Suspended",
    "INT": "Interrupted",
    "LIVE": "Live",
    "FT": "Full time",
    "AET": "Full time (after extra time)",
    "PEN": "Full time (after penalties)",
    "PST": "Postponed",
    "CANC": "Cancelled",
    "ABD": "Abandoned",
}


class SportsDataProvider(ABC):
    """Abstract base class for external sports data providers.

    Any call may fail or time out independently. Implementations return
    None / empty lists for "no data" and raise for transport failures;
    callers decide how to degrade.
    """

    @abstractmethod
    async def search_team(self, name: str) -> Optional[int]:
        """
        Resolve a team name to the provider's team id.

        Args:
            name: Team name as typed by the room creator.

        Returns:
            Team id, or None if no team matches.
        """
        pass

    @abstractmethod
    async def get_team_form(self, team_id: int) -> Optional[TeamForm]:
        """Fetch the team's last finished matches and derive its form."""
        pass

    @abstractmethod
    async def get_team_statistics(
        self, team_id: int, league_id: int, season: int
    ) -> Optional[TeamStatistics]:
        """Fetch season statistics for a team in a league."""
        pass

    @abstractmethod
    async def get_standings(self, league_id: int, season: int) -> list[Standing]:
        """
        Fetch the league table.

        Args:
            league_id: Provider league id.
            season: Season start year.

        Returns:
            Table rows ordered by rank.
        """
        pass

    @abstractmethod
    async def get_injuries(self, team_id: int) -> list[InjuryRecord]:
        """Fetch currently injured or suspended players."""
        pass

    @abstractmethod
    async def get_lineups(
        self, fixture_id: int
    ) -> Optional[tuple[LineupRecord, LineupRecord]]:
        """Fetch confirmed lineups as (home, away), or None if not published."""
        pass

    @abstractmethod
    async def get_events(self, fixture_id: int) -> list[MatchEvent]:
        """Fetch match events in chronological order."""
        pass

    @abstractmethod
    async def get_fixture(self, fixture_id: int) -> Optional[FixtureState]:
        """Fetch current status and score of a fixture."""
        pass

    @abstractmethod
    async def get_squad(self, team_id: int) -> list[SquadPlayer]:
        """Fetch the registered squad for a team."""
        pass

    @abstractmethod
    async def get_head_to_head(
        self, team_a: int, team_b: int, last: int = 10
    ) -> list[HeadToHeadMatch]:
        """Fetch the most recent meetings between two teams, newest first."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
