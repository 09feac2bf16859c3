"""
Bundle → prompt text.

Sections are independent and emitted in a fixed order. A section is only
emitted when its data was fetched. When the blob exceeds the character
budget, whole sections are dropped lowest-priority first; live state and
events are only ever truncated, never dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from analyst.etl.base import InjuryRecord, SquadPlayer, TeamForm, TeamStatistics
from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.match_context import MatchContext

logger = logging.getLogger(__name__)

MAX_INJURIES_PER_SIDE = 5
MAX_SQUAD_PER_SIDE = 5
MAX_H2H = 5
TOP_OF_TABLE = 5

# Output order
SECTION_ORDER = (
    "live",
    "events",
    "lineups",
    "injuries",
    "squad",
    "standings",
    "h2h",
    "form",
    "stats",
)

# Dropped first → last when over budget. live/events are never dropped.
DROP_ORDER = ("squad", "stats", "h2h", "standings", "form", "injuries", "lineups")

SQUAD_POSITION_ORDER = {"Attacker": 0, "Midfielder": 1, "Defender": 2, "Goalkeeper": 3}


@dataclass
class FallbackSnippets:
    """Short strings interpolated by fallback templates. None = not fetched."""

    home_form: Optional[str] = None
    away_form: Optional[str] = None
    head_to_head: Optional[str] = None
    standings: Optional[str] = None
    injuries: Optional[str] = None
    injuries_unavailable: list[str] = field(default_factory=list)  # teams whose injury list is absent
    lineups: Optional[str] = None


class ContextFormatter:
    """Deterministic, budgeted rendering of a TargetedDataBundle."""

    def __init__(self, char_budget: int = 4000):
        self.char_budget = char_budget

    def format(self, bundle: TargetedDataBundle, match: MatchContext, budget: Optional[int] = None) -> str:
        budget = budget if budget is not None else self.char_budget
        sections = self.build_sections(bundle, match)
        text = self._join(sections)
        if len(text) <= budget:
            return text

        for name in DROP_ORDER:
            if name in sections:
                del sections[name]
                logger.debug(f"[CONTEXT] Dropped section '{name}' to fit {budget} chars")
                text = self._join(sections)
                if len(text) <= budget:
                    return text

        # Only live state / events left and still too long
        return text[:budget]

    def build_sections(self, bundle: TargetedDataBundle, match: MatchContext) -> dict[str, str]:
        """All non-empty sections keyed by name, in output order."""
        home, away = match.home_team, match.away_team
        renderers = {
            "live": lambda: self._live(bundle, match),
            "events": lambda: self._events(bundle),
            "lineups": lambda: self._lineups(bundle),
            "injuries": lambda: self._injuries(bundle, home, away),
            "squad": lambda: self._squad(bundle, home, away),
            "standings": lambda: self._standings(bundle),
            "h2h": lambda: self._head_to_head(bundle),
            "form": lambda: self._form(bundle),
            "stats": lambda: self._stats(bundle),
        }
        sections = {}
        for name in SECTION_ORDER:
            rendered = renderers[name]()
            if rendered:
                sections[name] = rendered
        return sections

    @staticmethod
    def _join(sections: dict[str, str]) -> str:
        return "\n\n".join(sections[name] for name in SECTION_ORDER if name in sections)

    # ── Sections ─────────────────────────────────────────────────────────────

    def _live(self, bundle: TargetedDataBundle, match: MatchContext) -> Optional[str]:
        fixture = bundle.fixture
        if fixture is None:
            return None
        lines = ["LIVE MATCH STATE:", f"Status: {fixture.status_label}"]
        if fixture.elapsed is not None:
            lines.append(f"Minute: {fixture.elapsed}'")
        if fixture.home_goals is not None and fixture.away_goals is not None:
            lines.append(f"Score: {match.home_team} {fixture.home_goals}-{fixture.away_goals} {match.away_team}")
        if fixture.venue_name:
            lines.append(f"Venue: {fixture.venue_name}")
        return "\n".join(lines)

    def _events(self, bundle: TargetedDataBundle) -> Optional[str]:
        if not bundle.events:
            return None
        lines = []
        for event in bundle.events:
            if not event.is_goal_or_card:
                continue
            minute = f"{event.minute or 0}'"
            if event.extra_minute:
                minute = f"{event.minute or 0}+{event.extra_minute}'"
            label = "GOAL" if event.type == "Goal" else (event.detail or "CARD").upper()
            player = event.player_name or "Unknown"
            team = f" ({event.team_name})" if event.team_name else ""
            lines.append(f"{minute} {label} {player}{team}")
        if not lines:
            return None
        return "MATCH EVENTS:\n" + "\n".join(lines)

    def _lineups(self, bundle: TargetedDataBundle) -> Optional[str]:
        if not bundle.lineups:
            return None
        blocks = ["CONFIRMED LINEUPS:"]
        for lineup in bundle.lineups:
            header = f"{lineup.team_name} ({lineup.formation or 'formation n/a'})"
            names = ", ".join(p.name for p in lineup.starting_xi) or "not available"
            blocks.append(f"{header}:\n{names}")
        return "\n".join(blocks)

    def _injuries(self, bundle: TargetedDataBundle, home: str, away: str) -> Optional[str]:
        parts = []
        for team, injuries in ((home, bundle.home_injuries), (away, bundle.away_injuries)):
            if injuries:
                parts.append(f"{team}:\n{format_injuries(injuries)}")
        if not parts:
            return None
        return "INJURY REPORT:\n" + "\n".join(parts)

    def _squad(self, bundle: TargetedDataBundle, home: str, away: str) -> Optional[str]:
        parts = []
        for team, squad in ((home, bundle.home_squad), (away, bundle.away_squad)):
            if squad:
                key_players = select_key_players(squad)
                parts.append(f"{team}: " + ", ".join(
                    f"{p.name} - {p.position or 'n/a'}" for p in key_players
                ))
        if not parts:
            return None
        return "SQUAD INFORMATION:\n" + "\n".join(parts)

    def _standings(self, bundle: TargetedDataBundle) -> Optional[str]:
        if not bundle.standings:
            return None
        ids = {bundle.home_team_id, bundle.away_team_id}
        rows = [s for s in bundle.standings[:TOP_OF_TABLE]]
        rows += [
            s for s in bundle.standings[TOP_OF_TABLE:]
            if s.team_id is not None and s.team_id in ids
        ]
        lines = [
            f"{s.rank}. {s.team_name} - {s.points} pts ({s.won}W {s.drawn}D {s.lost}L, GD {s.goal_diff:+d})"
            for s in rows
        ]
        return "LEAGUE STANDINGS:\n" + "\n".join(lines)

    def _head_to_head(self, bundle: TargetedDataBundle) -> Optional[str]:
        if not bundle.head_to_head:
            return None
        meetings = bundle.head_to_head[:MAX_H2H]
        lines = [
            f"{m.home_team} {_goals(m.home_goals)}-{_goals(m.away_goals)} {m.away_team}"
            for m in meetings
        ]
        return f"HEAD TO HEAD (last {len(meetings)} meetings):\n" + "\n".join(lines)

    def _form(self, bundle: TargetedDataBundle) -> Optional[str]:
        lines = [format_form(f) for f in (bundle.home_form, bundle.away_form) if f is not None]
        if not lines:
            return None
        return "RECENT FORM:\n" + "\n".join(lines)

    def _stats(self, bundle: TargetedDataBundle) -> Optional[str]:
        lines = [format_stats(s) for s in (bundle.home_stats, bundle.away_stats) if s is not None]
        if not lines:
            return None
        return "TEAM STATISTICS:\n" + "\n".join(lines)

    # ── Fallback snippets ────────────────────────────────────────────────────

    def fallback_snippets(self, bundle: TargetedDataBundle, match: MatchContext) -> FallbackSnippets:
        """Short one-liners for the template answers."""
        snippets = FallbackSnippets()
        if bundle.home_form is not None:
            snippets.home_form = format_form(bundle.home_form, with_name=False)
        if bundle.away_form is not None:
            snippets.away_form = format_form(bundle.away_form, with_name=False)
        if bundle.head_to_head:
            snippets.head_to_head = self._head_to_head(bundle).split(":\n", 1)[1].replace("\n", "; ")

        if bundle.standings:
            rows = [
                s for s in bundle.standings
                if s.team_id is not None and s.team_id in (bundle.home_team_id, bundle.away_team_id)
            ]
            if rows:
                snippets.standings = ", ".join(f"{s.team_name} {_ordinal(s.rank)} ({s.points} pts)" for s in rows)

        injury_parts = []
        for team, injuries in ((match.home_team, bundle.home_injuries), (match.away_team, bundle.away_injuries)):
            if injuries is None:
                snippets.injuries_unavailable.append(team)
            elif injuries:
                injury_parts.append(f"{team}: " + ", ".join(i.player_name for i in injuries[:MAX_INJURIES_PER_SIDE]))
        if injury_parts:
            snippets.injuries = "\n".join(injury_parts)

        if bundle.lineups:
            snippets.lineups = "\n".join(
                f"{l.team_name} ({l.formation or 'n/a'}): " + ", ".join(p.name for p in l.starting_xi)
                for l in bundle.lineups
            )
        return snippets


def format_form(form: TeamForm, with_name: bool = True) -> str:
    """'Arsenal: WWDLW (Form Score: 70/100) - 2 game win streak - 3 game unbeaten run'"""
    text = f"{form.results_string or 'n/a'} (Form Score: {form.form_score}/100)"
    if form.win_streak >= 2:
        text += f" - {form.win_streak} game win streak"
    if form.unbeaten_streak >= 2:
        text += f" - {form.unbeaten_streak} game unbeaten run"
    if with_name:
        return f"{form.team_name}: {text}"
    return text


def format_stats(stats: TeamStatistics) -> str:
    return (
        f"{stats.team_name}: {stats.played} played ({stats.wins}W {stats.draws}D {stats.losses}L), "
        f"{stats.goals_per_game:.2f} goals/game, "
        f"avg home {stats.goals_avg_home:.2f} / away {stats.goals_avg_away:.2f}, "
        f"{stats.clean_sheets} clean sheets, failed to score in {stats.failed_to_score}"
    )


def format_injuries(injuries: list[InjuryRecord]) -> str:
    lines = []
    for injury in injuries[:MAX_INJURIES_PER_SIDE]:
        reason = injury.reason or injury.type or "unavailable"
        lines.append(f"- {injury.player_name} ({reason})")
    return "\n".join(lines)


def select_key_players(squad: list[SquadPlayer]) -> list[SquadPlayer]:
    """Attackers first, then midfield, defence, goalkeepers."""
    ordered = sorted(squad, key=lambda p: SQUAD_POSITION_ORDER.get(p.position or "", 4))
    return ordered[:MAX_SQUAD_PER_SIDE]


def _goals(value: Optional[int]) -> str:
    return "?" if value is None else str(value)


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"
