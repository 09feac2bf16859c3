"""Competition configurations and IDs for API-Football."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class Competition:
    """Competition configuration."""

    league_id: int
    name: str
    aliases: tuple[str, ...] = field(default_factory=tuple)


PREMIER_LEAGUE = Competition(
    league_id=39,
    name="Premier League",
    aliases=("epl", "english premier league"),
)

LA_LIGA = Competition(
    league_id=140,
    name="La Liga",
    aliases=("laliga", "primera division"),
)

BUNDESLIGA = Competition(
    league_id=78,
    name="Bundesliga",
)

SERIE_A = Competition(
    league_id=135,
    name="Serie A",
)

LIGUE_1 = Competition(
    league_id=61,
    name="Ligue 1",
)

CHAMPIONS_LEAGUE = Competition(
    league_id=2,
    name="Champions League",
    aliases=("ucl", "uefa champions league"),
)

EUROPA_LEAGUE = Competition(
    league_id=3,
    name="Europa League",
    aliases=("uel", "uefa europa league"),
)

FA_CUP = Competition(
    league_id=45,
    name="FA Cup",
)

COPA_DEL_REY = Competition(
    league_id=143,
    name="Copa del Rey",
)

COMPETITIONS: dict[int, Competition] = {
    c.league_id: c
    for c in [
        PREMIER_LEAGUE,
        LA_LIGA,
        BUNDESLIGA,
        SERIE_A,
        LIGUE_1,
        CHAMPIONS_LEAGUE,
        EUROPA_LEAGUE,
        FA_CUP,
        COPA_DEL_REY,
    ]
}

# Lower-cased name/alias -> league id
_NAME_INDEX: dict[str, int] = {}
for _comp in COMPETITIONS.values():
    _NAME_INDEX[_comp.name.lower()] = _comp.league_id
    for _alias in _comp.aliases:
        _NAME_INDEX[_alias] = _comp.league_id


def get_league_id(league_name: Optional[str], default: int = PREMIER_LEAGUE.league_id) -> int:
    """Map a free-text competition name to an API-Football league id."""
    if not league_name:
        return default
    name = league_name.strip().lower()
    if name in _NAME_INDEX:
        return _NAME_INDEX[name]
    # "English Premier League 2024/25" style names
    for key, league_id in _NAME_INDEX.items():
        if key in name:
            return league_id
    return default


def current_season(now: Optional[datetime] = None) -> int:
    """European seasons start in August: Jan-Jul belong to the previous year's season."""
    now = now or datetime.now(timezone.utc)
    return now.year if now.month >= 8 else now.year - 1
