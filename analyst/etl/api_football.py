"""API-Football data provider implementation."""

import asyncio
import logging
import time
from datetime import datetime, date, timezone
from typing import Optional

import httpx

from analyst.config import Settings, get_settings
from analyst.etl.base import (
    FixtureState,
    FormResult,
    HeadToHeadMatch,
    InjuryRecord,
    LineupPlayer,
    LineupRecord,
    MatchEvent,
    SportsDataProvider,
    SquadPlayer,
    Standing,
    TeamForm,
    TeamStatistics,
)
from analyst.etl.competitions import current_season
from analyst.telemetry import record_provider_error, record_provider_request
from analyst.utils.cache import TTLCache

logger = logging.getLogger(__name__)

PROVIDER = "api_football"
FORM_WINDOW = 5


class APIBudgetExceeded(RuntimeError):
    """Raised when the global daily API request budget is exhausted."""


# =============================================================================
# GLOBAL DAILY API BUDGET (process-wide)
# =============================================================================
_budget_lock = asyncio.Lock()
_budget_day: Optional[date] = None
_budget_used: int = 0


async def _budget_check_and_increment(daily_budget: int, cost: int = 1) -> None:
    """
    Enforce a global daily request budget across ALL APIFootballProvider instances.

    A budget of 0 disables enforcement.
    """
    global _budget_day, _budget_used

    if daily_budget <= 0:
        return

    today = datetime.now(timezone.utc).date()
    async with _budget_lock:
        if _budget_day != today:
            _budget_day = today
            _budget_used = 0

        if _budget_used + cost > daily_budget:
            raise APIBudgetExceeded(
                f"API daily budget exceeded: used={_budget_used}, cost={cost}, budget={daily_budget}"
            )

        _budget_used += cost


def get_api_budget_status(settings: Optional[Settings] = None) -> dict:
    """Expose current budget status for monitoring/logging."""
    daily_budget = (settings or get_settings()).API_DAILY_BUDGET
    return {
        "budget_day": _budget_day.isoformat() if _budget_day else None,
        "budget_used": _budget_used,
        "budget_total": daily_budget,
        "budget_remaining": (daily_budget - _budget_used) if daily_budget else None,
    }


def _int(value, default: int = 0) -> int:
    """Coerce provider numbers ("12", None, 12.0) to int."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class APIFootballProvider(SportsDataProvider):
    """API-Football data provider with rate limiting (supports RapidAPI and API-Sports)."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 1,
    ):
        self.settings = settings or get_settings()

        # Detect if using API-Sports directly or RapidAPI
        host = self.settings.RAPIDAPI_HOST
        if "api-sports.io" in host:
            self.BASE_URL = f"https://{host}"
            headers = {
                "x-apisports-key": self.settings.RAPIDAPI_KEY,
            }
        else:
            self.BASE_URL = f"https://{host}/v3"
            headers = {
                "X-RapidAPI-Key": self.settings.RAPIDAPI_KEY,
                "X-RapidAPI-Host": host,
            }

        self.client = client or httpx.AsyncClient(
            headers=headers,
            timeout=self.settings.API_TIMEOUT_SECONDS,
        )
        self.requests_per_minute = self.settings.API_REQUESTS_PER_MINUTE
        self.max_retries = max(1, max_retries)
        self._team_ids = TTLCache(ttl=self.settings.TEAM_SEARCH_CACHE_TTL)

    async def _rate_limited_request(self, endpoint: str, params: dict = None, entity: str = "fixture") -> dict:
        """
        Make a rate-limited request to the API.

        Respects API rate limits by adding delays between requests.
        Backs off on 429 errors. Transport errors are raised after the
        last attempt so callers can treat the category as failed.

        Args:
            endpoint: API endpoint to call
            params: Query parameters
            entity: Entity type for telemetry labels (team, lineup, events, ...)
        """
        delay = 60 / self.requests_per_minute if self.requests_per_minute > 0 else 0
        url = f"{self.BASE_URL}/{endpoint}"
        retry_delay = 2

        for attempt in range(self.max_retries):
            start_time = time.time()
            await _budget_check_and_increment(self.settings.API_DAILY_BUDGET, cost=1)
            try:
                response = await self.client.get(url, params=params)
                latency_ms = (time.time() - start_time) * 1000

                if response.status_code == 429:
                    record_provider_request(PROVIDER, entity, endpoint, 429, latency_ms)
                    record_provider_error(PROVIDER, entity, "rate_limit")
                    if attempt < self.max_retries - 1:
                        wait_time = retry_delay * (2**attempt)
                        logger.warning(f"Rate limited on {endpoint}. Waiting {wait_time}s before retry...")
                        await asyncio.sleep(wait_time)
                        continue
                    response.raise_for_status()

                response.raise_for_status()
                record_provider_request(PROVIDER, entity, endpoint, response.status_code, latency_ms)
                if delay:
                    await asyncio.sleep(delay)

                data = response.json()
                if data.get("errors"):
                    logger.error(f"API error on {endpoint}: {data['errors']}")
                    record_provider_error(PROVIDER, entity, "api_error_response")
                    return {"response": []}

                return data

            except httpx.TimeoutException as e:
                latency_ms = (time.time() - start_time) * 1000
                record_provider_request(PROVIDER, entity, endpoint, 0, latency_ms)
                record_provider_error(PROVIDER, entity, "timeout")
                logger.error(f"Timeout error on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(retry_delay * (2**attempt))
                    continue
                raise

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code if e.response is not None else 0
                record_provider_error(PROVIDER, entity, f"http_{status_code}")
                logger.error(f"HTTP error on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(retry_delay * (2**attempt))
                    continue
                raise

            except httpx.RequestError as e:
                record_provider_error(PROVIDER, entity, "request_error")
                logger.error(f"Request error on {endpoint}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(retry_delay * (2**attempt))
                    continue
                raise

        return {"response": []}

    async def search_team(self, name: str) -> Optional[int]:
        """Resolve a team name via /teams?search=, cached for TEAM_SEARCH_CACHE_TTL."""
        cache_key = name.strip().lower()
        hit, team_id = self._team_ids.get(cache_key)
        if hit:
            return team_id

        data = await self._rate_limited_request("teams", {"search": name.strip()}, entity="team")
        teams = data.get("response", [])
        if not teams:
            logger.info(f"[FETCH] No team found for '{name}'")
            return None

        # Prefer an exact name match over the provider's first hit
        chosen = teams[0]
        for item in teams:
            if (item.get("team", {}).get("name") or "").lower() == cache_key:
                chosen = item
                break

        team_id = chosen.get("team", {}).get("id")
        if team_id is not None:
            self._team_ids.set(cache_key, team_id)
        return team_id

    async def get_team_form(self, team_id: int) -> Optional[TeamForm]:
        """
        Derive form from the team's last finished fixtures.

        form_score: 20 per win, 10 per draw, capped at 100.
        Streaks are counted from the most recent match backwards.
        """
        data = await self._rate_limited_request(
            "fixtures", {"team": team_id, "last": FORM_WINDOW}, entity="form"
        )
        fixtures = data.get("response", [])
        if not fixtures:
            return None

        team_name = ""
        last_matches: list[FormResult] = []
        for fixture in fixtures[:FORM_WINDOW]:
            teams = fixture.get("teams", {})
            goals = fixture.get("goals", {})
            home = teams.get("home", {})
            away = teams.get("away", {})
            is_home = home.get("id") == team_id

            team_goals = _int(goals.get("home") if is_home else goals.get("away"))
            opp_goals = _int(goals.get("away") if is_home else goals.get("home"))
            if team_goals > opp_goals:
                result = "W"
            elif team_goals < opp_goals:
                result = "L"
            else:
                result = "D"

            if not team_name:
                team_name = (home if is_home else away).get("name") or ""

            last_matches.append(FormResult(
                opponent=(away if is_home else home).get("name") or "Unknown",
                home=is_home,
                result=result,
                goals_for=team_goals,
                goals_against=opp_goals,
            ))

        # API returns most recent first; make sure of it when dates are present
        def fixture_date(pair):
            return pair[0].get("fixture", {}).get("date") or ""

        if all(f.get("fixture", {}).get("date") for f in fixtures[:FORM_WINDOW]):
            ordered = sorted(zip(fixtures[:FORM_WINDOW], last_matches), key=fixture_date, reverse=True)
            last_matches = [m for _, m in ordered]

        return build_team_form(team_id, team_name, last_matches)

    async def get_team_statistics(
        self, team_id: int, league_id: int, season: int
    ) -> Optional[TeamStatistics]:
        data = await self._rate_limited_request(
            "teams/statistics",
            {"team": team_id, "league": league_id, "season": season},
            entity="stats",
        )
        stats = data.get("response")
        if not stats or not isinstance(stats, dict):
            return None
        return self._parse_team_statistics(stats, team_id)

    def _parse_team_statistics(self, stats: dict, team_id: int) -> TeamStatistics:
        """Parse /teams/statistics response. Missing fields default to zero."""
        team = stats.get("team") or {}
        fixtures = stats.get("fixtures") or {}
        goals = stats.get("goals") or {}
        goals_for = goals.get("for") or {}
        goals_against = goals.get("against") or {}
        average = goals_for.get("average") or {}
        cards = stats.get("cards") or {}

        def card_total(color: str) -> int:
            buckets = cards.get(color) or {}
            return sum(_int((b or {}).get("total")) for b in buckets.values())

        return TeamStatistics(
            team_id=team.get("id") or team_id,
            team_name=team.get("name") or "",
            played=_int((fixtures.get("played") or {}).get("total")),
            wins=_int((fixtures.get("wins") or {}).get("total")),
            draws=_int((fixtures.get("draws") or {}).get("total")),
            losses=_int((fixtures.get("loses") or {}).get("total")),
            goals_for=_int((goals_for.get("total") or {}).get("total")),
            goals_against=_int((goals_against.get("total") or {}).get("total")),
            goals_avg_home=_float(average.get("home")),
            goals_avg_away=_float(average.get("away")),
            clean_sheets=_int((stats.get("clean_sheet") or {}).get("total")),
            failed_to_score=_int((stats.get("failed_to_score") or {}).get("total")),
            yellow_cards=card_total("yellow"),
            red_cards=card_total("red"),
        )

    async def get_standings(self, league_id: int, season: int) -> list[Standing]:
        """
        Fetch league standings/table.

        Returns the primary table (see _select_primary_standings_group) ordered by rank.
        """
        data = await self._rate_limited_request(
            "standings", {"league": league_id, "season": season}, entity="standings"
        )
        standings_data = data.get("response", [])

        if not standings_data:
            return []

        rows: list[dict] = []
        for league_data in standings_data:
            league_standings = league_data.get("league", {}).get("standings", [])
            # Standings can be nested (for groups) - flatten
            for group in league_standings:
                if isinstance(group, list):
                    rows.extend(group)
                else:
                    rows.append(group)

        primary = self._select_primary_standings_group(rows)
        table = [self._parse_standing(row) for row in primary]
        table.sort(key=lambda s: s.rank)
        return table

    def _select_primary_standings_group(self, rows: list[dict]) -> list[dict]:
        """
        API-Football can return multiple tables for the same league/season (groups/stages).

        Pick the group with the most teams, then the most matches played.
        """
        groups: dict[str, list[dict]] = {}
        for row in rows:
            g = row.get("group")
            if not g:
                continue
            groups.setdefault(str(g), []).append(row)

        if len(groups) <= 1:
            return rows

        def score(item: tuple[str, list[dict]]) -> tuple[int, int]:
            _, group_rows = item
            total_played = sum(_int(r.get("all", {}).get("played")) for r in group_rows)
            return (len(group_rows), total_played)

        _, best_rows = max(groups.items(), key=score)
        return best_rows

    def _parse_standing(self, standing: dict) -> Standing:
        """Parse a single standing entry."""
        team = standing.get("team", {})
        all_stats = standing.get("all", {})
        goals = all_stats.get("goals", {})
        return Standing(
            rank=_int(standing.get("rank")),
            team_id=team.get("id"),
            team_name=team.get("name") or "",
            points=_int(standing.get("points")),
            played=_int(all_stats.get("played")),
            won=_int(all_stats.get("win")),
            drawn=_int(all_stats.get("draw")),
            lost=_int(all_stats.get("lose")),
            goals_for=_int(goals.get("for")),
            goals_against=_int(goals.get("against")),
            goal_diff=_int(standing.get("goalsDiff")),
            form=standing.get("form") or "",
        )

    async def get_injuries(self, team_id: int) -> list[InjuryRecord]:
        """Fetch current injuries; the provider lists one row per missed fixture, so dedupe by player."""
        data = await self._rate_limited_request(
            "injuries", {"team": team_id, "season": current_season()}, entity="injuries"
        )
        seen: set[str] = set()
        injuries = []
        for item in data.get("response", []):
            player = item.get("player", {})
            name = player.get("name")
            if not name or name in seen:
                continue
            seen.add(name)
            injuries.append(InjuryRecord(
                player_name=name,
                type=player.get("type"),
                reason=player.get("reason"),
            ))
        return injuries

    async def get_lineups(
        self, fixture_id: int
    ) -> Optional[tuple[LineupRecord, LineupRecord]]:
        """
        Fetch lineup information for a fixture.

        Available approximately 60 minutes before kickoff.

        Returns:
            (home, away) LineupRecords, or None if lineups are not published.
        """
        data = await self._rate_limited_request("fixtures/lineups", {"fixture": fixture_id}, entity="lineup")
        lineups_data = data.get("response", [])

        if len(lineups_data) < 2:
            return None

        def players(entries: list) -> list[LineupPlayer]:
            parsed = []
            for entry in entries or []:
                p = entry.get("player", {})
                if not p.get("name"):
                    continue
                parsed.append(LineupPlayer(name=p["name"], number=p.get("number"), pos=p.get("pos")))
            return parsed

        records = []
        # First team is home, second is away
        for lineup in lineups_data[:2]:
            team_info = lineup.get("team", {})
            coach = lineup.get("coach") or {}
            records.append(LineupRecord(
                team_id=team_info.get("id"),
                team_name=team_info.get("name") or "",
                formation=lineup.get("formation"),
                coach=coach.get("name"),
                starting_xi=players(lineup.get("startXI")),
                substitutes=players(lineup.get("substitutes")),
            ))

        return records[0], records[1]

    async def get_events(self, fixture_id: int) -> list[MatchEvent]:
        """
        Fetch match events (goals, cards, substitutions) for a fixture.

        Args:
            fixture_id: External fixture ID from API-Football.
        """
        data = await self._rate_limited_request("fixtures/events", {"fixture": fixture_id}, entity="events")

        events = []
        for event in data.get("response", []):
            time_info = event.get("time", {})
            assist = event.get("assist") or {}
            events.append(MatchEvent(
                minute=time_info.get("elapsed"),
                extra_minute=time_info.get("extra"),
                type=event.get("type") or "",
                detail=event.get("detail"),
                team_name=event.get("team", {}).get("name"),
                player_name=event.get("player", {}).get("name"),
                assist_name=assist.get("name"),
            ))

        return events

    async def get_fixture(self, fixture_id: int) -> Optional[FixtureState]:
        data = await self._rate_limited_request("fixtures", {"id": fixture_id}, entity="fixture")
        fixtures = data.get("response", [])
        if not fixtures:
            return None

        fixture = fixtures[0]
        info = fixture.get("fixture", {})
        status = info.get("status", {})
        goals = fixture.get("goals", {})
        return FixtureState(
            fixture_id=info.get("id") or fixture_id,
            status=status.get("short") or "NS",
            elapsed=status.get("elapsed"),
            home_goals=goals.get("home"),
            away_goals=goals.get("away"),
            venue_name=(info.get("venue") or {}).get("name"),
        )

    async def get_squad(self, team_id: int) -> list[SquadPlayer]:
        """Fetch the registered squad for a team."""
        data = await self._rate_limited_request("players/squads", {"team": team_id}, entity="player")

        players = []
        for team_data in data.get("response", []):
            for player in team_data.get("players", []):
                if not player.get("name"):
                    continue
                players.append(SquadPlayer(
                    name=player["name"],
                    age=player.get("age"),
                    number=player.get("number"),
                    position=player.get("position"),
                ))

        return players

    async def get_head_to_head(
        self, team_a: int, team_b: int, last: int = 10
    ) -> list[HeadToHeadMatch]:
        data = await self._rate_limited_request(
            "fixtures/headtohead", {"h2h": f"{team_a}-{team_b}", "last": last}, entity="h2h"
        )

        meetings = []
        for fixture in data.get("response", []):
            teams = fixture.get("teams", {})
            goals = fixture.get("goals", {})
            meetings.append(HeadToHeadMatch(
                date=fixture.get("fixture", {}).get("date"),
                home_team=teams.get("home", {}).get("name") or "",
                away_team=teams.get("away", {}).get("name") or "",
                home_goals=goals.get("home"),
                away_goals=goals.get("away"),
            ))

        # Newest first
        meetings.sort(key=lambda m: m.date or "", reverse=True)
        return meetings

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def build_team_form(team_id: int, team_name: str, last_matches: list[FormResult]) -> TeamForm:
    """Compute form score and streaks from most-recent-first results."""
    form_score = min(100, sum(20 if m.result == "W" else 10 if m.result == "D" else 0 for m in last_matches))

    win_streak = 0
    for m in last_matches:
        if m.result != "W":
            break
        win_streak += 1

    unbeaten_streak = 0
    for m in last_matches:
        if m.result == "L":
            break
        unbeaten_streak += 1

    return TeamForm(
        team_id=team_id,
        team_name=team_name,
        last_matches=last_matches,
        form_score=form_score,
        win_streak=win_streak,
        unbeaten_streak=unbeaten_streak,
    )
