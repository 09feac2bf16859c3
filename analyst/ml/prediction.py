"""
Deterministic match outcome estimator.

Used standalone (POST /analyst/predict) and by the fallback prediction
template. No model, no I/O: strengths are built from form, streaks, home
advantage and table position, then turned into clamped probabilities.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Optional

from analyst.etl.base import Standing
from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.match_context import MatchContext

logger = logging.getLogger(__name__)

DEFAULT_FORM = 50
HOME_ADVANTAGE = 10
WIN_STREAK_BONUS = 8
WIN_STREAK_MIN = 3
UNBEATEN_BONUS = 5
UNBEATEN_MIN = 5
RANK_WEIGHT = 1.5
DRAW_SLACK = 35

HOME_WIN_BOUNDS = (15, 70)
AWAY_WIN_BOUNDS = (10, 60)
HOME_GOALS_SCALE, HOME_GOALS_MAX = 5, 5
AWAY_GOALS_SCALE, AWAY_GOALS_MAX = 4, 4
JITTER = 0.6

EXCELLENT_FORM = 70
POOR_FORM = 40
RANK_GAP_FACTOR = 5
ATTACK_MARGIN = 3


@dataclass
class PredictionInputs:
    """Per-side signals. Missing form defaults to 50."""

    home_form: Optional[float] = None
    away_form: Optional[float] = None
    home_win_streak: int = 0
    away_win_streak: int = 0
    home_unbeaten: int = 0
    away_unbeaten: int = 0
    home_rank: Optional[int] = None
    away_rank: Optional[int] = None
    home_goals_scored: Optional[int] = None
    home_goals_conceded: Optional[int] = None
    away_goals_scored: Optional[int] = None
    away_goals_conceded: Optional[int] = None
    home_recent_games: int = 0
    away_recent_games: int = 0


@dataclass
class PredictionFactor:
    type: str  # home_advantage, form, momentum, standing, attack
    description: str
    impact: str  # positive, negative


@dataclass
class Prediction:
    home_win: int
    draw: int
    away_win: int
    predicted_home_goals: int
    predicted_away_goals: int
    confidence: int
    factors: list[PredictionFactor] = field(default_factory=list)

    @property
    def predicted_score(self) -> dict:
        return {"home": self.predicted_home_goals, "away": self.predicted_away_goals}

    def as_dict(self) -> dict:
        return {
            "home_win": self.home_win,
            "draw": self.draw,
            "away_win": self.away_win,
            "predicted_score": self.predicted_score,
            "confidence": self.confidence,
            "factors": [
                {"type": f.type, "description": f.description, "impact": f.impact}
                for f in self.factors
            ],
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class PredictionEngine:
    """Strength-based 1X2 + scoreline estimator."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def predict(
        self,
        inputs: PredictionInputs,
        home_team: str,
        away_team: str,
        jitter: bool = False,
    ) -> Prediction:
        home_form = _clamp(inputs.home_form if inputs.home_form is not None else DEFAULT_FORM, 0, 100)
        away_form = _clamp(inputs.away_form if inputs.away_form is not None else DEFAULT_FORM, 0, 100)

        home_strength = home_form + HOME_ADVANTAGE
        away_strength = away_form

        if inputs.home_rank is not None and inputs.away_rank is not None:
            home_strength += (inputs.away_rank - inputs.home_rank) * RANK_WEIGHT

        if inputs.home_win_streak >= WIN_STREAK_MIN:
            home_strength += WIN_STREAK_BONUS
        if inputs.away_win_streak >= WIN_STREAK_MIN:
            away_strength += WIN_STREAK_BONUS
        if inputs.home_unbeaten >= UNBEATEN_MIN:
            home_strength += UNBEATEN_BONUS
        if inputs.away_unbeaten >= UNBEATEN_MIN:
            away_strength += UNBEATEN_BONUS

        home_strength = max(1.0, home_strength)
        away_strength = max(1.0, away_strength)

        total = home_strength + away_strength + DRAW_SLACK
        home_win = int(_clamp(round(home_strength / total * 100), *HOME_WIN_BOUNDS))
        away_win = int(_clamp(round(away_strength / total * 100), *AWAY_WIN_BOUNDS))
        draw = 100 - home_win - away_win

        raw_home_goals = home_win / 100 * HOME_GOALS_SCALE
        raw_away_goals = away_win / 100 * AWAY_GOALS_SCALE
        if jitter:
            raw_home_goals += self._rng.uniform(-JITTER, JITTER)
            raw_away_goals += self._rng.uniform(-JITTER, JITTER)
        home_goals = int(_clamp(round(raw_home_goals), 0, HOME_GOALS_MAX))
        away_goals = int(_clamp(round(raw_away_goals), 0, AWAY_GOALS_MAX))

        confidence = int(_clamp(round(50 + abs(home_form - away_form) / 2), 0, 100))

        prediction = Prediction(
            home_win=home_win,
            draw=draw,
            away_win=away_win,
            predicted_home_goals=home_goals,
            predicted_away_goals=away_goals,
            confidence=confidence,
            factors=self._factors(inputs, home_team, away_team),
        )
        logger.debug(
            f"[PREDICT] {home_team} vs {away_team}: {home_win}/{draw}/{away_win} "
            f"score={home_goals}-{away_goals} confidence={confidence}"
        )
        return prediction

    def _factors(self, inputs: PredictionInputs, home_team: str, away_team: str) -> list[PredictionFactor]:
        factors = [PredictionFactor(
            type="home_advantage",
            description=f"{home_team} playing at home",
            impact="positive",
        )]

        for team, form in ((home_team, inputs.home_form), (away_team, inputs.away_form)):
            if form is None:
                continue
            if form >= EXCELLENT_FORM:
                factors.append(PredictionFactor("form", f"{team} in excellent form ({form:.0f}%)", "positive"))
            elif form < POOR_FORM:
                factors.append(PredictionFactor("form", f"{team} struggling recently ({form:.0f}%)", "negative"))

        for team, streak in ((home_team, inputs.home_win_streak), (away_team, inputs.away_win_streak)):
            if streak >= WIN_STREAK_MIN:
                factors.append(PredictionFactor("momentum", f"{team} on {streak}-match win streak", "positive"))

        if inputs.home_rank is not None and inputs.away_rank is not None:
            rank_diff = inputs.away_rank - inputs.home_rank
            if rank_diff >= RANK_GAP_FACTOR:
                factors.append(PredictionFactor(
                    "standing",
                    f"{home_team} ranked {inputs.home_rank} vs {away_team} ranked {inputs.away_rank}",
                    "positive",
                ))
            elif rank_diff <= -RANK_GAP_FACTOR:
                factors.append(PredictionFactor(
                    "standing",
                    f"{away_team} ranked higher ({inputs.away_rank} vs {inputs.home_rank})",
                    "negative",
                ))

        for team, scored, conceded, games in (
            (home_team, inputs.home_goals_scored, inputs.home_goals_conceded, inputs.home_recent_games),
            (away_team, inputs.away_goals_scored, inputs.away_goals_conceded, inputs.away_recent_games),
        ):
            if scored is not None and conceded is not None and scored > conceded + ATTACK_MARGIN:
                factors.append(PredictionFactor(
                    "attack",
                    f"{team} scoring well ({scored} goals in last {games} games)",
                    "positive",
                ))

        return factors


def find_standing(standings: list[Standing], team_id: Optional[int], team_name: str) -> Optional[Standing]:
    """Locate a team's row by id, else by case-insensitive name containment."""
    if team_id is not None:
        for row in standings:
            if row.team_id == team_id:
                return row
    name = team_name.lower()
    for row in standings:
        row_name = row.team_name.lower()
        if row_name and (row_name in name or name in row_name):
            return row
    return None


def inputs_from_bundle(bundle: TargetedDataBundle, match: MatchContext) -> PredictionInputs:
    """Collect prediction signals from whatever the bundle holds."""
    inputs = PredictionInputs()

    if bundle.home_form is not None:
        inputs.home_form = bundle.home_form.form_score
        inputs.home_win_streak = bundle.home_form.win_streak
        inputs.home_unbeaten = bundle.home_form.unbeaten_streak
        inputs.home_goals_scored = bundle.home_form.goals_scored
        inputs.home_goals_conceded = bundle.home_form.goals_conceded
        inputs.home_recent_games = len(bundle.home_form.last_matches)
    if bundle.away_form is not None:
        inputs.away_form = bundle.away_form.form_score
        inputs.away_win_streak = bundle.away_form.win_streak
        inputs.away_unbeaten = bundle.away_form.unbeaten_streak
        inputs.away_goals_scored = bundle.away_form.goals_scored
        inputs.away_goals_conceded = bundle.away_form.goals_conceded
        inputs.away_recent_games = len(bundle.away_form.last_matches)

    if bundle.standings:
        home_row = find_standing(bundle.standings, bundle.home_team_id, match.home_team)
        away_row = find_standing(bundle.standings, bundle.away_team_id, match.away_team)
        if home_row is not None and away_row is not None and home_row is not away_row:
            inputs.home_rank = home_row.rank
            inputs.away_rank = away_row.rank

    return inputs
