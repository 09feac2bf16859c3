"""
Question → data-need classifier.

Keywords match at word starts in the lower-cased question. No stemming: the
keyword lists carry the inflections that matter ("injury", "injured"). Short
keywords in WHOLE_WORDS must be a whole word (plural allowed), so "now" does
not fire on "know" and "live" does not fire on "Liverpool".
"""

import re
from enum import Enum

LINEUPS = "lineups"
INJURIES = "injuries"
LIVE = "live"
FORM = "form"
H2H = "h2h"
STANDINGS = "standings"
STATS = "stats"
SQUAD = "squad"
PREDICTION = "prediction"

ALL_TAGS = (LINEUPS, INJURIES, LIVE, FORM, H2H, STANDINGS, STATS, SQUAD, PREDICTION)

DATA_TRIGGERS: dict[str, tuple[str, ...]] = {
    LINEUPS: (
        "lineup", "line-up", "line up", "starting xi", "starting 11", "starting",
        "who is playing", "who's playing", "who starts", "formation", "team news",
    ),
    INJURIES: (
        "injury", "injuries", "injured", "hurt", "sidelined", "fitness",
        "available", "unavailable", "ruled out",
    ),
    LIVE: (
        "live", "score", "scored", "current", "currently", "now", "minute",
        "what happened", "event", "goal", "card",
    ),
    FORM: (
        "form", "recent", "recently", "last games", "streak", "momentum", "playing well",
        "performance",
    ),
    H2H: (
        "head to head", "head-to-head", "history", "previous meetings",
        "last time", "record against", "h2h",
    ),
    STANDINGS: ("standings", "table", "position", "points", "rank", "league"),
    STATS: (
        "stats", "statistics", "numbers", "data", "average", "goals per game",
        "clean sheet",
    ),
    SQUAD: ("squad", "players", "roster", "who do they have"),
    PREDICTION: (
        "predict", "prediction", "who will win", "score prediction",
        "forecast", "expect",
    ),
}

TACTICS_KEYWORDS = ("tactic", "formation", "style", "press", "set piece")

WHOLE_WORDS = frozenset({"now", "live", "goal", "card", "form", "score", "event", "minute"})


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern:
    alternatives = [
        re.escape(k) + (r"(?:s|es)?\b" if k in WHOLE_WORDS else "")
        for k in keywords
    ]
    return re.compile(r"\b(?:" + "|".join(alternatives) + ")")


TAG_PATTERNS = {tag: _keyword_pattern(keywords) for tag, keywords in DATA_TRIGGERS.items()}
TACTICS_PATTERN = _keyword_pattern(TACTICS_KEYWORDS)


class Intent(str, Enum):
    """Fallback template selected for a question."""

    PREDICTION = "prediction"
    LINEUPS = "lineups"
    TACTICS = "tactics"
    GENERIC = "generic"


def detect_needs(question: str) -> frozenset[str]:
    """Return every tag whose keywords appear in the question (possibly none)."""
    text = (question or "").lower()
    return frozenset(tag for tag, pattern in TAG_PATTERNS.items() if pattern.search(text))


def classify_intent(question: str, tags: frozenset[str]) -> Intent:
    """Pick exactly one fallback intent: prediction, then tactics, then team news."""
    if PREDICTION in tags:
        return Intent.PREDICTION
    text = (question or "").lower()
    if TACTICS_PATTERN.search(text):
        return Intent.TACTICS
    if LINEUPS in tags or INJURIES in tags:
        return Intent.LINEUPS
    return Intent.GENERIC
