"""
sportspredict/protocol/auto_settle.py

Resolves the winning outcome of a prediction from a finished match result.

Outcome labels are free text written by the prediction's creator, so
matching is heuristic:
- Result keywords: "Draw", "Tie", "Home Win", "Home", "Away Win", "Away"
- Team names: "Wolves", "Aston Villa", "Wolves Win", "Wolves to Win"
- A significant word of a multi-word team name: "Villa"

Only an unambiguous single match settles automatically; anything else is
left for manual settlement.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

logger = logging.getLogger("sportspredict.protocol.auto_settle")

WIN_SUFFIX = re.compile(r"\s+(to\s+)?wins?$", re.IGNORECASE)
MIN_PARTIAL_NAME_LENGTH = 3
MIN_TEAM_WORD_LENGTH = 4


class MatchResult(Enum):
    HOME_WIN = "home_win"
    AWAY_WIN = "away_win"
    DRAW = "draw"


@dataclass
class SportsEvent:
    """A match as reported by the sports data feed."""
    status: str
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    home_score: Optional[str] = None
    away_score: Optional[str] = None


def get_match_result(event: SportsEvent) -> Optional[MatchResult]:
    """
    Determine the result of a finished match.

    Returns:
        MatchResult, or None if the match isn't finished or has no usable score
    """
    if event.status != "finished":
        return None
    if event.home_score is None or event.away_score is None:
        return None
    if not event.home_team or not event.away_team:
        return None

    try:
        home = int(str(event.home_score).strip())
        away = int(str(event.away_score).strip())
    except ValueError:
        return None

    if home > away:
        return MatchResult.HOME_WIN
    if away > home:
        return MatchResult.AWAY_WIN
    return MatchResult.DRAW


def team_name_matches(label: str, team: str) -> bool:
    """
    Check if a normalized label refers to a normalized team name.

    Args:
        label: Lower-cased, stripped outcome label
        team: Lower-cased team name

    Returns:
        True if the label names the team
    """
    stripped = WIN_SUFFIX.sub("", label).strip()
    if not stripped:
        return False

    if stripped == team:
        return True
    if stripped in team and len(stripped) >= MIN_PARTIAL_NAME_LENGTH:
        return True
    if team in stripped and len(team) >= MIN_PARTIAL_NAME_LENGTH:
        return True

    words = team.split()
    if len(words) > 1:
        for word in words:
            if len(word) >= MIN_TEAM_WORD_LENGTH and stripped == word:
                return True

    return False


def label_matches_result(
    label: str,
    result: MatchResult,
    home_team: str,
    away_team: str,
) -> bool:
    """Check if an outcome label describes the given result."""
    norm = label.lower().strip()

    if result == MatchResult.DRAW and norm in ("draw", "tie", "draws"):
        return True
    if result == MatchResult.HOME_WIN and norm in ("home win", "home"):
        return True
    if result == MatchResult.AWAY_WIN and norm in ("away win", "away"):
        return True

    if result == MatchResult.HOME_WIN:
        winner = home_team
    elif result == MatchResult.AWAY_WIN:
        winner = away_team
    else:
        return False

    return team_name_matches(norm, winner.lower())


def _get(outcome: Any, name: str) -> Any:
    if isinstance(outcome, dict):
        return outcome.get(name)
    return getattr(outcome, name, None)


def resolve_winning_outcome(event: SportsEvent, outcomes: Iterable[Any]) -> Optional[str]:
    """
    Pick the winning outcome for a finished match.

    Args:
        event: The linked match
        outcomes: Outcomes with id and label (objects or dicts)

    Returns:
        Winning outcome id, or None when zero or several outcomes match
    """
    result = get_match_result(event)
    if result is None:
        return None

    matched = [
        _get(o, "id") for o in outcomes
        if label_matches_result(_get(o, "label") or "", result, event.home_team, event.away_team)
    ]

    if len(matched) == 1:
        logger.info(f"Auto-settle resolved {result.value} to outcome {matched[0]}")
        return matched[0]

    logger.info(
        f"Auto-settle could not resolve {result.value}: {len(matched)} matching outcomes"
    )
    return None
