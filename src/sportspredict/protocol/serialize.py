"""
sportspredict/protocol/serialize.py

Client-facing view of a prediction.

Combines the stored aggregate with live odds, the viewer's own stakes,
per-outcome staker lists and the edit permission flag. Output keys are
camelCase to match the JSON API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config import MAX_STAKERS_SHOWN
from .models import Outcome, Prediction, PredictionStatus, Stake, to_decimal
from .odds import calculate_odds


def decimal_to_number(value: Any) -> float:
    """None -> 0, decimal-like -> float."""
    if value is None:
        return 0.0
    return float(to_decimal(value))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _stakers_for(outcome: Outcome, stakes: List[Stake]) -> List[Dict[str, Any]]:
    """Distinct stakers on an outcome, summed, largest first."""
    by_user: Dict[str, Dict[str, float]] = {}
    for stake in stakes:
        if stake.outcome_id != outcome.id:
            continue
        totals = by_user.setdefault(stake.username, {"amount": 0.0, "payout": 0.0})
        totals["amount"] += decimal_to_number(stake.amount)
        if stake.payout:
            totals["payout"] += decimal_to_number(stake.payout)

    stakers = []
    for username, totals in by_user.items():
        entry: Dict[str, Any] = {"username": username, "amount": totals["amount"]}
        if totals["payout"] > 0:
            entry["payout"] = totals["payout"]
        stakers.append(entry)

    stakers.sort(key=lambda s: s["amount"], reverse=True)
    return stakers[:MAX_STAKERS_SHOWN]


def _can_modify(prediction: Prediction, current_username: Optional[str]) -> bool:
    """Creator may edit only while OPEN and before anyone else has staked."""
    if not current_username or current_username != prediction.creator_username:
        return False
    if prediction.status != PredictionStatus.OPEN:
        return False

    loaded = prediction.stakes or []
    if prediction.stake_count is not None:
        # Only the viewer's stakes are loaded; any extra count is someone else's
        has_other_stakes = prediction.stake_count > len(loaded)
    else:
        has_other_stakes = any(s.username != prediction.creator_username for s in loaded)

    return not has_other_stakes


def serialize_prediction(
    prediction: Prediction,
    current_username: Optional[str] = None,
    include_stakers: bool = True,
) -> Dict[str, Any]:
    """
    Build the response view for a prediction.

    Args:
        prediction: Aggregate with outcomes (and stakes, when loaded)
        current_username: Viewer, if authenticated
        include_stakers: Include per-outcome staker lists

    Returns:
        Dict ready for JSON encoding
    """
    total_pool = decimal_to_number(prediction.total_pool)
    stakes = prediction.stakes

    outcomes = []
    for outcome in prediction.outcomes:
        staked = decimal_to_number(outcome.total_staked)
        odds = calculate_odds(total_pool, staked)

        entry: Dict[str, Any] = {
            "id": outcome.id,
            "label": outcome.label,
            "totalStaked": staked,
            "backerCount": outcome.backer_count,
            "isWinner": outcome.is_winner,
            "odds": odds.multiplier,
            "percentage": odds.percentage,
        }
        if include_stakers and stakes is not None:
            entry["stakers"] = _stakers_for(outcome, stakes)
        outcomes.append(entry)

    view: Dict[str, Any] = {
        "id": prediction.id,
        "creatorUsername": prediction.creator_username,
        "title": prediction.title,
        "sportCategory": prediction.sport_category,
        "matchReference": prediction.match_reference,
        "locksAt": _iso(prediction.locks_at),
        "status": prediction.status.value,
        "totalPool": total_pool,
        "outcomes": outcomes,
        "winningOutcomeId": prediction.winning_outcome_id,
        "isVoid": prediction.is_void,
        "voidReason": prediction.void_reason,
        "settledAt": _iso(prediction.settled_at),
        "settledBy": prediction.settled_by,
        "createdAt": _iso(prediction.created_at),
        "canModify": _can_modify(prediction, current_username),
    }

    if current_username and stakes:
        mine = [s for s in stakes if s.username == current_username]
        if mine:
            view["userStakes"] = [
                {
                    "outcomeId": s.outcome_id,
                    "amount": decimal_to_number(s.amount),
                    "payout": decimal_to_number(s.payout) if s.payout is not None else None,
                    "refunded": s.refunded,
                }
                for s in mine
            ]

    platform_cut = decimal_to_number(prediction.platform_cut)
    if platform_cut > 0:
        view["settlement"] = {
            "platformCut": platform_cut,
            "burnedAmount": decimal_to_number(prediction.burned_amount),
            "rewardPoolAmount": decimal_to_number(prediction.reward_pool_amount),
        }

    return view
