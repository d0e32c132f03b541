"""
sportspredict/protocol/odds.py

Pari-mutuel odds and payout calculation.

All stakes on losing outcomes fund the winners, proportionally to what each
winner staked, after the platform fee is taken from the total pool.

Usage:
    from sportspredict.protocol.odds import calculate_odds, calculate_payout

    odds = calculate_odds(total_pool=100, outcome_pool=50)
    odds.multiplier       # 1.8 at a 10% fee

    calculate_payout(stake_amount=30, total_pool=200, winning_pool=60)
    # Decimal('90.000')
"""

from decimal import Decimal, localcontext
from dataclasses import dataclass
from typing import Any

from ..config import PLATFORM_FEE_PCT
from .models import ZERO, money_context, quantize, to_decimal


@dataclass(frozen=True)
class PredictionOdds:
    """Odds for one outcome against the current pool."""
    multiplier: float
    percentage: float
    implied_probability: float

    def to_dict(self) -> dict:
        return {
            "multiplier": self.multiplier,
            "percentage": self.percentage,
            "impliedProbability": self.implied_probability,
        }


ZERO_ODDS = PredictionOdds(multiplier=0.0, percentage=0.0, implied_probability=0.0)


def calculate_odds(
    total_pool: Any,
    outcome_pool: Any,
    fee_pct: float = PLATFORM_FEE_PCT,
) -> PredictionOdds:
    """
    Calculate odds for an outcome.

    The multiplier is the gross return per unit staked if this outcome wins,
    net of the platform fee.

    Examples:
        calculate_odds(100, 50)  -> multiplier 1.8, percentage 50
        calculate_odds(100, 10)  -> multiplier 9.0, percentage 10
        calculate_odds(0, 50)    -> all zero

    Args:
        total_pool: Sum of all outcome pools
        outcome_pool: Amount staked on this outcome
        fee_pct: Platform fee fraction

    Returns:
        PredictionOdds (all zero when either pool is empty or negative)
    """
    total = float(to_decimal(total_pool))
    outcome = float(to_decimal(outcome_pool))

    if total <= 0 or outcome <= 0:
        return ZERO_ODDS

    return PredictionOdds(
        multiplier=(total * (1 - fee_pct)) / outcome,
        percentage=(outcome / total) * 100,
        implied_probability=outcome / total,
    )


def calculate_payout(
    stake_amount: Any,
    total_pool: Any,
    winning_pool: Any,
    fee_pct: float = PLATFORM_FEE_PCT,
) -> Decimal:
    """
    Calculate one winning stake's share of the fee-adjusted pool.

    payout = stake / winning_pool * total_pool * (1 - fee_pct)

    Args:
        stake_amount: The winning stake
        total_pool: Sum of all stakes
        winning_pool: Sum of stakes on the winning outcome
        fee_pct: Platform fee fraction

    Returns:
        Payout rounded to settlement precision (0 when nobody won)
    """
    winners = to_decimal(winning_pool)
    if winners <= ZERO:
        return quantize(ZERO)

    pool = max(to_decimal(total_pool), ZERO)
    stake = to_decimal(stake_amount)

    with localcontext(money_context(stake, pool, winners)):
        keep = Decimal(1) - to_decimal(fee_pct)
        return quantize(stake / winners * pool * keep)
