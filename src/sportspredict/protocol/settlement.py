"""
sportspredict/protocol/settlement.py

Settlement calculation for a locked prediction.

Splits the pool into the platform fee (itself split into burn and reward
portions) and proportional payouts to the winning stakes. Rounding is done
per payout at settlement precision, then a single post-pass moves the
rounding remainder onto the largest payout so that

    sum(payouts) + platform_fee == total_pool

holds exactly, not just approximately.

The calculation is pure: the same inputs always give the same result, so
it can be re-run safely if a settlement attempt is retried before the
status transition commits.

Usage:
    from sportspredict.protocol.settlement import calculate_settlement

    result = calculate_settlement(stakes, winning_outcome_id="out-a", total_pool=100)
    for payout in result.payouts:
        print(payout.username, payout.payout_amount)
"""

import logging
from decimal import Decimal, localcontext
from typing import Any, Iterable, List, Mapping

from ..config import BURN_SPLIT, PLATFORM_FEE_PCT
from .models import (
    ZERO,
    SettlementPayout,
    SettlementResult,
    money_context,
    quantize,
    to_decimal,
)
from .odds import calculate_payout

logger = logging.getLogger("sportspredict.protocol.settlement")


def _field(stake: Any, *names: str) -> Any:
    """Read a field from a stake given as a mapping or an object."""
    for name in names:
        if isinstance(stake, Mapping):
            if name in stake:
                return stake[name]
        elif hasattr(stake, name):
            return getattr(stake, name)
    return None


def _apply_remainder(payouts: List[SettlementPayout], remainder: Decimal) -> None:
    """Add the rounding remainder to the largest payout (first on ties)."""
    if not payouts or remainder == ZERO:
        return

    largest = payouts[0]
    for payout in payouts[1:]:
        if payout.payout_amount > largest.payout_amount:
            largest = payout

    largest.payout_amount = quantize(largest.payout_amount + remainder)


def calculate_settlement(
    stakes: Iterable[Any],
    winning_outcome_id: str,
    total_pool: Any,
    fee_pct: float = PLATFORM_FEE_PCT,
) -> SettlementResult:
    """
    Calculate the full settlement for a prediction.

    The fee is taken from total_pool even when nobody backed the winning
    outcome; in that case payouts is empty and total_paid is 0.

    Args:
        stakes: Stakes as objects or mappings with username, outcome_id
            (or outcomeId), amount and optionally id
        winning_outcome_id: The outcome that won
        total_pool: Sum of all stakes (negative/missing degrades to 0)
        fee_pct: Platform fee fraction

    Returns:
        SettlementResult
    """
    pool = max(quantize(to_decimal(total_pool)), ZERO)

    winning_stakes = [
        s for s in stakes
        if _field(s, "outcome_id", "outcomeId") == winning_outcome_id
    ]
    amounts = [to_decimal(_field(s, "amount")) for s in winning_stakes]

    with localcontext(money_context(pool, *amounts)):
        platform_fee = quantize(pool * to_decimal(fee_pct))
        burn_amount = quantize(platform_fee * to_decimal(BURN_SPLIT))
        reward_amount = platform_fee - burn_amount

        winning_pool = sum(amounts, ZERO)

        payouts: List[SettlementPayout] = []
        if winning_pool > ZERO:
            for stake, amount in zip(winning_stakes, amounts):
                payouts.append(SettlementPayout(
                    username=_field(stake, "username"),
                    stake_id=_field(stake, "id", "stake_id", "stakeId"),
                    amount=amount,
                    payout_amount=calculate_payout(amount, pool, winning_pool, fee_pct),
                ))

            distributable = pool - platform_fee
            rounded_total = sum((p.payout_amount for p in payouts), ZERO)
            remainder = distributable - rounded_total
            if remainder != ZERO:
                logger.debug(
                    f"Settlement {winning_outcome_id}: applying rounding remainder {remainder}"
                )
            _apply_remainder(payouts, remainder)

        total_paid = quantize(sum((p.payout_amount for p in payouts), ZERO))

    return SettlementResult(
        winning_outcome_id=winning_outcome_id,
        total_pool=pool,
        winning_pool=winning_pool,
        platform_fee=platform_fee,
        burn_amount=burn_amount,
        reward_amount=reward_amount,
        total_paid=total_paid,
        payouts=payouts,
    )
