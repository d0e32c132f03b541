"""
sportspredict/protocol/models.py

Data structures for predictions, outcomes, stakes and settlement results,
plus the numeric coercion used at every calculator boundary.

Money is always carried as Decimal. Callers may hand in plain numbers,
strings or decimal-like wrappers exposing to_number(); to_decimal()
normalises all of them.
"""

import math
from decimal import (
    Context,
    Decimal,
    InvalidOperation,
    ROUND_HALF_UP,
    getcontext,
    localcontext,
)
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import SETTLEMENT_PRECISION


ZERO = Decimal(0)
GUARD_DIGITS = 12


# ============================================================================
# NUMERIC COERCION
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Coerce a numeric value to Decimal.

    Accepts int, float, str, Decimal, None (treated as 0) and any object
    exposing to_number() or toNumber(). Floats go through str() so binary
    artifacts don't leak into the result. Non-finite or unparseable values
    become 0.

    Args:
        value: Amount to coerce

    Returns:
        Decimal value
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO

    if not isinstance(value, (int, float, str)):
        for attr in ("to_number", "toNumber"):
            converter = getattr(value, attr, None)
            if callable(converter):
                value = converter()
                break

    if isinstance(value, float):
        if not math.isfinite(value):
            return ZERO
        value = str(value)

    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def money_context(*values: Decimal, places: int = SETTLEMENT_PRECISION) -> Context:
    """
    Decimal context wide enough for arithmetic on the given amounts.

    The default 28 digit precision can't hold a large pool at settlement
    precision; widen it to the integer digits of the largest value plus the
    decimal places and some guard digits for division.

    Usage:
        with localcontext(money_context(pool)):
            ...
    """
    ctx = getcontext().copy()
    digits = max((v.adjusted() + 1 for v in values if v.is_finite() and v), default=0)
    ctx.prec = max(ctx.prec, digits + places + GUARD_DIGITS)
    return ctx


def quantize(value: Decimal, places: int = SETTLEMENT_PRECISION) -> Decimal:
    """Round half-up to a fixed number of decimal places."""
    with localcontext(money_context(value, places=places)):
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def json_number(value: Any) -> Any:
    """
    JSON-encodable form of an amount.

    Plain int and float pass through; Decimal, str and decimal-like values
    become an int when integral, otherwise a float.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    amount = to_decimal(value)
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


# ============================================================================
# PREDICTION AGGREGATE
# ============================================================================

class PredictionStatus(Enum):
    """
    Prediction lifecycle.

    OPEN -> LOCKED -> SETTLING -> SETTLED on the normal path,
    OPEN/LOCKED -> VOID -> REFUNDED when voided, and
    SETTLING -> REFUNDED when there was no real contest.
    """
    OPEN = "OPEN"
    LOCKED = "LOCKED"
    SETTLING = "SETTLING"
    SETTLED = "SETTLED"
    REFUNDED = "REFUNDED"
    VOID = "VOID"


@dataclass
class Outcome:
    """One possible result of a prediction."""
    id: str
    label: str
    total_staked: Decimal = ZERO
    backer_count: int = 0  # Distinct staking usernames
    is_winner: bool = False


@dataclass
class Stake:
    """
    A single stake record.

    A user may hold several stake records on the same outcome; they are
    aggregated for display, never merged in storage.
    """
    id: str
    username: str
    outcome_id: str
    amount: Decimal
    payout: Optional[Decimal] = None
    refunded: bool = False
    tx_id: Optional[str] = None         # Stake-in transfer
    payout_tx_id: Optional[str] = None
    refund_tx_id: Optional[str] = None


@dataclass
class Prediction:
    """A pari-mutuel prediction with its outcomes and (optionally) stakes."""
    id: str
    creator_username: str
    title: str
    locks_at: datetime                    # Naive values are read as UTC
    created_at: datetime
    sport_category: Optional[str] = None
    match_reference: Optional[str] = None
    status: PredictionStatus = PredictionStatus.OPEN
    total_pool: Decimal = ZERO
    outcomes: List[Outcome] = field(default_factory=list)
    stakes: Optional[List[Stake]] = None  # None when not loaded
    stake_count: Optional[int] = None     # Total stakes when only a subset is loaded
    winning_outcome_id: Optional[str] = None
    is_void: bool = False
    void_reason: Optional[str] = None
    settled_at: Optional[datetime] = None
    settled_by: Optional[str] = None
    platform_cut: Decimal = ZERO
    burned_amount: Decimal = ZERO
    reward_pool_amount: Decimal = ZERO
    fee_burn_tx_id: Optional[str] = None
    fee_reward_tx_id: Optional[str] = None

    def get_outcome(self, outcome_id: str) -> Optional[Outcome]:
        """Find an outcome by id."""
        for outcome in self.outcomes:
            if outcome.id == outcome_id:
                return outcome
        return None


# ============================================================================
# STAKE TOKENS
# ============================================================================

@dataclass
class StakeTokenData:
    """The tuple a stake token authorizes."""
    prediction_id: str
    username: str
    outcome_id: str
    amount: float  # Decimal-like values are accepted and coerced on the wire

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, no expiry)."""
        return {
            "predictionId": self.prediction_id,
            "username": self.username,
            "outcomeId": self.outcome_id,
            "amount": json_number(self.amount),
        }


# ============================================================================
# SETTLEMENT RESULTS
# ============================================================================

@dataclass
class SettlementPayout:
    """Amount owed to one winning stake."""
    username: str
    stake_id: Optional[str]
    amount: Decimal
    payout_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "stakeId": self.stake_id,
            "amount": float(self.amount),
            "payoutAmount": float(self.payout_amount),
        }


@dataclass
class SettlementResult:
    """
    Computed settlement for a prediction.

    Not stored verbatim; its fields populate prediction and stake updates.
    """
    winning_outcome_id: str
    total_pool: Decimal
    winning_pool: Decimal
    platform_fee: Decimal
    burn_amount: Decimal
    reward_amount: Decimal
    total_paid: Decimal
    payouts: List[SettlementPayout] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "winningOutcomeId": self.winning_outcome_id,
            "totalPool": float(self.total_pool),
            "winningPool": float(self.winning_pool),
            "platformFee": float(self.platform_fee),
            "burnAmount": float(self.burn_amount),
            "rewardAmount": float(self.reward_amount),
            "totalPaid": float(self.total_paid),
            "payouts": [p.to_dict() for p in self.payouts],
        }
