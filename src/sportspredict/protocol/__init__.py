"""
sportspredict/protocol/

Pure prediction-market logic: pari-mutuel odds, settlement, stake tokens,
client views and outcome resolution, plus the persistence interface.
"""

from .models import (
    Prediction,
    PredictionStatus,
    Outcome,
    Stake,
    StakeTokenData,
    SettlementPayout,
    SettlementResult,
    to_decimal,
)
from .odds import PredictionOdds, calculate_odds, calculate_payout
from .settlement import calculate_settlement
from .stake_token import sign_stake_token, verify_stake_token
from .serialize import serialize_prediction, decimal_to_number
from .auto_settle import SportsEvent, MatchResult, resolve_winning_outcome
from .store import PredictionStore

__all__ = [
    # Models
    "Prediction",
    "PredictionStatus",
    "Outcome",
    "Stake",
    "StakeTokenData",
    "SettlementPayout",
    "SettlementResult",
    "to_decimal",
    # Odds & settlement
    "PredictionOdds",
    "calculate_odds",
    "calculate_payout",
    "calculate_settlement",
    # Stake tokens
    "sign_stake_token",
    "verify_stake_token",
    # Views
    "serialize_prediction",
    "decimal_to_number",
    # Auto-settlement
    "SportsEvent",
    "MatchResult",
    "resolve_winning_outcome",
    # Persistence
    "PredictionStore",
]
