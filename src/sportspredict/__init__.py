"""
sportspredict - Prediction-market settlement and escrow verification

Pari-mutuel pools staked in a ledger token, with:
- Odds and payout calculation
- Exact-conservation settlement (payouts + fee == pool)
- HMAC stake tokens authorizing a single stake tuple
- Stake transfer verification against the ledger, with retries
- Escrow operation building for payouts, fees and refunds

Usage:
    from sportspredict import calculate_settlement, build_payout_ops

    result = calculate_settlement(stakes, "out-a", total_pool=100)
    ops = build_payout_ops(
        {"username": p.username, "amount": p.payout_amount, "prediction_id": "pred-1"}
        for p in result.payouts
    )

Verification Usage:
    from sportspredict import verify_stake_transaction

    result = await verify_stake_transaction(client, tx_id, "alice", 50, "pred-1", "out-1")
"""

from .errors import (
    SportsPredictError,
    ConfigurationError,
    LedgerError,
    BroadcastError,
    SettlementError,
)
from .config import (
    EscrowConfig,
    PLATFORM_FEE_PCT,
    BURN_SPLIT,
    REWARD_SPLIT,
    resolve_stake_token_secret,
)
from .protocol import (
    Prediction,
    PredictionStatus,
    Outcome,
    Stake,
    StakeTokenData,
    SettlementResult,
    PredictionStore,
    calculate_odds,
    calculate_payout,
    calculate_settlement,
    sign_stake_token,
    verify_stake_token,
    serialize_prediction,
    resolve_winning_outcome,
)
from .ledger import LedgerClient, Broadcaster, BroadcastResult, DryRunBroadcaster
from .blockchain import (
    build_stake_escrow_op,
    build_payout_ops,
    build_fee_ops,
    build_refund_ops,
    RetryPolicy,
    VerifyResult,
    verify_stake_transaction,
    StakeIntake,
    SettlementExecutor,
)

__version__ = "1.0.0"
__all__ = [
    # Errors
    "SportsPredictError",
    "ConfigurationError",
    "LedgerError",
    "BroadcastError",
    "SettlementError",
    # Config
    "EscrowConfig",
    "PLATFORM_FEE_PCT",
    "BURN_SPLIT",
    "REWARD_SPLIT",
    "resolve_stake_token_secret",
    # Models
    "Prediction",
    "PredictionStatus",
    "Outcome",
    "Stake",
    "StakeTokenData",
    "SettlementResult",
    "PredictionStore",
    # Calculators
    "calculate_odds",
    "calculate_payout",
    "calculate_settlement",
    # Stake tokens
    "sign_stake_token",
    "verify_stake_token",
    # Views & resolution
    "serialize_prediction",
    "resolve_winning_outcome",
    # Ledger
    "LedgerClient",
    "Broadcaster",
    "BroadcastResult",
    "DryRunBroadcaster",
    # Escrow & verification
    "build_stake_escrow_op",
    "build_payout_ops",
    "build_fee_ops",
    "build_refund_ops",
    "RetryPolicy",
    "VerifyResult",
    "verify_stake_transaction",
    "StakeIntake",
    "SettlementExecutor",
]
