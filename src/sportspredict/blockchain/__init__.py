"""
sportspredict/blockchain/

Ledger-facing side of the engine: escrow operation building, stake
transaction verification, stake intake and settlement execution.
"""

from .escrow import (
    TokenTransferOp,
    FeeOps,
    build_stake_escrow_op,
    build_payout_ops,
    build_fee_ops,
    build_refund_ops,
    stake_memo,
)
from .verify_stake import (
    RetryPolicy,
    VerifyResult,
    verify_stake_transaction,
)
from .stake_intake import StakeIntake, check_stake_admission
from .settlement_executor import SettlementExecutor

__all__ = [
    # Escrow operations
    "TokenTransferOp",
    "FeeOps",
    "build_stake_escrow_op",
    "build_payout_ops",
    "build_fee_ops",
    "build_refund_ops",
    "stake_memo",
    # Verification
    "RetryPolicy",
    "VerifyResult",
    "verify_stake_transaction",
    # Intake & settlement
    "StakeIntake",
    "check_stake_admission",
    "SettlementExecutor",
]
