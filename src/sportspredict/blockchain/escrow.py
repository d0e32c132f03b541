"""
sportspredict/blockchain/escrow.py

Builds the token transfer operations that move funds in and out of escrow.

Supports:
- Stake-in (user -> escrow)
- Payouts (escrow -> winners)
- Fee split (escrow -> burn account, escrow -> reward pool)
- Refunds (escrow -> stakers, voided predictions only)

Builders are pure: no network, no persistence. Broadcasting belongs to a
sportspredict.ledger.Broadcaster.

Usage:
    from sportspredict.blockchain.escrow import build_payout_ops

    ops = build_payout_ops([
        {"username": "alice", "amount": 54, "prediction_id": "pred-1"},
    ])
    await broadcaster.broadcast(ops)
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config import (
    BURN_SPLIT,
    CONTRACT_ACTION_TRANSFER,
    CONTRACT_NAME,
    MEMO_FEE_BURN,
    MEMO_FEE_REWARD,
    MEMO_PAYOUT,
    MEMO_REFUND,
    MEMO_SEPARATOR,
    MEMO_STAKE,
    OPERATION_TYPE,
    EscrowConfig,
)
from ..protocol.models import ZERO, money_context, quantize, to_decimal

logger = logging.getLogger("sportspredict.blockchain.escrow")


# ============================================================================
# MEMOS
# ============================================================================

def stake_memo(prediction_id: str, outcome_id: str) -> str:
    """prediction-stake|<predictionId>|<outcomeId>"""
    return MEMO_SEPARATOR.join((MEMO_STAKE, prediction_id, outcome_id))


def payout_memo(prediction_id: str) -> str:
    return MEMO_SEPARATOR.join((MEMO_PAYOUT, prediction_id))


def fee_burn_memo(prediction_id: str) -> str:
    return MEMO_SEPARATOR.join((MEMO_FEE_BURN, prediction_id))


def fee_reward_memo(prediction_id: str) -> str:
    return MEMO_SEPARATOR.join((MEMO_FEE_REWARD, prediction_id))


def refund_memo(prediction_id: str) -> str:
    return MEMO_SEPARATOR.join((MEMO_REFUND, prediction_id))


def format_quantity(amount: Any, precision: int) -> str:
    """
    Format an amount the way the token contract expects it.

    Args:
        amount: Number, string or decimal-like
        precision: Token decimal places

    Returns:
        Fixed-point string, e.g. "50.000000"
    """
    return f"{quantize(to_decimal(amount), precision):.{precision}f}"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class TokenTransferOp:
    """A token transfer wrapped in a custom_json operation."""
    signer: str
    to: str
    symbol: str
    quantity: str
    memo: str
    contract_id: str

    @property
    def required_auths(self) -> List[str]:
        return [self.signer]

    @property
    def required_posting_auths(self) -> List[str]:
        return []

    @property
    def payload(self) -> Dict[str, Any]:
        """The contract call carried in the operation's json field."""
        return {
            "contractName": CONTRACT_NAME,
            "contractAction": CONTRACT_ACTION_TRANSFER,
            "contractPayload": {
                "symbol": self.symbol,
                "to": self.to,
                "quantity": self.quantity,
                "memo": self.memo,
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        """Broadcast-ready custom_json body."""
        return {
            "id": self.contract_id,
            "required_auths": self.required_auths,
            "required_posting_auths": self.required_posting_auths,
            "json": json.dumps(self.payload),
        }

    def to_operation(self) -> list:
        """[type, body] tuple as it appears in a transaction."""
        return [OPERATION_TYPE, self.to_dict()]


@dataclass
class FeeOps:
    """Fee split operations; None when there is no fee to move."""
    burn: Optional[TokenTransferOp] = None
    reward: Optional[TokenTransferOp] = None


# ============================================================================
# BUILDERS
# ============================================================================

def _transfer(
    signer: str,
    to: str,
    amount: Any,
    memo: str,
    config: EscrowConfig,
) -> TokenTransferOp:
    return TokenTransferOp(
        signer=signer,
        to=to,
        symbol=config.token_symbol,
        quantity=format_quantity(amount, config.token_precision),
        memo=memo,
        contract_id=config.contract_id,
    )


def _entry(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        if name in item:
            return item[name]
        camel = "predictionId" if name == "prediction_id" else name
        return item.get(camel)
    return getattr(item, name)


def build_stake_escrow_op(
    username: str,
    amount: Any,
    prediction_id: str,
    outcome_id: str,
    config: Optional[EscrowConfig] = None,
) -> TokenTransferOp:
    """
    Build the user's stake transfer into escrow.

    The only operation signed by the staking user rather than the escrow.

    Args:
        username: Staking user (signer)
        amount: Stake amount
        prediction_id: Prediction being staked on
        outcome_id: Outcome being backed
        config: Escrow configuration

    Returns:
        TokenTransferOp
    """
    config = config or EscrowConfig()
    return _transfer(
        username,
        config.escrow_account,
        amount,
        stake_memo(prediction_id, outcome_id),
        config,
    )


def build_payout_ops(
    payouts: Iterable[Any],
    config: Optional[EscrowConfig] = None,
) -> List[TokenTransferOp]:
    """
    Build escrow -> winner transfers.

    Args:
        payouts: Items with username, amount and prediction_id (mappings
            or objects; amounts may be decimal-like)
        config: Escrow configuration

    Returns:
        One TokenTransferOp per payout
    """
    config = config or EscrowConfig()
    return [
        _transfer(
            config.escrow_account,
            _entry(p, "username"),
            _entry(p, "amount"),
            payout_memo(_entry(p, "prediction_id")),
            config,
        )
        for p in payouts
    ]


def build_fee_ops(
    fee_amount: Any,
    prediction_id: str,
    config: Optional[EscrowConfig] = None,
) -> FeeOps:
    """
    Build the burn and reward-pool transfers for a platform fee.

    The burn share is rounded down to token precision and the reward share
    takes the rest, so both quantities always add up to fee_amount.

    Args:
        fee_amount: Total platform fee
        prediction_id: Settled prediction
        config: Escrow configuration

    Returns:
        FeeOps (both None when fee_amount <= 0)
    """
    config = config or EscrowConfig()
    fee = quantize(to_decimal(fee_amount), config.token_precision)
    if fee <= ZERO:
        return FeeOps()

    step = Decimal(1).scaleb(-config.token_precision)
    with localcontext(money_context(fee, places=config.token_precision)):
        burn = (fee * to_decimal(BURN_SPLIT)).quantize(step, rounding=ROUND_DOWN)
        reward = fee - burn

    return FeeOps(
        burn=_transfer(
            config.escrow_account,
            config.burn_account,
            burn,
            fee_burn_memo(prediction_id),
            config,
        ),
        reward=_transfer(
            config.escrow_account,
            config.rewards_account,
            reward,
            fee_reward_memo(prediction_id),
            config,
        ),
    )


def build_refund_ops(
    refunds: Iterable[Any],
    config: Optional[EscrowConfig] = None,
) -> List[TokenTransferOp]:
    """
    Build escrow -> staker refund transfers (voided predictions only).

    Args:
        refunds: Items with username, amount and prediction_id
        config: Escrow configuration

    Returns:
        One TokenTransferOp per refund
    """
    config = config or EscrowConfig()
    return [
        _transfer(
            config.escrow_account,
            _entry(r, "username"),
            _entry(r, "amount"),
            refund_memo(_entry(r, "prediction_id")),
            config,
        )
        for r in refunds
    ]
