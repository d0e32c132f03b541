"""
sportspredict/blockchain/stake_intake.py

Stake submission: token -> admission rules -> ledger verification -> store.

1. The client gets a stake token for (prediction, outcome, user, amount)
2. The client broadcasts its own transfer into escrow with the stake memo
3. The client reports the tx id; submit() checks everything and persists

Each transfer can back a single stake. A token can be presented more than
once while it is valid, but every presentation needs a fresh, matching
transfer. The store refuses a second stake for the same transfer
atomically in record_stake(), so concurrent submissions of one transfer
store at most one stake; is_stake_tx_used() only short-circuits replays
before the ledger lookup.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from ..config import MAX_STAKE, MIN_STAKE, EscrowConfig
from ..ledger.client import LedgerClient
from ..protocol.models import Prediction, PredictionStatus, Stake, to_decimal
from ..protocol.stake_token import verify_stake_token
from ..protocol.store import PredictionStore
from .verify_stake import (
    ERROR_ALREADY_USED,
    RetryPolicy,
    VerifyResult,
    verify_stake_transaction,
)

logger = logging.getLogger("sportspredict.blockchain.stake_intake")

ERROR_INVALID_TOKEN = "Invalid or expired stake token"


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes (as many DB drivers return them) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_stake_admission(
    prediction: Optional[Prediction],
    outcome_id: str,
    amount,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Check whether a stake may be placed.

    Args:
        prediction: Target prediction (None if it doesn't exist)
        outcome_id: Outcome being backed
        amount: Stake amount
        now: Current time (naive values are taken as UTC)

    Returns:
        None if admissible, otherwise the rejection reason
    """
    if prediction is None:
        return "Prediction not found"

    if prediction.status != PredictionStatus.OPEN:
        return f"Prediction is not open for staking (status: {prediction.status.value})"

    now = _as_utc(now or datetime.now(timezone.utc))
    if now >= _as_utc(prediction.locks_at):
        return "Prediction is locked"

    if prediction.get_outcome(outcome_id) is None:
        return "Outcome does not belong to this prediction"

    value = to_decimal(amount)
    if value < MIN_STAKE:
        return f"Minimum stake is {MIN_STAKE}"
    if value > MAX_STAKE:
        return f"Maximum stake is {MAX_STAKE}"

    return None


class StakeIntake:
    """
    Accepts stake submissions.

    Usage:
        intake = StakeIntake(store, ledger_client)
        result = await intake.submit(token, tx_id)
    """

    def __init__(
        self,
        store: PredictionStore,
        client: LedgerClient,
        config: Optional[EscrowConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        secret: Optional[str] = None,
    ):
        self.store = store
        self.client = client
        self.config = config or EscrowConfig()
        self.retry_policy = retry_policy
        self.secret = secret

    async def submit(self, token: str, tx_id: str) -> VerifyResult:
        """
        Verify a reported stake transfer and persist the stake.

        Args:
            token: Stake token issued for this stake
            tx_id: Id of the user's transfer into escrow

        Returns:
            VerifyResult; the stake is stored only when valid
        """
        data = verify_stake_token(token, self.secret)
        if data is None:
            return VerifyResult(valid=False, error=ERROR_INVALID_TOKEN)

        prediction = await self.store.get_prediction(data.prediction_id)
        reason = check_stake_admission(prediction, data.outcome_id, data.amount)
        if reason:
            logger.warning(f"Stake by {data.username} on {data.prediction_id} rejected: {reason}")
            return VerifyResult(valid=False, error=reason)

        if await self.store.is_stake_tx_used(tx_id):
            logger.warning(f"Stake tx {tx_id} already used")
            return VerifyResult(valid=False, error=ERROR_ALREADY_USED)

        result = await verify_stake_transaction(
            self.client,
            tx_id=tx_id,
            expected_username=data.username,
            expected_amount=data.amount,
            expected_prediction_id=data.prediction_id,
            expected_outcome_id=data.outcome_id,
            retry_policy=self.retry_policy,
            config=self.config,
        )
        if not result.valid:
            return result

        stake = Stake(
            id=str(uuid4()),
            username=data.username,
            outcome_id=data.outcome_id,
            amount=to_decimal(data.amount),
            tx_id=tx_id,
        )
        if not await self.store.record_stake(data.prediction_id, stake):
            logger.warning(f"Stake tx {tx_id} claimed by a concurrent submission")
            return VerifyResult(valid=False, error=ERROR_ALREADY_USED)

        logger.info(
            f"Stake recorded: {data.username} {stake.amount} on "
            f"{data.prediction_id}/{data.outcome_id}"
        )
        return result
