"""
sportspredict/blockchain/settlement_executor.py

Applies settlements and voids through the store and the broadcaster.

Flow for a normal settlement:
1. LOCKED -> SETTLING via the store's compare-and-set (SETTLING already
   means a previous attempt is being retried)
2. Compute the settlement (pure, safe to recompute on retry)
3. If there was no real contest, refund everyone instead
4. Broadcast fee burn, fee reward and one payout per winning stake,
   recording each tx id as it lands so a retry skips completed steps
5. Finalize: payouts, winning outcome and SETTLED in one store write

Any broadcast failure raises BroadcastError and leaves the prediction in
SETTLING (or VOID) for a later retry.

Usage:
    executor = SettlementExecutor(store, broadcaster)
    result = await executor.execute_settlement("pred-1", "out-a", settled_by="admin")
"""

import logging
from dataclasses import replace
from typing import List, Optional

from ..config import EscrowConfig, PLATFORM_FEE_PCT
from ..errors import BroadcastError, SettlementError
from ..ledger.client import Broadcaster
from ..protocol.models import (
    ZERO,
    Prediction,
    PredictionStatus,
    SettlementResult,
    Stake,
)
from ..protocol.settlement import calculate_settlement
from ..protocol.store import PredictionStore
from .escrow import (
    TokenTransferOp,
    build_fee_ops,
    build_payout_ops,
    build_refund_ops,
)

logger = logging.getLogger("sportspredict.blockchain.settlement_executor")


class SettlementExecutor:
    """
    Runs settlements and voids for predictions.

    All exclusivity comes from the store's atomic status transitions; the
    executor itself holds no locks.
    """

    def __init__(
        self,
        store: PredictionStore,
        broadcaster: Broadcaster,
        config: Optional[EscrowConfig] = None,
        fee_pct: float = PLATFORM_FEE_PCT,
    ):
        """
        Initialize SettlementExecutor.

        Args:
            store: Persistence for predictions and stakes
            broadcaster: Submits escrow-signed operations
            config: Escrow configuration
            fee_pct: Platform fee fraction
        """
        self.store = store
        self.broadcaster = broadcaster
        self.config = config or EscrowConfig()
        self.fee_pct = fee_pct

    async def _broadcast(self, ops: List[TokenTransferOp], what: str) -> str:
        result = await self.broadcaster.broadcast(ops)
        if not result.success or not result.tx_id:
            raise BroadcastError(f"{what} broadcast failed: {result.error or 'unknown error'}")
        return result.tx_id

    async def _load(self, prediction_id: str) -> Prediction:
        prediction = await self.store.get_prediction(prediction_id)
        if prediction is None:
            raise SettlementError(f"Prediction not found: {prediction_id}")
        return prediction

    async def _refund_stakes(self, prediction: Prediction) -> int:
        """Refund every stake not yet refunded. Returns the number sent."""
        sent = 0
        for stake in prediction.stakes or []:
            if stake.refunded:
                logger.info(f"Refund already sent for stake {stake.id}, skipping")
                continue

            ops = build_refund_ops(
                [{"username": stake.username, "amount": stake.amount, "prediction_id": prediction.id}],
                self.config,
            )
            tx_id = await self._broadcast(ops, f"Refund for stake {stake.id}")
            await self.store.update_stake(stake.id, refunded=True, refund_tx_id=tx_id)
            logger.info(f"Refund sent to {stake.username}: {tx_id}")
            sent += 1
        return sent

    async def execute_settlement(
        self,
        prediction_id: str,
        winning_outcome_id: str,
        settled_by: str,
    ) -> SettlementResult:
        """
        Settle a locked prediction.

        Args:
            prediction_id: Prediction to settle
            winning_outcome_id: Declared winning outcome
            settled_by: Operator or automation identifier

        Returns:
            SettlementResult (fees and total_paid zeroed on the refund path)

        Raises:
            SettlementError: Prediction missing, wrong status, or bad outcome
            BroadcastError: A transfer could not be broadcast
        """
        won = await self.store.transition_status(
            prediction_id,
            [PredictionStatus.LOCKED],
            PredictionStatus.SETTLING,
        )
        prediction = await self._load(prediction_id)

        if not won and prediction.status != PredictionStatus.SETTLING:
            raise SettlementError(
                f"Prediction must be LOCKED for settlement (current: {prediction.status.value})"
            )
        if not won:
            logger.info(f"Resuming settlement of {prediction_id}")

        if prediction.get_outcome(winning_outcome_id) is None:
            raise SettlementError(f"Invalid winning outcome: {winning_outcome_id}")

        stakes: List[Stake] = prediction.stakes or []
        settlement = calculate_settlement(
            stakes, winning_outcome_id, prediction.total_pool, self.fee_pct
        )

        backed_outcomes = {s.outcome_id for s in stakes}
        if len(backed_outcomes) <= 1 or winning_outcome_id not in backed_outcomes:
            reason = (
                "no opposing stakes" if len(backed_outcomes) <= 1
                else "no backers on winning outcome"
            )
            await self._refund_stakes(prediction)
            await self.store.finalize_refund(prediction_id, settled_by, winning_outcome_id)
            logger.info(f"Prediction refunded ({reason}): {prediction_id}")
            return replace(
                settlement,
                platform_fee=ZERO,
                burn_amount=ZERO,
                reward_amount=ZERO,
                total_paid=ZERO,
            )

        try:
            fee_ops = build_fee_ops(settlement.platform_fee, prediction_id, self.config)

            if fee_ops.burn and not prediction.fee_burn_tx_id:
                tx_id = await self._broadcast([fee_ops.burn], "Fee burn")
                await self.store.update_prediction(prediction_id, fee_burn_tx_id=tx_id)
                logger.info(f"Fee burn broadcast for {prediction_id}: {tx_id}")

            if fee_ops.reward and not prediction.fee_reward_tx_id:
                tx_id = await self._broadcast([fee_ops.reward], "Fee reward")
                await self.store.update_prediction(prediction_id, fee_reward_tx_id=tx_id)
                logger.info(f"Fee reward broadcast for {prediction_id}: {tx_id}")

            paid = {s.id for s in stakes if s.payout_tx_id}
            for payout in settlement.payouts:
                if payout.stake_id in paid:
                    logger.info(f"Payout already sent for stake {payout.stake_id}, skipping")
                    continue

                ops = build_payout_ops(
                    [{
                        "username": payout.username,
                        "amount": payout.payout_amount,
                        "prediction_id": prediction_id,
                    }],
                    self.config,
                )
                tx_id = await self._broadcast(ops, f"Payout for stake {payout.stake_id}")
                await self.store.update_stake(payout.stake_id, payout_tx_id=tx_id)
                logger.info(f"Payout sent to {payout.username}: {tx_id}")

            await self.store.finalize_settlement(prediction_id, settlement, settled_by)

        except BroadcastError as e:
            logger.error(f"Settlement failed for {prediction_id}: {e}")
            logger.warning(
                f"Settlement of {prediction_id} incomplete, status remains SETTLING for retry"
            )
            raise

        logger.info(
            f"Prediction settled: {prediction_id} (winner {winning_outcome_id}, "
            f"pool {settlement.total_pool}, {len(settlement.payouts)} payouts)"
        )
        return settlement

    async def execute_void_refund(
        self,
        prediction_id: str,
        reason: str,
        voided_by: str,
    ) -> int:
        """
        Void an open or locked prediction and refund every stake.

        Args:
            prediction_id: Prediction to void
            reason: Why it was voided (stored on the prediction)
            voided_by: Operator or automation identifier

        Returns:
            Number of refunds broadcast by this call

        Raises:
            SettlementError: Prediction missing or not voidable
            BroadcastError: A refund could not be broadcast
        """
        won = await self.store.transition_status(
            prediction_id,
            [PredictionStatus.OPEN, PredictionStatus.LOCKED],
            PredictionStatus.VOID,
            is_void=True,
            void_reason=reason,
        )
        prediction = await self._load(prediction_id)

        if not won and prediction.status != PredictionStatus.VOID:
            raise SettlementError(
                f"Cannot void prediction in {prediction.status.value} status"
            )

        try:
            sent = await self._refund_stakes(prediction)
        except BroadcastError as e:
            logger.error(f"Void refund failed for {prediction_id}: {e}")
            raise

        await self.store.finalize_refund(prediction_id, voided_by)
        logger.info(
            f"Prediction voided and refunded: {prediction_id} ({reason}, "
            f"{len(prediction.stakes or [])} stakes)"
        )
        return sent
