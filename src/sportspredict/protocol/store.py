"""
sportspredict/protocol/store.py

Persistence interface for prediction aggregates.

The engine doesn't own storage. It relies on the store for one guarantee:
transition_status() is an atomic compare-and-set, so a prediction stops
accepting stakes exactly once and is settled at most once.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from .models import Prediction, PredictionStatus, SettlementResult, Stake


class PredictionStore(ABC):
    """Abstract store for predictions, outcomes and stakes."""

    @abstractmethod
    async def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        """
        Load a prediction with its outcomes and stakes.

        Args:
            prediction_id: Prediction id

        Returns:
            Prediction or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def transition_status(
        self,
        prediction_id: str,
        from_statuses: Iterable[PredictionStatus],
        to_status: PredictionStatus,
        **fields: Any,
    ) -> bool:
        """
        Atomically move a prediction to to_status if its current status is
        one of from_statuses, setting any extra fields in the same write.

        Returns:
            True if this call performed the transition
        """
        pass

    @abstractmethod
    async def update_prediction(self, prediction_id: str, **fields: Any) -> None:
        """Set fields on a prediction (e.g. fee_burn_tx_id)."""
        pass

    @abstractmethod
    async def update_stake(self, stake_id: str, **fields: Any) -> None:
        """Set fields on a stake (e.g. payout_tx_id, refunded)."""
        pass

    @abstractmethod
    async def record_stake(self, prediction_id: str, stake: Stake) -> bool:
        """
        Persist a verified stake and update outcome/pool totals.

        The uniqueness of stake.tx_id is enforced here, atomically with the
        insert (a unique constraint or equivalent): a transaction that
        already backs a stake is refused by returning False and nothing is
        written. Implementations must also reject the write if the
        prediction is no longer OPEN.

        Returns:
            True if the stake was stored, False if stake.tx_id was taken
        """
        pass

    @abstractmethod
    async def is_stake_tx_used(self, tx_id: str) -> bool:
        """
        Check whether a stake-in transaction already backs a stake.

        Only a fast path for rejecting obvious replays; record_stake() is
        the authoritative check.
        """
        pass

    @abstractmethod
    async def finalize_settlement(
        self,
        prediction_id: str,
        settlement: SettlementResult,
        settled_by: str,
    ) -> None:
        """
        In one transaction: write payouts to the winning stakes, mark the
        winning outcome, and move the prediction to SETTLED with its fee
        split recorded.
        """
        pass

    @abstractmethod
    async def finalize_refund(
        self,
        prediction_id: str,
        settled_by: str,
        winning_outcome_id: Optional[str] = None,
    ) -> None:
        """
        Move the prediction to REFUNDED with zero fees, marking the winning
        outcome when one was declared.
        """
        pass
