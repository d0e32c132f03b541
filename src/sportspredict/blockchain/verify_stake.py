"""
sportspredict/blockchain/verify_stake.py

Stake transaction verification.

A client reports the id of the transfer it broadcast after receiving a stake
token. Before the stake is persisted, the transaction is fetched from the
ledger and must contain a token transfer that matches exactly:
- signed by the staking user
- sent to the escrow account
- in the platform token
- for the expected amount
- with memo prediction-stake|<predictionId>|<outcomeId>

Ledger nodes lag behind broadcast, so "not found" on the first read is
expected; lookups are retried with a linear backoff. Retries sleep with
trio.sleep and stop as soon as the caller's cancel scope fires.

Usage:
    from sportspredict.blockchain.verify_stake import verify_stake_transaction

    result = await verify_stake_transaction(
        client,
        tx_id="abc123",
        expected_username="alice",
        expected_amount=50,
        expected_prediction_id="pred-1",
        expected_outcome_id="out-1",
    )
    if result.valid:
        ...persist the stake...
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import trio

from ..config import (
    CONTRACT_ACTION_TRANSFER,
    CONTRACT_NAME,
    OPERATION_TYPE,
    VERIFY_BACKOFF,
    VERIFY_INITIAL_DELAY,
    VERIFY_MAX_RETRIES,
    EscrowConfig,
)
from ..ledger.client import LedgerClient
from ..protocol.models import to_decimal
from .escrow import stake_memo

logger = logging.getLogger("sportspredict.blockchain.verify_stake")

ERROR_NOT_FOUND = "Transaction not found on-chain after retries"
ERROR_NO_MATCH = "No matching stake transfer found in transaction"
ERROR_ALREADY_USED = "Transaction already used for a stake"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class VerifyResult:
    """Result of a stake verification."""
    valid: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "error": self.error}


class RetryPolicy:
    """
    Retry schedule for ledger lookups.

    Delay before retry n (1-based) is initial_delay + (n - 1) * backoff,
    capped at max_delay.
    """

    def __init__(
        self,
        max_retries: int = VERIFY_MAX_RETRIES,
        initial_delay: float = VERIFY_INITIAL_DELAY,
        backoff: float = VERIFY_BACKOFF,
        max_delay: float = 60.0,
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff = backoff
        self.max_delay = max_delay

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, retry: int) -> float:
        """Delay in seconds before the given retry (1-based)."""
        if retry <= 0:
            return 0.0
        return min(self.initial_delay + (retry - 1) * self.backoff, self.max_delay)


def _has_operations(tx: Optional[Dict[str, Any]]) -> bool:
    return bool(tx) and bool(tx.get("operations"))


async def fetch_transaction(
    client: LedgerClient,
    tx_id: str,
    retry_policy: Optional[RetryPolicy] = None,
) -> Optional[Dict[str, Any]]:
    """
    Fetch a transaction, retrying while it is missing or the node errors.

    Args:
        client: Ledger read client
        tx_id: Transaction id
        retry_policy: Retry schedule

    Returns:
        Transaction mapping, or None if still not found after all retries

    Raises:
        Exception: The client's error, if the final attempt fails
    """
    policy = retry_policy or RetryPolicy()
    tx = None

    for attempt in range(policy.max_attempts):
        if attempt > 0:
            delay = policy.get_delay(attempt)
            logger.info(
                f"Retrying lookup of stake tx {tx_id} "
                f"({attempt}/{policy.max_retries}) after {delay}s"
            )
            await trio.sleep(delay)

        try:
            tx = await client.get_transaction(tx_id)
        except Exception as e:
            if attempt == policy.max_retries:
                raise
            logger.warning(f"Ledger lookup for {tx_id} failed: {e}")
            continue

        if _has_operations(tx):
            return tx

    return None


def _parse_amount(value: Any) -> Optional[Decimal]:
    if not isinstance(value, str):
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def check_stake_operation(
    op: Any,
    expected_username: str,
    expected_amount: Any,
    expected_memo: str,
    config: EscrowConfig,
) -> Optional[VerifyResult]:
    """
    Check one operation against the expected stake transfer.

    Args:
        op: [type, body] operation from the transaction
        expected_username: Staking user
        expected_amount: Staked amount
        expected_memo: Canonical stake memo
        config: Escrow configuration

    Returns:
        None if the operation isn't a transfer from this user to escrow in
        the platform token; otherwise a VerifyResult (valid or a specific
        mismatch)
    """
    if not isinstance(op, (list, tuple)) or len(op) != 2:
        return None

    op_type, body = op
    if op_type != OPERATION_TYPE or not isinstance(body, dict):
        return None
    if body.get("id") != config.contract_id:
        return None

    auths = list(body.get("required_auths") or []) + list(body.get("required_posting_auths") or [])
    if expected_username not in auths:
        return None

    try:
        payload = json.loads(body.get("json") or "{}")
    except (TypeError, ValueError):
        logger.debug("Skipping operation with unparseable json payload")
        return None

    if not isinstance(payload, dict):
        return None
    if payload.get("contractName") != CONTRACT_NAME:
        return None
    if payload.get("contractAction") != CONTRACT_ACTION_TRANSFER:
        return None

    transfer = payload.get("contractPayload")
    if not isinstance(transfer, dict):
        return None
    if transfer.get("to") != config.escrow_account:
        return None
    if transfer.get("symbol") != config.token_symbol:
        return None

    quantity = transfer.get("quantity")
    on_chain = _parse_amount(quantity)
    expected = to_decimal(expected_amount)
    if on_chain is None or on_chain != expected:
        return VerifyResult(
            valid=False,
            error=f"Amount mismatch: on-chain {quantity}, expected {expected_amount}",
        )

    memo = transfer.get("memo")
    if memo != expected_memo:
        return VerifyResult(
            valid=False,
            error=f'Memo mismatch: on-chain "{memo}", expected "{expected_memo}"',
        )

    return VerifyResult(valid=True)


async def verify_stake_transaction(
    client: LedgerClient,
    tx_id: str,
    expected_username: str,
    expected_amount: Any,
    expected_prediction_id: str,
    expected_outcome_id: str,
    retry_policy: Optional[RetryPolicy] = None,
    config: Optional[EscrowConfig] = None,
) -> VerifyResult:
    """
    Verify that a ledger transaction is the expected stake transfer.

    Read-only. The caller persists the stake only after valid=True.

    Args:
        client: Ledger read client
        tx_id: Transaction id reported by the client
        expected_username: Staking user
        expected_amount: Amount authorized by the stake token
        expected_prediction_id: Prediction being staked on
        expected_outcome_id: Outcome being backed
        retry_policy: Retry schedule for the lookup
        config: Escrow configuration

    Returns:
        VerifyResult; on failure error distinguishes not-found, amount
        mismatch, memo mismatch, no matching transfer, and transport errors
    """
    config = config or EscrowConfig()

    try:
        tx = await fetch_transaction(client, tx_id, retry_policy)
    except Exception as e:
        logger.error(f"Stake verification failed for {tx_id}: {e}")
        return VerifyResult(valid=False, error=str(e) or "Verification failed")

    if tx is None:
        logger.warning(f"Stake tx {tx_id} not found after retries")
        return VerifyResult(valid=False, error=ERROR_NOT_FOUND)

    expected_memo = stake_memo(expected_prediction_id, expected_outcome_id)
    mismatch: Optional[VerifyResult] = None

    for op in tx.get("operations") or []:
        result = check_stake_operation(
            op, expected_username, expected_amount, expected_memo, config
        )
        if result is None:
            continue
        if result.valid:
            logger.info(f"Stake tx {tx_id} verified for {expected_username}")
            return result
        if mismatch is None:
            mismatch = result

    if mismatch is not None:
        logger.warning(f"Stake tx {tx_id} rejected: {mismatch.error}")
        return mismatch

    logger.warning(f"Stake tx {tx_id} rejected: no matching transfer")
    return VerifyResult(valid=False, error=ERROR_NO_MATCH)
