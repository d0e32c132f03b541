"""
Tests for sportspredict/blockchain/stake_intake.py

Tests stake admission rules and the submit flow (token, admission,
single-use transaction, ledger verification, persistence).
"""

import pytest
import trio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from trio.testing import MockClock
from unittest.mock import AsyncMock, Mock

from sportspredict.blockchain.escrow import build_stake_escrow_op
from sportspredict.blockchain.stake_intake import (
    ERROR_INVALID_TOKEN,
    StakeIntake,
    check_stake_admission,
)
from sportspredict.blockchain.verify_stake import (
    ERROR_ALREADY_USED,
    ERROR_NOT_FOUND,
    RetryPolicy,
)
from sportspredict.protocol.models import (
    Outcome,
    Prediction,
    PredictionStatus,
    Stake,
    StakeTokenData,
)
from sportspredict.protocol.stake_token import sign_stake_token
from sportspredict.protocol.store import PredictionStore


# ============================================================================
# TEST DATA
# ============================================================================

SECRET = "intake-secret"
NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_prediction(status=PredictionStatus.OPEN, locks_at=None):
    return Prediction(
        id="pred-1",
        creator_username="creator",
        title="Wolves vs Villa",
        locks_at=locks_at or datetime.now(timezone.utc) + timedelta(hours=1),
        created_at=datetime.now(timezone.utc) - timedelta(hours=1),
        status=status,
        outcomes=[Outcome(id="out-1", label="Wolves"), Outcome(id="out-2", label="Villa")],
        stakes=[],
    )


def make_token(amount=50, outcome_id="out-1", prediction_id="pred-1"):
    return sign_stake_token(StakeTokenData(prediction_id, "alice", outcome_id, amount), SECRET)


def make_store(prediction=None, tx_used=False):
    store = AsyncMock(spec=PredictionStore)
    store.get_prediction.return_value = prediction
    store.is_stake_tx_used.return_value = tx_used
    store.record_stake.return_value = True
    return store


def make_client(*transactions):
    client = Mock()
    client.get_transaction = AsyncMock(side_effect=list(transactions))
    return client


def stake_tx(amount=50, outcome_id="out-1"):
    op = build_stake_escrow_op("alice", amount, "pred-1", outcome_id)
    return {"operations": [op.to_operation()]}


def submit(store, client, token, tx_id="tx-1"):
    intake = StakeIntake(store, client, retry_policy=RetryPolicy(max_retries=0), secret=SECRET)

    async def run_test():
        return await intake.submit(token, tx_id)

    return trio.run(run_test)


# ============================================================================
# ADMISSION RULES
# ============================================================================

class TestCheckStakeAdmission:
    """Tests for check_stake_admission()."""

    def test_admissible(self):
        """Test an open prediction accepts a normal stake."""
        assert check_stake_admission(make_prediction(), "out-1", 50) is None

    def test_missing_prediction(self):
        """Test staking on an unknown prediction."""
        assert check_stake_admission(None, "out-1", 50) == "Prediction not found"

    @pytest.mark.parametrize("status", [
        PredictionStatus.LOCKED,
        PredictionStatus.SETTLING,
        PredictionStatus.SETTLED,
        PredictionStatus.VOID,
        PredictionStatus.REFUNDED,
    ])
    def test_not_open(self, status):
        """Test only OPEN predictions accept stakes."""
        reason = check_stake_admission(make_prediction(status=status), "out-1", 50)
        assert reason == f"Prediction is not open for staking (status: {status.value})"

    def test_past_lock_time(self):
        """Test an OPEN prediction past its lock time rejects stakes."""
        prediction = make_prediction(locks_at=NOW)
        assert check_stake_admission(prediction, "out-1", 50, now=NOW) == "Prediction is locked"
        assert check_stake_admission(
            prediction, "out-1", 50, now=NOW - timedelta(seconds=1)
        ) is None

    def test_naive_lock_time(self):
        """Test a naive lock time from the store is read as UTC."""
        prediction = make_prediction(locks_at=NOW.replace(tzinfo=None))
        assert check_stake_admission(prediction, "out-1", 50, now=NOW) == "Prediction is locked"
        assert check_stake_admission(
            prediction, "out-1", 50, now=NOW - timedelta(seconds=1)
        ) is None

    def test_naive_lock_time_default_now(self):
        """Test a naive future lock time compares against the real clock."""
        locks_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        assert check_stake_admission(make_prediction(locks_at=locks_at), "out-1", 50) is None

    def test_foreign_outcome(self):
        """Test an outcome from another prediction is rejected."""
        reason = check_stake_admission(make_prediction(), "out-9", 50)
        assert reason == "Outcome does not belong to this prediction"

    @pytest.mark.parametrize("amount,reason", [
        (0.5, "Minimum stake is 1"),
        (0, "Minimum stake is 1"),
        (10_001, "Maximum stake is 10000"),
        (1, None),
        (10_000, None),
    ])
    def test_amount_bounds(self, amount, reason):
        """Test minimum and maximum stake amounts."""
        assert check_stake_admission(make_prediction(), "out-1", amount) == reason


# ============================================================================
# SUBMIT FLOW
# ============================================================================

class TestStakeIntake:
    """Tests for StakeIntake.submit()."""

    def test_success_records_stake(self):
        """Test a verified stake is persisted with its transaction id."""
        store = make_store(make_prediction())
        client = make_client(stake_tx())

        result = submit(store, client, make_token())

        assert result.valid
        store.is_stake_tx_used.assert_awaited_once_with("tx-1")
        store.record_stake.assert_awaited_once()
        prediction_id, stake = store.record_stake.await_args.args
        assert prediction_id == "pred-1"
        assert isinstance(stake, Stake)
        assert stake.username == "alice"
        assert stake.outcome_id == "out-1"
        assert stake.amount == Decimal("50")
        assert stake.tx_id == "tx-1"
        assert stake.id

    def test_invalid_token(self):
        """Test a bad token is rejected before any lookup."""
        store = make_store(make_prediction())
        client = make_client()

        result = submit(store, client, "not-a-token")

        assert result.error == ERROR_INVALID_TOKEN
        store.get_prediction.assert_not_awaited()
        client.get_transaction.assert_not_awaited()

    def test_token_for_other_secret(self):
        """Test a token signed elsewhere is rejected."""
        token = sign_stake_token(StakeTokenData("pred-1", "alice", "out-1", 50), "other")
        result = submit(make_store(make_prediction()), make_client(), token)
        assert result.error == ERROR_INVALID_TOKEN

    def test_inadmissible(self):
        """Test admission failures stop the flow before the ledger."""
        store = make_store(make_prediction(status=PredictionStatus.LOCKED))
        client = make_client()

        result = submit(store, client, make_token())

        assert not result.valid
        assert result.error.startswith("Prediction is not open")
        client.get_transaction.assert_not_awaited()
        store.record_stake.assert_not_awaited()

    def test_over_max(self):
        """Test an oversized token amount is refused."""
        store = make_store(make_prediction())
        result = submit(store, make_client(), make_token(amount=20_000))
        assert result.error == "Maximum stake is 10000"

    def test_tx_already_used(self):
        """Test a transfer cannot back a second stake."""
        store = make_store(make_prediction(), tx_used=True)
        client = make_client()

        result = submit(store, client, make_token())

        assert result.error == ERROR_ALREADY_USED
        client.get_transaction.assert_not_awaited()
        store.record_stake.assert_not_awaited()

    def test_verification_failure(self):
        """Test nothing is stored when the transfer doesn't match."""
        store = make_store(make_prediction())
        client = make_client(stake_tx(amount=5))

        result = submit(store, client, make_token())

        assert not result.valid
        assert result.error.startswith("Amount mismatch")
        store.record_stake.assert_not_awaited()

    def test_not_found(self):
        """Test a missing transfer is reported and not stored."""
        store = make_store(make_prediction())
        result = submit(store, make_client(None), make_token())
        assert result.error == ERROR_NOT_FOUND
        store.record_stake.assert_not_awaited()

    def test_token_replay_needs_new_transfer(self):
        """Test replaying a token with a used transfer is refused."""
        token = make_token()
        store = make_store(make_prediction())
        assert submit(store, make_client(stake_tx()), token, "tx-1").valid

        store.is_stake_tx_used.return_value = True
        result = submit(store, make_client(), token, "tx-1")
        assert result.error == ERROR_ALREADY_USED
        assert store.record_stake.await_count == 1

    def test_record_refused(self):
        """Test a store refusing a duplicate transfer is reported as already used."""
        store = make_store(make_prediction())
        store.record_stake.return_value = False

        result = submit(store, make_client(stake_tx()), make_token())

        assert not result.valid
        assert result.error == ERROR_ALREADY_USED


# ============================================================================
# CONCURRENT SUBMISSIONS
# ============================================================================

class InMemoryStore(PredictionStore):
    """Single-process store enforcing one stake per transfer in record_stake()."""

    def __init__(self, prediction):
        self.prediction = prediction
        self.stakes = []

    async def get_prediction(self, prediction_id):
        return self.prediction if prediction_id == self.prediction.id else None

    async def transition_status(self, prediction_id, from_statuses, to_status, **fields):
        return False

    async def update_prediction(self, prediction_id, **fields):
        pass

    async def update_stake(self, stake_id, **fields):
        pass

    async def record_stake(self, prediction_id, stake):
        if any(s.tx_id == stake.tx_id for s in self.stakes):
            return False
        self.stakes.append(stake)
        return True

    async def is_stake_tx_used(self, tx_id):
        return any(s.tx_id == tx_id for s in self.stakes)

    async def finalize_settlement(self, prediction_id, settlement, settled_by):
        pass

    async def finalize_refund(self, prediction_id, settled_by, winning_outcome_id=None):
        pass


class TestConcurrentSubmit:
    """Tests for two submissions racing on the same transfer."""

    @pytest.mark.timeout(10)
    def test_same_transfer_stored_once(self):
        """Test two concurrent submits of one transfer store a single stake."""
        store = InMemoryStore(make_prediction())
        lookups = []

        async def get_transaction(tx_id):
            lookups.append(tx_id)
            # The node doesn't know the transfer on the first round of lookups
            return None if len(lookups) <= 2 else stake_tx()

        client = Mock()
        client.get_transaction = AsyncMock(side_effect=get_transaction)
        intake = StakeIntake(store, client, retry_policy=RetryPolicy(max_retries=1), secret=SECRET)
        token = make_token()

        async def run_test():
            results = []

            async def submit_one():
                results.append(await intake.submit(token, "tx-1"))

            async with trio.open_nursery() as nursery:
                nursery.start_soon(submit_one)
                nursery.start_soon(submit_one)
            return results

        results = trio.run(run_test, clock=MockClock(autojump_threshold=0))

        assert len(store.stakes) == 1
        assert store.stakes[0].tx_id == "tx-1"
        assert sorted(r.valid for r in results) == [False, True]
        assert [r.error for r in results if not r.valid] == [ERROR_ALREADY_USED]
        assert len(lookups) == 4
