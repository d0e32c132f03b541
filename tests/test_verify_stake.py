"""
Tests for sportspredict/blockchain/verify_stake.py

Tests stake transaction verification against a mocked ledger client:
- Matching rules (signer, recipient, symbol, amount, memo)
- Lookup retries and their timing
- Transport errors and cancellation
"""

import json
import pytest
import trio
from trio.testing import MockClock
from unittest.mock import AsyncMock, Mock

from sportspredict.config import EscrowConfig
from sportspredict.errors import LedgerError
from sportspredict.blockchain.escrow import build_stake_escrow_op
from sportspredict.blockchain.verify_stake import (
    ERROR_NOT_FOUND,
    ERROR_NO_MATCH,
    RetryPolicy,
    VerifyResult,
    check_stake_operation,
    fetch_transaction,
    verify_stake_transaction,
)


# ============================================================================
# TEST DATA
# ============================================================================

CONFIG = EscrowConfig()
NO_RETRY = RetryPolicy(max_retries=0)


def stake_op(username="alice", amount=50, prediction_id="pred-1", outcome_id="out-1"):
    return build_stake_escrow_op(username, amount, prediction_id, outcome_id, CONFIG).to_operation()


def raw_op(**overrides):
    """Stake operation with selected contractPayload fields overridden."""
    op_type, body = stake_op()
    payload = json.loads(body["json"])
    payload["contractPayload"].update(overrides)
    body = dict(body, json=json.dumps(payload))
    return [op_type, body]


def make_client(*responses):
    client = Mock()
    client.get_transaction = AsyncMock(side_effect=list(responses))
    return client


def verify(client, retry_policy=NO_RETRY, amount=50, **kwargs):
    async def run_test():
        return await verify_stake_transaction(
            client,
            tx_id="tx-1",
            expected_username=kwargs.get("username", "alice"),
            expected_amount=amount,
            expected_prediction_id="pred-1",
            expected_outcome_id="out-1",
            retry_policy=retry_policy,
            config=CONFIG,
        )

    return trio.run(run_test, clock=MockClock(autojump_threshold=0))


# ============================================================================
# MATCHING
# ============================================================================

class TestVerifyMatching:
    """Tests for how operations are matched."""

    def test_valid(self):
        """Test an exact stake transfer verifies."""
        client = make_client({"operations": [stake_op()]})
        assert verify(client) == VerifyResult(valid=True)
        client.get_transaction.assert_awaited_once_with("tx-1")

    def test_amount_is_numeric_equality(self):
        """Test "50.000000" on-chain matches an expected 50."""
        client = make_client({"operations": [raw_op(quantity="50.000000")]})
        assert verify(client).valid

    def test_fractional_amount(self):
        """Test fractional expected amounts match the fixed-point quantity."""
        op = stake_op(amount=12.5)
        client = make_client({"operations": [op]})
        assert verify(client, amount=12.5).valid

    def test_amount_mismatch(self):
        """Test a transfer for a different amount is reported."""
        client = make_client({"operations": [stake_op(amount=49)]})
        result = verify(client)
        assert not result.valid
        assert result.error == "Amount mismatch: on-chain 49.000000, expected 50"

    def test_numeric_quantity_rejected(self):
        """Test a non-string quantity never matches."""
        client = make_client({"operations": [raw_op(quantity=50)]})
        result = verify(client)
        assert not result.valid
        assert result.error.startswith("Amount mismatch")

    def test_memo_mismatch(self):
        """Test a stake on another outcome is reported."""
        client = make_client({"operations": [stake_op(outcome_id="out-2")]})
        result = verify(client)
        assert not result.valid
        assert result.error == (
            'Memo mismatch: on-chain "prediction-stake|pred-1|out-2", '
            'expected "prediction-stake|pred-1|out-1"'
        )

    def test_match_after_mismatch(self):
        """Test a full match wins over an earlier mismatch."""
        client = make_client({"operations": [stake_op(amount=10), stake_op()]})
        assert verify(client).valid

    def test_first_mismatch_reported(self):
        """Test the first specific mismatch is returned."""
        client = make_client({"operations": [stake_op(amount=10), stake_op(outcome_id="x")]})
        assert verify(client).error.startswith("Amount mismatch")

    @pytest.mark.parametrize("op", [
        stake_op(username="mallory"),
        raw_op(to="someone-else"),
        raw_op(symbol="OTHER"),
        ["transfer", {"from": "alice", "to": "sp-predictions", "amount": "50.000 HIVE"}],
        ["custom_json", {"id": "other-app", "required_auths": ["alice"], "json": "{}"}],
        ["custom_json", {"id": "ssc-mainnet-hive", "required_auths": ["alice"], "json": "not json"}],
        "garbage",
    ])
    def test_non_candidates_ignored(self, op):
        """Test unrelated operations give the generic no-match error."""
        client = make_client({"operations": [op]})
        assert verify(client) == VerifyResult(valid=False, error=ERROR_NO_MATCH)

    def test_posting_auth_signer(self):
        """Test a transfer authorized through posting auths is a candidate."""
        op_type, body = stake_op()
        body = dict(body, required_auths=[], required_posting_auths=["alice"])
        client = make_client({"operations": [[op_type, body]]})
        assert verify(client).valid


class TestCheckStakeOperation:
    """Tests for check_stake_operation()."""

    def test_candidate_result(self):
        """Test a valid candidate returns a valid result."""
        memo = "prediction-stake|pred-1|out-1"
        assert check_stake_operation(stake_op(), "alice", 50, memo, CONFIG).valid

    def test_other_user(self):
        """Test another signer is not a candidate."""
        memo = "prediction-stake|pred-1|out-1"
        assert check_stake_operation(stake_op(), "bob", 50, memo, CONFIG) is None


# ============================================================================
# RETRIES
# ============================================================================

class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        """Test the default schedule is three retries at 4, 7 and 10 seconds."""
        policy = RetryPolicy()
        assert policy.max_attempts == 4
        assert [policy.get_delay(n) for n in (1, 2, 3)] == [4.0, 7.0, 10.0]

    def test_capped(self):
        """Test delays are capped."""
        policy = RetryPolicy(initial_delay=10, backoff=30, max_delay=25)
        assert policy.get_delay(2) == 25


class TestLookupRetries:
    """Tests for retrying transaction lookups."""

    @pytest.mark.timeout(10)
    def test_not_found_after_retries(self):
        """Test four lookups spaced 4s, 7s and 10s apart before giving up."""
        times = []

        async def get_transaction(tx_id):
            times.append(trio.current_time())
            return None

        client = Mock()
        client.get_transaction = AsyncMock(side_effect=get_transaction)
        result = verify(client, retry_policy=RetryPolicy())

        assert result == VerifyResult(valid=False, error=ERROR_NOT_FOUND)
        assert client.get_transaction.await_count == 4
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert gaps == pytest.approx([4.0, 7.0, 10.0])

    def test_found_on_retry(self):
        """Test a transaction that appears late is verified."""
        client = make_client(None, {"operations": []}, {"operations": [stake_op()]})
        assert verify(client, retry_policy=RetryPolicy()).valid
        assert client.get_transaction.await_count == 3

    def test_transient_error_retried(self):
        """Test a node error on an early attempt is retried."""
        client = make_client(ConnectionError("node down"), {"operations": [stake_op()]})
        assert verify(client, retry_policy=RetryPolicy()).valid

    def test_persistent_error(self):
        """Test the final attempt's error is returned as the failure reason."""
        client = make_client(*[ConnectionError("node down")] * 4)
        result = verify(client, retry_policy=RetryPolicy())
        assert result == VerifyResult(valid=False, error="node down")

    def test_ledger_error_retried(self):
        """Test a LedgerError from the client is retried like other failures."""
        client = make_client(LedgerError("node down"), {"operations": [stake_op()]})
        assert verify(client, retry_policy=RetryPolicy()).valid
        assert client.get_transaction.await_count == 2

    def test_persistent_ledger_error(self):
        """Test a client that keeps raising LedgerError fails with its message."""
        client = make_client(*[LedgerError("node down")] * 4)
        result = verify(client, retry_policy=RetryPolicy())
        assert result == VerifyResult(valid=False, error="node down")

    def test_fetch_raises_on_final_attempt(self):
        """Test fetch_transaction propagates the final error."""
        client = make_client(TimeoutError("slow"))

        async def run_test():
            with pytest.raises(TimeoutError):
                await fetch_transaction(client, "tx-1", NO_RETRY)

        trio.run(run_test)

    @pytest.mark.timeout(10)
    def test_cancellation_stops_retries(self):
        """Test a cancelled caller stops the retry loop during its sleep."""
        client = Mock()
        client.get_transaction = AsyncMock(return_value=None)

        async def run_test():
            with trio.move_on_after(5) as scope:
                await verify_stake_transaction(
                    client, "tx-1", "alice", 50, "pred-1", "out-1",
                    retry_policy=RetryPolicy(),
                )
            return scope.cancelled_caught

        assert trio.run(run_test, clock=MockClock(autojump_threshold=0))
        assert client.get_transaction.await_count == 2


class TestVerifyResult:
    """Tests for VerifyResult."""

    def test_to_dict(self):
        """Test the JSON view omits error on success."""
        assert VerifyResult(valid=True).to_dict() == {"valid": True}
        assert VerifyResult(valid=False, error="x").to_dict() == {"valid": False, "error": "x"}
