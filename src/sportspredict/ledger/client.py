"""
sportspredict/ledger/client.py

Interfaces to the public ledger.

The wire-level chain client lives outside this package. The engine only
needs two capabilities:
- Reading a transaction by id (for stake verification)
- Broadcasting escrow-signed token transfers (for payouts, fees, refunds)

Transactions are plain mappings shaped like the chain's JSON:

    {"operations": [["custom_json", {...}], ["transfer", {...}], ...]}
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from ..blockchain.escrow import TokenTransferOp

logger = logging.getLogger("sportspredict.ledger.client")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class BroadcastResult:
    """Outcome of a broadcast attempt."""
    success: bool
    tx_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "tx_id": self.tx_id,
            "error": self.error,
        }


# ============================================================================
# ABSTRACT INTERFACES
# ============================================================================

class LedgerClient(ABC):
    """
    Read access to the ledger.

    Implementations return None when the node doesn't know the transaction
    (yet) and raise sportspredict.errors.LedgerError on transport failures
    (timeouts, unreachable node, malformed node responses).
    """

    @abstractmethod
    async def get_transaction(self, tx_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a transaction by id.

        Args:
            tx_id: Transaction id

        Returns:
            Transaction mapping with an "operations" list, or None if not found

        Raises:
            LedgerError: The node could not be reached or answered with an error
        """
        pass


class Broadcaster(ABC):
    """
    Submits escrow-signed operations to the ledger.

    Signing with the escrow account's key and retry-on-failure are the
    implementation's concern.
    """

    @abstractmethod
    async def broadcast(self, operations: Sequence["TokenTransferOp"]) -> BroadcastResult:
        """
        Broadcast operations as one transaction.

        Args:
            operations: Operations built by sportspredict.blockchain.escrow

        Returns:
            BroadcastResult with the transaction id on success
        """
        pass


class DryRunBroadcaster(Broadcaster):
    """
    Broadcaster that records operations instead of sending them.

    Useful for previewing a settlement and in tests.
    """

    def __init__(self):
        self.sent: List[List[Dict[str, Any]]] = []

    async def broadcast(self, operations: Sequence["TokenTransferOp"]) -> BroadcastResult:
        payload = [op.to_dict() for op in operations]
        self.sent.append(payload)
        tx_id = f"dry_run_{uuid.uuid4().hex[:16]}"
        logger.info(f"DRY RUN: Would broadcast {len(payload)} operation(s) as {tx_id}")
        return BroadcastResult(success=True, tx_id=tx_id)
