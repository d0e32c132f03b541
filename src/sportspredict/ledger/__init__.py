"""
sportspredict/ledger/

Ledger read and broadcast interfaces consumed by the engine.
"""

from .client import (
    LedgerClient,
    Broadcaster,
    BroadcastResult,
    DryRunBroadcaster,
)

__all__ = [
    "LedgerClient",
    "Broadcaster",
    "BroadcastResult",
    "DryRunBroadcaster",
]
