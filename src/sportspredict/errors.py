"""
sportspredict/errors.py

Exception hierarchy for the settlement and escrow engine.

Token and transaction checks never raise across their boundary; they return
None or a VerifyResult instead. These exceptions cover the cases that must
surface loudly: missing configuration, ledger transport failures, broadcast
failures and invalid settlement requests.
"""


class SportsPredictError(Exception):
    """Base exception for sportspredict."""
    pass


class ConfigurationError(SportsPredictError):
    """Raised when required configuration is missing in production."""
    pass


class LedgerError(SportsPredictError):
    """Raised by ledger clients for transport-level failures."""
    pass


class BroadcastError(SportsPredictError):
    """Raised when the broadcaster rejects an escrow operation."""
    pass


class SettlementError(SportsPredictError):
    """Raised when a settlement or void cannot proceed."""
    pass
