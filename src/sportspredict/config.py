"""
sportspredict/config.py

Configuration constants and data classes for sportspredict.

Pool economics, token parameters and platform accounts live here as
module-level constants. Values that differ per deployment (accounts, the
stake token secret) can be overridden from the environment.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .errors import ConfigurationError

logger = logging.getLogger("sportspredict.config")


# ============================================================================
# POOL ECONOMICS
# ============================================================================

PLATFORM_FEE_PCT = 0.10     # Fee taken from the total pool at settlement
BURN_SPLIT = 0.5            # Share of the fee sent to the burn account
REWARD_SPLIT = 0.5          # Share of the fee sent to the reward pool

SETTLEMENT_PRECISION = 3    # Stored payout precision, Decimal(12,3)

MIN_STAKE = 1               # Smallest accepted stake (token units)
MAX_STAKE = 10_000          # Largest accepted stake per submission

MAX_STAKERS_SHOWN = 5       # Stakers listed per outcome in the client view


# ============================================================================
# TOKEN / LEDGER
# ============================================================================

TOKEN_SYMBOL = "MEDALS"
TOKEN_PRECISION = 6         # Decimal places accepted by the token contract
CONTRACT_ID = "ssc-mainnet-hive"
CONTRACT_NAME = "tokens"
CONTRACT_ACTION_TRANSFER = "transfer"
OPERATION_TYPE = "custom_json"

ESCROW_ACCOUNT = "sp-predictions"
BURN_ACCOUNT = "medals.burn"
REWARDS_ACCOUNT = "sportsblock"

# Memo prefixes (wire format, do not change)
MEMO_STAKE = "prediction-stake"
MEMO_PAYOUT = "prediction-payout"
MEMO_FEE_BURN = "prediction-fee-burn"
MEMO_FEE_REWARD = "prediction-fee-reward"
MEMO_REFUND = "prediction-refund"
MEMO_SEPARATOR = "|"


# ============================================================================
# STAKE TOKENS
# ============================================================================

STAKE_TOKEN_TTL_SECONDS = 5 * 60

# Ordered by priority
STAKE_TOKEN_SECRET_ENV_VARS = (
    "STAKE_TOKEN_SECRET",
    "SESSION_ENCRYPTION_KEY",
    "SESSION_SECRET",
)
DEV_STAKE_TOKEN_SECRET = "sportspredict-dev-stake-token-secret"

ENVIRONMENT_ENV_VAR = "SPORTSPREDICT_ENV"


# ============================================================================
# TRANSACTION VERIFICATION RETRIES
# ============================================================================

VERIFY_MAX_RETRIES = 3          # 4 attempts in total
VERIFY_INITIAL_DELAY = 4.0      # seconds, just over one block
VERIFY_BACKOFF = 3.0            # linear increase per retry


@dataclass
class EscrowConfig:
    """
    Accounts and token parameters used by the escrow builders and the
    transaction verifier.

    Usage:
        config = EscrowConfig.from_env()
        op = build_stake_escrow_op("alice", 50, "pred-1", "out-1", config)
    """
    escrow_account: str = ESCROW_ACCOUNT
    burn_account: str = BURN_ACCOUNT
    rewards_account: str = REWARDS_ACCOUNT
    token_symbol: str = TOKEN_SYMBOL
    token_precision: int = TOKEN_PRECISION
    contract_id: str = CONTRACT_ID

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EscrowConfig":
        """
        Build a config, overriding defaults from SPORTSPREDICT_* variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            EscrowConfig instance
        """
        env = os.environ if environ is None else environ
        config = cls()
        config.escrow_account = env.get("SPORTSPREDICT_ESCROW_ACCOUNT") or config.escrow_account
        config.burn_account = env.get("SPORTSPREDICT_BURN_ACCOUNT") or config.burn_account
        config.rewards_account = env.get("SPORTSPREDICT_REWARDS_ACCOUNT") or config.rewards_account
        config.token_symbol = env.get("SPORTSPREDICT_TOKEN_SYMBOL") or config.token_symbol
        config.contract_id = env.get("SPORTSPREDICT_CONTRACT_ID") or config.contract_id
        return config

    def to_dict(self) -> dict:
        return {
            "escrow_account": self.escrow_account,
            "burn_account": self.burn_account,
            "rewards_account": self.rewards_account,
            "token_symbol": self.token_symbol,
            "token_precision": self.token_precision,
            "contract_id": self.contract_id,
        }


def is_production(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Check whether SPORTSPREDICT_ENV marks a production runtime."""
    env = os.environ if environ is None else environ
    return env.get(ENVIRONMENT_ENV_VAR, "").strip().lower() == "production"


def resolve_secret(
    candidates: Sequence[Optional[str]],
    production: bool,
    dev_fallback: Optional[str] = None,
    error_message: str = "No secret configured",
) -> str:
    """
    Return the first non-empty candidate.

    Falls back to dev_fallback outside production. In production a missing
    secret is a ConfigurationError, never a silent default.

    Args:
        candidates: Secret values in priority order (None/"" are skipped)
        production: Whether this is a production runtime
        dev_fallback: Value used outside production when nothing is set
        error_message: Message for the ConfigurationError

    Returns:
        Resolved secret
    """
    for candidate in candidates:
        if candidate:
            return candidate

    if production or not dev_fallback:
        raise ConfigurationError(error_message)

    logger.debug("No stake token secret configured, using development fallback")
    return dev_fallback


def resolve_stake_token_secret(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Resolve the stake token signing secret.

    Order: STAKE_TOKEN_SECRET -> SESSION_ENCRYPTION_KEY -> SESSION_SECRET ->
    development fallback (non-production only).
    """
    env = os.environ if environ is None else environ
    return resolve_secret(
        [env.get(name) for name in STAKE_TOKEN_SECRET_ENV_VARS],
        production=is_production(env),
        dev_fallback=DEV_STAKE_TOKEN_SECRET,
        error_message=(
            "STAKE_TOKEN_SECRET, SESSION_ENCRYPTION_KEY, or SESSION_SECRET "
            "is required in production"
        ),
    )
