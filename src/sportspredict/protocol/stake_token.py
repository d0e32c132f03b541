"""
sportspredict/protocol/stake_token.py

Short-lived, tamper-evident tokens authorizing a stake submission.

A token binds (prediction, outcome, user, amount) for five minutes:

    <base64(json payload)>.<hex HMAC-SHA256 of the base64 text>

This is a MAC, not encryption. The payload is readable by anyone; only its
integrity and origin are protected. Verification never says why a token was
rejected.

Usage:
    from sportspredict.protocol.stake_token import sign_stake_token, verify_stake_token

    token = sign_stake_token(StakeTokenData("pred-1", "alice", "out-1", 50))
    data = verify_stake_token(token)   # StakeTokenData or None
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import math
import time
from typing import Any, Dict, Optional

from ..config import STAKE_TOKEN_TTL_SECONDS, resolve_stake_token_secret
from .models import StakeTokenData

logger = logging.getLogger("sportspredict.protocol.stake_token")

TOKEN_SEPARATOR = "."
SIGNATURE_HEX_LENGTH = 64


def _sign(encoded_payload: str, secret: str) -> str:
    """Hex HMAC-SHA256 over the encoded payload."""
    return hmac.new(
        secret.encode("utf-8"),
        encoded_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _parse_payload(payload: Dict[str, Any]) -> Optional[StakeTokenData]:
    """Check field presence and types; None if anything is off."""
    for key in ("predictionId", "username", "outcomeId"):
        value = payload.get(key)
        if not isinstance(value, str) or not value:
            return None

    if not _is_number(payload.get("amount")):
        return None
    if not _is_number(payload.get("exp")):
        return None

    return StakeTokenData(
        prediction_id=payload["predictionId"],
        username=payload["username"],
        outcome_id=payload["outcomeId"],
        amount=payload["amount"],
    )


def sign_stake_token(data: StakeTokenData, secret: Optional[str] = None) -> str:
    """
    Issue a stake token.

    Args:
        data: The stake the token authorizes
        secret: Signing secret (resolved from the environment if None)

    Returns:
        Token string

    Raises:
        ConfigurationError: No secret configured in production
    """
    if secret is None:
        secret = resolve_stake_token_secret()

    payload = data.to_payload()
    payload["exp"] = int(time.time()) + STAKE_TOKEN_TTL_SECONDS

    raw = json.dumps(payload, separators=(",", ":"))
    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")

    return f"{encoded}{TOKEN_SEPARATOR}{_sign(encoded, secret)}"


def verify_stake_token(token: str, secret: Optional[str] = None) -> Optional[StakeTokenData]:
    """
    Verify a stake token.

    Returns None for any malformed, tampered, expired or ill-typed token.

    Args:
        token: Token from sign_stake_token()
        secret: Signing secret (resolved from the environment if None)

    Returns:
        StakeTokenData without expiry, or None
    """
    if not isinstance(token, str) or token.count(TOKEN_SEPARATOR) != 1:
        return None

    encoded, signature = token.split(TOKEN_SEPARATOR)
    if not encoded or len(signature) != SIGNATURE_HEX_LENGTH:
        return None

    try:
        bytes.fromhex(signature)
        raw = base64.b64decode(encoded, validate=True).decode("utf-8")
        payload = json.loads(raw)
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None

    if secret is None:
        secret = resolve_stake_token_secret()

    if not hmac.compare_digest(_sign(encoded, secret), signature):
        logger.debug("Stake token rejected")
        return None

    if not _is_number(payload.get("exp")) or time.time() > payload["exp"]:
        return None

    return _parse_payload(payload)
