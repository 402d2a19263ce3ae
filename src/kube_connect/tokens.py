"""
Identity token freshness checks.

Only the ``exp`` claim of an id-token is interpreted. The signature is not
verified; the API server does that.
"""

import base64
import binascii
import json
import logging
import re
import time

from .exceptions import TokenDecodeError
from .kubeconfig import OIDCProviderConfig

logger = logging.getLogger(__name__)

# Tokens expiring within this window are treated as already expired
EXPIRY_MARGIN_SECONDS = 10

_BASE64URL = re.compile(r"[A-Za-z0-9_-]*")


def token_expiry(id_token: str) -> int | None:
    """Return the ``exp`` claim (seconds since epoch) of an id-token.

    Args:
        id_token: A dot-delimited JWT

    Returns:
        The expiry timestamp, or None if the payload has no ``exp`` claim

    Raises:
        TokenDecodeError: If the payload segment is not unpadded base64url
            encoded JSON, or ``exp`` is not an integer
    """
    parts = id_token.split(".")
    if len(parts) < 2:
        raise TokenDecodeError(
            "Failed to decode id-token",
            "Token does not contain a payload segment"
        )

    payload = parts[1]
    if not _BASE64URL.fullmatch(payload):
        raise TokenDecodeError(
            "Failed to decode id-token",
            "Payload segment is not unpadded base64url"
        )

    try:
        data = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4))
        claims = json.loads(data)
    except (binascii.Error, ValueError) as e:
        raise TokenDecodeError(
            "Failed to decode id-token",
            f"{type(e).__name__}: {e}"
        ) from e

    if not isinstance(claims, dict):
        raise TokenDecodeError("Failed to decode id-token", "Payload is not a JSON object")

    expiry = claims.get("exp")
    if expiry is None:
        return None
    if isinstance(expiry, bool) or not isinstance(expiry, int):
        raise TokenDecodeError(
            "Failed to decode id-token",
            f"'exp' claim must be an integer, got {expiry!r}"
        )
    return expiry


def is_token_valid(provider_config: OIDCProviderConfig, now: float | None = None) -> bool:
    """Check whether the id-token is still usable.

    A missing id-token is not an error: it simply means a refresh is needed.

    Args:
        provider_config: The identity's oidc auth-provider config
        now: Current time in seconds since epoch (defaults to time.time())

    Returns:
        True if the token expires more than EXPIRY_MARGIN_SECONDS from now

    Raises:
        TokenDecodeError: If the id-token is malformed
    """
    if not provider_config.id_token:
        return False

    expiry = token_expiry(provider_config.id_token)
    if expiry is None:
        return False

    if now is None:
        now = time.time()

    valid = now + EXPIRY_MARGIN_SECONDS < expiry
    logger.debug(f"id-token expires at {expiry}, valid={valid}")
    return valid
