# Signed OAuth "state" values for the Google connect flow

import logging
import secrets
from datetime import datetime, timedelta

import jwt

from ..core.errors import ValidationError

logger = logging.getLogger(__name__)

STATE_MAX_AGE = timedelta(minutes=10)
STATE_ALGORITHM = "HS256"
STATE_AUDIENCE = "google-calendar-connect"


def sign_state(user_id: str, secret: str, now: datetime) -> str:
    """Short-lived HS256 token binding the consent round-trip to ``user_id``."""
    payload = {
        "sub": user_id,
        "aud": STATE_AUDIENCE,
        "iat": now,
        "exp": now + STATE_MAX_AGE,
        "nonce": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret, algorithm=STATE_ALGORITHM)


def verify_state(state: str, secret: str, now: datetime) -> str:
    """
    Check a state produced by ``sign_state`` and return its user id.

    Expiry is judged against ``now`` (the request clock), not the host clock.

    Raises:
        ValidationError: tampered, malformed or expired state
    """
    try:
        payload = jwt.decode(
            state,
            secret,
            algorithms=[STATE_ALGORITHM],
            audience=STATE_AUDIENCE,
            options={
                "require": ["sub", "iat", "exp"],
                "verify_exp": False,
                "verify_iat": False,
            },
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected OAuth state: {e}")
        raise ValidationError("Invalid OAuth state", field="state")

    timestamp = now.timestamp()
    if not payload["iat"] <= timestamp < payload["exp"]:
        raise ValidationError("OAuth state expired", field="state")
    return payload["sub"]
