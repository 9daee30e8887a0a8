from __future__ import annotations

from typing import Any, Dict, List, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from salon_backend.core.config import (
    TWO_FACTOR_CHALLENGE_MAX_AGE_SECONDS,
    TWO_FACTOR_CHALLENGE_SECRET,
    TWO_FACTOR_SETUP_MAX_AGE_SECONDS,
)

CHALLENGE_SALT = "two-factor-challenge"
SETUP_SALT = "two-factor-setup"


def _serializer(salt: str) -> URLSafeTimedSerializer:
    if not TWO_FACTOR_CHALLENGE_SECRET:
        raise RuntimeError("TWO_FACTOR_CHALLENGE_SECRET is not configured")
    return URLSafeTimedSerializer(TWO_FACTOR_CHALLENGE_SECRET, salt=salt)


def _loads(salt: str, token: str, max_age: int) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        payload = _serializer(salt).loads(token, max_age=max_age)
    except (BadSignature, SignatureExpired, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def create_login_challenge(*, staff_id: int, tenant_id: int, email: str) -> str:
    """Token for a login that passed the password check and awaits its second factor."""
    return _serializer(CHALLENGE_SALT).dumps(
        {"staff_id": int(staff_id), "tenant_id": int(tenant_id), "email": email}
    )


def decode_login_challenge(token: str) -> Optional[Dict[str, Any]]:
    return _loads(CHALLENGE_SALT, token, TWO_FACTOR_CHALLENGE_MAX_AGE_SECONDS)


def create_setup_token(*, staff_id: int, secret: str, backup_codes: List[str]) -> str:
    """Carries an unconfirmed enrollment until the first code is verified.

    The payload is signed, not encrypted; it only holds what the setup
    response already shows the staff member.
    """
    return _serializer(SETUP_SALT).dumps(
        {"staff_id": int(staff_id), "secret": secret, "backup_codes": list(backup_codes)}
    )


def decode_setup_token(token: str) -> Optional[Dict[str, Any]]:
    return _loads(SETUP_SALT, token, TWO_FACTOR_SETUP_MAX_AGE_SECONDS)
