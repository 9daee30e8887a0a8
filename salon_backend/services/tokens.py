from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from salon_backend.core.config import (
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_EXPIRE_MINUTES,
    JWT_ISSUER,
    JWT_SECRET_KEY,
)
from salon_backend.services.permissions import Role

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ("sub", "role", "tenant_id", "iat", "exp")


@dataclass(frozen=True)
class TokenClaims:
    staff_id: int
    email: str
    role: Role
    tenant_id: int
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """Mints and parses the stateless bearer tokens.

    Tokens carry an absolute expiry and are never renewed or revoked; logout
    is the client discarding its copy.
    """

    def __init__(
        self,
        *,
        secret_key: str = JWT_SECRET_KEY,
        algorithm: str = JWT_ALGORITHM,
        expire_minutes: int = JWT_EXPIRE_MINUTES,
        issuer: str = JWT_ISSUER,
        audience: str = JWT_AUDIENCE,
    ) -> None:
        if not secret_key:
            raise RuntimeError("JWT_SECRET_KEY is not configured")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.issuer = issuer
        self.audience = audience

    def issue(
        self,
        staff_id: int,
        email: str,
        role: Role | str,
        tenant_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        """
        - "sub" must be a string, jose refuses anything else
        - the role is normalised so that parse() can map it back to the enum
        """
        resolved_role = role if isinstance(role, Role) else Role.parse(role)
        if resolved_role is None:
            raise ValueError(f"Unknown role: {role!r}")

        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(minutes=self.expire_minutes)
        payload: Dict[str, Any] = {
            "sub": str(staff_id),
            "email": email,
            "role": resolved_role.value,
            "tenant_id": int(tenant_id),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def parse(self, token: str, *, now: Optional[datetime] = None) -> Optional[TokenClaims]:
        """Return the claims, or None for anything malformed, forged or expired."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        if any(payload.get(claim) is None for claim in _REQUIRED_CLAIMS):
            return None

        try:
            staff_id = int(payload["sub"])
            tenant_id = int(payload["tenant_id"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None

        current = now or datetime.now(timezone.utc)
        if expires_at <= current:
            logger.info("rejected expired token sub=%s", staff_id)
            return None

        role = Role.parse(payload["role"])
        if role is None:
            return None

        return TokenClaims(
            staff_id=staff_id,
            email=str(payload.get("email") or ""),
            role=role,
            tenant_id=tenant_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


_token_issuer: Optional[TokenIssuer] = None


def get_token_issuer() -> TokenIssuer:
    global _token_issuer
    if _token_issuer is None:
        _token_issuer = TokenIssuer()
    return _token_issuer
