from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from salon_backend.core.config import TRUSTED_PROXIES
from salon_backend.models.security_event import SecurityEvent

logger = logging.getLogger(__name__)

LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"
TWO_FA_ENABLED = "TWO_FA_ENABLED"
TWO_FA_DISABLED = "TWO_FA_DISABLED"
TWO_FA_BACKUP_USED = "TWO_FA_BACKUP_USED"
TWO_FA_BACKUP_REGENERATED = "TWO_FA_BACKUP_REGENERATED"
INVALID_2FA_ATTEMPT = "INVALID_2FA_ATTEMPT"
PASSWORD_CHANGED = "PASSWORD_CHANGED"
LOGOUT = "LOGOUT"
PERMISSION_DENIED = "PERMISSION_DENIED"


def client_ip(request: Optional[Request], trusted_proxies: Optional[Iterable[str]] = None) -> Optional[str]:
    """Address the request came from, as used to key the per-IP throttles.

    ``X-Forwarded-For`` is only read when the socket peer is in
    ``TRUSTED_PROXIES``.
    """
    if request is None:
        return None
    peer = request.client.host if request.client else None
    trusted = TRUSTED_PROXIES if trusted_proxies is None else frozenset(trusted_proxies)
    if peer is None or not ("*" in trusted or peer in trusted):
        return peer

    forwarded = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",") if hop.strip()]
    # walk from the nearest hop and stop at the first address we do not control
    for hop in reversed(forwarded):
        if "*" in trusted or hop not in trusted:
            return hop
    return forwarded[0] if forwarded else peer


def log_security_event(
    db: Session,
    *,
    event_type: str,
    tenant_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    severity: str = "INFO",
    description: Optional[str] = None,
    request: Optional[Request] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> SecurityEvent:
    """Queue a security event on the session; the caller commits."""
    entry = SecurityEvent(
        tenant_id=tenant_id,
        staff_id=staff_id,
        event_type=event_type,
        severity=severity,
        description=description,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent") if request is not None else None,
        meta_json=json.dumps(meta) if meta else None,
    )
    db.add(entry)
    if severity != "INFO":
        logger.warning(
            "security event %s severity=%s tenant_id=%s staff_id=%s",
            event_type,
            severity,
            tenant_id,
            staff_id,
        )
    return entry
