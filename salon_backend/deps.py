# salon_backend/deps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.core.request_context import set_request_context
from salon_backend.errors import AuthenticationError, AuthorizationError
from salon_backend.models.staff import Staff
from salon_backend.services.permissions import Action, Resource, Role, is_allowed
from salon_backend.services.security_audit import PERMISSION_DENIED, log_security_event
from salon_backend.services.tokens import TokenIssuer, get_token_issuer

# auto_error=False so a missing header becomes our 401 envelope instead of FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffIdentity:
    staff_id: int
    email: str
    role: Role
    tenant_id: int

    @property
    def id(self) -> int:
        return self.staff_id


def _log_access_denied(*, reason: str, identity: StaffIdentity, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): staff_id=%s role=%s tenant_id=%s endpoint=%s",
        reason,
        identity.staff_id,
        identity.role.value,
        identity.tenant_id,
        endpoint,
    )


def authenticate_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> StaffIdentity:
    """Validate the bearer token against the staff row."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")

    claims = token_issuer.parse(credentials.credentials)
    if claims is None:
        raise AuthenticationError("Invalid or expired access token")

    account = (
        db.query(Staff.id, Staff.tenant_id, Staff.is_active)
        .filter(Staff.id == claims.staff_id)
        .first()
    )
    if account is None or not account.is_active or int(account.tenant_id) != claims.tenant_id:
        raise AuthenticationError("Access denied")

    # the role always comes from the token; a later role change needs a new login
    return StaffIdentity(
        staff_id=claims.staff_id,
        email=claims.email,
        role=claims.role,
        tenant_id=claims.tenant_id,
    )


async def get_current_staff(
    request: Request,
    identity: StaffIdentity = Depends(authenticate_staff),
) -> StaffIdentity:
    # must stay async: writes to contextvars from a sync dependency are lost with its thread context
    request.state.staff = identity
    set_request_context(tenant_id=str(identity.tenant_id), staff_id=str(identity.staff_id))
    return identity


def require_permission(resource: Resource, action: Action):
    def _dependency(
        request: Request,
        identity: StaffIdentity = Depends(get_current_staff),
        db: Session = Depends(get_db),
    ) -> StaffIdentity:
        if not is_allowed(identity.role, resource, action):
            _log_access_denied(reason="permission_denied", identity=identity, request=request)
            log_security_event(
                db,
                event_type=PERMISSION_DENIED,
                tenant_id=identity.tenant_id,
                staff_id=identity.staff_id,
                severity="WARNING",
                request=request,
                meta={"resource": resource.value, "action": action.value, "role": identity.role.value},
            )
            db.commit()
            raise AuthorizationError(
                "You do not have permission to perform this action",
                details={"required": f"{resource.value}:{action.value}", "role": identity.role.value},
            )
        return identity

    return _dependency


def require_roles(*roles: Role):
    allowed = set(roles)

    def _dependency(
        request: Request,
        identity: StaffIdentity = Depends(get_current_staff),
    ) -> StaffIdentity:
        if identity.role not in allowed:
            _log_access_denied(reason="role_denied", identity=identity, request=request)
            raise AuthorizationError(
                "You do not have permission to perform this action",
                details={"required": sorted(role.value for role in allowed), "role": identity.role.value},
            )
        return identity

    return _dependency
