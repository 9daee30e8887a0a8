from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from salon_backend.errors import ValidationError
from salon_backend.models.staff import Staff
from salon_backend.services.login_attempts import check_login_lock, register_failed_login
from salon_backend.services.passwords import verify_password


class CredentialStatus(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    LOCKED = "locked"
    BAD_PASSWORD = "bad_password"


@dataclass
class CredentialCheck:
    status: CredentialStatus
    staff: Optional[Staff] = None
    failed_count: int = 0
    locked_until: Optional[datetime] = None

    @property
    def authenticated(self) -> bool:
        return self.status is CredentialStatus.AUTHENTICATED


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_staff(db: Session, tenant_id: int, email: str) -> Optional[Staff]:
    return (
        db.query(Staff)
        .filter(
            Staff.tenant_id == tenant_id,
            func.lower(Staff.email) == normalize_email(email),
        )
        .first()
    )


def resolve_login_tenant(db: Session, email: str, tenant_hint: Optional[int]) -> Optional[int]:
    """Pick the tenant a login targets.

    An explicit hint wins. Without one the email must belong to exactly one
    tenant; an address shared by several salons needs the hint.
    """
    if tenant_hint is not None:
        return int(tenant_hint)

    tenant_ids = [
        row[0]
        for row in db.query(Staff.tenant_id)
        .filter(func.lower(Staff.email) == normalize_email(email))
        .distinct()
        .all()
    ]
    if not tenant_ids:
        return None
    if len(tenant_ids) > 1:
        raise ValidationError(
            "This email is registered in several salons; specify tenant_id",
            details=[{"field": "tenant_id", "message": "required for this email"}],
        )
    return tenant_ids[0]


def verify_credentials(
    db: Session,
    tenant_id: Optional[int],
    email: str,
    password: str,
    *,
    now: Optional[datetime] = None,
) -> CredentialCheck:
    """Look up the account and check the password.

    A wrong password is counted through the lockout guard before returning.
    The counter is only reset once the whole login, second factor included,
    succeeds.
    """
    staff = find_staff(db, tenant_id, email) if tenant_id is not None else None
    if staff is None:
        return CredentialCheck(status=CredentialStatus.NOT_FOUND)

    if not staff.is_active:
        return CredentialCheck(status=CredentialStatus.INACTIVE, staff=staff)

    locked, locked_until = check_login_lock(staff, now)
    if locked:
        return CredentialCheck(status=CredentialStatus.LOCKED, staff=staff, locked_until=locked_until)

    if not verify_password(password, staff.password_hash):
        failed_count, locked_until = register_failed_login(db, staff.id, now=now)
        return CredentialCheck(
            status=CredentialStatus.BAD_PASSWORD,
            staff=staff,
            failed_count=failed_count,
            locked_until=locked_until,
        )

    return CredentialCheck(status=CredentialStatus.AUTHENTICATED, staff=staff)


def load_backup_codes(staff: Staff) -> List[str]:
    if not staff.backup_codes:
        return []
    try:
        codes = json.loads(staff.backup_codes)
    except ValueError:
        return []
    return [str(code) for code in codes] if isinstance(codes, list) else []


def dump_backup_codes(codes: List[str]) -> str:
    return json.dumps(list(codes))


def consume_backup_codes(db: Session, staff: Staff, expected: str, remaining: List[str]) -> bool:
    """Swap the stored list for ``remaining`` only if nobody changed it meanwhile.

    A concurrent redemption of the same code finds the stored value already
    replaced and gets rowcount 0.
    """
    result = db.execute(
        update(Staff)
        .where(Staff.id == staff.id, Staff.backup_codes == expected)
        .values(backup_codes=dump_backup_codes(remaining))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
