from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import and_, case, or_, update
from sqlalchemy.orm import Session

from salon_backend.core.config import LOGIN_LOCK_MINUTES, LOGIN_MAX_FAILED_ATTEMPTS
from salon_backend.models.staff import Staff

MAX_FAILED_ATTEMPTS = LOGIN_MAX_FAILED_ATTEMPTS
LOCK_DURATION = timedelta(minutes=LOGIN_LOCK_MINUTES)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_locked(staff: Staff, now: Optional[datetime] = None) -> bool:
    now = now or _now()
    if staff.locked_until is None:
        return False
    return staff.locked_until > now


def lock_seconds_remaining(locked_until: datetime, now: Optional[datetime] = None) -> int:
    now = now or _now()
    return max(1, int((locked_until - now).total_seconds() + 0.999))


def check_login_lock(staff: Staff, now: Optional[datetime] = None) -> Tuple[bool, Optional[datetime]]:
    if is_locked(staff, now):
        return True, staff.locked_until
    return False, None


def register_failed_login(
    db: Session,
    staff_id: int,
    *,
    now: Optional[datetime] = None,
    max_attempts: int = MAX_FAILED_ATTEMPTS,
    lock_duration: timedelta = LOCK_DURATION,
) -> Tuple[int, Optional[datetime]]:
    """Count one failed attempt and lock the account once the threshold is hit.

    Both steps are single UPDATE statements evaluated by the database, so
    concurrent failures for the same row serialize on the row lock instead of
    racing on a value read into Python. An expired lock restarts the count.
    The caller must commit right away.
    """
    now = now or _now()
    lock_expired = and_(Staff.locked_until.is_not(None), Staff.locked_until <= now)

    db.execute(
        update(Staff)
        .where(Staff.id == staff_id)
        .values(
            failed_login_count=case((lock_expired, 1), else_=Staff.failed_login_count + 1),
            locked_until=case((lock_expired, None), else_=Staff.locked_until),
        )
        .execution_options(synchronize_session=False)
    )

    locked_until = now + lock_duration
    lock_result = db.execute(
        update(Staff)
        .where(
            Staff.id == staff_id,
            Staff.failed_login_count >= max_attempts,
            or_(Staff.locked_until.is_(None), Staff.locked_until <= now),
        )
        .values(locked_until=locked_until)
        .execution_options(synchronize_session=False)
    )

    failed_count = db.query(Staff.failed_login_count).filter(Staff.id == staff_id).scalar() or 0
    return failed_count, (locked_until if lock_result.rowcount else None)


def clear_login_attempts(db: Session, staff_id: int, *, now: Optional[datetime] = None) -> bool:
    """Reset the counter after a successful login.

    Returns False, leaving the row untouched, when a lock that is still
    running was set after the caller read the account.
    """
    now = now or _now()
    result = db.execute(
        update(Staff)
        .where(
            Staff.id == staff_id,
            or_(Staff.locked_until.is_(None), Staff.locked_until <= now),
        )
        .values(failed_login_count=0, locked_until=None, last_login_at=now)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def current_lock(db: Session, staff_id: int, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or _now()
    locked_until = db.query(Staff.locked_until).filter(Staff.id == staff_id).scalar()
    if locked_until is None or locked_until <= now:
        return None
    return locked_until


def unlock_account(db: Session, staff_id: int) -> bool:
    result = db.execute(
        update(Staff)
        .where(Staff.id == staff_id)
        .values(failed_login_count=0, locked_until=None)
        .execution_options(synchronize_session=False)
    )
    return bool(result.rowcount)


def attempts_remaining(failed_count: int, max_attempts: int = MAX_FAILED_ATTEMPTS) -> int:
    return max(0, max_attempts - failed_count)
