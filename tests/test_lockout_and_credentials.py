from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from salon_backend.errors import ValidationError
from salon_backend.models.staff import Staff
from salon_backend.services import credentials
from salon_backend.services.credentials import CredentialStatus, resolve_login_tenant, verify_credentials
from salon_backend.services.login_attempts import (
    check_login_lock,
    clear_login_attempts,
    lock_seconds_remaining,
    register_failed_login,
    unlock_account,
)
from tests.fixtures_data import ADMIN_ACCOUNT, OTHER_TENANT_ADMIN, STAFF_ACCOUNT

NOW = datetime(2026, 5, 1, 12, 0, 0)


def _staff(db, staff_id=ADMIN_ACCOUNT["id"]):
    db.expire_all()
    return db.query(Staff).filter(Staff.id == staff_id).one()


def test_counter_increments_and_locks_at_threshold(db):
    results = [register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW) for _ in range(5)]
    db.commit()

    assert [count for count, _ in results] == [1, 2, 3, 4, 5]
    assert [locked_until for _, locked_until in results[:4]] == [None] * 4
    assert results[4][1] == NOW + timedelta(minutes=15)

    locked, locked_until = check_login_lock(_staff(db), NOW + timedelta(minutes=14))
    assert locked is True
    assert locked_until == NOW + timedelta(minutes=15)
    assert check_login_lock(_staff(db), NOW + timedelta(minutes=15)) == (False, None)


def test_failures_while_locked_do_not_extend_the_lock(db):
    for _ in range(5):
        register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW)

    count, locked_until = register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW + timedelta(minutes=5))
    db.commit()

    assert count == 6
    assert locked_until is None
    assert _staff(db).locked_until == NOW + timedelta(minutes=15)


def test_expired_lock_restarts_the_count(db):
    for _ in range(5):
        register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW)

    count, locked_until = register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW + timedelta(minutes=16))
    db.commit()

    assert count == 1
    assert locked_until is None
    assert _staff(db).locked_until is None


def test_clear_and_unlock_reset_state(db):
    for _ in range(5):
        register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW)
    clear_login_attempts(db, ADMIN_ACCOUNT["id"], now=NOW)
    db.commit()

    staff = _staff(db)
    assert staff.failed_login_count == 0
    assert staff.locked_until is None
    assert staff.last_login_at == NOW

    assert unlock_account(db, 999) is False


def test_lock_seconds_remaining_rounds_up():
    locked_until = NOW + timedelta(seconds=90, milliseconds=200)

    assert lock_seconds_remaining(locked_until, NOW) == 91
    assert lock_seconds_remaining(NOW, NOW) == 1


def test_verify_credentials_statuses(db):
    ok = verify_credentials(db, 1, "admin@salon.com", "admin123", now=NOW)
    bad = verify_credentials(db, 1, "admin@salon.com", "nope", now=NOW)
    missing = verify_credentials(db, 1, "ghost@salon.com", "admin123", now=NOW)
    wrong_tenant = verify_credentials(db, 2, "admin@salon.com", "admin123", now=NOW)

    assert ok.authenticated and ok.staff.id == ADMIN_ACCOUNT["id"]
    assert bad.status is CredentialStatus.BAD_PASSWORD
    assert bad.failed_count == 1
    assert missing.status is CredentialStatus.NOT_FOUND
    assert wrong_tenant.status is CredentialStatus.NOT_FOUND


def test_successful_password_check_does_not_reset_counter(db):
    verify_credentials(db, 1, "admin@salon.com", "nope", now=NOW)
    db.commit()

    result = verify_credentials(db, 1, "admin@salon.com", "admin123", now=NOW)

    assert result.authenticated
    assert _staff(db).failed_login_count == 1


def test_locked_account_is_reported_before_password_check(db):
    for _ in range(5):
        register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW)
    db.commit()

    result = verify_credentials(db, 1, "admin@salon.com", "admin123", now=NOW + timedelta(minutes=1))

    assert result.status is CredentialStatus.LOCKED
    assert result.locked_until == NOW + timedelta(minutes=15)


def test_inactive_account_is_not_counted(db):
    db.query(Staff).filter(Staff.id == STAFF_ACCOUNT["id"]).update({Staff.is_active: False})
    db.commit()

    result = verify_credentials(db, 1, STAFF_ACCOUNT["email"], "nope", now=NOW)

    assert result.status is CredentialStatus.INACTIVE
    assert _staff(db, STAFF_ACCOUNT["id"]).failed_login_count == 0


def test_resolve_login_tenant(db):
    assert resolve_login_tenant(db, OTHER_TENANT_ADMIN["email"], None) == 2
    assert resolve_login_tenant(db, "ghost@salon.com", None) is None
    assert resolve_login_tenant(db, "ghost@salon.com", 5) == 5

    db.add(Staff(tenant_id=2, email="admin@salon.com", name="Twin", role="STAFF", password_hash="x"))
    db.commit()
    with pytest.raises(ValidationError):
        resolve_login_tenant(db, "admin@salon.com", None)


def test_clear_leaves_a_running_lock_alone(db):
    for _ in range(5):
        register_failed_login(db, ADMIN_ACCOUNT["id"], now=NOW)
    db.commit()

    cleared = clear_login_attempts(db, ADMIN_ACCOUNT["id"], now=NOW + timedelta(minutes=1))
    db.commit()

    staff = _staff(db)
    assert cleared is False
    assert staff.failed_login_count == 5
    assert staff.locked_until == NOW + timedelta(minutes=15)
    assert clear_login_attempts(db, ADMIN_ACCOUNT["id"], now=NOW + timedelta(minutes=15)) is True


def test_lock_set_during_password_check_refuses_the_login(client, session_factory, monkeypatch):
    real_verify = credentials.verify_password

    def verify_while_another_request_locks(password, stored):
        other = session_factory()
        try:
            for _ in range(5):
                register_failed_login(other, ADMIN_ACCOUNT["id"])
            other.commit()
        finally:
            other.close()
        return real_verify(password, stored)

    monkeypatch.setattr(credentials, "verify_password", verify_while_another_request_locks)

    response = client.post(
        "/auth/login", json={"email": ADMIN_ACCOUNT["email"], "password": ADMIN_ACCOUNT["password"]}
    )

    assert response.status_code == 401
    assert response.json()["retry_after"] > 0
    assert "token" not in response.json()

    check = session_factory()
    try:
        staff = check.query(Staff).filter(Staff.id == ADMIN_ACCOUNT["id"]).one()
        assert staff.failed_login_count == 5
        assert staff.locked_until is not None
    finally:
        check.close()
