from __future__ import annotations

from datetime import datetime, timedelta

from salon_backend.models.customer import Customer
from salon_backend.models.staff import Staff
from tests.fixtures_data import ADMIN_ACCOUNT, MANAGER_ACCOUNT, OTHER_TENANT_ADMIN, STAFF_ACCOUNT


def test_staff_member_sees_only_own_tenant_customers(client, auth_headers):
    response = client.get("/api/customers", headers=auth_headers(STAFF_ACCOUNT))

    assert response.status_code == 200
    assert [entry["id"] for entry in response.json()] == [1, 2]
    assert {entry["tenant_id"] for entry in response.json()} == {1}


def test_other_tenant_sees_its_own_customers(client, auth_headers):
    response = client.get("/api/customers", headers=auth_headers(OTHER_TENANT_ADMIN))

    assert [entry["id"] for entry in response.json()] == [3]


def test_customer_of_another_tenant_is_not_found(client, auth_headers):
    response = client.get("/api/customers/3", headers=auth_headers(STAFF_ACCOUNT))

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_customer_search_matches_name_or_phone(client, auth_headers):
    by_name = client.get("/api/customers", params={"q": "hana"}, headers=auth_headers(STAFF_ACCOUNT))
    by_phone = client.get("/api/customers", params={"q": "1111"}, headers=auth_headers(STAFF_ACCOUNT))

    assert [entry["name"] for entry in by_name.json()] == ["Hana Sato"]
    assert [entry["name"] for entry in by_phone.json()] == ["Yuki Tanaka"]


def test_created_customer_belongs_to_caller_tenant(client, db, auth_headers):
    response = client.post(
        "/api/customers",
        json={"name": "Mio Kato", "phone": "070-0000-0000", "email": "Mio@Example.com"},
        headers=auth_headers(OTHER_TENANT_ADMIN),
    )

    assert response.status_code == 201
    created = db.query(Customer).filter(Customer.id == response.json()["id"]).one()
    assert created.tenant_id == OTHER_TENANT_ADMIN["tenant_id"]
    assert created.email == "mio@example.com"


def test_reservation_requires_customer_in_same_tenant(client, auth_headers):
    payload = {"customer_id": 3, "starts_at": "2026-03-01T10:00:00"}

    response = client.post("/api/reservations", json=payload, headers=auth_headers(STAFF_ACCOUNT))

    assert response.status_code == 404


def test_reservation_is_created_and_listed_by_day(client, auth_headers):
    headers = auth_headers(MANAGER_ACCOUNT)
    start = datetime(2026, 3, 1, 10, 0)
    created = client.post(
        "/api/reservations",
        json={
            "customer_id": 1,
            "staff_id": STAFF_ACCOUNT["id"],
            "starts_at": start.isoformat(),
            "ends_at": (start + timedelta(hours=1)).isoformat(),
            "menu": "Cut + Color",
        },
        headers=headers,
    )
    client.post(
        "/api/reservations",
        json={"customer_id": 2, "starts_at": (start + timedelta(days=1)).isoformat()},
        headers=headers,
    )

    assert created.status_code == 201
    assert created.json()["status"] == "CONFIRMED"

    same_day = client.get("/api/reservations", params={"date": "2026-03-01"}, headers=headers)
    everything = client.get("/api/reservations", headers=headers)
    other_tenant = client.get("/api/reservations", headers=auth_headers(OTHER_TENANT_ADMIN))

    assert [entry["customer_id"] for entry in same_day.json()] == [1]
    assert len(everything.json()) == 2
    assert other_tenant.json() == []


def test_reservation_must_end_after_it_starts(client, auth_headers):
    response = client.post(
        "/api/reservations",
        json={"customer_id": 1, "starts_at": "2026-03-01T10:00:00", "ends_at": "2026-03-01T09:00:00"},
        headers=auth_headers(STAFF_ACCOUNT),
    )

    assert response.status_code == 400


# --- staff administration -------------------------------------------------------


def test_staff_role_cannot_manage_staff(client, auth_headers):
    for headers in (auth_headers(STAFF_ACCOUNT), auth_headers(MANAGER_ACCOUNT)):
        response = client.get("/api/staff", headers=headers)
        assert response.status_code == 403
        assert response.json()["success"] is False


def test_admin_lists_only_own_tenant_staff(client, auth_headers):
    response = client.get("/api/staff", headers=auth_headers(ADMIN_ACCOUNT))

    assert response.status_code == 200
    assert {entry["tenant_id"] for entry in response.json()} == {1}
    assert {entry["email"] for entry in response.json()} == {
        ADMIN_ACCOUNT["email"],
        STAFF_ACCOUNT["email"],
        MANAGER_ACCOUNT["email"],
    }


def test_admin_creates_staff_who_can_then_login(client, auth_headers):
    created = client.post(
        "/api/staff",
        json={"email": "New.Stylist@Salon.com", "name": "New Stylist", "role": "staff", "password": "secret123"},
        headers=auth_headers(ADMIN_ACCOUNT),
    )

    assert created.status_code == 201
    assert created.json()["email"] == "new.stylist@salon.com"
    assert created.json()["role"] == "STAFF"

    login = client.post("/auth/login", json={"email": "new.stylist@salon.com", "password": "secret123"})
    assert login.status_code == 200


def test_create_staff_rejects_weak_password_duplicate_and_bad_role(client, auth_headers):
    headers = auth_headers(ADMIN_ACCOUNT)

    weak = client.post(
        "/api/staff", json={"email": "a@salon.com", "name": "A", "password": "short"}, headers=headers
    )
    duplicate = client.post(
        "/api/staff",
        json={"email": STAFF_ACCOUNT["email"], "name": "Dup", "password": "secret123"},
        headers=headers,
    )
    bad_role = client.post(
        "/api/staff",
        json={"email": "b@salon.com", "name": "B", "role": "OWNER", "password": "secret123"},
        headers=headers,
    )

    assert weak.status_code == 400
    assert all(item["field"] == "password" for item in weak.json()["details"])
    assert duplicate.status_code == 400
    assert bad_role.status_code == 400


def test_admin_updates_role_and_deactivates(client, auth_headers):
    response = client.patch(
        f"/api/staff/{STAFF_ACCOUNT['id']}",
        json={"role": "MANAGER", "is_active": False},
        headers=auth_headers(ADMIN_ACCOUNT),
    )

    assert response.status_code == 200
    assert response.json()["role"] == "MANAGER"
    assert response.json()["is_active"] is False


def test_admin_cannot_demote_self(client, auth_headers):
    response = client.patch(
        f"/api/staff/{ADMIN_ACCOUNT['id']}", json={"role": "STAFF"}, headers=auth_headers(ADMIN_ACCOUNT)
    )

    assert response.status_code == 400


def test_staff_of_another_tenant_is_not_found(client, auth_headers):
    response = client.patch(
        f"/api/staff/{OTHER_TENANT_ADMIN['id']}", json={"name": "Hijack"}, headers=auth_headers(ADMIN_ACCOUNT)
    )

    assert response.status_code == 404


def test_admin_unlocks_locked_account(client, db, auth_headers):
    db.query(Staff).filter(Staff.id == STAFF_ACCOUNT["id"]).update(
        {Staff.failed_login_count: 5, Staff.locked_until: datetime.utcnow() + timedelta(minutes=10)}
    )
    db.commit()

    locked = client.get("/api/staff", headers=auth_headers(ADMIN_ACCOUNT)).json()
    assert next(entry for entry in locked if entry["id"] == STAFF_ACCOUNT["id"])["locked"] is True

    response = client.post(f"/api/staff/{STAFF_ACCOUNT['id']}/unlock", headers=auth_headers(ADMIN_ACCOUNT))
    assert response.status_code == 200

    login = client.post("/auth/login", json={"email": STAFF_ACCOUNT["email"], "password": STAFF_ACCOUNT["password"]})
    assert login.status_code == 200
