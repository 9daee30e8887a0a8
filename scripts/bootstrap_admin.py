#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from salon_backend.core.config import IS_DEV, IS_PROD  # noqa: E402
from salon_backend.core.database import SessionLocal, engine  # noqa: E402
from salon_backend.services.staff_bootstrap import ensure_staff_table, upsert_staff_account  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or update a salon staff account.")
    parser.add_argument("--tenant", type=int, required=True, help="Tenant ID")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", help="Password (required for new accounts)")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument("--role", default="ADMIN", help="ADMIN, MANAGER or STAFF")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Allow running against a production environment",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if IS_PROD and not args.force:
        print("Refusing to run in production without --force.")
        return 1

    try:
        ensure_staff_table(engine)
    except RuntimeError as exc:
        print(str(exc))
        return 1

    db = SessionLocal()
    try:
        staff, created = upsert_staff_account(
            db,
            tenant_id=args.tenant,
            email=args.email,
            name=args.name,
            role=args.role,
            password=args.password,
        )
    except ValueError as exc:
        print(str(exc))
        return 1
    finally:
        db.close()

    action = "created" if created else "updated"
    print(f"Staff {action}: tenant={staff.tenant_id} email={staff.email} role={staff.role}")
    if IS_DEV and args.password:
        print(f"DEV summary -> Tenant: {staff.tenant_id} | Email: {staff.email} | Password: {args.password}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
