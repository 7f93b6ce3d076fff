#!/usr/bin/env python3
"""Create an admin account, or promote an existing one.

Usage:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='SecurePass123!' python scripts/bootstrap_admin.py
    python scripts/bootstrap_admin.py --email admin@example.com --password 'SecurePass123!' --role super_admin
"""
import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def bootstrap_admin(email: str, password: str, role: str = "admin", dry_run: bool = False) -> dict:
    # Imported late so that --help works without a configured environment
    from apps.api.app.core.errors import AppError
    from apps.api.app.db.session import Base, SessionLocal, engine
    from apps.api.app.services.credentials import (
        create_user,
        get_user_by_email,
        reactivate_user,
        set_role,
    )
    import apps.api.app.models.user  # noqa: F401

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing = get_user_by_email(db, email)
        if existing:
            blocked = (
                not existing.is_active
                or existing.locked_until is not None
                or bool(existing.failed_login_attempts)
            )
            if existing.role == role and not blocked:
                return {"user_id": existing.id, "email": existing.email, "status": "unchanged"}
            if dry_run:
                return {"user_id": existing.id, "email": existing.email, "status": "dry_run"}
            status = "reactivated" if existing.role == role else "promoted"
            set_role(db, existing, role)
            reactivate_user(db, existing)
            db.commit()
            return {"user_id": existing.id, "email": existing.email, "status": status}

        if dry_run:
            return {"user_id": None, "email": email, "status": "dry_run"}
        try:
            user = create_user(db, email, password, role=role)
        except AppError as exc:
            db.rollback()
            return {"user_id": None, "email": email, "status": "error", "error": exc.message, "details": exc.details}
        db.commit()
        return {"user_id": user.id, "email": user.email, "status": "created"}
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--email", default=os.getenv("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASSWORD"))
    parser.add_argument("--role", default="admin", choices=("admin", "super_admin"))
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    if not args.email or not args.password:
        parser.error("--email and --password (or ADMIN_EMAIL/ADMIN_PASSWORD) are required")

    result = bootstrap_admin(args.email, args.password, role=args.role, dry_run=args.dry_run)
    print(f"{result['status']}: {result['email']} (id: {result['user_id']})")
    if result["status"] == "error":
        print(f"  {result['error']}", file=sys.stderr)
        for detail in result.get("details") or []:
            print(f"  - {detail.get('message')}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
