#!/usr/bin/env python3
"""
Seed the first healthcare manager account.

Self-registration only creates patients, so a fresh database needs one
manager to create the others:

    SEED_MANAGER_PASSWORD='...' python -m smartcare.seed_manager
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

from fastapi import HTTPException  # noqa: E402

from smartcare.database import create_db_and_tables, session_scope  # noqa: E402
from smartcare.routers.users import create_user_account, find_user_by_email  # noqa: E402
from smartcare.schemas import parse_user_create  # noqa: E402


def seed_manager(session, email: str, password: str, user_name: str = "manager", phone: str = "+94110000000"):
    """Create the manager unless the email is taken. Returns (user, created)."""
    existing = find_user_by_email(session, email)
    if existing:
        return existing, False

    user = create_user_account(session, parse_user_create({
        "role": "healthcare_manager",
        "userName": user_name,
        "email": email,
        "password": password,
        "phone": phone,
    }))
    return user, True


def main() -> int:
    email = os.getenv("SEED_MANAGER_EMAIL", "manager@smartcare.local")
    password = os.getenv("SEED_MANAGER_PASSWORD")
    if not password:
        print("SEED_MANAGER_PASSWORD must be set")
        return 1

    create_db_and_tables()
    with session_scope() as session:
        try:
            user, created = seed_manager(
                session,
                email,
                password,
                user_name=os.getenv("SEED_MANAGER_USERNAME", "manager"),
            )
        except HTTPException as e:
            print(f"Could not create manager: {e.detail}")
            return 1

    if created:
        print(f"Manager account created: {email}")
    else:
        print(f"Manager account already exists: {email}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
