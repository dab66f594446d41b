# src/secret_santa/scripts/dev_token.py
"""
Issue a bearer token for local development.

Users normally arrive through the external login flow. This script creates
(or reuses) a user by name and prints a token for calling the API by hand.
"""
from __future__ import annotations

import argparse

from sqlalchemy import select

from secret_santa.core.security import create_access_token
from secret_santa.db.session import SessionLocal
from secret_santa.models import User


def issue_token(name: str) -> tuple[User, str]:
    db = SessionLocal()
    try:
        user = db.execute(select(User).where(User.name == name)).scalars().first()
        if user is None:
            user = User(name=name)
            db.add(user)
            db.commit()
            db.refresh(user)
        return user, create_access_token(user.id)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Print a development bearer token")
    parser.add_argument("name", help="Display name of the user to act as")
    args = parser.parse_args()

    user, token = issue_token(args.name)
    print(f"user_id={user.id}")
    print(f"Authorization: Bearer {token}")


if __name__ == "__main__":
    main()
