"""Seed the default package catalog and two demo members."""
from __future__ import annotations

from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import select  # noqa: E402

from mutual_aid import models  # noqa: E402
from mutual_aid.config import get_settings  # noqa: E402
from mutual_aid.db import create_all, get_sessionmaker  # noqa: E402

DEFAULT_PACKAGES = [
    ("pkg-1", "Basic", Decimal("25"), 30, 3, "Entry level help package"),
    ("pkg-2", "Bronze", Decimal("100"), 30, 5, "Bronze help package"),
    ("pkg-3", "Silver", Decimal("250"), 50, 15, "Silver help package"),
    ("pkg-4", "Gold", Decimal("500"), 50, 15, "Gold help package"),
]


def seed_packages(session) -> int:
    """Insert missing catalog rows; existing packages are left untouched."""

    existing = set(session.scalars(select(models.Package.id)).all())
    created = 0
    for package_id, name, amount, return_pct, duration, description in DEFAULT_PACKAGES:
        if package_id in existing:
            continue
        session.add(
            models.Package(
                id=package_id,
                name=name,
                amount=amount,
                return_percentage=return_pct,
                duration_days=duration,
                description=description,
                active=True,
            )
        )
        created += 1
    return created


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    create_all()
    session = get_sessionmaker()()

    try:
        created = seed_packages(session)
        if session.scalars(select(models.User).where(models.User.username == "alice")).first() is None:
            session.add_all(
                [
                    models.User(username="alice", email="alice@example.com", full_name="Alice Giver"),
                    models.User(username="bob", email="bob@example.com", full_name="Bob Receiver"),
                ]
            )
        session.commit()
        print(f"Seed data inserted ({created} packages).")
    finally:
        session.close()


if __name__ == "__main__":
    main()
