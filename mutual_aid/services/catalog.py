"""Package catalog lookups consumed by the engine."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from mutual_aid.models.package import Package
from mutual_aid.utils.errors import NotFound, ValidationError


def get_package(db: Session, package_id: str | None) -> Package:
    """Return the catalog entry for ``package_id`` or raise a typed error."""

    if package_id is None or not str(package_id).strip():
        raise ValidationError("PACKAGE_ID_REQUIRED", "Package ID required.", fields=["package_id"])
    package = db.get(Package, str(package_id).strip())
    if package is None:
        raise NotFound("PACKAGE_NOT_FOUND", "Package not found.")
    return package


def list_packages(db: Session, *, active_only: bool = True) -> list[Package]:
    stmt = select(Package).order_by(Package.amount, Package.id)
    if active_only:
        stmt = stmt.where(Package.active.is_(True))
    return list(db.scalars(stmt).all())
