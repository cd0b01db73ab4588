"""API key generation and validation helpers."""
from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from mutual_aid.config import get_settings
from mutual_aid.models.api_key import ApiKey
from mutual_aid.utils.time import ensure_utc, utcnow

LEGACY = "legacy"


def hash_key(raw: str) -> str:
    """Return an HMAC-SHA256 hash for the provided API key."""

    return hmac.new(get_settings().SECRET_KEY.encode(), raw.encode(), hashlib.sha256).hexdigest()


def gen_key(prefix_len: int = 6) -> tuple[str, str, str]:
    """Generate a user-facing API key, its prefix, and the stored hash."""

    prefix = "aid_" + secrets.token_hex(prefix_len)[:prefix_len]
    suffix = secrets.token_urlsafe(32)
    raw = f"{prefix}.{suffix}"
    return raw, prefix, hash_key(raw)


def find_valid_key(db: Session, raw_or_dev: str) -> Optional[ApiKey | str]:
    """Return a matching active, unexpired API key or the legacy token identifier."""

    dev_key = get_settings().DEV_API_KEY
    if dev_key and secrets.compare_digest(raw_or_dev, dev_key):
        return LEGACY

    key = db.scalars(
        select(ApiKey).where(ApiKey.key_hash == hash_key(raw_or_dev), ApiKey.is_active.is_(True))
    ).first()
    if key and (not key.expires_at or ensure_utc(key.expires_at) > utcnow()):
        return key
    return None


__all__ = ["LEGACY", "find_valid_key", "gen_key", "hash_key"]
