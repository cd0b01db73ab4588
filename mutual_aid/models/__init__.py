"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .banned_account import BannedAccount
from .base import AwareDateTime, Base
from .help_activity import (
    LIVE_ACTIVITY_STATUSES,
    HelpActivity,
    HelpActivityStatus,
    HelpRole,
    Offer,
    Paired,
    Request,
)
from .live_party import LiveParty
from .manual_match import ManualMatch
from .package import Package
from .payment_match import AUTO_MATCHER, LIVE_MATCH_STATUSES, MatchStatus, PaymentMatch
from .user import User, UserRole
from .user_package import UserPackage, UserPackageStatus

__all__ = [
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "AUTO_MATCHER",
    "AwareDateTime",
    "BannedAccount",
    "Base",
    "HelpActivity",
    "HelpActivityStatus",
    "HelpRole",
    "LIVE_ACTIVITY_STATUSES",
    "LIVE_MATCH_STATUSES",
    "LiveParty",
    "ManualMatch",
    "MatchStatus",
    "Offer",
    "Package",
    "Paired",
    "PaymentMatch",
    "Request",
    "User",
    "UserPackage",
    "UserPackageStatus",
    "UserRole",
]
