"""Schema package exports."""
from .bans import BanCreate, BanRead
from .help import (
    CounterpartyRead,
    DeadlineRead,
    HelpActivityRead,
    HelpRegister,
    PackageSummary,
    PayoutStateRead,
    PayoutStateResponse,
)
from .matching import (
    ActiveMatchRead,
    AutoMatchRead,
    AutoMatchSkip,
    ManualMatchCreate,
    ManualMatchRead,
    MatchCreate,
    PaymentMatchRead,
)
from .user import UserCreate, UserDeleteRead, UserRead
from .user_package import ApproveIn, ExtendIn, SubscribeIn, UserPackageRead

__all__ = [
    "ActiveMatchRead",
    "ApproveIn",
    "AutoMatchRead",
    "AutoMatchSkip",
    "BanCreate",
    "BanRead",
    "CounterpartyRead",
    "DeadlineRead",
    "ExtendIn",
    "HelpActivityRead",
    "HelpRegister",
    "ManualMatchCreate",
    "ManualMatchRead",
    "MatchCreate",
    "PackageSummary",
    "PaymentMatchRead",
    "PayoutStateRead",
    "PayoutStateResponse",
    "SubscribeIn",
    "UserCreate",
    "UserDeleteRead",
    "UserPackageRead",
    "UserRead",
]
