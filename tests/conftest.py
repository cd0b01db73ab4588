"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# --- Default environment, set before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("API_KEY", "test-secret-key")
os.environ.setdefault("AID_ENV", "test")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from mutual_aid import db as db_module  # noqa: E402
from mutual_aid.db import get_db  # noqa: E402
from mutual_aid.main import app  # noqa: E402
from mutual_aid.models import (  # noqa: E402
    ApiKey,
    ApiScope,
    Base,
    HelpActivity,
    Package,
    User,
    UserRole,
)
from mutual_aid.services import registry  # noqa: E402
from mutual_aid.utils.apikey import hash_key  # noqa: E402


@pytest.fixture
def engine(monkeypatch):
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=test_engine)
    monkeypatch.setattr(db_module, "engine", test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db_session(engine) -> Iterator[Session]:
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# --- Factories


@pytest.fixture
def make_package(db_session: Session) -> Callable[..., Package]:
    def _factory(
        package_id: str = "pkg-2",
        *,
        name: str = "Bronze",
        amount: str = "100",
        return_percentage: int = 30,
        duration_days: int = 5,
        active: bool = True,
    ) -> Package:
        package = db_session.get(Package, package_id)
        if package is not None:
            return package
        package = Package(
            id=package_id,
            name=name,
            amount=Decimal(amount),
            return_percentage=return_percentage,
            duration_days=duration_days,
            active=active,
        )
        db_session.add(package)
        db_session.commit()
        return package

    return _factory


@pytest.fixture
def package(make_package) -> Package:
    return make_package()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(
        name: str = "member",
        *,
        role: UserRole = UserRole.MEMBER,
        phone_number: str | None = "+237600000001",
    ) -> User:
        suffix = uuid4().hex[:8]
        user = User(
            username=f"{name}-{suffix}",
            email=f"{name}-{suffix}@example.com",
            full_name=name.title(),
            phone_number=phone_number,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., ApiKey]:
    def _factory(
        name: str,
        key: str,
        scope: ApiScope = ApiScope.member,
        user_id: int | None = None,
        is_active: bool = True,
    ) -> ApiKey:
        api_key = ApiKey(
            name=name,
            prefix="test_" + scope.value,
            key_hash=hash_key(key),
            scope=scope,
            user_id=user_id,
            is_active=is_active,
        )
        db_session.add(api_key)
        db_session.commit()
        return api_key

    return _factory


@pytest.fixture
def member_headers_for(make_api_key: Callable[..., ApiKey]) -> Callable[[User], dict[str, str]]:
    def _factory(user: User) -> dict[str, str]:
        token = f"member-{uuid4().hex}"
        make_api_key(name=f"member-{uuid4().hex}", key=token, scope=ApiScope.member, user_id=user.id)
        return {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def admin_headers(make_api_key: Callable[..., ApiKey]) -> dict[str, str]:
    token = f"admin-{uuid4().hex}"
    make_api_key(name=f"admin-{uuid4().hex}", key=token, scope=ApiScope.admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_giver(db_session: Session, make_user, package) -> Callable[..., tuple[User, HelpActivity]]:
    """A member holding a pending offer."""

    def _factory(name: str = "giver") -> tuple[User, HelpActivity]:
        user = make_user(name)
        offer = registry.register_offer(db_session, user.id, package.id)
        return user, offer

    return _factory


@pytest.fixture
def make_receiver(db_session: Session, make_user, package) -> Callable[..., tuple[User, HelpActivity]]:
    """A member who offered help first and now holds a pending request."""

    def _factory(name: str = "receiver") -> tuple[User, HelpActivity]:
        user = make_user(name)
        registry.register_offer(db_session, user.id, package.id)
        request = registry.register_request(db_session, user.id, package.id)
        return user, request

    return _factory
