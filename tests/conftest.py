"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import json
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of tokengate.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, update  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tokengate.config import TokengateConfig  # noqa: E402
from tokengate.database.engine import enable_sqlite_savepoints  # noqa: E402
from tokengate.database.models import Account, Base  # noqa: E402
from tokengate.database.seed import (  # noqa: E402
    seed_default_achievements,
    seed_default_settings,
)
from tokengate.services import account_service, community_service  # noqa: E402
from tokengate.services.token_contract import TokenGateway  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every table and the default settings.

    StaticPool keeps one shared connection so TestClient worker threads
    see the same database.  Default achievements are *not* seeded here;
    use ``seeded_achievements`` when a test wants them.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    return engine


@pytest.fixture
def seeded_achievements(db_engine: Engine) -> Engine:
    seed_default_achievements(db_engine)
    return db_engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def config() -> TokengateConfig:
    return TokengateConfig(platform_name="Tokengate Test")


def make_account(engine: Engine, address: str, balance: int = 0, handle: str | None = None) -> str:
    """Create (or fetch) an account with a given global balance.  Returns its address."""
    with Session(engine) as session:
        account, _ = account_service.get_or_create_account(session, address, handle)
        if balance:
            session.execute(
                update(Account)
                .where(Account.id == account.id)
                .values(token_balance=balance)
            )
        session.commit()
        return account.address


def make_community(
    engine: Engine,
    creator: str,
    name: str = "Builders",
    *,
    members: tuple[str, ...] = (),
    initial_member_balance: int = 1000,
    required_token_amount: int = 0,
) -> int:
    """Create an off-chain community, enroll *members*.  Returns its id."""
    data = community_service.create_community(
        engine, TokengateConfig(platform_name="Tokengate Test"), None,
        creator_address=creator,
        name=name,
        token_name=f"{name} Token",
        token_symbol=name[:3].upper(),
        initial_member_balance=initial_member_balance,
        required_token_amount=required_token_amount,
    )
    with Session(engine) as session:
        for address in members:
            community_service.join_community(session, address, data["id"])
        session.commit()
    return data["id"]


def make_gateway(handler, *, sender: str = "0x7e45") -> TokenGateway:
    """A TokenGateway whose JSON-RPC node is the *handler* function."""
    return TokenGateway(
        "http://rpc.test", sender=sender, transport=httpx.MockTransport(handler),
    )


def rpc_result(result):
    """Handler answering every JSON-RPC request with *result*."""
    def handler(request: httpx.Request) -> httpx.Response:
        req = json.loads(request.read())
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": req["id"], "result": result})
    return handler


def rpc_error(message: str = "execution reverted"):
    def handler(request: httpx.Request) -> httpx.Response:
        req = json.loads(request.read())
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": req["id"], "error": {"code": -32000, "message": message}},
        )
    return handler


def rpc_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("node did not answer", request=request)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from tokengate.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(db_engine: Engine, config: TokengateConfig):
    """TestClient wired to the in-memory database, no chain, no profiles."""
    from fastapi.testclient import TestClient

    from tokengate.api import deps
    from tokengate.api.main import app

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: config
    app.dependency_overrides[deps.get_token_gateway] = lambda: None
    app.dependency_overrides[deps.get_profile_directory] = lambda: None
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
