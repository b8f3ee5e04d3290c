# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from decimal import Decimal
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool
from stellar_sdk import Keypair, Network, TransactionEnvelope

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_PROVIDER"] = "mock"
os.environ["ENVIRONMENT"] = "development"
os.environ["MOCK_MIN_LATENCY_SECONDS"] = "0"
os.environ["MOCK_MAX_LATENCY_SECONDS"] = "0"

from stellar_gateway.api.v1.dependencies import (  # noqa: E402
    get_ai_service_dep,
    get_ledger_client_dep,
)
from stellar_gateway.db.session import Base, Store  # noqa: E402
from stellar_gateway.db.session import get_db as app_get_session  # noqa: E402
from stellar_gateway.main import app as fastapi_app  # noqa: E402
from stellar_gateway.models import User  # noqa: E402
from stellar_gateway.services.ai import AIService, MockProvider  # noqa: E402
from stellar_gateway.services.ledger import LedgerClient, LedgerConfig  # noqa: E402
from stellar_gateway.services.user_service import get_or_create_user  # noqa: E402

TEST_DB_URL = "sqlite://"
HORIZON_URL = "https://horizon.test"


class FailingProvider:
    """Provider that always raises, standing in for an unreachable model."""

    timeout_seconds: float | None = None

    def __init__(self, name: str = "broken", error: Exception | None = None) -> None:
        self.name = name
        self.error = error or RuntimeError("provider exploded")
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        raise self.error

    async def probe(self, timeout_seconds: float) -> str | None:
        raise self.error

    async def close(self) -> None:
        return None


class StaticProvider:
    """Provider returning a fixed answer."""

    timeout_seconds: float | None = None

    def __init__(self, text: str = "Hello from the model", name: str = "static") -> None:
        self.text = text
        self.name = name
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text

    async def probe(self, timeout_seconds: float) -> str | None:
        return f"{self.name} ready"

    async def close(self) -> None:
        return None


class FakeHorizon:
    """In-memory stand-in for the Horizon REST API."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}
        self.submissions: list[TransactionEnvelope] = []
        self.reject_with: dict[str, Any] | None = None
        self.submit_response: httpx.Response | None = None
        self.fail_network = False

    def fund(self, account_id: str, balance: str = "100.0000000", sequence: int = 1000) -> None:
        self.accounts[account_id] = {
            "account_id": account_id,
            "sequence": str(sequence),
            "subentry_count": 0,
            "thresholds": {"low_threshold": 0, "med_threshold": 0, "high_threshold": 0},
            "balances": [{"asset_type": "native", "balance": balance}],
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail_network:
            raise httpx.ConnectError("horizon unreachable", request=request)

        path = request.url.path
        if request.method == "GET" and path.startswith("/accounts/"):
            account = self.accounts.get(path.rsplit("/", 1)[-1])
            if account is None:
                return httpx.Response(404, json={"status": 404, "title": "Resource Missing"})
            return httpx.Response(200, json=account)

        if request.method == "POST" and path == "/transactions":
            if self.submit_response is not None:
                return self.submit_response
            if self.reject_with is not None:
                return httpx.Response(
                    400,
                    json={"title": "Transaction Failed", "extras": {"result_codes": self.reject_with}},
                )
            tx = parse_qs(request.content.decode())["tx"][0]
            envelope = TransactionEnvelope.from_xdr(tx, Network.TESTNET_NETWORK_PASSPHRASE)
            self.submissions.append(envelope)
            return httpx.Response(200, json={"hash": envelope.hash_hex(), "ledger": 4242})

        if request.method == "GET" and path == "/ledgers":
            return httpx.Response(
                200,
                json={
                    "_embedded": {
                        "records": [
                            {
                                "sequence": 4242,
                                "hash": "ab" * 32,
                                "closed_at": "2026-10-19T10:00:00Z",
                            }
                        ]
                    }
                },
            )

        return httpx.Response(500, json={"title": "unexpected"})


def make_ledger_config(**overrides: Any) -> LedgerConfig:
    values: dict[str, Any] = {
        "network": "testnet",
        "horizon_url": HORIZON_URL,
        "network_passphrase": Network.TESTNET_NETWORK_PASSPHRASE,
        "timeout_seconds": 5.0,
        "base_fee": 100,
        "tx_timeout_seconds": 180,
        "min_tx_balance": Decimal("0.0001"),
        "settlement_destination": None,
    }
    values.update(overrides)
    return LedgerConfig(**values)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="session")
def store(engine: Engine) -> Generator[Store, None, None]:
    store = Store(TEST_DB_URL, engine=engine)
    store.create_tables()
    try:
        yield store
    finally:
        store.drop_tables()


@pytest.fixture()
def db_session(store: Store, engine: Engine) -> Iterator[Session]:
    session = store.new_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def horizon() -> FakeHorizon:
    return FakeHorizon()


@pytest.fixture()
def ledger_client(horizon: FakeHorizon) -> LedgerClient:
    return LedgerClient(make_ledger_config(), transport=httpx.MockTransport(horizon.handler))


@pytest.fixture()
def ai_service() -> AIService:
    return AIService([MockProvider(min_latency_seconds=0, max_latency_seconds=0)])


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    ledger_client: LedgerClient,
    ai_service: AIService,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_ledger_client_dep] = lambda: ledger_client
    app.dependency_overrides[get_ai_service_dep] = lambda: ai_service
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def keypair() -> Keypair:
    return Keypair.random()


@pytest.fixture()
def wallet(keypair: Keypair) -> str:
    return keypair.public_key


@pytest.fixture()
def other_wallet() -> str:
    return Keypair.random().public_key


@pytest.fixture()
def test_user(db_session: Session, wallet: str) -> User:
    """Create a user holding the default 5 XLM seed balance."""
    user, _ = get_or_create_user(db_session, wallet, initial_balance=Decimal("5.0"))
    return user


@pytest.fixture()
def other_user(db_session: Session, other_wallet: str) -> User:
    user, _ = get_or_create_user(db_session, other_wallet, initial_balance=Decimal("5.0"))
    return user
