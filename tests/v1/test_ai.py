"""API tests for paid AI completions."""

from decimal import Decimal

import pytest

from stellar_gateway.api.v1.dependencies import get_ai_service_dep
from stellar_gateway.services.ai import AIService
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.user_service import get_or_create_user
from tests.conftest import FailingProvider, StaticProvider


def test_completion_debits_short_tier(client, db_session, test_user, wallet) -> None:
    prompt = "Explain Stellar payments in one sentence, please!!"
    assert len(prompt) == 50

    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": prompt},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["tier"] == "short"
    assert body["tokens"] == 13
    assert body["cost"] == pytest.approx(0.02)
    assert body["balanceAfter"] == pytest.approx(4.98)
    assert body["paymentMode"] == "simulated"
    assert body["txHash"].startswith("demo_")
    assert len(body["promptHash"]) == 16
    assert body["usageLogId"] is not None
    assert "timestamp" in body
    assert CreditsService(db_session).get_balance(wallet) == Decimal("4.98")


def test_completion_with_insufficient_balance(client, db_session, wallet) -> None:
    get_or_create_user(db_session, wallet, initial_balance=Decimal("0.03"))

    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": "y" * 1500},
    )

    assert response.status_code == 402
    body = response.json()
    assert body["code"] == "INSUFFICIENT_BALANCE"
    assert body["required"] == pytest.approx(0.05)
    assert body["current"] == pytest.approx(0.03)
    assert body["deficit"] == pytest.approx(0.02)
    assert CreditsService(db_session).get_balance(wallet) == Decimal("0.03")


def test_completion_refunds_when_ai_is_down(app, client, db_session, test_user, wallet) -> None:
    app.dependency_overrides[get_ai_service_dep] = lambda: AIService(
        [FailingProvider("ollama"), FailingProvider("mock")]
    )

    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": "hello"},
    )

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "AI_SERVICE_UNAVAILABLE"
    assert "ollama" in body["details"]
    assert CreditsService(db_session).get_balance(wallet) == Decimal("5.0")


def test_completion_settles_on_ledger_with_secret_key(
    client, horizon, keypair, wallet, test_user
) -> None:
    horizon.fund(keypair.public_key, balance="20.0000000")

    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": "hello", "secretKey": keypair.secret},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["paymentMode"] == "ledger"
    assert body["txHash"] == horizon.submissions[0].hash_hex()
    assert body["balanceAfter"] == pytest.approx(19.98)
    assert keypair.secret not in response.text


@pytest.mark.parametrize(
    ("payload", "code"),
    [
        ({"prompt": "hello"}, "MISSING_REQUIRED_FIELDS"),
        ({"walletAddress": "GWRONG", "prompt": "hello"}, "INVALID_STELLAR_ADDRESS"),
        ({"walletAddress": None, "prompt": 42}, "MISSING_REQUIRED_FIELDS"),
    ],
)
def test_completion_validation(client, payload, code) -> None:
    response = client.post("/api/ai/completions", json=payload)

    assert response.status_code == 400
    assert response.json()["code"] == code


def test_whitespace_prompt_is_invalid(client, wallet) -> None:
    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": "   "},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PROMPT"


def test_overlong_prompt_is_rejected(client, wallet) -> None:
    response = client.post(
        "/api/ai/completions",
        json={"walletAddress": wallet, "prompt": "z" * 10_001},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "PROMPT_TOO_LONG"


def test_status_reports_mock_fallback(client) -> None:
    response = client.get("/api/ai/status")

    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["provider"] == "mock"
    assert body["config"]["chain"] == ["mock"]


def test_unpaid_round_trip(app, client) -> None:
    provider = StaticProvider("ok")
    app.dependency_overrides[get_ai_service_dep] = lambda: AIService([provider])

    response = client.post("/api/ai/test")

    assert response.status_code == 200
    assert response.json()["response"] == "ok"
    assert provider.prompts == ["Reply with: ok"]
