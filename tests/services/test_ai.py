"""Tests for the AI provider chain."""

import asyncio
import json
import random

import httpx
import pytest

from stellar_gateway.core.errors import AIServiceUnavailableError
from stellar_gateway.services.ai import (
    MOCK_TEMPLATES,
    AIService,
    MockProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    ProviderError,
    build_providers,
)
from tests.conftest import FailingProvider, StaticProvider


def _instant_mock() -> MockProvider:
    return MockProvider(min_latency_seconds=0, max_latency_seconds=0)


@pytest.mark.asyncio
async def test_first_working_provider_answers() -> None:
    first = StaticProvider("first", name="first")
    second = StaticProvider("second", name="second")
    service = AIService([first, second, _instant_mock()])

    result = await service.generate("hi")

    assert result.text == "first"
    assert result.provider == "first"
    assert first.prompts == ["hi"]
    assert second.prompts == []


@pytest.mark.asyncio
async def test_failures_fall_through_to_mock() -> None:
    broken = FailingProvider("ollama", httpx.ConnectError("refused"))
    service = AIService([broken, _instant_mock()])

    result = await service.generate("What is Stellar?")

    assert broken.calls == 1
    assert result.provider == "mock"
    assert "What is Stellar?" in result.text


@pytest.mark.asyncio
async def test_slow_provider_times_out_and_falls_through() -> None:
    class SlowProvider(StaticProvider):
        timeout_seconds = 0.01

        async def generate(self, prompt: str) -> str:
            await asyncio.sleep(1)
            return "too late"

    service = AIService([SlowProvider(name="slow"), StaticProvider("fast", name="fast")])

    result = await service.generate("hi")

    assert result.provider == "fast"


@pytest.mark.asyncio
async def test_all_providers_failing_is_unavailable() -> None:
    service = AIService([FailingProvider("a"), FailingProvider("b")])

    with pytest.raises(AIServiceUnavailableError) as exc_info:
        await service.generate("hi")

    assert "a: provider exploded" in exc_info.value.detail
    assert "b: provider exploded" in exc_info.value.detail


@pytest.mark.asyncio
async def test_mock_excerpt_is_truncated() -> None:
    provider = MockProvider(min_latency_seconds=0, max_latency_seconds=0, rng=random.Random(1))
    prompt = "x" * 80

    text = await provider.generate(prompt)

    assert any(text.startswith(template.split("{excerpt}")[0]) for template in MOCK_TEMPLATES)
    assert "..." in text
    assert prompt not in text


def test_build_providers_always_ends_with_mock(mocker) -> None:
    settings = mocker.patch("stellar_gateway.services.ai.settings")
    settings.ai_provider = "ollama"
    settings.openai_api_base = "https://api.example.test/v1"
    settings.openai_api_key = "sk-test"
    settings.ollama_timeout_seconds = 30
    settings.openai_timeout_seconds = 30
    settings.mock_min_latency_seconds = 0
    settings.mock_max_latency_seconds = 0

    names = [provider.name for provider in build_providers()]

    assert names == ["ollama", "openai", "mock"]

    settings.ai_provider = "mock"
    assert [provider.name for provider in build_providers()] == ["mock"]


@pytest.mark.asyncio
async def test_check_availability_skips_mock() -> None:
    service = AIService([FailingProvider("ollama"), _instant_mock()], status_timeout_seconds=1)

    availability = await service.check_availability()

    assert availability.available is False
    assert availability.provider == "mock"


@pytest.mark.asyncio
async def test_check_availability_reports_first_reachable() -> None:
    service = AIService(
        [FailingProvider("ollama"), StaticProvider(name="openai"), _instant_mock()],
        status_timeout_seconds=1,
    )

    availability = await service.check_availability()

    assert availability.available is True
    assert availability.provider == "openai"


@pytest.mark.asyncio
async def test_ollama_provider_posts_generate_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "llama3.2:1b"}]})
        return httpx.Response(200, json={"response": "  Stellar is a network.  "})

    provider = OllamaProvider(
        "http://ollama.test", "llama3.2:1b", transport=httpx.MockTransport(handler)
    )
    try:
        text = await provider.generate("What is Stellar?")
        status = await provider.probe(1.0)
    finally:
        await provider.close()

    assert text == "Stellar is a network."
    assert status == "Ollama available with 1 models"
    body = json.loads(seen[0].content)
    assert body["model"] == "llama3.2:1b"
    assert body["stream"] is False
    assert body["prompt"].startswith("What is Stellar?")
    assert body["options"]["num_predict"] == 200


@pytest.mark.asyncio
async def test_ollama_provider_rejects_empty_answer() -> None:
    provider = OllamaProvider(
        "http://ollama.test",
        "llama3.2:1b",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
    )
    with pytest.raises(ProviderError):
        await provider.generate("hi")


@pytest.mark.asyncio
async def test_openai_provider_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "ok"}}]},
        )

    provider = OpenAICompatibleProvider(
        "https://api.example.test/v1",
        "sk-test",
        "gpt-test",
        transport=httpx.MockTransport(handler),
    )
    text = await provider.generate("Reply with: ok")
    await provider.close()

    assert text == "ok"
    assert seen[0].url.path == "/v1/chat/completions"
    assert seen[0].headers["Authorization"] == "Bearer sk-test"
    assert json.loads(seen[0].content)["messages"][0]["content"] == "Reply with: ok"


@pytest.mark.asyncio
async def test_openai_provider_http_error_falls_through() -> None:
    provider = OpenAICompatibleProvider(
        "https://api.example.test/v1",
        "sk-test",
        "gpt-test",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    service = AIService([provider, StaticProvider("fallback")])

    result = await service.generate("hi")

    assert result.text == "fallback"
