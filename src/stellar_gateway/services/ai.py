"""AI text generation with an ordered provider fallback chain.

Providers are tried in order: the configured local inference endpoint, then an
OpenAI-compatible endpoint when credentials are configured, and finally an
offline mock that always answers. Each network attempt carries its own
timeout.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from stellar_gateway.core.errors import AIServiceUnavailableError
from stellar_gateway.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200

PROMPT_GUIDANCE = (
    "\n\nINSTRUCTIONS:\n"
    "- Answer the question directly and stay relevant\n"
    "- If asked for a simple reply (such as \"ok\"), reply exactly that\n"
    "- Be concise\n"
    "- Do not invent unnecessary information"
)

MOCK_TEMPLATES = (
    "This is a simulated answer to your prompt: \"{excerpt}\"\n\n"
    "In production this answer would come from the configured AI model. "
    "Configure an AI provider to enable real answers.",
    "Hello! I received your prompt about \"{excerpt}\". This is a demonstration answer.\n\n"
    "For real AI answers, run a local inference server or configure an "
    "OpenAI-compatible API.",
    "Prompt processed successfully.\n\nYour text: \"{excerpt}\"\n\n"
    "This is a simulation. Check the AI provider settings to enable real answers.",
)
MOCK_EXCERPT_LENGTHS = (50, 30, 40)


class ProviderError(RuntimeError):
    """A provider answered with something that is not a completion."""


@dataclass(frozen=True)
class GenerationResult:
    """Text produced for a prompt and how long it took."""

    text: str
    execution_time_ms: int
    provider: str


@dataclass(frozen=True)
class Availability:
    """Status report for the provider chain."""

    available: bool
    provider: str
    detail: str


class TextProvider(Protocol):
    """A single generation strategy."""

    name: str
    timeout_seconds: float | None

    async def generate(self, prompt: str) -> str: ...

    async def probe(self, timeout_seconds: float) -> str | None: ...

    async def close(self) -> None: ...


class _HTTPProvider:
    """Shared lazily created HTTP client for network-hosted providers."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds: float | None = timeout_seconds
        self._headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                    headers=self._headers,
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._ensure_client()
        response = await client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def _get(self, path: str, timeout_seconds: float) -> httpx.Response:
        client = await self._ensure_client()
        return await client.get(path, timeout=timeout_seconds)


class OllamaProvider(_HTTPProvider):
    """Local inference server speaking the Ollama generate API."""

    name = "ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout_seconds=timeout_seconds, transport=transport)
        self.model = model

    async def generate(self, prompt: str) -> str:
        body = await self._post(
            "/api/generate",
            {
                "model": self.model,
                "prompt": f"{prompt}{PROMPT_GUIDANCE}",
                "stream": False,
                "options": {
                    "temperature": 0.3,
                    "num_predict": 200,
                    "top_p": 0.8,
                    "repeat_penalty": 1.1,
                    "stop": ["\n\n\n"],
                },
            },
        )
        text = body.get("response")
        if not text:
            raise ProviderError("Invalid response from Ollama")
        return text.strip()

    async def probe(self, timeout_seconds: float) -> str | None:
        response = await self._get("/api/tags", timeout_seconds)
        if response.status_code != HTTP_OK:
            return None
        models = response.json().get("models") or []
        return f"Ollama available with {len(models)} models"


class OpenAICompatibleProvider(_HTTPProvider):
    """Any endpoint implementing the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            timeout_seconds=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )
        self.model = model

    async def generate(self, prompt: str) -> str:
        body = await self._post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": 500,
                "temperature": 0.7,
            },
        )
        try:
            text = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Invalid response from OpenAI-compatible API") from exc
        if not text:
            raise ProviderError("Empty response from OpenAI-compatible API")
        return text.strip()

    async def probe(self, timeout_seconds: float) -> str | None:
        response = await self._get("/models", timeout_seconds)
        if response.status_code != HTTP_OK:
            return None
        return "OpenAI-compatible API available"


class MockProvider:
    """Offline provider returning canned text that echoes the prompt."""

    name = "mock"
    timeout_seconds: float | None = None

    def __init__(
        self,
        *,
        min_latency_seconds: float = 1.0,
        max_latency_seconds: float = 3.0,
        rng: random.Random | None = None,
    ) -> None:
        self.min_latency_seconds = max(0.0, min_latency_seconds)
        self.max_latency_seconds = max(self.min_latency_seconds, max_latency_seconds)
        self._rng = rng or random.Random()

    async def generate(self, prompt: str) -> str:
        delay = self._rng.uniform(self.min_latency_seconds, self.max_latency_seconds)
        if delay:
            await asyncio.sleep(delay)
        index = self._rng.randrange(len(MOCK_TEMPLATES))
        limit = MOCK_EXCERPT_LENGTHS[index]
        excerpt = prompt[:limit] + ("..." if len(prompt) > limit else "")
        return MOCK_TEMPLATES[index].format(excerpt=excerpt)

    async def probe(self, timeout_seconds: float) -> str | None:
        return None

    async def close(self) -> None:
        return None


def build_providers() -> list[TextProvider]:
    """Assemble the provider chain described by settings.

    The mock provider is always last so generation never runs out of options.
    """
    providers: list[TextProvider] = []
    selected = settings.ai_provider.lower()
    openai_configured = bool(settings.openai_api_base and settings.openai_api_key)

    if selected == "ollama":
        providers.append(
            OllamaProvider(
                settings.ollama_base_url,
                settings.ollama_model,
                timeout_seconds=settings.ollama_timeout_seconds,
            )
        )
    if selected in {"ollama", "openai"} and openai_configured:
        providers.append(
            OpenAICompatibleProvider(
                settings.openai_api_base or "",
                settings.openai_api_key or "",
                settings.openai_model,
                timeout_seconds=settings.openai_timeout_seconds,
            )
        )
    providers.append(
        MockProvider(
            min_latency_seconds=settings.mock_min_latency_seconds,
            max_latency_seconds=settings.mock_max_latency_seconds,
        )
    )
    return providers


class AIService:
    """Runs prompts through the provider chain."""

    def __init__(
        self,
        providers: list[TextProvider] | None = None,
        *,
        status_timeout_seconds: float | None = None,
    ) -> None:
        self.providers = providers if providers is not None else build_providers()
        self.status_timeout_seconds = (
            status_timeout_seconds
            if status_timeout_seconds is not None
            else settings.ai_status_timeout_seconds
        )

    async def _attempt(self, provider: TextProvider, prompt: str) -> str:
        if provider.timeout_seconds is None:
            return await provider.generate(prompt)
        return await asyncio.wait_for(provider.generate(prompt), provider.timeout_seconds)

    async def generate(self, prompt: str) -> GenerationResult:
        """Return the first successful completion for ``prompt``.

        Raises:
            AIServiceUnavailableError: Every provider failed, mock included.
        """
        started = time.perf_counter()
        failures: list[str] = []
        for provider in self.providers:
            try:
                text = await self._attempt(provider, prompt)
            except Exception as exc:
                logger.warning("AI provider %s failed: %s", provider.name, exc)
                failures.append(f"{provider.name}: {exc or type(exc).__name__}")
                continue
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "AI provider %s answered %d chars in %d ms",
                provider.name,
                len(text),
                elapsed_ms,
            )
            return GenerationResult(text=text, execution_time_ms=elapsed_ms, provider=provider.name)

        raise AIServiceUnavailableError("; ".join(failures) or "No AI provider configured")

    async def check_availability(self) -> Availability:
        """Probe each network provider in order with a short timeout."""
        for provider in self.providers:
            if provider.name == MockProvider.name:
                continue
            try:
                detail = await provider.probe(self.status_timeout_seconds)
            except Exception as exc:
                logger.info("AI provider %s unavailable: %s", provider.name, exc)
                continue
            if detail:
                return Availability(available=True, provider=provider.name, detail=detail)
        return Availability(
            available=False,
            provider=MockProvider.name,
            detail="Using simulated answers; configure an AI provider",
        )

    def describe(self) -> dict[str, Any]:
        """Return the non-secret provider configuration."""
        return {
            "provider": settings.ai_provider,
            "chain": [provider.name for provider in self.providers],
            "ollama": {"baseUrl": settings.ollama_base_url, "model": settings.ollama_model},
            "openai": {
                "configured": bool(settings.openai_api_base and settings.openai_api_key),
                "model": settings.openai_model,
            },
        }

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()


_ai_service: AIService | None = None


def get_ai_service() -> AIService:
    """Return the process-wide AI service."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service


async def close_ai_service() -> None:
    global _ai_service
    if _ai_service is not None:
        await _ai_service.close()
        _ai_service = None
