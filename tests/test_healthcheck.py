"""Unit tests for dialectic/healthcheck.py — no real API calls."""

import asyncio
from unittest.mock import AsyncMock

import dialectic.healthcheck as hc
from dialectic.healthcheck import run_health_checks
from dialectic.models import Generation
from dialectic.providers.base import ProviderError
from tests.conftest import MockProvider


def _ok_response(name: str) -> Generation:
    return Generation(provider=name, model="mock-model", text="OK", latency_sec=0.1, token_count=1)


async def test_all_providers_pass():
    """All providers succeed -> all marked ok, no errors."""
    providers = {"claude": MockProvider("claude"), "gemini": MockProvider("gemini")}
    providers["claude"].generate = AsyncMock(return_value=_ok_response("claude"))
    providers["gemini"].generate = AsyncMock(return_value=_ok_response("gemini"))

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")


async def test_one_provider_fails():
    """A provider that raises returns ok=False with the error message."""
    providers = {"claude": MockProvider("claude"), "grok": MockProvider("grok")}
    providers["grok"].generate = AsyncMock(side_effect=ProviderError("grok", "403 Forbidden"))

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "403" in err


async def test_all_providers_fail():
    providers = {"openai": MockProvider("openai"), "gemini": MockProvider("gemini")}
    for name, p in providers.items():
        p.generate = AsyncMock(side_effect=Exception(f"{name} down"))

    results = await run_health_checks(providers)

    for name in providers:
        ok, err = results[name]
        assert ok is False
        assert name in err


async def test_empty_providers():
    assert await run_health_checks({}) == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A provider that hangs past the timeout is marked as failed."""
    providers = {"slow": MockProvider("slow")}

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    providers["slow"].generate = AsyncMock(side_effect=hang)
    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    results = await run_health_checks(providers)

    ok, err = results["slow"]
    assert ok is False
    assert err.startswith("no reply within")
