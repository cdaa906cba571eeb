"""Tests for dialectic/engine.py wiring and provider selection."""

from dataclasses import replace

from dialectic.engine import build_engine, build_provider
from dialectic.models import TEAMS
from dialectic.providers.anthropic import AnthropicProvider
from dialectic.store import FileDebateStore


def _with_generator(config, name, available=()):
    return replace(
        config,
        engine=replace(config.engine, generator=name),
        available_providers=set(available),
    )


def test_build_provider_none_without_generator(sample_app_config):
    assert build_provider(sample_app_config) is None


def test_build_provider_unknown_or_keyless(sample_app_config):
    assert build_provider(_with_generator(sample_app_config, "nope")) is None
    assert build_provider(_with_generator(sample_app_config, "claude")) is None


def test_build_provider_unknown_sdk(sample_app_config):
    config = _with_generator(sample_app_config, "claude", available=["claude"])
    config.models["claude"] = replace(config.models["claude"], sdk="carrier-pigeon")
    assert build_provider(config) is None


def test_build_provider_constructs_client(sample_app_config, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    config = _with_generator(sample_app_config, "claude", available=["claude"])
    provider = build_provider(config)
    assert isinstance(provider, AnthropicProvider)
    assert provider.name() == "claude"


def test_build_provider_missing_key_at_construction(sample_app_config, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    config = _with_generator(sample_app_config, "claude", available=["claude"])
    assert build_provider(config) is None


def test_build_engine_wires_everything(sample_app_config, mock_provider):
    engine = build_engine(sample_app_config, provider=mock_provider)
    assert len(engine.personas) == 3 * len(TEAMS)
    assert {r.reviewer_role for r in engine.reviewers} == {"quality-specialist", "compliance-auditor"}
    assert engine.orchestrator.reviewer_roles == ["quality-specialist", "compliance-auditor"]
    assert engine.manager.max_active == 2
    assert all(p._provider is mock_provider for p in engine.personas)


def test_engines_are_independent(sample_app_config):
    first = build_engine(sample_app_config)
    second = build_engine(sample_app_config)
    assert first.bus is not second.bus
    assert first.manager is not second.manager


async def test_run_debate_waits_for_completion(sample_app_config):
    engine = build_engine(sample_app_config)
    await engine.start()
    record = await engine.run_debate("inventory-team", "Safety stock", {"sku": 12}, timeout=5)
    assert record.current_phase == "complete"
    assert record.final_decision is not None
    await engine.bus.join()
    await engine.stop()
    assert all(a.status == "stopped" for a in engine.actors)


async def test_run_all_teams_returns_admitted_debates(sample_app_config):
    engine = build_engine(sample_app_config)
    await engine.start()
    records = await engine.run_all_teams(priority="low", timeout=5)
    assert len(records) == 2
    assert len(engine.manager.get_debate_history()) == len(TEAMS)
    await engine.stop()


async def test_history_survives_restart(sample_app_config):
    engine = build_engine(sample_app_config)
    await engine.start()
    record = await engine.run_debate("profitability-team", "Channel mix", timeout=5)
    await engine.bus.join()
    await engine.stop()

    assert (sample_app_config.output.store_dir / f"{record.id}.json").exists()

    restarted = build_engine(sample_app_config)
    result = await restarted.start(restore=True)
    assert result.history_loaded == 1
    assert restarted.manager.get_debate(record.id).current_phase == "complete"
    # version numbering continues for the same team and topic
    again = await restarted.run_debate("profitability-team", "Channel mix", timeout=5)
    assert again.version == 2
    await restarted.bus.join()
    await restarted.stop()
    assert isinstance(restarted.manager._store, FileDebateStore)
