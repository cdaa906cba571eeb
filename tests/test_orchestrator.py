"""Tests for dialectic/orchestrator.py and full engine runs on fallback content."""

import logging
from dataclasses import replace

import pytest

from dialectic.engine import Engine, build_engine
from dialectic.errors import DebateNotActiveError
from dialectic.governance import ComplianceReviewer, ComplianceRule, QualityReviewer
from dialectic.manager import DebateManager
from dialectic.messages import MessageType
from dialectic.models import QUEUED, TEAMS, GovernanceReview
from dialectic.orchestrator import ChiefOrchestrator
from dialectic.store import InMemoryDebateStore, debate_to_row
from tests.conftest import MockProvider, make_record, make_round


@pytest.fixture
def engine_factory(sample_app_config):
    def factory(max_active: int = 1, store=None, provider=None) -> Engine:
        config = replace(sample_app_config, engine=replace(sample_app_config.engine, max_active_debates=max_active))
        return build_engine(config, provider=provider, store=store or InMemoryDebateStore())

    return factory


def _persona(engine: Engine, actor_id: str):
    return next(p for p in engine.personas if p.actor_id == actor_id)


def _completions(engine: Engine, debate_id: str) -> int:
    return sum(
        1 for m in engine.bus.messages_by_type(MessageType.DEBATE_COMPLETE, limit=1000)
        if m.payload.debate_id == debate_id
    )


async def test_low_confidence_debate_gated_then_queued_debate_admitted(engine_factory):
    engine = engine_factory(max_active=1)
    await engine.start()
    # Fallback synthesis is 79; pull the inventory mediator below the 70 gate
    _persona(engine, "inventory-mediator").confidence_offset = -24

    first = await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock levels")
    second = await engine.orchestrator.orchestrate_debate("bom-waste-team", "Resin supplier switch")
    assert second == QUEUED
    assert engine.manager.get_queue_status().queued_count == 1

    await engine.bus.join()

    record = engine.manager.get_debate(first)
    assert record.current_phase == "complete"
    assert record.synthesis.content.confidence == 55
    assert set(record.requested_reviewers) == {"quality-specialist", "compliance-auditor"}
    assert {r.reviewer_role for r in record.governance_reviews} == set(record.requested_reviewers)
    assert all(r.approved for r in record.governance_reviews)
    assert record.final_decision.confidence == 55
    assert record.final_decision.recommendation == record.synthesis.content.position
    assert record.final_decision.dissent is None
    assert _completions(engine, first) == 1

    history = engine.manager.get_debate_history()
    assert len(history) == 2
    queued_record = history[0]
    assert queued_record.team == "bom-waste-team"
    assert queued_record.current_phase == "complete"
    assert queued_record.governance_reviews == []
    assert engine.manager.get_queue_status().active_count == 0
    assert len(engine.orchestrator.insights) == 2
    await engine.stop()


async def test_high_priority_always_reviewed(engine_factory):
    engine = engine_factory(max_active=2)
    await engine.start()
    debate_id = await engine.orchestrator.orchestrate_debate("profitability-team", "Channel mix", priority="critical")
    await engine.bus.join()

    record = engine.manager.get_debate(debate_id)
    assert record.synthesis.content.confidence >= 70
    assert len(record.governance_reviews) == 2
    assert record.final_decision.priority == "critical"
    await engine.stop()


async def test_rejection_is_recorded_as_dissent(engine_factory):
    engine = engine_factory(max_active=2)
    compliance = next(r for r in engine.reviewers if isinstance(r, ComplianceReviewer))
    compliance.add_rule(ComplianceRule("X001", "Always fails", "Test rule", "regulatory", "critical", lambda d: False))
    await engine.start()

    debate_id = await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock", priority="high")
    await engine.bus.join()

    record = engine.manager.get_debate(debate_id)
    assert record.current_phase == "complete"
    assert "compliance-auditor" in record.final_decision.dissent
    assert record.antithesis.content.position in record.final_decision.dissent
    await engine.stop()


async def test_generated_content_flows_through(engine_factory):
    provider = MockProvider(
        "mock",
        '{"position": "Generated view on stock policy", "reasoning": "Weighs opportunity against risk", '
        '"evidence": ["a", "b"], "confidence": 82, '
        '"suggestedActions": ["Monitor weekly service level per SKU class"]}',
    )
    engine = engine_factory(max_active=2, provider=provider)
    await engine.start()
    debate_id = await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock")
    await engine.bus.join()

    record = engine.manager.get_debate(debate_id)
    assert record.current_phase == "complete"
    assert record.final_decision.confidence == 82
    assert record.thesis.content.position == "Generated view on stock policy"
    assert provider.generate.await_count == 3
    await engine.stop()


async def test_cancelled_debate_rejects_late_rounds(engine_factory, caplog):
    engine = engine_factory(max_active=1)
    await engine.start()
    debate_id = await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock")
    await engine.orchestrator.cancel_debate(debate_id, "operator stop")

    with caplog.at_level(logging.WARNING, logger="dialectic.actor"):
        await engine.bus.join()

    record = engine.manager.get_debate(debate_id)
    assert record.current_phase == "cancelled"
    assert record.cancel_reason == "operator stop"
    assert record.thesis is None
    assert "not active" in caplog.text
    assert _completions(engine, debate_id) == 0
    await engine.stop()


async def test_orchestrate_all_teams_runs_every_team(engine_factory):
    engine = engine_factory(max_active=2)
    await engine.start()
    started = await engine.orchestrator.orchestrate_all_teams(priority="low")

    assert set(started) == set(TEAMS)
    assert sum(1 for v in started.values() if v == QUEUED) == 3

    await engine.bus.join()
    history = engine.manager.get_debate_history()
    assert len(history) == 5
    assert all(r.current_phase == "complete" for r in history)

    summary = await engine.orchestrator.synthesize_all_insights()
    assert "inventory" in summary and "general" in summary
    await engine.stop()


async def test_coaching_sweep_reports_new_work_only(engine_factory):
    engine = engine_factory(max_active=1)
    await engine.start()
    await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock")
    await engine.bus.join()

    sent = engine.orchestrator.run_coaching_sweep()
    await engine.bus.join()

    # three personas did one task each: accuracy + latency for each
    assert sent == 6
    assert _persona(engine, "inventory-optimist").confidence_offset == 2
    assert _persona(engine, "bom-waste-optimist").confidence_offset == 0
    assert engine.orchestrator.run_coaching_sweep() == 0
    await engine.stop()


async def test_restore_resumes_from_recorded_phase(engine_factory):
    store = InMemoryDebateStore()
    record = make_record(debate_id="resume-me")
    record.synthesis = None
    record.current_phase = "antithesis"
    await store.upsert_debate(debate_to_row(record))

    engine = engine_factory(max_active=2, store=store)
    result = await engine.start(restore=True)
    assert result.admitted == 1
    await engine.bus.join()

    restored = engine.manager.get_debate("resume-me")
    assert restored.current_phase == "complete"
    assert restored.thesis.id == record.thesis.id
    assert restored.synthesis.responds_to == (record.thesis.id, record.antithesis.id)
    assert (await store.get_debate("resume-me"))["current_phase"] == "complete"
    await engine.stop()


async def test_restore_requests_only_missing_reviews(engine_factory):
    store = InMemoryDebateStore()
    record = make_record(debate_id="half-reviewed", priority="high")
    record.current_phase = "governance_review"
    record.requested_reviewers = ["quality-specialist", "compliance-auditor"]
    record.governance_reviews = [
        GovernanceReview("q1", record.id, "quality-specialist", "quality-specialist", True, 91)
    ]
    await store.upsert_debate(debate_to_row(record))

    engine = engine_factory(max_active=2, store=store)
    await engine.start(restore=True)
    await engine.bus.join()

    restored = engine.manager.get_debate("half-reviewed")
    assert restored.current_phase == "complete"
    assert len(restored.governance_reviews) == 2
    assert next(r for r in restored.governance_reviews if r.reviewer_role == "quality-specialist").score == 91
    requests = engine.bus.messages_by_type(MessageType.GOVERNANCE_REVIEW_REQUEST)
    assert [m.target for m in requests] == ["compliance-auditor"]
    await engine.stop()


# -- orchestrator without personas --------------------------------------------

@pytest.fixture
async def governed(bus):
    manager = DebateManager(max_active=2)
    orchestrator = ChiefOrchestrator(bus, manager, coaching_interval_sec=0)
    reviewers = [QualityReviewer(bus), ComplianceReviewer(bus)]
    for reviewer in reviewers:
        reviewer.start()
        orchestrator.register_reviewer(reviewer)
    orchestrator.start()
    yield manager, orchestrator
    await orchestrator.stop()


async def _argued_debate(manager: DebateManager) -> str:
    debate_id = await manager.initiate_debate("inventory-team", "Safety stock")
    thesis = make_round(debate_id, "thesis")
    await manager.record_round(debate_id, thesis)
    antithesis = make_round(debate_id, "antithesis", (thesis,), position="Stock risk rises")
    await manager.record_round(debate_id, antithesis)
    await manager.record_round(debate_id, make_round(debate_id, "synthesis", (thesis, antithesis), confidence=90))
    return debate_id


async def test_manual_escalation(bus, governed):
    manager, orchestrator = governed
    debate_id = await _argued_debate(manager)

    await orchestrator.request_governance_review(debate_id)
    await bus.join()

    record = manager.get_debate(debate_id)
    assert record.current_phase == "complete"
    assert len(record.governance_reviews) == 2

    with pytest.raises(DebateNotActiveError):
        await orchestrator.request_governance_review(debate_id)


async def test_finalize_is_idempotent(bus, governed):
    manager, orchestrator = governed
    debate_id = await _argued_debate(manager)

    first = await orchestrator.finalize(debate_id)
    second = await orchestrator.finalize(debate_id)
    await bus.join()

    assert first.current_phase == "complete"
    assert second is None
    completes = [m for m in bus.messages_by_type(MessageType.DEBATE_COMPLETE) if m.payload.debate_id == debate_id]
    assert len(completes) == 1


def test_requires_governance(bus):
    orchestrator = ChiefOrchestrator(bus, DebateManager(), confidence_gate=60)
    assert orchestrator.requires_governance(make_record(synthesis_confidence=90, priority="high"))
    assert orchestrator.requires_governance(make_record(synthesis_confidence=90, priority="critical"))
    assert orchestrator.requires_governance(make_record(synthesis_confidence=59))
    assert not orchestrator.requires_governance(make_record(synthesis_confidence=60))
    assert not orchestrator.requires_governance(make_record(synthesis_confidence=90, priority="low"))


async def test_status_views(engine_factory):
    engine = engine_factory(max_active=2)
    await engine.start()
    debate_id = await engine.orchestrator.orchestrate_debate("inventory-team", "Safety stock")

    teams = engine.orchestrator.get_team_statuses()
    assert teams["inventory-team"].active_debates == 1
    assert [a.kind for a in teams["inventory-team"].actors] == ["optimist", "pessimist", "mediator"]
    assert len(engine.orchestrator.get_actor_statuses()) == 17
    assert engine.orchestrator.get_debate_status(debate_id).current_phase == "pending"

    await engine.bus.join()
    assert engine.orchestrator.get_team_statuses()["inventory-team"].active_debates == 0
    await engine.stop()
