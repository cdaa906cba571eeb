"""Tests for dialectic/models.py dataclasses and vocabularies."""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from dialectic.models import (
    PRIORITY_RANK,
    TEAM_OPTIMIST,
    TEAM_TO_DOMAIN,
    TEAMS,
    DebateContent,
    DebateRecord,
    GovernanceReview,
    actor_id,
)
from tests.conftest import make_record, make_round


def test_team_domain_table():
    assert TEAM_TO_DOMAIN["bom-waste-team"] == "bom"
    assert TEAM_TO_DOMAIN["cost-management-team"] == "general"
    assert TEAM_TO_DOMAIN["business-strategy-team"] == "general"
    assert len(TEAMS) == 5


def test_actor_ids_use_team_prefix():
    assert actor_id("cost-management-team", "pessimist") == "cost-pessimist"
    assert TEAM_OPTIMIST["business-strategy-team"] == "business-optimist"
    assert TEAM_OPTIMIST["bom-waste-team"] == "bom-waste-optimist"


def test_priority_rank_order():
    assert PRIORITY_RANK["low"] < PRIORITY_RANK["medium"] < PRIORITY_RANK["high"] < PRIORITY_RANK["critical"]


def test_debate_content_defaults():
    content = DebateContent(position="p", reasoning="r")
    assert content.evidence == ()
    assert content.confidence == 50
    assert content.suggested_actions == ()


def test_debate_round_is_frozen():
    rnd = make_round("d1", "thesis")
    with pytest.raises(FrozenInstanceError):
        rnd.phase = "antithesis"  # type: ignore[misc]


def test_record_rounds_in_protocol_order():
    record = make_record()
    assert [r.phase for r in record.rounds()] == ["thesis", "antithesis", "synthesis"]


def test_record_new_is_pending_and_not_terminal():
    record = DebateRecord(id="d1", topic="t", domain="bom", team="bom-waste-team", version=1)
    assert record.current_phase == "pending"
    assert record.is_terminal is False
    assert record.rounds() == []
    assert record.duration_sec() is None


def test_record_terminal_phases():
    record = make_record()
    record.current_phase = "complete"
    assert record.is_terminal
    record.current_phase = "cancelled"
    assert record.is_terminal


def test_record_duration():
    record = make_record()
    record.completed_at = record.started_at + timedelta(seconds=12)
    assert record.duration_sec() == 12


def test_review_roles():
    record = make_record()
    record.governance_reviews.append(
        GovernanceReview("r1", record.id, "quality-specialist", "quality-specialist", True, 90)
    )
    assert record.review_roles() == {"quality-specialist"}
