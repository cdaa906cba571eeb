"""Shared pytest fixtures."""

import uuid
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    CoachingConfig,
    EngineConfig,
    GovernanceConfig,
    InboxConfig,
    ModelConfig,
    OutputConfig,
    PromptsConfig,
)
from dialectic.bus import MessageBus
from dialectic.manager import DebateManager
from dialectic.models import DebateContent, DebateRecord, DebateRound, Generation
from dialectic.providers.base import AIProvider
from dialectic.store import InMemoryDebateStore


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        thesis="OPTIMIST {team} {domain} {verbosity}\nTask: {task}\nTopic: {topic}\nContext: {context}",
        antithesis="PESSIMIST {team} {domain} {verbosity}\nTask: {task}\nTopic: {topic}\n{prior_rounds}",
        synthesis="MEDIATOR {team} {domain} {verbosity}\nTask: {task}\nTopic: {topic}\n{prior_rounds}",
        governance="REVIEW {reviewer} {topic} {domain}\n{transcript}",
        insights="INSIGHTS\n{insights}",
        verbosity={"concise": "Be brief.", "normal": "", "detailed": "Be thorough."},
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        engine=EngineConfig(max_active_debates=2, coaching_interval_sec=0, generator=None),
        governance=GovernanceConfig(),
        coaching=CoachingConfig(),
        output=OutputConfig(transcript_dir=tmp_path / "wip", store_dir=tmp_path / "store"),
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        available_providers=set(),
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=Generation(
                provider=provider_name,
                model="mock-model",
                text=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, timeout: float | None = None) -> Generation:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Generation(
            provider=self._name,
            model="mock-model",
            text=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def store() -> InMemoryDebateStore:
    return InMemoryDebateStore()


@pytest.fixture
def manager(store: InMemoryDebateStore) -> DebateManager:
    return DebateManager(store=store, max_active=2)


def make_round(
    debate_id: str,
    phase: str,
    prior: tuple[DebateRound, ...] = (),
    position: str | None = None,
    confidence: int = 70,
    evidence: tuple = ("fact one", "fact two"),
    actions: tuple[str, ...] = ("Monitor weekly stock levels against target",),
    reasoning: str | None = None,
) -> DebateRound:
    role = {"thesis": "optimist", "antithesis": "pessimist", "synthesis": "mediator"}[phase]
    return DebateRound(
        id=str(uuid.uuid4()),
        debate_id=debate_id,
        phase=phase,
        role=role,
        agent_id=f"inventory-{role}",
        content=DebateContent(
            position=position or f"{phase} position for the inventory topic",
            reasoning=reasoning or f"{phase} reasoning",
            evidence=evidence,
            confidence=confidence,
            suggested_actions=actions,
        ),
        responds_to=tuple(r.id for r in prior),
    )


def make_record(
    synthesis_confidence: int = 70,
    priority: str = "medium",
    debate_id: str | None = None,
) -> DebateRecord:
    """A fully argued inventory debate, ready for review or completion."""
    debate_id = debate_id or str(uuid.uuid4())
    thesis = make_round(
        debate_id, "thesis",
        position="Lower safety stock frees working capital",
        reasoning="The opportunity is clear from turnover data",
    )
    antithesis = make_round(
        debate_id, "antithesis", (thesis,),
        position="Lower safety stock raises stockout risk",
        reasoning="The main risk is demand uncertainty during peak season",
    )
    synthesis = make_round(
        debate_id, "synthesis", (thesis, antithesis),
        position="Reduce safety stock in stages while tracking service level",
        reasoning="Weighs the optimist's opportunity against the pessimist's risk",
        confidence=synthesis_confidence,
        actions=(
            "Monitor stockout rate weekly for each SKU class",
            "Review safety stock targets monthly with demand planning",
        ),
    )
    return DebateRecord(
        id=debate_id,
        topic="Safety stock levels",
        domain="inventory",
        team="inventory-team",
        version=1,
        priority=priority,
        current_phase="synthesis",
        thesis=thesis,
        antithesis=antithesis,
        synthesis=synthesis,
    )
