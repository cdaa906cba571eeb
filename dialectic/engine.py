"""Explicit construction and wiring of every engine component.

Nothing here is a singleton: each `build_engine` call returns an independent
bus, manager, orchestrator and actor set, so tests and the CLI can run as many
engines as they like.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from config.config_loader import AppConfig
from dialectic.actor import Actor
from dialectic.bus import MessageBus
from dialectic.governance import ComplianceReviewer, GovernanceReviewer, QualityReviewer
from dialectic.insights import InsightBuffer
from dialectic.manager import DebateManager, RestoreResult
from dialectic.models import QUEUED, TEAMS, DebateRecord
from dialectic.orchestrator import ChiefOrchestrator
from dialectic.personas import PersonaActor, build_team
from dialectic.providers.anthropic import AnthropicProvider
from dialectic.providers.base import AIProvider, ProviderError
from dialectic.providers.gemini import GeminiProvider
from dialectic.providers.openai_provider import OpenAIProvider
from dialectic.store import DebateStore, FileDebateStore
from dialectic.transcript import TranscriptSink

logger = logging.getLogger(__name__)

# Keyed by the `sdk` field in settings.yaml. xAI rides the OpenAI SDK via base_url.
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "google-genai": GeminiProvider,
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def build_provider(config: AppConfig, name: str | None = None) -> AIProvider | None:
    """Build the named provider (default: the configured generator).

    Returns None when no provider is configured, its key is missing, or the
    client cannot be constructed. The engine then runs on fallback content.
    """
    name = name or config.engine.generator
    if not name:
        return None
    if name not in config.models:
        logger.warning("Generator '%s' is not configured, using fallback content", name)
        return None
    if name not in config.available_providers:
        logger.info("Generator '%s' has no API key, using fallback content", name)
        return None
    model_cfg = config.models[name]
    provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if provider_cls is None:
        logger.warning("Provider SDK '%s' unknown, skipping %s", model_cfg.sdk, name)
        return None
    try:
        return provider_cls(model_cfg)
    except ProviderError as exc:
        logger.warning("Failed to instantiate provider '%s': %s", name, exc)
        return None


@dataclass
class Engine:
    bus: MessageBus
    manager: DebateManager
    orchestrator: ChiefOrchestrator
    personas: list[PersonaActor] = field(default_factory=list)
    reviewers: list[GovernanceReviewer] = field(default_factory=list)
    transcripts: TranscriptSink | None = None
    provider: AIProvider | None = None

    @property
    def actors(self) -> list[Actor]:
        return [*self.personas, *self.reviewers]

    async def start(self, restore: bool = True) -> RestoreResult | None:
        """Start every actor, then the orchestrator, then optionally resume stored debates."""
        for actor in self.actors:
            actor.start()
        self.orchestrator.start()
        if restore:
            return await self.manager.restore_from_database()
        return None

    async def stop(self) -> None:
        await self.orchestrator.stop()
        for actor in self.actors:
            actor.stop()

    async def run_debate(
        self,
        team: str,
        topic: str,
        context_data: dict[str, Any] | None = None,
        priority: str = "medium",
        timeout: float | None = None,
    ) -> DebateRecord | None:
        """Start one debate and wait for it to finish. Returns None if it had to queue."""
        debate_id = await self.orchestrator.orchestrate_debate(team, topic, context_data, priority)
        if debate_id == QUEUED:
            return None
        return await self.manager.wait_for(debate_id, timeout=timeout)

    async def run_all_teams(
        self,
        contexts: dict[str, dict[str, Any]] | None = None,
        priority: str = "medium",
        timeout: float | None = None,
    ) -> list[DebateRecord]:
        """Start a debate per team and drain the bus. Returns the finished debates."""
        started = await self.orchestrator.orchestrate_all_teams(contexts, priority)
        await self.bus.join()
        ids = [d for d in started.values() if d != QUEUED]
        finished = [await self.manager.wait_for(d, timeout=timeout) for d in ids]
        return finished


def build_engine(
    config: AppConfig,
    provider: AIProvider | None = None,
    store: DebateStore | None = None,
    transcripts: TranscriptSink | None = None,
) -> Engine:
    """Wire bus, manager, orchestrator, every team and both reviewers from `config`.

    `store` and `transcripts` default to the file locations in the output
    settings. Pass a provider explicitly to share one client or to inject a mock.
    """
    if store is None:
        store = FileDebateStore(config.output.store_dir)
    if transcripts is None:
        transcripts = TranscriptSink(config.output.transcript_dir)

    bus = MessageBus()
    manager = DebateManager(
        store=store,
        transcripts=transcripts,
        max_active=config.engine.max_active_debates,
        max_history=config.engine.max_history,
    )
    insights = InsightBuffer(
        provider=provider,
        prompt_template=config.prompts.insights,
        timeout_sec=config.engine.round_timeout_sec,
    )
    orchestrator = ChiefOrchestrator(
        bus,
        manager,
        insights=insights,
        confidence_gate=config.engine.governance_confidence_gate,
        coaching_interval_sec=config.engine.coaching_interval_sec,
        coaching=config.coaching,
    )

    personas: list[PersonaActor] = []
    for team in TEAMS:
        personas += build_team(
            team, bus, manager, config.prompts,
            provider=provider,
            round_timeout_sec=config.engine.round_timeout_sec,
            coaching=config.coaching,
        )
    reviewer_kwargs = dict(
        provider=provider,
        prompts=config.prompts,
        timeout_sec=config.engine.round_timeout_sec,
        coaching=config.coaching,
    )
    reviewers: list[GovernanceReviewer] = [
        QualityReviewer(bus, config.governance.quality, **reviewer_kwargs),
        ComplianceReviewer(bus, config.governance.compliance, **reviewer_kwargs),
    ]

    for persona in personas:
        orchestrator.register_actor(persona)
    for reviewer in reviewers:
        orchestrator.register_reviewer(reviewer)

    logger.debug(
        "Engine wired: %d personas, %d reviewers, generator=%s",
        len(personas), len(reviewers), provider.name() if provider else "fallback",
    )
    return Engine(
        bus=bus,
        manager=manager,
        orchestrator=orchestrator,
        personas=personas,
        reviewers=reviewers,
        transcripts=transcripts,
        provider=provider,
    )
