"""Chief Orchestrator: starts debates, gates finalization on governance, coaches actors.

The orchestrator keeps no debate state of its own beyond a guard against
double finalization. Everything it decides is read back from the Debate
Manager's records.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from config.config_loader import CoachingConfig
from dialectic.actor import Actor, ActorStatus
from dialectic.bus import MessageBus
from dialectic.errors import DebateError, DebateNotActiveError
from dialectic.insights import InsightBuffer
from dialectic.manager import DebateManager
from dialectic.messages import (
    AntithesisPayload,
    CoachingPayload,
    DebateCompletePayload,
    DebateStartPayload,
    InsightPayload,
    Message,
    MessageType,
    ReviewRequestPayload,
    ThesisPayload,
)
from dialectic.models import (
    CHIEF_ORCHESTRATOR_ID,
    QUEUED,
    TEAM_OPTIMIST,
    TEAM_TO_DOMAIN,
    TEAMS,
    CoachingFeedback,
    DebateRecord,
    FinalDecision,
    Insight,
    QueueStatus,
    actor_id,
)

logger = logging.getLogger(__name__)

GOVERNANCE_PRIORITIES = ("high", "critical")
_DEFAULT_CONFIDENCE_GATE = 70

DEFAULT_TOPICS = {
    "bom-waste-team": "BOM variance and waste reduction review",
    "inventory-team": "Inventory level and safety stock optimization",
    "profitability-team": "Channel profitability and pricing review",
    "cost-management-team": "Cost structure and expense control review",
    "business-strategy-team": "Business strategy and growth priorities",
}


@dataclass
class TeamStatus:
    team: str
    domain: str
    active_debates: int
    actors: list[ActorStatus] = field(default_factory=list)


@dataclass
class _PerformanceMark:
    processed: int = 0
    successful: int = 0
    total_ms: float = 0.0


class ChiefOrchestrator:
    actor_id = CHIEF_ORCHESTRATOR_ID

    def __init__(
        self,
        bus: MessageBus,
        manager: DebateManager,
        insights: InsightBuffer | None = None,
        confidence_gate: int = _DEFAULT_CONFIDENCE_GATE,
        coaching_interval_sec: float = 60.0,
        coaching: CoachingConfig | None = None,
    ) -> None:
        self._bus = bus
        self._manager = manager
        self.insights = insights or InsightBuffer()
        self._confidence_gate = confidence_gate
        self._coaching_interval_sec = coaching_interval_sec
        self._coaching = coaching or CoachingConfig()
        self._actors: dict[str, Actor] = {}
        self._reviewers: dict[str, str] = {}   # reviewer role -> actor id
        self._marks: dict[str, _PerformanceMark] = {}
        self._finalizing: set[str] = set()
        self._coaching_task: asyncio.Task | None = None
        self._unsubscribe = None

    # -- wiring --------------------------------------------------------------

    def register_actor(self, actor: Actor) -> None:
        self._actors[actor.actor_id] = actor

    def register_reviewer(self, reviewer: Actor) -> None:
        self.register_actor(reviewer)
        self._reviewers[reviewer.kind] = reviewer.actor_id

    @property
    def reviewer_roles(self) -> list[str]:
        return list(self._reviewers)

    def start(self) -> None:
        """Subscribe to the bus, take over queue admission, and start the coaching sweep."""
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe_actor(self.actor_id, self._on_message)
        self._manager.set_admission_hook(self._on_admitted)
        if self._coaching_interval_sec > 0 and self._coaching_task is None:
            self._coaching_task = asyncio.create_task(self._coaching_loop())

    async def stop(self) -> None:
        if self._coaching_task is not None:
            self._coaching_task.cancel()
            try:
                await self._coaching_task
            except asyncio.CancelledError:
                pass
            self._coaching_task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._manager.set_admission_hook(None)

    # -- starting debates ----------------------------------------------------

    async def orchestrate_debate(
        self,
        team: str,
        topic: str,
        context_data: dict[str, Any] | None = None,
        priority: str = "medium",
    ) -> str:
        """Start a debate for `team`. Returns the debate id, or QUEUED when every slot is busy."""
        debate_id = await self._manager.initiate_debate(team, topic, context_data, priority)
        if debate_id != QUEUED:
            self._send_start(self._manager.get_debate(debate_id))
        return debate_id

    async def orchestrate_all_teams(
        self,
        contexts: dict[str, dict[str, Any]] | None = None,
        priority: str = "medium",
        topics: dict[str, str] | None = None,
    ) -> dict[str, str]:
        """Start one debate per team. Returns team -> debate id or QUEUED; failed teams are left out."""
        contexts = contexts or {}
        topics = {**DEFAULT_TOPICS, **(topics or {})}
        started: dict[str, str] = {}
        for team in TEAMS:
            try:
                started[team] = await self.orchestrate_debate(
                    team, topics[team], contexts.get(team, {}), priority
                )
            except (DebateError, ValueError) as exc:
                logger.error("Could not start debate for %s: %s", team, exc)
        return started

    def _send_start(self, record: DebateRecord) -> None:
        self._bus.send(
            self.actor_id,
            TEAM_OPTIMIST[record.team],
            MessageType.DEBATE_START,
            DebateStartPayload(
                debate_id=record.id,
                team=record.team,
                topic=record.topic,
                context_data=record.context_data,
            ),
            priority=record.priority,
            correlation_id=record.id,
        )

    async def _on_admitted(self, record: DebateRecord, resumed: bool) -> None:
        if resumed:
            await self.resume(record)
        else:
            self._send_start(record)

    async def resume(self, record: DebateRecord) -> None:
        """Continue a restored debate from its last recorded phase."""
        logger.info("Resuming debate %s from %s", record.id, record.current_phase)
        phase = record.current_phase
        if phase == "pending":
            self._send_start(record)
        elif phase == "thesis":
            self._bus.send(
                self.actor_id, actor_id(record.team, "pessimist"), MessageType.DEBATE_THESIS,
                ThesisPayload(debate_id=record.id, thesis=record.thesis, context_data=record.context_data),
                priority=record.priority, correlation_id=record.id,
            )
        elif phase == "antithesis":
            self._bus.send(
                self.actor_id, actor_id(record.team, "mediator"), MessageType.DEBATE_ANTITHESIS,
                AntithesisPayload(
                    debate_id=record.id,
                    thesis=record.thesis,
                    antithesis=record.antithesis,
                    context_data=record.context_data,
                ),
                priority=record.priority, correlation_id=record.id,
            )
        elif phase == "synthesis":
            await self._after_synthesis(record)
        elif phase == "governance_review":
            missing = [r for r in record.requested_reviewers if r not in record.review_roles()]
            if missing:
                self._send_review_requests(record, missing)
            else:
                await self.finalize(record.id)

    # -- message handling ----------------------------------------------------

    async def _on_message(self, message: Message) -> None:
        try:
            if message.type == MessageType.DEBATE_SYNTHESIS:
                await self._handle_synthesis(message)
            elif message.type == MessageType.GOVERNANCE_REVIEW_RESULT:
                await self._handle_review(message)
            elif message.type == MessageType.INSIGHT_SHARE and message.source != self.actor_id:
                self.insights.add(message.payload.insight)
        except DebateError as exc:
            logger.warning("Orchestrator ignored %s: %s", message.type.name, exc)

    async def _handle_synthesis(self, message: Message) -> None:
        record = self._manager.get_active_debate(message.payload.debate_id)
        if record is None:
            raise DebateNotActiveError(message.payload.debate_id, "finished")
        await self._after_synthesis(record)

    def requires_governance(self, record: DebateRecord) -> bool:
        """High/critical priority or a synthesis below the confidence gate needs review."""
        if record.priority in GOVERNANCE_PRIORITIES:
            return True
        return record.synthesis is not None and record.synthesis.content.confidence < self._confidence_gate

    async def _after_synthesis(self, record: DebateRecord) -> None:
        if not self.requires_governance(record):
            await self.finalize(record.id)
            return
        if not self._reviewers:
            logger.warning("Debate %s needs governance but no reviewers are registered", record.id)
            await self.finalize(record.id)
            return
        await self._request_reviews(record, self.reviewer_roles)

    async def _request_reviews(self, record: DebateRecord, roles: list[str]) -> None:
        record = await self._manager.request_governance(record.id, roles)
        logger.info("Debate %s sent to governance: %s", record.id, ", ".join(roles))
        self._send_review_requests(record, roles)

    def _send_review_requests(self, record: DebateRecord, roles: list[str]) -> None:
        snapshot = copy.deepcopy(record)
        for role in roles:
            target = self._reviewers.get(role)
            if target is None:
                logger.warning("No reviewer registered for %s", role)
                continue
            self._bus.send(
                self.actor_id, target, MessageType.GOVERNANCE_REVIEW_REQUEST,
                ReviewRequestPayload(debate_id=record.id, debate=snapshot),
                priority="high", correlation_id=record.id,
            )

    async def _handle_review(self, message: Message) -> None:
        payload = message.payload
        record = await self._manager.add_governance_review(payload.debate_id, payload.review)
        missing = [r for r in record.requested_reviewers if r not in record.review_roles()]
        if missing:
            logger.info("Debate %s waiting on reviewers: %s", record.id, ", ".join(missing))
            return
        await self.finalize(record.id)

    async def request_governance_review(self, debate_id: str) -> None:
        """Manually escalate a debate to every registered reviewer."""
        record = self._manager.get_debate(debate_id)
        if record.is_terminal:
            raise DebateNotActiveError(debate_id, record.current_phase)
        await self._request_reviews(record, self.reviewer_roles)

    async def cancel_debate(self, debate_id: str, reason: str) -> DebateRecord:
        return await self._manager.cancel_debate(debate_id, reason)

    # -- finalization --------------------------------------------------------

    def build_decision(self, record: DebateRecord) -> FinalDecision:
        synthesis = record.synthesis.content
        rejected = [r.reviewer_role for r in record.governance_reviews if not r.approved]
        dissent = None
        if rejected:
            counter = record.antithesis.content.position if record.antithesis else ""
            dissent = f"Not approved by {', '.join(rejected)}. {counter}".strip()
        return FinalDecision(
            recommendation=synthesis.position,
            reasoning=synthesis.reasoning,
            confidence=synthesis.confidence,
            actions=list(synthesis.suggested_actions),
            priority=record.priority,
            dissent=dissent,
        )

    async def finalize(self, debate_id: str) -> DebateRecord | None:
        """Complete a debate once. Concurrent calls for the same id after the first are no-ops."""
        if debate_id in self._finalizing:
            return None
        self._finalizing.add(debate_id)
        try:
            record = self._manager.get_active_debate(debate_id)
            if record is None:
                return None
            completed = await self._manager.complete_debate(debate_id, self.build_decision(record))
        finally:
            self._finalizing.discard(debate_id)

        decision = completed.final_decision
        insight = Insight(
            debate_id=completed.id,
            domain=completed.domain,
            team=completed.team,
            summary=decision.recommendation,
            confidence=decision.confidence,
            actions=list(decision.actions),
        )
        self.insights.add(insight)
        self._bus.broadcast(
            self.actor_id, MessageType.DEBATE_COMPLETE,
            DebateCompletePayload(debate_id=completed.id, final_decision=decision),
            priority=completed.priority,
        )
        self._bus.broadcast(self.actor_id, MessageType.INSIGHT_SHARE, InsightPayload(insight=insight), priority="low")
        return completed

    async def synthesize_all_insights(self, window_sec: float = 300) -> str | None:
        return await self.insights.synthesize(window_sec)

    # -- coaching ------------------------------------------------------------

    async def _coaching_loop(self) -> None:
        while True:
            await asyncio.sleep(self._coaching_interval_sec)
            try:
                self.run_coaching_sweep()
            except Exception:
                logger.exception("Coaching sweep failed")

    def run_coaching_sweep(self) -> int:
        """Send accuracy and latency feedback to every actor that worked since the last sweep.

        Returns the number of feedback messages sent.
        """
        sent = 0
        for actor in self._actors.values():
            mark = self._marks.get(actor.actor_id, _PerformanceMark())
            processed = actor.processed_tasks - mark.processed
            if processed <= 0:
                continue
            successful = actor.successful_tasks - mark.successful
            elapsed_ms = actor.total_processing_ms - mark.total_ms
            self._marks[actor.actor_id] = _PerformanceMark(
                actor.processed_tasks, actor.successful_tasks, actor.total_processing_ms
            )

            feedback = (
                CoachingFeedback("accuracy", successful / processed, self._coaching.accuracy_benchmark),
                CoachingFeedback("latency", elapsed_ms / processed, self._coaching.latency_benchmark_ms),
            )
            for item in feedback:
                self._bus.send(
                    self.actor_id, actor.actor_id, MessageType.COACHING_FEEDBACK,
                    CoachingPayload(feedback=item), priority="low",
                )
                sent += 1
        if sent:
            logger.debug("Coaching sweep sent %d feedback messages", sent)
        return sent

    # -- status --------------------------------------------------------------

    def get_debate_status(self, debate_id: str) -> DebateRecord:
        return self._manager.get_debate(debate_id)

    def get_queue_status(self) -> QueueStatus:
        return self._manager.get_queue_status()

    def get_actor_statuses(self) -> list[ActorStatus]:
        return [a.get_status() for a in self._actors.values()]

    def get_team_statuses(self) -> dict[str, TeamStatus]:
        statuses: dict[str, TeamStatus] = {}
        for team in TEAMS:
            members = {actor_id(team, role) for role in ("optimist", "pessimist", "mediator")}
            statuses[team] = TeamStatus(
                team=team,
                domain=TEAM_TO_DOMAIN[team],
                active_debates=len(self._manager.get_active_debates_by_team(team)),
                actors=[a.get_status() for a in self._actors.values() if a.actor_id in members],
            )
        return statuses
