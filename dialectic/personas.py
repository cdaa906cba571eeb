"""Optimist, Pessimist and Mediator personas.

All three are `PersonaActor` instances. What differs per role (the message it
answers, its prompt, its fallback content, where it forwards) lives in a
`RoleStrategy` object.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from config.config_loader import CoachingConfig, PromptsConfig
from dialectic.actor import Actor
from dialectic.bus import MessageBus
from dialectic.errors import DebateNotActiveError
from dialectic.generation import call_generator
from dialectic.messages import (
    AntithesisPayload,
    Message,
    MessageType,
    SynthesisPayload,
    ThesisPayload,
)
from dialectic.models import (
    CHIEF_ORCHESTRATOR_ID,
    TEAM_TO_DOMAIN,
    DebateContent,
    DebateRecord,
    DebateRound,
    Directive,
    actor_id,
)
from dialectic.parsing import parse_or_default
from dialectic.providers.base import AIProvider

if TYPE_CHECKING:
    from dialectic.manager import DebateManager

logger = logging.getLogger(__name__)

_DEFAULT_ROUND_TIMEOUT_SEC = 90.0


def _format_rounds(rounds: list[DebateRound]) -> str:
    parts: list[str] = []
    for rnd in rounds:
        evidence = "; ".join(str(e) for e in rnd.content.evidence) or "none"
        parts.append(
            f"[{rnd.phase} by {rnd.agent_id}, confidence {rnd.content.confidence}]\n"
            f"Position: {rnd.content.position}\n"
            f"Reasoning: {rnd.content.reasoning}\n"
            f"Evidence: {evidence}"
        )
    return "\n\n".join(parts) or "(none)"


class RoleStrategy(ABC):
    """Role-specific behaviour plugged into a PersonaActor."""

    role: str
    phase: str
    handles_type: MessageType
    capabilities: tuple[str, ...] = ()

    @abstractmethod
    def task(self, topic: str) -> str:
        ...

    @abstractmethod
    def success_criteria(self) -> str:
        ...

    @abstractmethod
    def template(self, prompts: PromptsConfig) -> str:
        ...

    @abstractmethod
    def prior_rounds(self, payload: Any) -> list[DebateRound]:
        ...

    @abstractmethod
    def fallback(self, topic: str, domain: str, prior: list[DebateRound]) -> DebateContent:
        """Deterministic content used when generation is unavailable or unusable."""
        ...

    @abstractmethod
    def forward(
        self, record: DebateRecord, prior: list[DebateRound], produced: DebateRound
    ) -> tuple[str, MessageType, Any]:
        """Return (target, message type, payload) for the next protocol step."""
        ...


class OptimistStrategy(RoleStrategy):
    role = "optimist"
    phase = "thesis"
    handles_type = MessageType.DEBATE_START
    capabilities = ("opportunity_discovery", "upside_analysis", "growth_planning")

    OPPORTUNITIES = {
        "bom": (
            "Cost reduction potential identified in the bill of materials",
            "Alternative raw materials could improve quality",
            "Room to raise production efficiency",
        ),
        "waste": (
            "Cutting waste lowers disposal and material cost",
            "Opportunity to introduce a recycling process",
            "Greener production strengthens brand value",
        ),
        "inventory": (
            "Inventory optimization frees working capital",
            "Just-in-time delivery is achievable",
            "Adjusting safety stock reduces carrying cost",
        ),
        "profitability": (
            "Opportunity to expand high-margin channels",
            "Room to optimize pricing policy",
            "Potential to enter new markets",
        ),
        "general": (
            "Overall operating efficiency can improve",
            "Digital transformation opportunities identified",
            "Room to strengthen organizational capability",
        ),
    }

    def task(self, topic: str) -> str:
        return f"Identify the opportunities and upside in: {topic}"

    def success_criteria(self) -> str:
        return "At least three concrete opportunities with supporting evidence and a realistic confidence score"

    def template(self, prompts: PromptsConfig) -> str:
        return prompts.thesis

    def prior_rounds(self, payload: Any) -> list[DebateRound]:
        return []

    def fallback(self, topic: str, domain: str, prior: list[DebateRound]) -> DebateContent:
        return DebateContent(
            position=f"Analysis of {topic} shows substantial improvement opportunities.",
            reasoning=(
                f"A close review of the current situation in the {domain} domain shows "
                "clear growth potential. With active improvement effort the results can "
                "exceed expectations."
            ),
            evidence=self.OPPORTUNITIES.get(domain, self.OPPORTUNITIES["general"]),
            confidence=75,
            suggested_actions=(
                "Run a detailed opportunity analysis",
                "Plan a pilot project for the top opportunity",
                "Gather stakeholder input on priorities",
            ),
        )

    def forward(self, record, prior, produced):
        return (
            actor_id(record.team, "pessimist"),
            MessageType.DEBATE_THESIS,
            ThesisPayload(debate_id=record.id, thesis=produced, context_data=record.context_data),
        )


class PessimistStrategy(RoleStrategy):
    role = "pessimist"
    phase = "antithesis"
    handles_type = MessageType.DEBATE_THESIS
    capabilities = ("risk_identification", "assumption_testing", "downside_analysis")

    RISKS = {
        "bom": (
            "Raw material price swings could push the budget over",
            "Alternative materials may not be fully quality-validated",
            "Greater supplier dependence adds supply risk",
        ),
        "waste": (
            "Waste disposal cost may be underestimated",
            "Tighter environmental regulation could add cost",
            "Recycling infrastructure cost is not accounted for",
        ),
        "inventory": (
            "Demand forecast uncertainty creates stock risk",
            "Storage cost and depreciation are not fully considered",
            "Emergency orders could add unplanned cost",
        ),
        "profitability": (
            "Competitor pricing could squeeze margins",
            "Rising fixed costs could erode profitability",
            "Market volatility risks a sales decline",
        ),
        "general": (
            "Limited execution capacity may cause delays",
            "Internal resistance could stall the initiative",
            "Unexpected external factors may intervene",
        ),
    }

    def task(self, topic: str) -> str:
        return f"Challenge the thesis and surface the risks it overlooks in: {topic}"

    def success_criteria(self) -> str:
        return "Engages the thesis directly with at least three specific risks and a mitigation for each"

    def template(self, prompts: PromptsConfig) -> str:
        return prompts.antithesis

    def prior_rounds(self, payload: ThesisPayload) -> list[DebateRound]:
        return [payload.thesis]

    def fallback(self, topic: str, domain: str, prior: list[DebateRound]) -> DebateContent:
        counter = ""
        if prior:
            counter = f'The optimist\'s claim "{prior[0].content.position}" overlooks key risks. '
        return DebateContent(
            position=f"{counter}{topic} calls for a cautious approach.",
            reasoning=(
                f"Several potential risks were identified in the {domain} domain. Unless "
                "they are recognised early and a response is prepared, unexpected "
                "problems are likely."
            ),
            evidence=self.RISKS.get(domain, self.RISKS["general"]),
            confidence=72,
            suggested_actions=(
                "Build a risk assessment matrix",
                "Draw up a contingency response plan",
                "Introduce a staged verification process",
            ),
        )

    def forward(self, record, prior, produced):
        return (
            actor_id(record.team, "mediator"),
            MessageType.DEBATE_ANTITHESIS,
            AntithesisPayload(
                debate_id=record.id,
                thesis=prior[0],
                antithesis=produced,
                context_data=record.context_data,
            ),
        )


class MediatorStrategy(RoleStrategy):
    role = "mediator"
    phase = "synthesis"
    handles_type = MessageType.DEBATE_ANTITHESIS
    capabilities = ("synthesis", "balanced_judgement", "action_planning")

    DEFAULT_CONFIDENCE = 78

    SYNTHESES = {
        "bom": (
            "Find the balance between cost optimization and quality, and improve in stages.",
            (
                "Validate alternative materials with a pilot test",
                "Phase in changes alongside a risk mitigation plan",
                "Track quality metrics with weekly monitoring",
            ),
        ),
        "waste": (
            "Set realistic waste reduction targets backed by a phased execution plan.",
            (
                "Analyse the root causes of current waste in detail",
                "Start with the improvements that return the most per unit cost",
                "Monitor the monthly waste rate and adjust targets",
            ),
        ),
        "inventory": (
            "Optimize safety stock with data and build flexibility into the supply chain.",
            (
                "Improve demand forecast accuracy",
                "Manage stock by ABC class with differentiated policies",
                "Secure an emergency supply route to mitigate shortages",
            ),
        ),
        "profitability": (
            "Pursue profitability gains and risk management together in a balanced strategy.",
            (
                "Strengthen high-margin channels first",
                "Monitor market response to every price change",
                "Keep optimizing the cost structure",
            ),
        ),
        "general": (
            "Capture the opportunity while managing the risk through a measured approach.",
            (
                "Execute in phases ordered by priority",
                "Review results periodically and adjust",
                "Manage stakeholder communication continuously",
            ),
        ),
    }

    def task(self, topic: str) -> str:
        return f"Reconcile thesis and antithesis into an actionable conclusion on: {topic}"

    def success_criteria(self) -> str:
        return "References both positions, gives a balanced confidence and lists concrete next steps"

    def template(self, prompts: PromptsConfig) -> str:
        return prompts.synthesis

    def prior_rounds(self, payload: AntithesisPayload) -> list[DebateRound]:
        return [payload.thesis, payload.antithesis]

    @classmethod
    def balanced_confidence(cls, thesis: DebateRound | None, antithesis: DebateRound | None) -> int:
        """Pull toward a realistic middle rather than averaging the two sides."""
        if thesis is None or antithesis is None:
            return cls.DEFAULT_CONFIDENCE
        return round(thesis.content.confidence * 0.4 + antithesis.content.confidence * 0.4 + 20)

    def fallback(self, topic: str, domain: str, prior: list[DebateRound]) -> DebateContent:
        position, actions = self.SYNTHESES.get(domain, self.SYNTHESES["general"])
        thesis = prior[0] if prior else None
        antithesis = prior[1] if len(prior) > 1 else None

        evidence: list[str] = []
        if thesis is not None:
            core = thesis.content.evidence[0] if thesis.content.evidence else thesis.content.position
            evidence.append(f"Optimist core: {core}")
        if antithesis is not None:
            core = antithesis.content.evidence[0] if antithesis.content.evidence else antithesis.content.position
            evidence.append(f"Pessimist core: {core}")
        evidence.append("Recommend a balanced approach that combines both views")

        return DebateContent(
            position=position,
            reasoning=(
                "Weighed the optimist's opportunities against the pessimist's risks. "
                f"Derived a feasible, risk-managed course of action for the {domain} domain."
            ),
            evidence=tuple(evidence),
            confidence=self.balanced_confidence(thesis, antithesis),
            suggested_actions=actions,
        )

    def forward(self, record, prior, produced):
        return (
            CHIEF_ORCHESTRATOR_ID,
            MessageType.DEBATE_SYNTHESIS,
            SynthesisPayload(
                debate_id=record.id,
                thesis=prior[0],
                antithesis=prior[1],
                synthesis=produced,
            ),
        )


STRATEGIES: dict[str, type[RoleStrategy]] = {
    "optimist": OptimistStrategy,
    "pessimist": PessimistStrategy,
    "mediator": MediatorStrategy,
}


class PersonaActor(Actor):
    """One role-bound debate participant on one team."""

    def __init__(
        self,
        actor_id: str,
        team: str,
        strategy: RoleStrategy,
        bus: MessageBus,
        manager: "DebateManager",
        prompts: PromptsConfig,
        provider: AIProvider | None = None,
        round_timeout_sec: float = _DEFAULT_ROUND_TIMEOUT_SEC,
        coaching: CoachingConfig | None = None,
    ) -> None:
        super().__init__(actor_id, bus, coaching)
        self.team = team
        self.domain = TEAM_TO_DOMAIN[team]
        self.strategy = strategy
        self.kind = strategy.role
        self._manager = manager
        self._prompts = prompts
        self._provider = provider
        self._round_timeout_sec = round_timeout_sec

    def handles(self, message: Message) -> bool:
        return message.type == self.strategy.handles_type

    async def handle(self, message: Message) -> None:
        payload = message.payload
        record = self._manager.get_debate(payload.debate_id)
        if record.is_terminal:
            raise DebateNotActiveError(record.id, record.current_phase)

        prior = self.strategy.prior_rounds(payload)
        directive = self._manager.create_directive(
            self.strategy.role, self.strategy.task(record.topic), record,
            success_criteria=self.strategy.success_criteria(),
        )
        content = await self.generate_position(record.topic, record.context_data, directive, prior)

        produced = DebateRound(
            id=str(uuid.uuid4()),
            debate_id=record.id,
            phase=self.strategy.phase,
            role=self.strategy.role,
            agent_id=self.actor_id,
            content=content,
            directive=directive,
            responds_to=tuple(r.id for r in prior),
        )
        await self._manager.record_round(record.id, produced)
        logger.info(
            "%s recorded %s for %s (confidence %d)",
            self.actor_id, produced.phase, record.id, content.confidence,
        )

        target, message_type, next_payload = self.strategy.forward(record, prior, produced)
        self._bus.send(
            self.actor_id, target, message_type, next_payload,
            priority=record.priority, correlation_id=record.id,
        )

    async def generate_position(
        self,
        topic: str,
        context_data: dict[str, Any],
        directive: Directive,
        prior_rounds: list[DebateRound],
    ) -> DebateContent:
        """Produce this role's content, falling back to the domain table on any generation problem."""
        fallback = self.strategy.fallback(topic, self.domain, prior_rounds)
        if self._provider is None:
            content = fallback
        else:
            prompt = self.strategy.template(self._prompts).format(
                team=self.team,
                domain=self.domain,
                verbosity=self._prompts.verbosity.get(self.verbosity, ""),
                task=directive.task,
                success_criteria=directive.success_criteria,
                topic=topic,
                context=directive.context,
                prior_rounds=_format_rounds(prior_rounds),
            )
            generation = await call_generator(self._provider, prompt, self._round_timeout_sec)
            content = parse_or_default(generation.text if generation else None, fallback)
        return replace(content, confidence=self.adjusted_confidence(content.confidence))

    def get_capabilities(self) -> list[str]:
        return list(self.strategy.capabilities)

    def get_role_info(self) -> dict[str, str]:
        return {
            "actor_id": self.actor_id,
            "team": self.team,
            "domain": self.domain,
            "role": self.strategy.role,
            "phase": self.strategy.phase,
        }


def build_team(
    team: str,
    bus: MessageBus,
    manager: "DebateManager",
    prompts: PromptsConfig,
    provider: AIProvider | None = None,
    round_timeout_sec: float = _DEFAULT_ROUND_TIMEOUT_SEC,
    coaching: CoachingConfig | None = None,
) -> list[PersonaActor]:
    """Construct the optimist, pessimist and mediator for one team. Actors are not started."""
    return [
        PersonaActor(
            actor_id=actor_id(team, role),
            team=team,
            strategy=strategy_cls(),
            bus=bus,
            manager=manager,
            prompts=prompts,
            provider=provider,
            round_timeout_sec=round_timeout_sec,
            coaching=coaching,
        )
        for role, strategy_cls in STRATEGIES.items()
    ]
