"""Dataclasses and fixed vocabularies for the debate engine. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Lifecycle order. "cancelled" is terminal and reachable from any non-complete phase.
PHASES = ("pending", "thesis", "antithesis", "synthesis", "governance_review", "complete")
CANCELLED = "cancelled"
TERMINAL_PHASES = frozenset({"complete", CANCELLED})
ROUND_PHASES = ("thesis", "antithesis", "synthesis")

ROLES = ("optimist", "pessimist", "mediator")
ROLE_FOR_PHASE = {"thesis": "optimist", "antithesis": "pessimist", "synthesis": "mediator"}

PRIORITIES = ("low", "medium", "high", "critical")
PRIORITY_RANK = {name: rank for rank, name in enumerate(PRIORITIES)}

DOMAINS = ("bom", "waste", "inventory", "profitability", "general")
TEAM_TO_DOMAIN = {
    "bom-waste-team": "bom",
    "inventory-team": "inventory",
    "profitability-team": "profitability",
    "cost-management-team": "general",
    "business-strategy-team": "general",
}
TEAMS = tuple(TEAM_TO_DOMAIN)

# Actor id prefix per team: "<prefix>-optimist", "<prefix>-pessimist", "<prefix>-mediator".
TEAM_PREFIX = {
    "bom-waste-team": "bom-waste",
    "inventory-team": "inventory",
    "profitability-team": "profitability",
    "cost-management-team": "cost",
    "business-strategy-team": "business",
}
TEAM_OPTIMIST = {team: f"{prefix}-optimist" for team, prefix in TEAM_PREFIX.items()}

QUALITY_REVIEWER = "quality-specialist"
COMPLIANCE_REVIEWER = "compliance-auditor"
REVIEWER_ROLES = (QUALITY_REVIEWER, COMPLIANCE_REVIEWER)
CHIEF_ORCHESTRATOR_ID = "chief-orchestrator"

QUEUED = "queued"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def actor_id(team: str, role: str) -> str:
    """Return the bus id of the persona playing `role` on `team`."""
    return f"{TEAM_PREFIX[team]}-{role}"


@dataclass(frozen=True)
class DebateContent:
    position: str
    reasoning: str
    evidence: tuple[Any, ...] = ()
    confidence: int = 50
    suggested_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Directive:
    """What a persona was asked to do for one round. Kept for audit and replay."""

    context: str
    role: str
    task: str
    success_criteria: str


@dataclass(frozen=True)
class DebateRound:
    id: str
    debate_id: str
    phase: str             # "thesis", "antithesis", "synthesis"
    role: str              # "optimist", "pessimist", "mediator"
    agent_id: str
    content: DebateContent
    directive: Directive | None = None
    responds_to: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class GovernanceIssue:
    type: str              # quality, compliance, logic, data, risk, actionability, structure
    severity: str          # low, medium, high, critical
    description: str
    affected_round: str | None = None


@dataclass
class GovernanceReview:
    id: str
    debate_id: str
    reviewer_role: str
    reviewer_agent_id: str
    approved: bool
    score: int
    issues: list[GovernanceIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class FinalDecision:
    recommendation: str
    reasoning: str
    confidence: int
    actions: list[str] = field(default_factory=list)
    priority: str = "medium"
    dissent: str | None = None


@dataclass
class DebateRecord:
    id: str
    topic: str
    domain: str
    team: str
    version: int
    priority: str = "medium"
    context_data: dict[str, Any] = field(default_factory=dict)
    current_phase: str = "pending"
    thesis: DebateRound | None = None
    antithesis: DebateRound | None = None
    synthesis: DebateRound | None = None
    final_decision: FinalDecision | None = None
    governance_reviews: list[GovernanceReview] = field(default_factory=list)
    requested_reviewers: list[str] = field(default_factory=list)
    cancel_reason: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.current_phase in TERMINAL_PHASES

    def rounds(self) -> list[DebateRound]:
        """Recorded rounds in protocol order."""
        return [r for r in (self.thesis, self.antithesis, self.synthesis) if r is not None]

    def review_roles(self) -> set[str]:
        return {r.reviewer_role for r in self.governance_reviews}

    def duration_sec(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class DebateStartRequest:
    team: str
    topic: str
    context_data: dict[str, Any] = field(default_factory=dict)
    priority: str = "medium"
    immediate: bool = False


@dataclass
class DebateEvent:
    type: str              # debate_queued, debate_started, round_completed, ...
    debate_id: str | None
    team: str
    phase: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class QueueStatus:
    active_count: int
    queued_count: int
    max_active: int
    queued: list[tuple[str, str, str]] = field(default_factory=list)  # (team, topic, priority)


@dataclass
class DebateStatistics:
    total_debates: int
    completed_debates: int
    cancelled_debates: int
    active_debates: int
    queued_debates: int
    average_confidence: float
    average_duration_sec: float
    governance_approval_rate: float
    by_domain: dict[str, int] = field(default_factory=dict)
    by_team: dict[str, int] = field(default_factory=dict)


@dataclass
class CoachingFeedback:
    metric: str            # "accuracy", "latency", "user_acceptance"
    score: float
    benchmark: float
    note: str = ""


@dataclass
class Insight:
    debate_id: str
    domain: str
    team: str
    summary: str
    confidence: int
    actions: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class TranscriptMetadata:
    debate_id: str
    version: int
    domain: str
    team: str
    phase: str
    filename: str
    created_at: datetime
    updated_at: datetime


@dataclass
class Generation:
    provider: str
    model: str
    text: str
    latency_sec: float
    token_count: int | None
