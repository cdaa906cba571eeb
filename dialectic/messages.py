"""Tagged message envelope and the payload variant carried by each message type."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from dialectic.errors import MessageValidationError
from dialectic.models import (
    PRIORITIES,
    CoachingFeedback,
    DebateRecord,
    DebateRound,
    FinalDecision,
    GovernanceReview,
    Insight,
    utcnow,
)

BROADCAST = "broadcast"


class MessageType(StrEnum):
    DEBATE_START = "debate_start"
    DEBATE_THESIS = "debate_thesis"
    DEBATE_ANTITHESIS = "debate_antithesis"
    DEBATE_SYNTHESIS = "debate_synthesis"
    DEBATE_COMPLETE = "debate_complete"
    GOVERNANCE_REVIEW_REQUEST = "governance_review_request"
    GOVERNANCE_REVIEW_RESULT = "governance_review_result"
    COACHING_FEEDBACK = "coaching_feedback"
    INSIGHT_SHARE = "insight_share"


@dataclass(frozen=True)
class DebateStartPayload:
    debate_id: str
    team: str
    topic: str
    context_data: dict[str, Any]


@dataclass(frozen=True)
class ThesisPayload:
    debate_id: str
    thesis: DebateRound
    context_data: dict[str, Any]


@dataclass(frozen=True)
class AntithesisPayload:
    debate_id: str
    thesis: DebateRound
    antithesis: DebateRound
    context_data: dict[str, Any]


@dataclass(frozen=True)
class SynthesisPayload:
    debate_id: str
    thesis: DebateRound
    antithesis: DebateRound
    synthesis: DebateRound


@dataclass(frozen=True)
class DebateCompletePayload:
    debate_id: str
    final_decision: FinalDecision


@dataclass(frozen=True)
class ReviewRequestPayload:
    debate_id: str
    debate: DebateRecord


@dataclass(frozen=True)
class ReviewResultPayload:
    debate_id: str
    review: GovernanceReview
    review_type: str       # reviewer role that produced it


@dataclass(frozen=True)
class CoachingPayload:
    feedback: CoachingFeedback


@dataclass(frozen=True)
class InsightPayload:
    insight: Insight


PAYLOAD_TYPES: dict[MessageType, type] = {
    MessageType.DEBATE_START: DebateStartPayload,
    MessageType.DEBATE_THESIS: ThesisPayload,
    MessageType.DEBATE_ANTITHESIS: AntithesisPayload,
    MessageType.DEBATE_SYNTHESIS: SynthesisPayload,
    MessageType.DEBATE_COMPLETE: DebateCompletePayload,
    MessageType.GOVERNANCE_REVIEW_REQUEST: ReviewRequestPayload,
    MessageType.GOVERNANCE_REVIEW_RESULT: ReviewResultPayload,
    MessageType.COACHING_FEEDBACK: CoachingPayload,
    MessageType.INSIGHT_SHARE: InsightPayload,
}


@dataclass(frozen=True)
class Message:
    id: str
    type: MessageType
    source: str
    target: str            # actor id or BROADCAST
    payload: Any
    priority: str = "medium"
    correlation_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


def validate(message_type: Any, payload: Any, priority: str) -> MessageType:
    """Check the envelope discriminant against its payload variant.

    Returns the coerced MessageType. Raises MessageValidationError otherwise.
    """
    try:
        kind = MessageType(message_type)
    except ValueError as exc:
        raise MessageValidationError(f"Unknown message type: {message_type!r}") from exc

    expected = PAYLOAD_TYPES[kind]
    if not isinstance(payload, expected):
        raise MessageValidationError(
            f"{kind.name} expects {expected.__name__}, got {type(payload).__name__}"
        )
    if priority not in PRIORITIES:
        raise MessageValidationError(f"Unknown priority: {priority!r}")
    return kind
