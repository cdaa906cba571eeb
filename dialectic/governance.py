"""Quality and compliance reviewers that gate debate finalization."""

import json
import logging
import re
import uuid
from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from config.config_loader import CoachingConfig, ComplianceConfig, PromptsConfig, QualityConfig
from dialectic.actor import Actor
from dialectic.bus import MessageBus
from dialectic.generation import call_generator
from dialectic.messages import Message, MessageType, ReviewResultPayload
from dialectic.models import (
    COMPLIANCE_REVIEWER,
    QUALITY_REVIEWER,
    CoachingFeedback,
    DebateRecord,
    GovernanceIssue,
    GovernanceReview,
)
from dialectic.parsing import extract_json
from dialectic.providers.base import AIProvider

logger = logging.getLogger(__name__)

_DEFAULT_REVIEW_SCORE = 65
_MAX_ADVISORY_RECOMMENDATIONS = 3
_VAGUE_PATTERN = re.compile(r"\b(?:etc|misc|tbd)\b|as needed|if necessary|and so on", re.IGNORECASE)
_OPTIMIST_MARKERS = ("optimis", "opportunit", "upside", "thesis")
_PESSIMIST_MARKERS = ("pessimis", "risk", "downside", "antithesis")


def debate_text(debate: DebateRecord) -> str:
    """Topic, context and round content as one block of text, without ids or timestamps."""
    parts = [debate.topic, json.dumps(debate.context_data, ensure_ascii=False, default=str)]
    for rnd in debate.rounds():
        c = rnd.content
        parts += [c.position, c.reasoning]
        parts += [str(e) for e in c.evidence]
        parts += list(c.suggested_actions)
    return "\n".join(parts)


class GovernanceReviewer(Actor):
    """Answers GOVERNANCE_REVIEW_REQUEST with a GOVERNANCE_REVIEW_RESULT reply.

    Any failure in the scoring logic yields a conservative default review
    instead of an exception.
    """

    reviewer_role: str

    def __init__(
        self,
        bus: MessageBus,
        provider: AIProvider | None = None,
        prompts: PromptsConfig | None = None,
        timeout_sec: float | None = None,
        coaching: CoachingConfig | None = None,
    ) -> None:
        super().__init__(self.reviewer_role, bus, coaching)
        self.kind = self.reviewer_role
        self._provider = provider
        self._prompts = prompts
        self._timeout_sec = timeout_sec

    def handles(self, message: Message) -> bool:
        return message.type == MessageType.GOVERNANCE_REVIEW_REQUEST

    async def handle(self, message: Message) -> None:
        debate = message.payload.debate
        review = await self.review(debate)
        self._bus.reply(
            message,
            self.actor_id,
            MessageType.GOVERNANCE_REVIEW_RESULT,
            ReviewResultPayload(debate_id=debate.id, review=review, review_type=self.reviewer_role),
        )

    @abstractmethod
    def evaluate(self, debate: DebateRecord) -> tuple[int, bool, list[GovernanceIssue], list[str]]:
        """Return (score, approved, issues, recommendations)."""
        ...

    async def review(self, debate: DebateRecord) -> GovernanceReview:
        try:
            score, approved, issues, recommendations = self.evaluate(debate)
        except Exception:
            logger.exception("%s could not evaluate debate %s, using default review", self.actor_id, debate.id)
            return self.default_review(debate)

        recommendations = recommendations + await self._advisory(debate)
        logger.info(
            "%s reviewed %s: score %d, %s, %d issues",
            self.actor_id, debate.id, score, "approved" if approved else "rejected", len(issues),
        )
        return GovernanceReview(
            id=str(uuid.uuid4()),
            debate_id=debate.id,
            reviewer_role=self.reviewer_role,
            reviewer_agent_id=self.actor_id,
            approved=approved,
            score=score,
            issues=issues,
            recommendations=recommendations,
        )

    def default_review(self, debate: DebateRecord) -> GovernanceReview:
        return GovernanceReview(
            id=str(uuid.uuid4()),
            debate_id=debate.id,
            reviewer_role=self.reviewer_role,
            reviewer_agent_id=self.actor_id,
            approved=True,
            score=_DEFAULT_REVIEW_SCORE,
            recommendations=["Automated review failed; re-review this debate manually"],
        )

    async def _advisory(self, debate: DebateRecord) -> list[str]:
        """Extra recommendations from the generator. Anything unusable is dropped."""
        if self._provider is None or self._prompts is None or not self._prompts.governance:
            return []
        prompt = self._prompts.governance.format(
            reviewer=self.reviewer_role,
            topic=debate.topic,
            domain=debate.domain,
            transcript=debate_text(debate),
        )
        generation = await call_generator(self._provider, prompt, self._timeout_sec)
        parsed = extract_json(generation.text if generation else None)
        if not parsed or not isinstance(parsed.get("recommendations"), list):
            return []
        return [str(r) for r in parsed["recommendations"] if str(r).strip()][:_MAX_ADVISORY_RECOMMENDATIONS]


class QualityReviewer(GovernanceReviewer):
    """Scores debate structure, logic, confidence, evidence and actionability."""

    reviewer_role = QUALITY_REVIEWER

    PENALTIES = {"structure": 10, "logic": 15, "quality": 5, "data": 10, "actionability": 8}
    RECOMMENDATIONS = {
        "structure": "Re-run the debate so that every phase is recorded",
        "logic": "Make the antithesis engage the thesis directly and the synthesis weigh both sides",
        "quality": "Gather more supporting data to raise confidence in weak rounds",
        "data": "Back each position with more concrete evidence",
        "actionability": "Rewrite suggested actions as specific, measurable steps",
    }

    def __init__(self, bus: MessageBus, config: QualityConfig | None = None, **kwargs) -> None:
        super().__init__(bus, **kwargs)
        self._config = config or QualityConfig()
        self.min_confidence = self._config.min_confidence
        self.min_evidence = self._config.min_evidence

    def evaluate(self, debate):
        issues: list[GovernanceIssue] = []
        rounds = {"thesis": debate.thesis, "antithesis": debate.antithesis, "synthesis": debate.synthesis}

        for phase, rnd in rounds.items():
            if rnd is None:
                issues.append(GovernanceIssue("structure", "critical", f"The {phase} round is missing.", phase))

        if debate.thesis and debate.antithesis:
            if _normalize(debate.thesis.content.position) == _normalize(debate.antithesis.content.position):
                issues.append(GovernanceIssue(
                    "logic", "high",
                    "The antithesis restates the thesis instead of rebutting it.", "antithesis",
                ))

        if debate.synthesis:
            text = (debate.synthesis.content.reasoning + " " + debate.synthesis.content.position).lower()
            mentions_optimist = any(m in text for m in _OPTIMIST_MARKERS)
            mentions_pessimist = any(m in text for m in _PESSIMIST_MARKERS)
            if not (mentions_optimist and mentions_pessimist):
                issues.append(GovernanceIssue(
                    "logic", "medium",
                    "The synthesis does not explicitly weigh both prior positions.", "synthesis",
                ))

        for phase, rnd in rounds.items():
            if rnd is None:
                continue
            if rnd.content.confidence < self.min_confidence:
                issues.append(GovernanceIssue(
                    "quality", "medium",
                    f"The {phase} confidence ({rnd.content.confidence}%) is below the "
                    f"{self.min_confidence}% floor.", phase,
                ))
            if len(rnd.content.evidence) < self.min_evidence:
                issues.append(GovernanceIssue(
                    "data", "low",
                    f"The {phase} cites {len(rnd.content.evidence)} evidence items, "
                    f"fewer than the recommended {self.min_evidence}.", phase,
                ))

        if debate.synthesis:
            actions = list(debate.synthesis.content.suggested_actions)
            if not actions:
                issues.append(GovernanceIssue(
                    "actionability", "medium", "The synthesis proposes no concrete actions.", "synthesis",
                ))
            else:
                vague = [a for a in actions if len(a) < 10 or _VAGUE_PATTERN.search(a)]
                if len(vague) > len(actions) / 2:
                    issues.append(GovernanceIssue(
                        "actionability", "low",
                        f"{len(vague)} of {len(actions)} suggested actions are too vague to execute.",
                        "synthesis",
                    ))

        score = max(0, min(100, 100 - sum(self.PENALTIES.get(i.type, 0) for i in issues)))
        approved = score >= self._config.approval_score and not any(i.severity == "critical" for i in issues)
        recommendations = [self.RECOMMENDATIONS[t] for t in dict.fromkeys(i.type for i in issues)]
        return score, approved, issues, recommendations

    def apply_coaching(self, feedback: CoachingFeedback) -> None:
        super().apply_coaching(feedback)
        if feedback.metric == "accuracy" and feedback.score < feedback.benchmark:
            self.min_confidence = min(self._config.max_min_confidence, self.min_confidence + 5)
            self.min_evidence = min(self._config.max_min_evidence, self.min_evidence + 1)
            logger.info(
                "%s tightened floors: confidence %d, evidence %d",
                self.actor_id, self.min_confidence, self.min_evidence,
            )


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


@dataclass
class ComplianceRule:
    id: str
    name: str
    description: str
    category: str          # data_privacy, business_rule, risk_management, regulatory
    severity: str
    check: Callable[[DebateRecord], bool]   # True when the debate complies


_PII_PATTERNS = (
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    re.compile(r"\b01[0-9]-?\d{3,4}-?\d{4}\b"),
    re.compile(r"\b\d{6}-?[1-4]\d{6}\b"),
)
_FINANCIAL_PATTERN = re.compile(
    r"[$€£₩]\s?\d|\b\d[\d,.]*\s?(?:usd|krw|eur|dollars|won|million|billion)\b", re.IGNORECASE
)
_RISK_KEYWORDS = ("risk", "concern", "problem", "threat", "failure", "downside", "uncertain")
_MITIGATION_KEYWORDS = (
    "mitigat", "contingen", "monitor", "prevent", "manag", "control",
    "respon", "review", "track", "verif", "validat",
)
_DOMAIN_KEYWORDS = {
    "bom": ("bom", "bill of materials", "raw material", "production", "manufactur", "component"),
    "waste": ("waste", "loss", "defect", "scrap"),
    "inventory": ("inventory", "stock", "warehouse", "storage", "reorder"),
    "profitability": ("profit", "margin", "revenue", "channel", "sales"),
    "general": ("cost", "expense", "manag", "strateg", "operat"),
}


def _no_pii(debate: DebateRecord) -> bool:
    text = debate_text(debate)
    return not any(p.search(text) for p in _PII_PATTERNS)


def _financials_have_evidence(debate: DebateRecord) -> bool:
    if not _FINANCIAL_PATTERN.search(debate_text(debate)):
        return True
    return any(rnd.content.evidence for rnd in debate.rounds())


def _risk_assessed(debate: DebateRecord) -> bool:
    if debate.antithesis is None:
        return False
    text = (debate.antithesis.content.position + " " + debate.antithesis.content.reasoning).lower()
    return any(k in text for k in _RISK_KEYWORDS)


def _mitigation_present(debate: DebateRecord) -> bool:
    if debate.synthesis is None:
        return False
    return any(
        k in action.lower()
        for action in debate.synthesis.content.suggested_actions
        for k in _MITIGATION_KEYWORDS
    )


def _domain_relevant(debate: DebateRecord) -> bool:
    keywords = _DOMAIN_KEYWORDS.get(debate.domain, _DOMAIN_KEYWORDS["general"])
    text = debate_text(debate).lower()
    return any(k in text for k in keywords)


def _conclusion_clear(debate: DebateRecord) -> bool:
    if debate.synthesis is None:
        return False
    return len(debate.synthesis.content.position) >= 20 and len(debate.synthesis.content.suggested_actions) >= 1


def default_rules() -> list[ComplianceRule]:
    return [
        ComplianceRule("DP001", "No personal data", "Debate content must not contain personally identifying information.",
                       "data_privacy", "critical", _no_pii),
        ComplianceRule("BR001", "Financial figures need evidence", "Monetary figures must be backed by cited evidence.",
                       "business_rule", "high", _financials_have_evidence),
        ComplianceRule("RM001", "Risk assessment", "The antithesis must analyse risks.",
                       "risk_management", "medium", _risk_assessed),
        ComplianceRule("RM002", "Risk mitigation", "The synthesis must propose mitigating actions.",
                       "risk_management", "medium", _mitigation_present),
        ComplianceRule("RG001", "Domain relevance", "The debate must stay on its assigned domain.",
                       "regulatory", "low", _domain_relevant),
        ComplianceRule("BR002", "Clear conclusion", "The conclusion must be specific and actionable.",
                       "business_rule", "medium", _conclusion_clear),
    ]


class ComplianceReviewer(GovernanceReviewer):
    """Applies a domain-agnostic rule list to the debate transcript."""

    reviewer_role = COMPLIANCE_REVIEWER

    PENALTIES = {"low": 5, "medium": 10, "high": 20, "critical": 40}
    RECOMMENDATIONS = {
        "data_privacy": "Remove personal data from the debate inputs and outputs",
        "business_rule": "Cite sources for figures and state the conclusion with concrete actions",
        "risk_management": "Document the key risks and a mitigation for each",
        "regulatory": "Keep the discussion focused on the team's domain",
    }

    def __init__(
        self,
        bus: MessageBus,
        config: ComplianceConfig | None = None,
        rules: list[ComplianceRule] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(bus, **kwargs)
        self._config = config or ComplianceConfig()
        self._rules = list(rules) if rules is not None else default_rules()

    def add_rule(self, rule: ComplianceRule) -> None:
        self._rules = [r for r in self._rules if r.id != rule.id] + [rule]

    def get_rules(self) -> list[ComplianceRule]:
        return list(self._rules)

    def evaluate(self, debate):
        issues: list[GovernanceIssue] = []
        violated: list[ComplianceRule] = []
        for rule in self._rules:
            try:
                passed = rule.check(debate)
            except Exception as exc:
                logger.warning("Compliance rule %s failed on %s, skipping: %s", rule.id, debate.id, exc)
                continue
            if not passed:
                violated.append(rule)
                issues.append(GovernanceIssue(
                    "compliance", rule.severity, f"{rule.id} {rule.name}: {rule.description}",
                ))

        score = max(0, min(100, 100 - sum(self.PENALTIES.get(r.severity, 0) for r in violated)))
        approved = score >= self._config.approval_score and not any(r.severity == "critical" for r in violated)
        recommendations = [
            self.RECOMMENDATIONS[c] for c in dict.fromkeys(r.category for r in violated)
            if c in self.RECOMMENDATIONS
        ]
        return score, approved, issues, recommendations
