"""Bounded buffer of conclusions from finished debates, with cross-domain summaries."""

import logging
from collections import deque
from datetime import timedelta

from dialectic.generation import call_generator
from dialectic.models import Insight, utcnow
from dialectic.providers.base import AIProvider

logger = logging.getLogger(__name__)

_BUFFER_LIMIT = 50
_DEFAULT_WINDOW_SEC = 300


class InsightBuffer:
    def __init__(
        self,
        limit: int = _BUFFER_LIMIT,
        provider: AIProvider | None = None,
        prompt_template: str = "",
        timeout_sec: float | None = None,
    ) -> None:
        self._insights: deque[Insight] = deque(maxlen=limit)
        self._provider = provider
        self._prompt_template = prompt_template
        self._timeout_sec = timeout_sec

    def __len__(self) -> int:
        return len(self._insights)

    def add(self, insight: Insight) -> None:
        self._insights.append(insight)

    def recent(self, window_sec: float = _DEFAULT_WINDOW_SEC) -> list[Insight]:
        cutoff = utcnow() - timedelta(seconds=window_sec)
        return [i for i in self._insights if i.timestamp >= cutoff]

    def digest(self, insights: list[Insight]) -> str:
        """Deterministic per-domain summary used when no generator is available."""
        by_domain: dict[str, list[Insight]] = {}
        for insight in insights:
            by_domain.setdefault(insight.domain, []).append(insight)
        lines = []
        for domain in sorted(by_domain):
            group = by_domain[domain]
            avg = sum(i.confidence for i in group) / len(group)
            lines.append(
                f"- {domain}: {len(group)} debate(s), average confidence {avg:.0f}%. "
                f"Latest: {group[-1].summary}"
            )
        return "\n".join(lines)

    async def synthesize(self, window_sec: float = _DEFAULT_WINDOW_SEC) -> str | None:
        """Summarize recent insights across domains. Returns None when there is nothing recent."""
        insights = self.recent(window_sec)
        if not insights:
            return None
        digest = self.digest(insights)
        if self._provider is None or not self._prompt_template:
            return digest

        generation = await call_generator(
            self._provider,
            self._prompt_template.format(insights=digest),
            self._timeout_sec,
        )
        if generation is None or not generation.text.strip():
            logger.info("Insight synthesis fell back to the per-domain digest")
            return digest
        return generation.text.strip()
