"""Best-effort structured parsing of free-form generation output."""

import json
import logging
import re
from typing import Any

from dialectic.models import DebateContent

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Pull the first JSON object out of model text.

    Tries the whole text, then fenced code blocks, then the outermost
    brace-delimited span. Returns None when nothing parses to an object.
    """
    if not text:
        return None
    text = text.strip()

    candidates = [text]
    candidates.extend(m.group(1).strip() for m in _FENCE_PATTERN.finditer(text))
    match = _OBJECT_PATTERN.search(text)
    if match:
        candidates.append(match.group())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def coerce_confidence(value: Any, default: int) -> int:
    """Turn a model-supplied confidence into an int. Fractions in (0, 1] are read as ratios."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if 0 < number <= 1 and not isinstance(value, int):
        number *= 100
    return int(round(number))


def _string_list(value: Any) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    items = tuple(str(v).strip() for v in value if v is not None and str(v).strip())
    return items or None


def parse_or_default(text: str | None, fallback: DebateContent) -> DebateContent:
    """Parse generation output into DebateContent, filling gaps from `fallback`.

    Output with no JSON object at all yields `fallback` unchanged. Confidence
    is returned unclamped; callers apply their own offset and bounds.
    """
    parsed = extract_json(text)
    if parsed is None:
        if text:
            logger.debug("No JSON object in generation output (%d chars)", len(text))
        return fallback

    position = str(parsed.get("position") or "").strip() or fallback.position
    reasoning = str(parsed.get("reasoning") or "").strip() or fallback.reasoning
    evidence = parsed.get("evidence")
    actions = _string_list(parsed.get("suggestedActions", parsed.get("suggested_actions")))

    return DebateContent(
        position=position,
        reasoning=reasoning,
        evidence=tuple(evidence) if isinstance(evidence, list) else fallback.evidence,
        confidence=coerce_confidence(parsed.get("confidence"), fallback.confidence),
        suggested_actions=actions if actions is not None else fallback.suggested_actions,
    )
