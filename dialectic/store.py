"""Persistence adapter contract, row serializer, and two concrete stores.

Rows are plain JSON-compatible dicts so any key/value or document backend can
hold them. Durability is best-effort: the Debate Manager logs write failures
and keeps going on its in-memory state.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from dialectic.models import (
    TERMINAL_PHASES,
    DebateContent,
    DebateRecord,
    DebateRound,
    Directive,
    FinalDecision,
    GovernanceIssue,
    GovernanceReview,
)

logger = logging.getLogger(__name__)


@dataclass
class StoreFilter:
    include_terminal: bool = True
    limit: int = 100       # cap on finished rows; unfinished rows are always returned
    domain: str | None = None
    team: str | None = None


class DebateStore(ABC):
    """Upsert/query store for debate rows."""

    @abstractmethod
    async def upsert_debate(self, row: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def query_active_or_recent(self, filter: StoreFilter) -> list[dict[str, Any]]:
        """Return every unfinished row plus up to `filter.limit` finished rows, newest first."""
        ...

    @abstractmethod
    async def get_debate(self, debate_id: str) -> dict[str, Any] | None:
        ...


# -- serializer ---------------------------------------------------------------

def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def debate_to_row(record: DebateRecord) -> dict[str, Any]:
    """Flatten a DebateRecord into a JSON-compatible row."""
    return {
        "id": record.id,
        "domain": record.domain,
        "team": record.team,
        "topic": record.topic,
        "version": record.version,
        "priority": record.priority,
        "current_phase": record.current_phase,
        "context_data": _jsonable(record.context_data),
        "thesis": _jsonable(asdict(record.thesis)) if record.thesis else None,
        "antithesis": _jsonable(asdict(record.antithesis)) if record.antithesis else None,
        "synthesis": _jsonable(asdict(record.synthesis)) if record.synthesis else None,
        "final_decision": asdict(record.final_decision) if record.final_decision else None,
        "governance_reviews": [_jsonable(asdict(r)) for r in record.governance_reviews],
        "requested_reviewers": list(record.requested_reviewers),
        "cancel_reason": record.cancel_reason,
        "started_at": record.started_at.isoformat(),
        "completed_at": record.completed_at.isoformat() if record.completed_at else None,
    }


def _row_to_round(raw: dict[str, Any] | None) -> DebateRound | None:
    if not raw:
        return None
    content = raw["content"]
    directive = raw.get("directive")
    return DebateRound(
        id=raw["id"],
        debate_id=raw["debate_id"],
        phase=raw["phase"],
        role=raw["role"],
        agent_id=raw["agent_id"],
        content=DebateContent(
            position=content["position"],
            reasoning=content["reasoning"],
            evidence=tuple(content.get("evidence") or ()),
            confidence=int(content["confidence"]),
            suggested_actions=tuple(content.get("suggested_actions") or ()),
        ),
        directive=Directive(**directive) if directive else None,
        responds_to=tuple(raw.get("responds_to") or ()),
        timestamp=_parse_time(raw.get("timestamp")),
    )


def _row_to_review(raw: dict[str, Any]) -> GovernanceReview:
    return GovernanceReview(
        id=raw["id"],
        debate_id=raw["debate_id"],
        reviewer_role=raw["reviewer_role"],
        reviewer_agent_id=raw["reviewer_agent_id"],
        approved=bool(raw["approved"]),
        score=int(raw["score"]),
        issues=[GovernanceIssue(**i) for i in raw.get("issues") or []],
        recommendations=list(raw.get("recommendations") or []),
        timestamp=_parse_time(raw.get("timestamp")),
    )


def row_to_debate(row: dict[str, Any]) -> DebateRecord:
    """Rebuild a DebateRecord from a stored row. Raises KeyError/ValueError on malformed rows."""
    decision = row.get("final_decision")
    return DebateRecord(
        id=row["id"],
        topic=row["topic"],
        domain=row["domain"],
        team=row["team"],
        version=int(row["version"]),
        priority=row.get("priority") or "medium",
        context_data=dict(row.get("context_data") or {}),
        current_phase=row["current_phase"],
        thesis=_row_to_round(row.get("thesis")),
        antithesis=_row_to_round(row.get("antithesis")),
        synthesis=_row_to_round(row.get("synthesis")),
        final_decision=FinalDecision(**decision) if decision else None,
        governance_reviews=[_row_to_review(r) for r in row.get("governance_reviews") or []],
        requested_reviewers=list(row.get("requested_reviewers") or []),
        cancel_reason=row.get("cancel_reason"),
        started_at=_parse_time(row["started_at"]),
        completed_at=_parse_time(row.get("completed_at")),
    )


def _select(rows: list[dict[str, Any]], filter: StoreFilter) -> list[dict[str, Any]]:
    rows = [
        r for r in rows
        if (filter.domain is None or r.get("domain") == filter.domain)
        and (filter.team is None or r.get("team") == filter.team)
    ]
    unfinished = [r for r in rows if r.get("current_phase") not in TERMINAL_PHASES]
    unfinished.sort(key=lambda r: r.get("started_at") or "")
    if not filter.include_terminal:
        return unfinished
    finished = [r for r in rows if r.get("current_phase") in TERMINAL_PHASES]
    finished.sort(key=lambda r: r.get("completed_at") or r.get("started_at") or "", reverse=True)
    return unfinished + finished[: filter.limit]


# -- stores -------------------------------------------------------------------

class InMemoryDebateStore(DebateStore):
    """Process-local store. Rows are copied in and out."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}

    async def upsert_debate(self, row: dict[str, Any]) -> None:
        self._rows[row["id"]] = copy.deepcopy(row)

    async def query_active_or_recent(self, filter: StoreFilter) -> list[dict[str, Any]]:
        return copy.deepcopy(_select(list(self._rows.values()), filter))

    async def get_debate(self, debate_id: str) -> dict[str, Any] | None:
        row = self._rows.get(debate_id)
        return copy.deepcopy(row) if row is not None else None


class FileDebateStore(DebateStore):
    """One JSON document per debate under `directory`, replaced atomically on write."""

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, debate_id: str) -> Path:
        return self._dir / f"{debate_id}.json"

    async def upsert_debate(self, row: dict[str, Any]) -> None:
        path = self._path(row["id"])
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(row, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        tmp.replace(path)
        logger.debug("Stored debate %s (%s)", row["id"], row.get("current_phase"))

    def _load_all(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for path in sorted(self._dir.glob("*.json")):
            try:
                rows.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping unreadable debate file %s: %s", path.name, exc)
        return rows

    async def query_active_or_recent(self, filter: StoreFilter) -> list[dict[str, Any]]:
        return _select(self._load_all(), filter)

    async def get_debate(self, debate_id: str) -> dict[str, Any] | None:
        path = self._path(debate_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))
