"""Debate Manager: the authoritative state machine for every debate.

Owns the active set, the bounded history and the admission queue. All
mutation goes through the coroutines below; operations on one debate id are
serialized by a per-debate lock, while different debates interleave freely.
Admission bookkeeping never awaits, so the concurrency cap holds under
interleaving.
"""

import asyncio
import heapq
import itertools
import json
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from dialectic.errors import (
    DebateAlreadyCompletedError,
    DebateCapacityError,
    DebateNotActiveError,
    DebateNotFoundError,
    OutOfOrderRoundError,
)
from dialectic.models import (
    CANCELLED,
    PRIORITIES,
    PRIORITY_RANK,
    QUEUED,
    TEAM_TO_DOMAIN,
    DebateEvent,
    DebateRecord,
    DebateRound,
    DebateStartRequest,
    DebateStatistics,
    Directive,
    FinalDecision,
    GovernanceReview,
    QueueStatus,
    utcnow,
)
from dialectic.store import DebateStore, StoreFilter, debate_to_row, row_to_debate
from dialectic.transcript import TranscriptSink

logger = logging.getLogger(__name__)

_NEXT_ROUND_PHASE = {"pending": "thesis", "thesis": "antithesis", "antithesis": "synthesis"}
_REVIEWABLE_PHASES = ("synthesis", "governance_review")
_DIRECTIVE_CONTEXT_CHARS = 1000

AdmissionHook = Callable[[DebateRecord, bool], Awaitable[None]]
Listener = Callable[[DebateEvent], None]


@dataclass
class _QueuedDebate:
    request: DebateStartRequest | None = None
    record: DebateRecord | None = None   # set for restored debates waiting for a slot

    @property
    def team(self) -> str:
        return self.record.team if self.record else self.request.team

    @property
    def topic(self) -> str:
        return self.record.topic if self.record else self.request.topic

    @property
    def priority(self) -> str:
        return self.record.priority if self.record else self.request.priority


@dataclass
class RestoreResult:
    admitted: int
    queued: int
    history_loaded: int


class DebateManager:
    """Lifecycle, admission control and history for debates."""

    def __init__(
        self,
        store: DebateStore | None = None,
        transcripts: TranscriptSink | None = None,
        max_active: int = 10,
        max_history: int = 100,
    ) -> None:
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        self.max_active = max_active
        self.max_history = max_history
        self._store = store
        self._transcripts = transcripts
        self._active: dict[str, DebateRecord] = {}
        self._history: deque[DebateRecord] = deque(maxlen=max_history)  # most recent first
        self._queue: list[tuple[int, int, _QueuedDebate]] = []
        self._seq = itertools.count()
        self._locks: dict[str, asyncio.Lock] = {}
        self._versions: dict[tuple[str, str], int] = {}
        self._listeners: list[Listener] = []
        self._waiters: dict[str, list[asyncio.Future]] = {}
        self._admission_hook: AdmissionHook | None = None

    # -- wiring --------------------------------------------------------------

    def set_admission_hook(self, hook: AdmissionHook | None) -> None:
        """Register the coroutine called when a queued or restored debate takes a slot.

        The hook receives the record and True when it was restored from storage.
        """
        self._admission_hook = hook

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _emit(self, event_type: str, record: DebateRecord | None = None, team: str = "") -> None:
        event = DebateEvent(
            type=event_type,
            debate_id=record.id if record else None,
            team=record.team if record else team,
            phase=record.current_phase if record else None,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Debate event listener failed on %s", event_type)

    def _lock(self, debate_id: str) -> asyncio.Lock:
        lock = self._locks.get(debate_id)
        if lock is None:
            lock = self._locks[debate_id] = asyncio.Lock()
        return lock

    # -- lookups -------------------------------------------------------------

    def _find_history(self, debate_id: str) -> DebateRecord | None:
        return next((r for r in self._history if r.id == debate_id), None)

    def _find_queued(self, debate_id: str) -> DebateRecord | None:
        for _, _, entry in self._queue:
            if entry.record is not None and entry.record.id == debate_id:
                return entry.record
        return None

    def _require_active(self, debate_id: str) -> DebateRecord:
        record = self._active.get(debate_id)
        if record is not None:
            return record
        finished = self._find_history(debate_id) or self._find_queued(debate_id)
        if finished is not None:
            raise DebateNotActiveError(debate_id, finished.current_phase)
        raise DebateNotFoundError(debate_id)

    def get_active_debate(self, debate_id: str) -> DebateRecord | None:
        return self._active.get(debate_id)

    def get_debate(self, debate_id: str) -> DebateRecord:
        """Return an active, queued-restored or historical debate. Raises DebateNotFoundError."""
        record = (
            self._active.get(debate_id)
            or self._find_queued(debate_id)
            or self._find_history(debate_id)
        )
        if record is None:
            raise DebateNotFoundError(debate_id)
        return record

    def get_all_active_debates(self) -> list[DebateRecord]:
        return list(self._active.values())

    def get_active_debates_by_team(self, team: str) -> list[DebateRecord]:
        return [r for r in self._active.values() if r.team == team]

    def get_debate_history(
        self,
        domain: str | None = None,
        team: str | None = None,
        limit: int = 20,
    ) -> list[DebateRecord]:
        """Finished debates, most recent first."""
        matches = [
            r for r in self._history
            if (domain is None or r.domain == domain) and (team is None or r.team == team)
        ]
        return matches[:limit]

    # -- admission -----------------------------------------------------------

    def _next_version(self, team: str, topic: str) -> int:
        key = (team, topic)
        version = self._versions.get(key, 0) + 1
        self._versions[key] = version
        return version

    def _note_version(self, record: DebateRecord) -> None:
        key = (record.team, record.topic)
        self._versions[key] = max(self._versions.get(key, 0), record.version)

    def _create_record(self, request: DebateStartRequest) -> DebateRecord:
        record = DebateRecord(
            id=str(uuid.uuid4()),
            topic=request.topic,
            domain=TEAM_TO_DOMAIN[request.team],
            team=request.team,
            version=self._next_version(request.team, request.topic),
            priority=request.priority,
            context_data=request.context_data,
        )
        self._active[record.id] = record
        return record

    def _enqueue(self, entry: _QueuedDebate) -> None:
        heapq.heappush(self._queue, (-PRIORITY_RANK[entry.priority], next(self._seq), entry))

    async def initiate_debate(
        self,
        team: str,
        topic: str,
        context_data: dict | None = None,
        priority: str = "medium",
        immediate: bool = False,
    ) -> str:
        """Admit a debate and return its id, or queue it and return QUEUED.

        With `immediate=True` a full engine raises DebateCapacityError instead
        of queueing.
        """
        if team not in TEAM_TO_DOMAIN:
            raise ValueError(f"Unknown team: {team}")
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown priority: {priority}")

        request = DebateStartRequest(
            team=team,
            topic=topic,
            context_data=dict(context_data or {}),
            priority=priority,
            immediate=immediate,
        )

        if len(self._active) >= self.max_active or self._queue:
            if immediate:
                raise DebateCapacityError(self.max_active)
            self._enqueue(_QueuedDebate(request=request))
            logger.info(
                "Debate queued for %s (%s priority), %d waiting",
                team, priority, len(self._queue),
            )
            self._emit("debate_queued", team=team)
            return QUEUED

        record = self._create_record(request)
        logger.info("Debate %s started: %s v%d [%s]", record.id, team, record.version, topic)
        self._emit("debate_started", record)
        await self._write_through(record, first=True)
        return record.id

    def _admit_from_queue(self) -> list[tuple[DebateRecord, bool]]:
        """Fill free slots from the queue, highest priority first, FIFO within a priority.

        Synchronous: a slot freed by retirement is handed to the queue before
        the caller awaits anything.
        """
        admitted: list[tuple[DebateRecord, bool]] = []
        while self._queue and len(self._active) < self.max_active:
            _, _, entry = heapq.heappop(self._queue)
            if entry.record is not None:
                record = entry.record
                self._active[record.id] = record
                admitted.append((record, True))
            else:
                admitted.append((self._create_record(entry.request), False))
        return admitted

    async def _announce_admissions(self, admitted: list[tuple[DebateRecord, bool]]) -> None:
        for record, resumed in admitted:
            logger.info(
                "Debate %s admitted from queue (%s, resumed=%s), %d still waiting",
                record.id, record.team, resumed, len(self._queue),
            )
            self._emit("debate_started", record)
            if not resumed:
                await self._write_through(record, first=True)
            await self._notify_admission(record, resumed)

    async def _notify_admission(self, record: DebateRecord, resumed: bool) -> None:
        if self._admission_hook is None:
            return
        try:
            await self._admission_hook(record, resumed)
        except Exception:
            logger.exception("Admission hook failed for debate %s", record.id)

    # -- lifecycle -----------------------------------------------------------

    async def record_round(self, debate_id: str, debate_round: DebateRound) -> DebateRecord:
        """Append the next round and advance the phase.

        Raises DebateNotFoundError, DebateNotActiveError or OutOfOrderRoundError.
        """
        async with self._lock(debate_id):
            record = self._require_active(debate_id)
            expected = _NEXT_ROUND_PHASE.get(record.current_phase)
            if debate_round.phase != expected:
                raise OutOfOrderRoundError(
                    debate_id,
                    f"got {debate_round.phase} while in {record.current_phase}"
                    + (f", expected {expected}" if expected else ""),
                )
            if debate_round.debate_id != debate_id:
                raise OutOfOrderRoundError(debate_id, f"round belongs to {debate_round.debate_id}")
            missing = [r.id for r in record.rounds() if r.id not in debate_round.responds_to]
            if missing:
                raise OutOfOrderRoundError(
                    debate_id, f"{debate_round.phase} does not respond to {', '.join(missing)}"
                )

            setattr(record, debate_round.phase, debate_round)
            record.current_phase = debate_round.phase
            self._emit("round_completed", record)
            await self._write_through(record)
            return record

    async def request_governance(self, debate_id: str, reviewer_roles: list[str]) -> DebateRecord:
        """Note which reviewer roles were asked and move to governance_review."""
        async with self._lock(debate_id):
            record = self._require_active(debate_id)
            if record.current_phase not in _REVIEWABLE_PHASES:
                raise OutOfOrderRoundError(
                    debate_id, f"governance requested while in {record.current_phase}"
                )
            for role in reviewer_roles:
                if role not in record.requested_reviewers:
                    record.requested_reviewers.append(role)
            record.current_phase = "governance_review"
            self._emit("governance_requested", record)
            await self._write_through(record)
            return record

    async def add_governance_review(self, debate_id: str, review: GovernanceReview) -> DebateRecord:
        """Store a review, replacing any earlier one from the same reviewer role.

        Never finalizes. Completion is the orchestrator's decision.
        """
        async with self._lock(debate_id):
            record = self._require_active(debate_id)
            if record.current_phase not in _REVIEWABLE_PHASES:
                raise OutOfOrderRoundError(
                    debate_id, f"governance review received while in {record.current_phase}"
                )
            record.governance_reviews = [
                r for r in record.governance_reviews if r.reviewer_role != review.reviewer_role
            ]
            record.governance_reviews.append(review)
            record.current_phase = "governance_review"
            self._emit("governance_reviewed", record)
            await self._write_through(record)
            return record

    async def complete_debate(self, debate_id: str, final_decision: FinalDecision) -> DebateRecord:
        """Finalize a debate exactly once, move it to history and admit the next queued debate."""
        async with self._lock(debate_id):
            record = self._active.get(debate_id)
            if record is None:
                finished = self._find_history(debate_id)
                if finished is not None and finished.current_phase == "complete":
                    raise DebateAlreadyCompletedError(debate_id)
                record = self._require_active(debate_id)  # raises
            if record.synthesis is None:
                raise OutOfOrderRoundError(debate_id, "cannot complete before synthesis is recorded")

            record.final_decision = final_decision
            record.completed_at = utcnow()
            record.current_phase = "complete"
            self._retire(record)
            admitted = self._admit_from_queue()
            logger.info(
                "Debate %s complete (confidence %d, %d reviews)",
                debate_id, final_decision.confidence, len(record.governance_reviews),
            )
            self._emit("debate_completed", record)
            await self._write_through(record)

        await self._announce_admissions(admitted)
        return record

    async def cancel_debate(self, debate_id: str, reason: str) -> DebateRecord:
        """Terminate a debate in any non-complete state and free its slot."""
        async with self._lock(debate_id):
            record = self._active.get(debate_id)
            if record is None:
                queued = self._find_queued(debate_id)
                if queued is None:
                    self._require_active(debate_id)  # raises not-found or not-active
                record = queued
                self._queue = [item for item in self._queue if item[2].record is not queued]
                heapq.heapify(self._queue)

            record.current_phase = CANCELLED
            record.cancel_reason = reason
            record.completed_at = utcnow()
            self._retire(record)
            admitted = self._admit_from_queue()
            logger.info("Debate %s cancelled: %s", debate_id, reason)
            self._emit("debate_cancelled", record)
            await self._write_through(record)

        await self._announce_admissions(admitted)
        return record

    def _retire(self, record: DebateRecord) -> None:
        self._active.pop(record.id, None)
        self._locks.pop(record.id, None)
        self._history.appendleft(record)
        for waiter in self._waiters.pop(record.id, []):
            if not waiter.done():
                waiter.set_result(record)

    async def wait_for(self, debate_id: str, timeout: float | None = None) -> DebateRecord:
        """Wait until a debate completes or is cancelled."""
        record = self.get_debate(debate_id)
        if record.is_terminal:
            return record
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(debate_id, []).append(waiter)
        return await asyncio.wait_for(waiter, timeout=timeout)

    # -- durability ----------------------------------------------------------

    async def _write_through(self, record: DebateRecord, first: bool = False) -> None:
        """Best-effort snapshot and transcript update. Failures are logged, never raised."""
        if self._store is not None:
            try:
                await self._store.upsert_debate(debate_to_row(record))
            except Exception:
                logger.warning(
                    "Persisting debate %s (%s) failed, in-memory state stands",
                    record.id, record.current_phase, exc_info=True,
                )
        if self._transcripts is not None:
            try:
                if first:
                    self._transcripts.write(record)
                else:
                    self._transcripts.update(record.id, record)
            except Exception:
                logger.warning("Transcript update for debate %s failed", record.id, exc_info=True)

    async def restore_from_database(self) -> RestoreResult:
        """Reload unfinished debates after a restart.

        Unfinished records are admitted in start order up to the cap, the rest
        queued with their phase and rounds intact. Recent finished records
        refill the history.
        """
        if self._store is None:
            return RestoreResult(admitted=0, queued=0, history_loaded=0)

        try:
            rows = await self._store.query_active_or_recent(
                StoreFilter(include_terminal=True, limit=self.max_history)
            )
        except Exception:
            logger.warning("Could not read debates from storage, starting empty", exc_info=True)
            return RestoreResult(admitted=0, queued=0, history_loaded=0)

        unfinished: list[DebateRecord] = []
        finished: list[DebateRecord] = []
        for row in rows:
            try:
                record = row_to_debate(row)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable debate row %s", row.get("id"), exc_info=True)
                continue
            self._note_version(record)
            (finished if record.is_terminal else unfinished).append(record)

        known = {r.id for r in self._history}
        merged = sorted(
            [*self._history, *(r for r in finished if r.id not in known)],
            key=lambda r: r.completed_at or r.started_at,
            reverse=True,
        )[: self.max_history]
        loaded = sum(1 for r in merged if r.id not in known)
        self._history = deque(merged, maxlen=self.max_history)

        admitted: list[DebateRecord] = []
        queued = 0
        for record in sorted(unfinished, key=lambda r: r.started_at):
            if record.id in self._active or self._find_queued(record.id) is not None:
                continue
            if len(self._active) < self.max_active:
                self._active[record.id] = record
                admitted.append(record)
            else:
                self._enqueue(_QueuedDebate(record=record))
                queued += 1

        logger.info(
            "Restored %d debates (%d admitted, %d queued), %d history records",
            len(admitted) + queued, len(admitted), queued, loaded,
        )
        for record in admitted:
            self._emit("debate_started", record)
            await self._notify_admission(record, True)
        return RestoreResult(admitted=len(admitted), queued=queued, history_loaded=loaded)

    # -- queries -------------------------------------------------------------

    def create_directive(
        self,
        role: str,
        task: str,
        record: DebateRecord,
        success_criteria: str = "",
    ) -> Directive:
        context = json.dumps(record.context_data, ensure_ascii=False, default=str)
        return Directive(
            context=context[:_DIRECTIVE_CONTEXT_CHARS],
            role=f"{role} ({record.domain})",
            task=task,
            success_criteria=success_criteria,
        )

    def get_queue_status(self) -> QueueStatus:
        waiting = [entry for _, _, entry in sorted(self._queue)]
        return QueueStatus(
            active_count=len(self._active),
            queued_count=len(self._queue),
            max_active=self.max_active,
            queued=[(e.team, e.topic, e.priority) for e in waiting],
        )

    def get_statistics(self) -> DebateStatistics:
        records = list(self._history) + list(self._active.values())
        completed = [r for r in self._history if r.current_phase == "complete"]
        cancelled = [r for r in self._history if r.current_phase == CANCELLED]
        confidences = [r.final_decision.confidence for r in completed if r.final_decision]
        durations = [d for d in (r.duration_sec() for r in completed) if d is not None]
        reviews = [review for r in records for review in r.governance_reviews]

        by_domain: dict[str, int] = {}
        by_team: dict[str, int] = {}
        for r in records:
            by_domain[r.domain] = by_domain.get(r.domain, 0) + 1
            by_team[r.team] = by_team.get(r.team, 0) + 1

        return DebateStatistics(
            total_debates=len(records),
            completed_debates=len(completed),
            cancelled_debates=len(cancelled),
            active_debates=len(self._active),
            queued_debates=len(self._queue),
            average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            average_duration_sec=sum(durations) / len(durations) if durations else 0.0,
            governance_approval_rate=(
                sum(1 for r in reviews if r.approved) / len(reviews) if reviews else 0.0
            ),
            by_domain=by_domain,
            by_team=by_team,
        )
