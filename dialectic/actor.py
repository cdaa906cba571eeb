"""Shared actor bookkeeping: bus subscription, status, counters, and coaching."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from config.config_loader import CoachingConfig
from dialectic.bus import MessageBus
from dialectic.errors import DebateError
from dialectic.messages import Message, MessageType
from dialectic.models import CoachingFeedback

logger = logging.getLogger(__name__)

VERBOSITY_LEVELS = ("concise", "normal", "detailed")


@dataclass
class ActorStatus:
    actor_id: str
    kind: str              # role or reviewer role
    status: str            # idle, processing, error, stopped
    processed_tasks: int
    successful_tasks: int
    success_rate: float
    avg_processing_ms: float
    confidence_offset: int
    verbosity: str
    last_error: str | None = None


class Actor(ABC):
    """A named bus participant that handles one kind of work message.

    Handler failures are logged and counted. They never reach the bus.
    """

    kind = "actor"

    def __init__(
        self,
        actor_id: str,
        bus: MessageBus,
        coaching: CoachingConfig | None = None,
    ) -> None:
        self.actor_id = actor_id
        self._bus = bus
        self._coaching = coaching or CoachingConfig()
        self.status = "stopped"
        self.processed_tasks = 0
        self.successful_tasks = 0
        self.total_processing_ms = 0.0
        self.confidence_offset = 0
        self.verbosity = "normal"
        self.last_error: str | None = None
        self._in_flight = 0
        self._unsubscribe: Callable[[], None] | None = None

    @abstractmethod
    def handles(self, message: Message) -> bool:
        """Return True for the work message types this actor owns."""
        ...

    @abstractmethod
    async def handle(self, message: Message) -> None:
        ...

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe_actor(self.actor_id, self._dispatch)
        self.status = "idle"

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.status = "stopped"

    async def _dispatch(self, message: Message) -> None:
        if message.type == MessageType.COACHING_FEEDBACK:
            self.apply_coaching(message.payload.feedback)
            return
        if not self.handles(message):
            return

        self._in_flight += 1
        self.processed_tasks += 1
        self.status = "processing"
        start = time.monotonic()
        try:
            await self.handle(message)
        except DebateError as exc:
            self.status = "error"
            self.last_error = str(exc)
            logger.warning("%s rejected %s: %s", self.actor_id, message.type.name, exc)
        except Exception as exc:
            self.status = "error"
            self.last_error = str(exc)
            logger.exception("%s failed handling %s", self.actor_id, message.type.name)
        else:
            self.successful_tasks += 1
        finally:
            self.total_processing_ms += (time.monotonic() - start) * 1000
            self._in_flight -= 1
            if self._unsubscribe is None:
                self.status = "stopped"
            elif self._in_flight == 0:
                self.status = "idle"

    # -- coaching ------------------------------------------------------------

    def apply_coaching(self, feedback: CoachingFeedback) -> None:
        """Apply a bounded adjustment for one coaching metric."""
        if feedback.metric == "accuracy":
            step = -5 if feedback.score < feedback.benchmark else 2
            self.confidence_offset = max(
                self._coaching.min_confidence_offset,
                min(self._coaching.max_confidence_offset, self.confidence_offset + step),
            )
        elif feedback.metric == "latency":
            if feedback.score > feedback.benchmark:
                self.verbosity = "concise"
        elif feedback.metric == "user_acceptance":
            if feedback.score < feedback.benchmark:
                self.verbosity = "detailed"
        else:
            logger.warning("%s ignoring unknown coaching metric %r", self.actor_id, feedback.metric)
            return
        logger.info(
            "%s coached on %s (%.2f vs %.2f): offset=%d verbosity=%s",
            self.actor_id, feedback.metric, feedback.score, feedback.benchmark,
            self.confidence_offset, self.verbosity,
        )

    def adjusted_confidence(self, base: int) -> int:
        return max(0, min(100, base + self.confidence_offset))

    # -- status --------------------------------------------------------------

    @property
    def success_rate(self) -> float:
        return self.successful_tasks / self.processed_tasks if self.processed_tasks else 1.0

    @property
    def avg_processing_ms(self) -> float:
        return self.total_processing_ms / self.processed_tasks if self.processed_tasks else 0.0

    def get_status(self) -> ActorStatus:
        return ActorStatus(
            actor_id=self.actor_id,
            kind=self.kind,
            status=self.status,
            processed_tasks=self.processed_tasks,
            successful_tasks=self.successful_tasks,
            success_rate=self.success_rate,
            avg_processing_ms=self.avg_processing_ms,
            confidence_offset=self.confidence_offset,
            verbosity=self.verbosity,
            last_error=self.last_error,
        )
