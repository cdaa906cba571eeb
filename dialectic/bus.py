"""In-process publish/subscribe transport between named actors."""

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from typing import Any

from dialectic.messages import BROADCAST, Message, MessageType, validate

logger = logging.getLogger(__name__)

Handler = Callable[[Message], Awaitable[None]]

_HISTORY_LIMIT = 1000


class MessageBus:
    """Routes validated messages to actor-id and message-type subscribers.

    Every delivery runs as its own task, scheduled on the next loop turn in
    publish order, so messages from one source reach one target FIFO. A
    handler that raises is logged and does not affect other subscribers.
    """

    def __init__(self, history_limit: int = _HISTORY_LIMIT) -> None:
        self._actor_handlers: dict[str, list[Handler]] = defaultdict(list)
        self._type_handlers: dict[MessageType, list[Handler]] = defaultdict(list)
        self._history: deque[Message] = deque(maxlen=history_limit)
        self._pending: set[asyncio.Task] = set()

    # -- subscriptions -------------------------------------------------------

    def subscribe_actor(self, actor_id: str, handler: Handler) -> Callable[[], None]:
        """Receive messages addressed to `actor_id` plus every broadcast."""
        self._actor_handlers[actor_id].append(handler)
        return lambda: self._remove(self._actor_handlers[actor_id], handler)

    def subscribe_type(self, message_type: MessageType, handler: Handler) -> Callable[[], None]:
        """Receive every message of `message_type`, whatever its target."""
        kind = MessageType(message_type)
        self._type_handlers[kind].append(handler)
        return lambda: self._remove(self._type_handlers[kind], handler)

    @staticmethod
    def _remove(handlers: list[Handler], handler: Handler) -> None:
        if handler in handlers:
            handlers.remove(handler)

    # -- publishing ----------------------------------------------------------

    def send(
        self,
        source: str,
        target: str,
        message_type: MessageType,
        payload: Any,
        priority: str = "medium",
        correlation_id: str | None = None,
    ) -> Message:
        """Validate and publish a message. Raises MessageValidationError on a bad envelope."""
        kind = validate(message_type, payload, priority)
        message = Message(
            id=str(uuid.uuid4()),
            type=kind,
            source=source,
            target=target,
            payload=payload,
            priority=priority,
            correlation_id=correlation_id,
        )
        self.publish(message)
        return message

    def broadcast(
        self,
        source: str,
        message_type: MessageType,
        payload: Any,
        priority: str = "medium",
    ) -> Message:
        return self.send(source, BROADCAST, message_type, payload, priority)

    def reply(
        self,
        original: Message,
        source: str,
        message_type: MessageType,
        payload: Any,
    ) -> Message:
        """Answer `original` at its source with the same priority and correlation."""
        return self.send(
            source,
            original.source,
            message_type,
            payload,
            priority=original.priority,
            correlation_id=original.correlation_id or original.id,
        )

    def publish(self, message: Message) -> None:
        validate(message.type, message.payload, message.priority)
        self._history.append(message)

        if message.target == BROADCAST:
            targets = [h for handlers in self._actor_handlers.values() for h in handlers]
        else:
            targets = list(self._actor_handlers.get(message.target, []))
        targets.extend(self._type_handlers.get(message.type, []))

        if not targets:
            logger.debug("No subscribers for %s -> %s", message.type.name, message.target)
            return

        logger.debug(
            "%s %s -> %s (%d handlers)",
            message.type.name, message.source, message.target, len(targets),
        )
        for handler in targets:
            task = asyncio.create_task(self._deliver(handler, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: Handler, message: Message) -> None:
        try:
            await handler(message)
        except Exception:
            logger.exception(
                "Handler %r failed on %s from %s",
                getattr(handler, "__qualname__", handler), message.type.name, message.source,
            )

    async def join(self) -> None:
        """Wait until no delivery is in flight, including deliveries spawned by handlers."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # -- history -------------------------------------------------------------

    def history(self, limit: int = 100) -> list[Message]:
        return list(self._history)[-limit:]

    def messages_by_type(self, message_type: MessageType, limit: int = 50) -> list[Message]:
        kind = MessageType(message_type)
        return [m for m in self._history if m.type == kind][-limit:]

    def messages_for_actor(self, actor_id: str, limit: int = 50) -> list[Message]:
        return [
            m for m in self._history
            if m.target in (actor_id, BROADCAST) or m.source == actor_id
        ][-limit:]
