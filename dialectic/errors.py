"""Protocol violation errors raised by the debate engine."""


class DebateError(Exception):
    """Base class for debate protocol violations."""


class DebateNotFoundError(DebateError):
    def __init__(self, debate_id: str) -> None:
        self.debate_id = debate_id
        super().__init__(f"Debate not found: {debate_id}")


class DebateNotActiveError(DebateError):
    """Raised when a round arrives for a debate that already finished or was cancelled."""

    def __init__(self, debate_id: str, phase: str) -> None:
        self.debate_id = debate_id
        self.phase = phase
        super().__init__(f"Debate {debate_id} is not active (phase: {phase})")


class OutOfOrderRoundError(DebateError):
    def __init__(self, debate_id: str, message: str) -> None:
        self.debate_id = debate_id
        super().__init__(f"Out of order round for debate {debate_id}: {message}")


class DebateAlreadyCompletedError(DebateError):
    def __init__(self, debate_id: str) -> None:
        self.debate_id = debate_id
        super().__init__(f"Debate {debate_id} is already completed")


class DebateCapacityError(DebateError):
    """Raised for an immediate start request when every debate slot is taken."""

    def __init__(self, max_active: int) -> None:
        self.max_active = max_active
        super().__init__(f"All {max_active} debate slots are in use")


class MessageValidationError(DebateError):
    """Raised when a bus message has an unknown type or a payload of the wrong shape."""
