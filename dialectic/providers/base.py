"""Abstract base for all text-generation providers."""

from abc import ABC, abstractmethod

from dialectic.models import Generation


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all text-generation providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(self, prompt: str, timeout: float | None = None) -> Generation:
        """Generate free-form text for the given prompt.

        Args:
            prompt: The full prompt text to send.
            timeout: Seconds for this call only; None uses the model's configured timeout.

        Returns:
            Generation dataclass with text and call metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
