"""Guarded calls to the text-generation provider. Failures turn into None, never exceptions."""

import asyncio
import logging

from dialectic.models import Generation
from dialectic.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


async def _call_provider(provider: AIProvider, prompt: str) -> Generation | ProviderError:
    """Call a provider, retrying once on timeout with 1.5x the timeout.

    Never raises. Returns ProviderError on permanent failure.
    """
    try:
        return await provider.generate(prompt)
    except ProviderError as exc:
        if "timed out" in str(exc).lower():
            # Per-call deadline; the shared provider config is never mutated
            base_timeout = getattr(getattr(provider, "_config", None), "timeout_sec", None)
            retry_timeout = base_timeout * 1.5 if base_timeout else None
            if retry_timeout is not None:
                logger.warning(
                    "Provider %s timed out, retrying with %gs (1.5x)",
                    provider.name(), retry_timeout,
                )
            else:
                logger.warning("Provider %s timed out, retrying", provider.name())
            try:
                return await provider.generate(prompt, timeout=retry_timeout)
            except ProviderError as retry_exc:
                logger.warning("Provider %s failed after retry: %s", provider.name(), retry_exc)
                return retry_exc
            except Exception as retry_exc:
                logger.warning("Provider %s unexpected failure after retry: %s", provider.name(), retry_exc)
                return ProviderError(provider.name(), f"Unexpected error on retry: {retry_exc}")

        logger.warning("Provider %s failed: %s", provider.name(), exc)
        return exc
    except Exception as exc:
        logger.warning("Provider %s unexpected failure: %s", provider.name(), exc)
        return ProviderError(provider.name(), f"Unexpected error: {exc}")


async def call_generator(
    provider: AIProvider | None,
    prompt: str,
    timeout: float | None = None,
) -> Generation | None:
    """Generate text under an overall deadline.

    Returns None when there is no provider, the provider fails, or the
    deadline passes. Callers substitute their deterministic fallback.
    """
    if provider is None:
        return None
    try:
        result = await asyncio.wait_for(_call_provider(provider, prompt), timeout=timeout)
    except TimeoutError:
        logger.warning(
            "Generation via %s exceeded the %.0fs round deadline, using fallback",
            provider.name(), timeout,
        )
        return None
    if isinstance(result, ProviderError):
        return None
    return result
