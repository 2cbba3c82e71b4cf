"""Base LLM provider interface."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Substrings that mark a connectivity failure in wrapped error messages
NETWORK_ERROR_MARKERS = ("ECONNREFUSED", "ENOTFOUND", "ETIMEDOUT", "fetch failed", "Connection refused")


class CompletionError(Exception):
    """A completion call failed."""


class ProviderNetworkError(CompletionError):
    """The completion service could not be reached (refused, not found, timed out)."""


def is_network_error(error: BaseException) -> bool:
    """Check whether an exception means the service was unreachable."""
    if isinstance(error, (ProviderNetworkError, asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(error)
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


@dataclass
class CompletionRequest:
    """A single-turn completion request."""

    model_id: str
    system_prompt: str
    user_input: str
    temperature: float = 0.1
    max_output_tokens: int = 300


@dataclass
class CompletionResponse:
    """Response from an LLM provider."""

    text: str
    token_usage: int | None = None
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for completion providers.

    Implementations raise ``ProviderNetworkError`` for connectivity
    failures and ``CompletionError`` for everything else.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """
        Run a completion.

        Args:
            request: Model, prompts and sampling settings.

        Returns:
            CompletionResponse with the generated text.
        """
        pass
