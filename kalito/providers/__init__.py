"""LLM provider abstraction module.

``LiteLLMProvider`` lives in ``kalito.providers.litellm_provider`` and is
imported from there, so the memory core loads without litellm.
"""

from kalito.providers.base import (
    CompletionError,
    CompletionRequest,
    CompletionResponse,
    LLMProvider,
    ProviderNetworkError,
    is_network_error,
)
from kalito.providers.registry import ModelRegistry, ModelSpec

__all__ = [
    "CompletionError",
    "CompletionRequest",
    "CompletionResponse",
    "LLMProvider",
    "ProviderNetworkError",
    "is_network_error",
    "ModelRegistry",
    "ModelSpec",
]
