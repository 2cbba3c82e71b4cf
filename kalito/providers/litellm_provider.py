"""LiteLLM provider implementation for local and remote summarization models."""

from typing import Any

import litellm
from litellm import acompletion
from litellm.exceptions import APIConnectionError, ServiceUnavailableError, Timeout
from loguru import logger

from kalito.providers.base import (
    CompletionError,
    CompletionRequest,
    CompletionResponse,
    LLMProvider,
    ProviderNetworkError,
    is_network_error,
)
from kalito.providers.registry import ModelRegistry

LITELLM_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    APIConnectionError,
    Timeout,
    ServiceUnavailableError,
)

# Ollama's own default, used when no base is configured for local models
DEFAULT_API_BASES = {"ollama": "http://localhost:11434"}


class LiteLLMProvider(LLMProvider):
    """
    Completion provider using LiteLLM.

    Registry ids are translated to litellm model strings. Keys and API
    bases are looked up by the litellm provider prefix ("openai",
    "anthropic", "ollama"); a registry entry's own ``api_base`` wins.
    """

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        api_keys: dict[str, str] | None = None,
        api_bases: dict[str, str] | None = None,
        request_timeout_seconds: float = 45.0,
    ):
        """
        Args:
            registry: Model registry for id translation.
            api_key: Fallback API key for every remote call.
            api_base: Fallback API base for remote calls.
            api_keys: Per-provider keys keyed by litellm prefix.
            api_bases: Per-provider API bases keyed by litellm prefix.
            request_timeout_seconds: Timeout passed to litellm.
        """
        super().__init__(api_key, api_base)
        self.registry = registry or ModelRegistry()
        self.api_keys = dict(api_keys or {})
        self.api_bases = {**DEFAULT_API_BASES, **(api_bases or {})}
        self.request_timeout_seconds = request_timeout_seconds

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        spec = self.registry.get(request.model_id)
        model = spec.litellm_model if spec else request.model_id
        is_local = bool(spec and spec.is_local)
        # Unprefixed model names are OpenAI models in litellm
        prefix = model.split("/", 1)[0] if "/" in model else "openai"

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_input},
            ],
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "timeout": self.request_timeout_seconds,
        }

        api_base = (spec.api_base if spec else None) or self.api_bases.get(prefix)
        if not api_base and not is_local:
            api_base = self.api_base
        if api_base:
            kwargs["api_base"] = api_base

        api_key = self.api_keys.get(prefix) or self.api_key
        if api_key and not is_local:
            kwargs["api_key"] = api_key

        return kwargs

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """
        Send a completion request via LiteLLM.

        Raises:
            ProviderNetworkError: The service could not be reached.
            CompletionError: Any other failure.
        """
        kwargs = self._build_kwargs(request)
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            # Redact potential API keys from error messages
            error_msg = str(e)
            key = kwargs.get("api_key")
            if key and len(key) > 8:
                error_msg = error_msg.replace(key, "***")
            if isinstance(e, LITELLM_NETWORK_EXCEPTIONS) or is_network_error(e):
                logger.warning(f"Completion service unreachable for {kwargs['model']}: {error_msg}")
                raise ProviderNetworkError(error_msg) from e
            logger.error(f"LLM call error: {error_msg}")
            raise CompletionError(error_msg) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> CompletionResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        text = (choice.message.content or "").strip()

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return CompletionResponse(
            text=text,
            token_usage=usage.get("total_tokens"),
            usage=usage,
        )
