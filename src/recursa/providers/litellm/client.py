# src/recursa/providers/litellm/client.py
"""LiteLLM implementations of the model and embedding provider interfaces."""

from __future__ import annotations

import json
from typing import Any

import litellm

from recursa.exceptions import FatalCallError, TransientCallError
from recursa.models import TokenUsage
from recursa.providers.base import (
    STRUCTURED_INSTRUCTIONS,
    Capability,
    EmbeddingClient,
    ModelProvider,
    ProviderResponse,
)
from recursa.providers.litellm.models import ChatModels, EmbeddingModels

# litellm re-exports the OpenAI-style exception classes
_FATAL_ERRORS: tuple[type[BaseException], ...] = (
    litellm.AuthenticationError,
    litellm.BadRequestError,
    litellm.NotFoundError,
    litellm.PermissionDeniedError,
)
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)

DEFAULT_MAX_TOKENS = 32768


class LiteLLMProvider(ModelProvider):
    """LiteLLM-based model provider.

    Supports any model available through LiteLLM (OpenAI, Anthropic, Gemini,
    Bedrock, etc.). Retries are disabled here; the LM gateway owns the
    retry and fallback policy.

    Example:
        from recursa.providers.litellm import LiteLLMProvider, ChatModels

        provider = LiteLLMProvider(model=ChatModels.GEMINI_3_FLASH)
        response = await provider.agenerate("Hello")
    """

    def __init__(
        self,
        model: str = ChatModels.GEMINI_3_FLASH,
        api_key: str | None = None,
        timeout: float | None = 60.0,
        structured_output: bool = True,
    ) -> None:
        """Initialize the provider.

        Args:
            model: LiteLLM model identifier.
                   Examples: "openai/gpt-5-mini", "anthropic/claude-sonnet-4-5-20250929"
            api_key: Explicit API key. When None, litellm reads the vendor's env var.
            timeout: Per-request timeout in seconds.
            structured_output: Request JSON mode for schema calls. Disable for
                models that reject response_format.
        """
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.name = model
        capabilities = {Capability.BASIC_GENERATE}
        if structured_output:
            capabilities.add(Capability.STRUCTURED_GENERATE)
        self.capabilities = frozenset(capabilities)

    def _completion_kwargs(self, prompt: str, temperature: float | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "drop_params": True,
            "num_retries": 0,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    async def _acomplete(self, kwargs: dict[str, Any]) -> ProviderResponse:
        try:
            response = await litellm.acompletion(**kwargs)
        except _FATAL_ERRORS as e:
            raise FatalCallError(str(e), provider=self.name) from e
        except _TRANSIENT_ERRORS as e:
            raise TransientCallError(str(e), provider=self.name) from e

        if not response.choices:
            raise TransientCallError(
                f"LLM returned no choices for model {self.model}", provider=self.name
            )
        content = response.choices[0].message.content
        if content is None:
            raise TransientCallError(
                f"LLM returned None content for model {self.model}", provider=self.name
            )
        return ProviderResponse(text=str(content), usage=_usage_from(response))

    async def agenerate(self, prompt: str, temperature: float | None = None) -> ProviderResponse:
        """Generate a completion using LiteLLM."""
        return await self._acomplete(self._completion_kwargs(prompt, temperature))

    async def agenerate_structured(
        self,
        prompt: str,
        schema: dict[str, Any],
        temperature: float | None = None,
    ) -> ProviderResponse:
        """Generate JSON, using the model's JSON mode when supported."""
        if not self.supports_structured_output():
            return await super().agenerate_structured(prompt, schema, temperature)
        kwargs = self._completion_kwargs(
            prompt + STRUCTURED_INSTRUCTIONS.format(schema=json.dumps(schema, indent=2)),
            temperature,
        )
        kwargs["response_format"] = {"type": "json_object"}
        return await self._acomplete(kwargs)

    def is_available(self) -> bool:
        """True if an API key was given or litellm finds one in the environment."""
        if self.api_key:
            return True
        try:
            env = litellm.validate_environment(model=self.model)
        except Exception:
            # Unknown provider prefix; let the call itself decide
            return True
        return bool(env.get("keys_in_environment", True))

    def max_tokens(self) -> int:
        try:
            value = litellm.get_max_tokens(self.model)
        except Exception:
            return DEFAULT_MAX_TOKENS
        return int(value) if value else DEFAULT_MAX_TOKENS


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()

    def _int(name: str) -> int:
        value = getattr(usage, name, 0)
        return value if isinstance(value, int) else 0

    prompt_tokens = _int("prompt_tokens")
    completion_tokens = _int("completion_tokens")
    total = _int("total_tokens") or prompt_tokens + completion_tokens
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total,
    )


class LiteLLMEmbeddingClient(EmbeddingClient):
    """LiteLLM-based embedding client.

    Supports any embedding model available through LiteLLM.

    Example:
        from recursa.providers.litellm import LiteLLMEmbeddingClient, EmbeddingModels

        client = LiteLLMEmbeddingClient(model=EmbeddingModels.TEXT_3_SMALL)
        embeddings = client.embed(["Hello world", "How are you?"])
    """

    def __init__(
        self,
        model: str = EmbeddingModels.GEMINI_EMBEDDING_001,
        num_retries: int = 3,
    ) -> None:
        """Initialize the LiteLLM embedding client.

        Args:
            model: LiteLLM embedding model identifier.
                   Examples: "openai/text-embedding-3-small", "gemini/gemini-embedding-001"
            num_retries: Number of retries on rate limit errors. LiteLLM handles
                        exponential backoff for embeddings. Default: 3.
        """
        self.model = model
        self.num_retries = num_retries

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using LiteLLM."""
        if not texts:
            return []

        response = litellm.embedding(
            model=self.model,
            input=texts,
            num_retries=self.num_retries,
        )
        # Sort by index to maintain order
        sorted_data = sorted(response.data, key=lambda x: x["index"])
        return [item["embedding"] for item in sorted_data]
