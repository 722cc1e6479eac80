# src/recursa/providers/base.py
"""Abstract base classes for model, embedding and token-embedding providers."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from recursa.models import TokenUsage


class Capability(str, Enum):
    """What a provider can do. Fixed when the provider is constructed."""

    BASIC_GENERATE = "basic_generate"
    STRUCTURED_GENERATE = "structured_generate"
    STREAMING = "streaming"


@dataclass(frozen=True)
class ProviderResponse:
    """Text returned by a provider, plus parsed JSON when the provider parsed it."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    data: Any = None


STRUCTURED_INSTRUCTIONS = """

Respond with a single JSON object that conforms to this JSON schema:
{schema}

Return ONLY the JSON object, no other text."""


class ModelProvider(ABC):
    """Abstract base class for language-model providers.

    The interface is intentionally small. The LM gateway owns retries,
    backoff and fallback, so implementations should make exactly one
    request per call and raise recursa.exceptions errors (or the vendor's
    own exceptions, which the gateway classifies).

    Example:
        class MyProvider(ModelProvider):
            name = "mine"

            async def agenerate(self, prompt, temperature=None):
                text = await my_api.complete(prompt, temperature=temperature)
                return ProviderResponse(text=text)
    """

    name: str = "provider"
    capabilities: frozenset[Capability] = frozenset({Capability.BASIC_GENERATE})

    @abstractmethod
    async def agenerate(self, prompt: str, temperature: float | None = None) -> ProviderResponse:
        """Generate free text for a prompt."""
        ...

    async def agenerate_structured(
        self,
        prompt: str,
        schema: dict[str, Any],
        temperature: float | None = None,
    ) -> ProviderResponse:
        """Generate JSON conforming to a JSON schema.

        Default implementation appends the schema to the prompt and calls
        agenerate(). Providers with native structured output override this.
        """
        instructions = STRUCTURED_INSTRUCTIONS.format(schema=json.dumps(schema, indent=2))
        return await self.agenerate(prompt + instructions, temperature)

    def is_available(self) -> bool:
        """True if the provider is configured and can be called."""
        return True

    def max_tokens(self) -> int:
        """Maximum context size of the configured model, in tokens."""
        return 32768

    def supports_structured_output(self) -> bool:
        return Capability.STRUCTURED_GENERATE in self.capabilities


class EmbeddingClient(ABC):
    """Abstract base class for text embedding providers.

    Example:
        class MyEmbeddingClient(EmbeddingClient):
            def embed(self, texts):
                return my_api.embed_batch(texts)
    """

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for multiple texts.

        Order is preserved (result[i] corresponds to texts[i]).
        """
        ...


class TokenEmbeddingClient(ABC):
    """Abstract base class for providers that expose token-level embeddings.

    Required for late chunking: the whole document is embedded once and
    token vectors are pooled over each chunk's character span.
    """

    @abstractmethod
    def embed_tokens(self, text: str) -> tuple[list[list[float]], list[tuple[int, int]]]:
        """Embed text at token level.

        Returns:
            (vectors, offsets) where offsets[i] is the (start, end) character
            span of token i in text. Special tokens have an empty span.
        """
        ...

    @property
    def max_chars(self) -> int:
        """Longest text (in characters) that fits one model window."""
        return 2000
