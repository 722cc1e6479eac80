# src/recursa/providers/__init__.py
"""Provider implementations for Recursa.

This module contains model and embedding provider abstractions:
- ModelProvider: Abstract base class for language-model providers
- EmbeddingClient: Abstract base class for embedding providers
- TokenEmbeddingClient: Abstract base class for token-level embeddings
- LiteLLM implementations (requires: pip install recursa-rag[litellm])
- SentenceTransformerTokenClient (requires: pip install recursa-rag[late])

Usage:
    from recursa.providers import ModelProvider, Capability
    from recursa.providers.litellm import LiteLLMProvider, ChatModels
"""

from recursa.providers.base import (
    Capability,
    EmbeddingClient,
    ModelProvider,
    ProviderResponse,
    TokenEmbeddingClient,
)

try:
    from recursa.providers.litellm import (
        ChatModels,
        EmbeddingModels,
        LiteLLMEmbeddingClient,
        LiteLLMProvider,
    )
except ImportError:
    from recursa._optional import _create_missing_dependency_class

    class ChatModels:  # type: ignore[no-redef]
        """Placeholder - requires litellm package."""

        pass

    class EmbeddingModels:  # type: ignore[no-redef]
        """Placeholder - requires litellm package."""

        pass

    LiteLLMProvider = _create_missing_dependency_class(  # type: ignore[misc,assignment]
        "LiteLLMProvider", "litellm"
    )
    LiteLLMEmbeddingClient = _create_missing_dependency_class(  # type: ignore[misc,assignment]
        "LiteLLMEmbeddingClient", "litellm"
    )

try:
    from recursa.providers.sentence_transformers import SentenceTransformerTokenClient
except ImportError:
    from recursa._optional import _create_missing_dependency_class

    SentenceTransformerTokenClient = _create_missing_dependency_class(  # type: ignore[misc,assignment]
        "SentenceTransformerTokenClient", "late"
    )

__all__ = [
    # ABCs
    "Capability",
    "EmbeddingClient",
    "ModelProvider",
    "ProviderResponse",
    "TokenEmbeddingClient",
    # Model constants
    "ChatModels",
    "EmbeddingModels",
    # Clients
    "LiteLLMEmbeddingClient",
    "LiteLLMProvider",
    "SentenceTransformerTokenClient",
]
