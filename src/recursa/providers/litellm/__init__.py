# src/recursa/providers/litellm/__init__.py
"""LiteLLM provider clients for Recursa.

This module contains LiteLLM-based implementations:
- LiteLLMProvider: Model provider used behind the LM gateway
- LiteLLMEmbeddingClient: Embeddings using LiteLLM
- ChatModels: Curated chat model constants
- EmbeddingModels: Curated embedding model constants

Usage:
    from recursa.gateway import LMGateway
    from recursa.providers.litellm import LiteLLMProvider, ChatModels

    gateway = LMGateway(primary=LiteLLMProvider(model=ChatModels.GEMINI_3_FLASH))
"""

from recursa.providers.litellm.client import LiteLLMEmbeddingClient, LiteLLMProvider
from recursa.providers.litellm.models import ChatModels, EmbeddingModels

__all__ = [
    # Model constants
    "ChatModels",
    "EmbeddingModels",
    # Clients
    "LiteLLMEmbeddingClient",
    "LiteLLMProvider",
]
