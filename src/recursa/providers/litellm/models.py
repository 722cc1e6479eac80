# src/recursa/providers/litellm/models.py
"""Curated model constants for the LiteLLM provider.

These are convenience constants for IDE autocomplete when using LiteLLM.
You can always pass any valid LiteLLM model string directly.

Example:
    from recursa.providers.litellm import ChatModels, LiteLLMProvider

    primary = LiteLLMProvider(model=ChatModels.CLAUDE_SONNET_45)
    fallback = LiteLLMProvider(model=ChatModels.GPT_5_MINI)

    # Custom models still work
    provider = LiteLLMProvider(model="ollama/llama3.1")
"""


class ChatModels:
    """Chat/completion models for LiteLLMProvider."""

    # OpenAI
    GPT_52 = "openai/gpt-5.2"
    GPT_5_MINI = "openai/gpt-5-mini"
    GPT_5_NANO = "openai/gpt-5-nano"

    # Anthropic
    CLAUDE_SONNET_45 = "anthropic/claude-sonnet-4-5-20250929"
    CLAUDE_HAIKU_45 = "anthropic/claude-haiku-4-5-20251001"

    # Google Gemini
    GEMINI_3_PRO = "gemini/gemini-3-pro-preview"
    GEMINI_3_FLASH = "gemini/gemini-3-flash-preview"

    # Local
    OLLAMA_LLAMA_31 = "ollama/llama3.1"


class EmbeddingModels:
    """Embedding models for LiteLLMEmbeddingClient."""

    # OpenAI
    TEXT_3_SMALL = "openai/text-embedding-3-small"
    TEXT_3_LARGE = "openai/text-embedding-3-large"

    # Google Gemini
    GEMINI_EMBEDDING_001 = "gemini/gemini-embedding-001"
