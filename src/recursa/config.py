# src/recursa/config.py
"""Application configuration for Recursa.

The library itself takes a Settings object and never reads the environment.
This module is the layer above it, shared by the CLI and by applications:
it locates recursa.yaml, reads .env and RECURSA_* variables, merges them
into Settings and wires a ready AgenticRAG.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from recursa.exceptions import ConfigurationError
from recursa.settings import RATE_LIMIT_PROFILES, Settings

if TYPE_CHECKING:
    from recursa.pipeline import AgenticRAG
    from recursa.stores import SQLiteRunStore

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = "./recursa_data"
CONFIG_FILES = ["recursa.yaml", "recursa.yml", ".recursarc"]
ENV_FILE = ".env"
ENV_PREFIX = "RECURSA_"
RUNS_DB = "runs.db"
SCRATCHPAD_DB = "scratchpad.db"

# Valid configuration keys for validation
VALID_ROOT_KEYS = {
    "llm_model",
    "fallback_model",
    "embedding",
    "embedding_model",
    "data_dir",
    "prompts_dir",
    "persist_scratchpad",
    "settings",
}

# Chunk embedding strategies for pre-ranking
EMBEDDING_MODES = ("isolated", "late")

# Settings whose env value is a comma-separated list
_LIST_SETTINGS = {"entity_types", "relation_types"}


def valid_settings_keys() -> set[str]:
    return set(Settings.model_fields) | {"rate_limit_profile"}


def load_env_file(env_path: str | Path = ENV_FILE) -> None:
    """Export KEY=VALUE lines of a .env file into os.environ.

    Missing files are ignored and variables that are already set win.
    """
    path = Path(env_path)
    if not path.exists():
        return

    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip("'\"")
                if key not in os.environ:
                    os.environ[key] = value


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Nearest recursa.yaml, recursa.yml or .recursarc, walking up from start_dir (cwd)."""
    current = start_dir or Path.cwd()
    for _ in range(10):  # Limit search depth
        for config_name in CONFIG_FILES:
            config_path = current / config_name
            if config_path.exists():
                return config_path
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def validate_config(config: dict[str, Any], config_path: Path | None = None) -> list[str]:
    """Warnings for unknown top-level and settings keys. Unknown keys never fail."""
    warnings = []

    unknown_root = set(config.keys()) - VALID_ROOT_KEYS
    if unknown_root:
        path_str = str(config_path) if config_path else "config"
        warnings.append(f"Unknown config keys in {path_str}: {', '.join(sorted(unknown_root))}")

    settings = config.get("settings", {})
    if isinstance(settings, dict):
        unknown_settings = set(settings.keys()) - valid_settings_keys()
        if unknown_settings:
            warnings.append(f"Unknown settings keys: {', '.join(sorted(unknown_settings))}")

    return warnings


def load_config(config_path: Path | str | None = None) -> dict[str, Any]:
    """Load configuration from a YAML file.

    An explicit path must exist. Without one the nearest config file is
    used, and no file at all yields an empty mapping.

    Raises:
        ConfigurationError: If an explicit path does not exist or the
            file is not a YAML mapping.
    """
    path = Path(config_path) if config_path is not None else find_config_file()
    if config_path is not None and not Path(config_path).exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    if path is None:
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(
            f"{path} must contain a mapping",
            suggestion="Use 'key: value' pairs at the top level of the file",
        )

    for warning in validate_config(config, path):
        logger.warning(warning)
    return config


def _env_value(name: str, raw: str) -> Any:
    if name in _LIST_SETTINGS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    # Empty string clears an optional setting
    if raw == "":
        return None
    return raw


def get_settings_from_env() -> dict[str, Any]:
    """Read behavioral settings from RECURSA_* environment variables.

    Every Settings field can be set as RECURSA_<FIELD_NAME>, plus
    RECURSA_RATE_LIMIT_PROFILE. Values are strings and are coerced by the
    Settings model. Only explicitly set variables are returned, so YAML
    values survive unless overridden.

    Returns:
        Dictionary of setting name -> value for explicitly set env vars
    """
    result: dict[str, Any] = {}
    for name in sorted(valid_settings_keys()):
        if name == "prompt_variants":
            continue
        env_name = f"{ENV_PREFIX}{name.upper()}"
        if env_name in os.environ:
            result[name] = _env_value(name, os.environ[env_name])
    return result


def get_settings_from_yaml(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the known keys of the 'settings:' section."""
    yaml_settings = config.get("settings", {}) or {}
    if not isinstance(yaml_settings, dict):
        raise ConfigurationError("'settings' must be a mapping")
    known = valid_settings_keys()
    return {key: value for key, value in yaml_settings.items() if key in known}


def build_settings(
    config: dict[str, Any] | None = None,
    env_settings: dict[str, Any] | None = None,
) -> Settings:
    """Build a Settings object from YAML config and env vars.

    RECURSA_* variables override the YAML settings: section, which overrides
    the Settings defaults. env_settings replaces the environment lookup
    when given.

    Raises:
        ConfigurationError: If a value is invalid or the profile is unknown.
    """
    config = config or {}
    yaml_settings = get_settings_from_yaml(config)
    env_settings = env_settings if env_settings is not None else get_settings_from_env()

    merged = {**yaml_settings, **env_settings}

    # rate_limit_profile expands into several settings
    rate_limit_profile = merged.pop("rate_limit_profile", None)
    if rate_limit_profile:
        if rate_limit_profile not in RATE_LIMIT_PROFILES:
            raise ConfigurationError(
                f"Unknown rate_limit_profile '{rate_limit_profile}'",
                suggestion=f"Use one of: {', '.join(RATE_LIMIT_PROFILES)}",
            )
        return Settings.with_profile(rate_limit_profile, **merged)
    return Settings.build(**merged)


def get_embedding_config(config: dict[str, Any]) -> tuple[str | None, str | None]:
    """Resolve the pre-ranking embedder from the embedding: section.

    embedding_model at the top level is shorthand for isolated mode.
    RECURSA_EMBEDDING_MODE and RECURSA_EMBEDDING_MODEL fill in unset values.
    Late mode without a model uses the token client default. No mode and no
    model disables pre-ranking.

    Returns:
        (mode, model), where mode is None when pre-ranking is off.

    Raises:
        ConfigurationError: If the section is not a mapping, the mode is
            unknown, or isolated mode has no model.
    """
    section = config.get("embedding") or {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            "'embedding' must be a mapping",
            suggestion="Use 'embedding: {mode: late, model: ...}'",
        )
    mode = section.get("mode") or os.environ.get("RECURSA_EMBEDDING_MODE") or None
    model = (
        section.get("model")
        or config.get("embedding_model")
        or os.environ.get("RECURSA_EMBEDDING_MODEL")
        or None
    )
    if mode is None:
        return ("isolated", model) if model else (None, None)
    if mode not in EMBEDDING_MODES:
        raise ConfigurationError(
            f"Unknown embedding mode '{mode}'",
            suggestion=f"Use one of: {', '.join(EMBEDDING_MODES)}",
        )
    if mode == "isolated" and not model:
        raise ConfigurationError(
            "Isolated embedding needs a model",
            suggestion="Set embedding.model in recursa.yaml or RECURSA_EMBEDDING_MODEL",
        )
    return mode, model


@dataclass
class RecursaConfig:
    """Configuration for creating an AgenticRAG pipeline."""

    llm_model: str
    data_dir: str
    settings: Settings
    fallback_model: str | None = None
    embedding_mode: str | None = None
    embedding_model: str | None = None
    prompts_dir: str | None = None
    persist_scratchpad: bool = False
    llm_api_key: str | None = None
    fallback_api_key: str | None = None


def get_recursa_config(
    data_dir: str | None = None,
    config_path: str | Path | None = None,
) -> RecursaConfig:
    """Collect configuration without creating the pipeline.

    data_dir and config_path override the configured values.

    Raises:
        ConfigurationError: If no language model is configured or a
            setting is invalid.
    """
    load_env_file()
    config = load_config(config_path)
    settings = build_settings(config)

    llm_model = config.get("llm_model") or os.environ.get("RECURSA_LLM_MODEL")
    if not llm_model:
        raise ConfigurationError(
            "No language model configured.",
            suggestion="Set llm_model in recursa.yaml or the RECURSA_LLM_MODEL environment variable",
        )

    embedding_mode, embedding_model = get_embedding_config(config)

    return RecursaConfig(
        llm_model=llm_model,
        data_dir=data_dir or config.get("data_dir") or DEFAULT_DATA_DIR,
        settings=settings,
        fallback_model=config.get("fallback_model") or os.environ.get("RECURSA_FALLBACK_MODEL"),
        embedding_mode=embedding_mode,
        embedding_model=embedding_model,
        prompts_dir=config.get("prompts_dir"),
        persist_scratchpad=bool(config.get("persist_scratchpad", False)),
        llm_api_key=os.environ.get("RECURSA_LLM_API_KEY"),
        fallback_api_key=os.environ.get("RECURSA_FALLBACK_API_KEY"),
    )


def get_run_store(data_dir: str | Path) -> SQLiteRunStore:
    """Run store for read-only operations (list, show); no provider needed."""
    from recursa.stores import SQLiteRunStore

    return SQLiteRunStore(os.path.join(str(data_dir), RUNS_DB))


def create_pipeline(config: RecursaConfig) -> AgenticRAG:
    """Create an AgenticRAG pipeline from configuration.

    Raises:
        ImportError: If the litellm extra is not installed, or the late
            extra when embedding mode is late.
        ConfigurationError: If prompts_dir does not exist.
    """
    from recursa.gateway import LMGateway
    from recursa.pipeline import AgenticRAG
    from recursa.prompts import PromptLibrary
    from recursa.providers import LiteLLMProvider
    from recursa.stores import SQLiteScratchpadStore

    settings = config.settings
    primary = LiteLLMProvider(
        model=config.llm_model,
        api_key=config.llm_api_key,
        timeout=settings.request_timeout,
    )
    fallback = None
    if config.fallback_model:
        fallback = LiteLLMProvider(
            model=config.fallback_model,
            api_key=config.fallback_api_key,
            timeout=settings.request_timeout,
        )
    gateway = LMGateway.from_settings(primary, settings, fallback=fallback)

    prompts = None
    if config.prompts_dir:
        prompts = PromptLibrary.from_directory(config.prompts_dir, settings.prompt_variants)

    chunk_embedder = None
    vector_store = None
    if config.embedding_mode == "late":
        from recursa.chunker import LateChunkEmbedder
        from recursa.providers import SentenceTransformerTokenClient

        token_client = (
            SentenceTransformerTokenClient(config.embedding_model)
            if config.embedding_model
            else SentenceTransformerTokenClient()
        )
        chunk_embedder = LateChunkEmbedder(token_client)
    elif config.embedding_mode == "isolated":
        from recursa.chunker import IsolatedChunkEmbedder
        from recursa.providers import LiteLLMEmbeddingClient

        chunk_embedder = IsolatedChunkEmbedder(
            LiteLLMEmbeddingClient(model=config.embedding_model)
        )
    if chunk_embedder is not None:
        from recursa.stores import InMemoryVectorStore

        vector_store = InMemoryVectorStore()

    Path(config.data_dir).mkdir(parents=True, exist_ok=True)
    scratchpad_store = None
    if config.persist_scratchpad:
        scratchpad_store = SQLiteScratchpadStore(os.path.join(config.data_dir, SCRATCHPAD_DB))

    return AgenticRAG(
        gateway,
        settings,
        prompts=prompts,
        chunk_embedder=chunk_embedder,
        vector_store=vector_store,
        run_store=get_run_store(config.data_dir),
        scratchpad_store=scratchpad_store,
    )


def get_pipeline(
    data_dir: str | None = None,
    config_path: str | Path | None = None,
) -> AgenticRAG:
    """Create an AgenticRAG pipeline from recursa.yaml, .env and RECURSA_* variables."""
    return create_pipeline(get_recursa_config(data_dir, config_path))
