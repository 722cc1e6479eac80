"""Recursa - recursive drill-down RAG.

Answers a question over a long document by scoring coarse chunks,
re-splitting the relevant ones and repeating until the context is
paragraph-sized, while building a knowledge graph and working notes
along the way. The draft answer is fact-checked claim by claim before
the final cited answer is written.

Quick Start:
    from recursa import AgenticRAG, LMGateway
    from recursa.providers import LiteLLMProvider

    rag = AgenticRAG(gateway=LMGateway(primary=LiteLLMProvider("openai/gpt-5-mini")))
    result = rag.process("Who founded Acme?", document_text)
    print(result.answer.text, result.answer.sources_used)

From recursa.yaml / RECURSA_* environment variables:
    from recursa.config import get_pipeline

    rag = get_pipeline()
    result = await rag.aprocess("Who founded Acme?", [report, appendix])
"""

import logging

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("recursa-rag")
except PackageNotFoundError:
    # Development / source-tree fallback (e.g. running tests without installing the wheel).
    try:
        import tomllib
        from pathlib import Path

        def _read_version_from_pyproject() -> str | None:
            for parent in Path(__file__).resolve().parents:
                pyproject = parent / "pyproject.toml"
                if pyproject.exists():
                    data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
                    version = data.get("project", {}).get("version")
                    return str(version) if version is not None else None
            return None

        __version__ = _read_version_from_pyproject() or "unknown"
    except Exception:
        __version__ = "unknown"

# Library logging is silent unless the application configures handlers
logging.getLogger(__name__).addHandler(logging.NullHandler())

from recursa.cancel import CancellationToken
from recursa.chunker import SentenceChunker
from recursa.context import RunContext
from recursa.drilldown import DrillDownController
from recursa.exceptions import (
    ConfigurationError,
    EmptyDocumentError,
    FatalCallError,
    GatewayError,
    GatewayExhaustedError,
    OptionalStageFailure,
    ProviderUnavailableError,
    RecursaError,
    SchemaValidationError,
    TransientCallError,
)
from recursa.gateway import CallResult, LMGateway, RetryPolicy
from recursa.graph_builder import KnowledgeGraphBuilder

# File loading
from recursa.loaders import Loader, LoaderRegistry, TextLoader
from recursa.models import (
    Answer,
    Chunk,
    Claim,
    Document,
    Entity,
    KnowledgeGraph,
    ProcessingMetadata,
    Relation,
    RelevanceScore,
    RunResult,
    TerminalReason,
    Verdict,
    VerificationResult,
    VerificationStatus,
)

# Central pipeline
from recursa.pipeline import AgenticRAG
from recursa.prompts import PromptLibrary

# Provider ABCs
from recursa.providers import Capability, EmbeddingClient, ModelProvider
from recursa.scorer import RelevanceScorer
from recursa.scratchpad import Scratchpad
from recursa.settings import RunOptions, Settings
from recursa.synthesizer import ResponseSynthesizer
from recursa.verifier import FactVerifier

__all__ = [
    # Version
    "__version__",
    # Models
    "Answer",
    "Chunk",
    "Claim",
    "Document",
    "Entity",
    "KnowledgeGraph",
    "ProcessingMetadata",
    "Relation",
    "RelevanceScore",
    "RunResult",
    "TerminalReason",
    "Verdict",
    "VerificationResult",
    "VerificationStatus",
    # Config
    "RunOptions",
    "Settings",
    "PromptLibrary",
    # Errors
    "ConfigurationError",
    "EmptyDocumentError",
    "FatalCallError",
    "GatewayError",
    "GatewayExhaustedError",
    "OptionalStageFailure",
    "ProviderUnavailableError",
    "RecursaError",
    "SchemaValidationError",
    "TransientCallError",
    # Gateway and providers
    "CallResult",
    "Capability",
    "EmbeddingClient",
    "LMGateway",
    "ModelProvider",
    "RetryPolicy",
    # Stages
    "DrillDownController",
    "FactVerifier",
    "KnowledgeGraphBuilder",
    "RelevanceScorer",
    "ResponseSynthesizer",
    "Scratchpad",
    "SentenceChunker",
    # Run state
    "CancellationToken",
    "RunContext",
    # Central pipeline
    "AgenticRAG",
    # File loading
    "Loader",
    "LoaderRegistry",
    "TextLoader",
]
