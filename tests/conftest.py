"""Shared pytest fixtures."""

import contextlib
import json
import re
import tempfile
from collections import Counter
from collections.abc import Callable
from typing import Any

import pytest

from recursa.context import RunContext
from recursa.gateway import LMGateway, RetryPolicy
from recursa.models import Document, TokenUsage
from recursa.providers.base import ModelProvider, ProviderResponse
from recursa.settings import Settings

CALL_USAGE = TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)

_CHUNK_RE = re.compile(r"^\[(\d+)\]\n(.*?)(?=\n\n\[\d+\]\n|\n\nReturn a JSON)", re.M | re.S)
_CONTEXT_INDEX_RE = re.compile(r"^\[(\d+)\]", re.M)


class ScriptedProvider(ModelProvider):
    """Returns queued responses in order. Queued exceptions are raised."""

    def __init__(
        self,
        responses: list[Any] | None = None,
        name: str = "scripted",
        available: bool = True,
    ) -> None:
        self.responses = list(responses or [])
        self.name = name
        self.available = available
        self.prompts: list[str] = []
        self.temperatures: list[float | None] = []

    async def agenerate(self, prompt: str, temperature: float | None = None) -> ProviderResponse:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if not self.responses:
            raise AssertionError(f"{self.name}: no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict | list):
            item = json.dumps(item)
        return ProviderResponse(text=item, usage=CALL_USAGE)

    def is_available(self) -> bool:
        return self.available

    @property
    def call_count(self) -> int:
        return len(self.prompts)


def task_of(prompt: str) -> str:
    """Which stage a rendered default prompt belongs to."""
    if prompt.startswith(("You are judging", "You are a strict relevance judge")):
        return "relevance_scoring"
    if prompt.startswith("Extract entities"):
        return "knowledge_extraction"
    if prompt.startswith("Break the answer"):
        return "claim_decomposition"
    if prompt.startswith("Check whether the claim"):
        return "fact_verification"
    return "response_generation"


def prompt_chunks(prompt: str) -> dict[int, str]:
    """Chunk index -> text as listed in a relevance prompt."""
    return {int(m.group(1)): m.group(2) for m in _CHUNK_RE.finditer(prompt)}


def context_indices(prompt: str) -> list[int]:
    """Chunk indices listed in the context section of a response prompt."""
    section = prompt.split("labelled with its index):\n", 1)[1].split("\n\nKnowledge graph:", 1)[0]
    return [int(i) for i in _CONTEXT_INDEX_RE.findall(section)]


class FakeLLM(ModelProvider):
    """Answers every default prompt by task, so whole runs need no network.

    relevance maps chunk text to a score. The default verdict verifies a
    claim, quoting the claim itself as evidence. The default answer cites
    every chunk in the context.
    failures raise on every call of a task unless fail_times caps how many
    of its first calls fail.
    """

    name = "fake"

    def __init__(
        self,
        relevance: Callable[[str], float] | None = None,
        extraction: dict[str, Any] | None = None,
        claims: list[str] | None = None,
        verdict: Callable[[str], dict[str, Any]] | None = None,
        answer: str = "The answer.",
        failures: dict[str, Exception] | None = None,
        fail_times: dict[str, int] | None = None,
    ) -> None:
        self.relevance = relevance or (lambda text: 0.0)
        self.extraction = extraction or {"entities": [], "relations": []}
        self.claims = claims or []
        self.verdict = verdict or (
            lambda claim: {"verdict": "VERIFIED", "evidence": claim, "confidence": 0.9}
        )
        self.answer = answer
        self.failures = dict(failures or {})
        self.fail_times = dict(fail_times or {})
        self.calls: Counter[str] = Counter()
        self.prompts: list[str] = []

    async def agenerate(self, prompt: str, temperature: float | None = None) -> ProviderResponse:
        task = task_of(prompt)
        self.calls[task] += 1
        self.prompts.append(prompt)
        if task in self.failures and self.calls[task] <= self.fail_times.get(task, self.calls[task]):
            raise self.failures[task]

        if task == "relevance_scoring":
            data: Any = {
                "chunks": [
                    {"chunk_index": index, "relevance_score": self.relevance(text), "reasoning": "r"}
                    for index, text in prompt_chunks(prompt).items()
                ]
            }
        elif task == "knowledge_extraction":
            data = self.extraction
        elif task == "claim_decomposition":
            data = {"claims": self.claims}
        elif task == "fact_verification":
            claim = prompt.split("Claim: ", 1)[1].split("\n", 1)[0]
            data = self.verdict(claim)
        else:
            data = {
                "answer": self.answer,
                "sources_used": [str(i) for i in context_indices(prompt)],
                "confidence_score": 0.9,
            }
        return ProviderResponse(text=json.dumps(data), usage=CALL_USAGE)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for stores."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir

        # Release ChromaDB's cached clients for this directory
        try:
            from chromadb.api.shared_system_client import SharedSystemClient

            if hasattr(SharedSystemClient, "_identifier_to_system"):
                identifiers_to_remove = [
                    identifier
                    for identifier in list(SharedSystemClient._identifier_to_system.keys())
                    if tmpdir in str(identifier)
                ]
                for identifier in identifiers_to_remove:
                    if identifier in SharedSystemClient._identifier_to_system:
                        system = SharedSystemClient._identifier_to_system.pop(identifier)
                        with contextlib.suppress(Exception):
                            system.stop()
        except ImportError:
            pass


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_gateway(recording_sleep):
    """Build an LMGateway around test providers without real backoff waits."""

    def _make(
        primary: ModelProvider,
        fallback: ModelProvider | None = None,
        max_retries: int = 3,
        max_concurrent: int = 4,
    ) -> LMGateway:
        return LMGateway(
            primary=primary,
            fallback=fallback,
            retry_policy=RetryPolicy(max_retries=max_retries, base_delay=1.0, max_delay=30.0),
            max_concurrent=max_concurrent,
            sleep=recording_sleep,
        )

    return _make


@pytest.fixture
def make_context():
    """Build a RunContext for a query and document text."""

    def _make(query: str, text: str, **settings: Any) -> RunContext:
        return RunContext(query=query, document=Document(text=text), settings=Settings(**settings))

    return _make


@pytest.fixture
def scripted_provider_cls():
    return ScriptedProvider


@pytest.fixture
def fake_llm_cls():
    return FakeLLM


@pytest.fixture
def call_usage():
    return CALL_USAGE
