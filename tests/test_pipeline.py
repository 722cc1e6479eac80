# tests/test_pipeline.py
"""End-to-end tests for the AgenticRAG pipeline with a scripted model."""

import os

import pytest

from recursa.cancel import CancellationToken
from recursa.chunker import ChunkEmbedder
from recursa.exceptions import EmptyDocumentError, FatalCallError
from recursa.models import Document, TerminalReason, VerificationStatus
from recursa.pipeline import AgenticRAG, as_document
from recursa.settings import RunOptions, Settings
from recursa.stores import InMemoryVectorStore, SQLiteRunStore, SQLiteScratchpadStore
from recursa.synthesizer import INSUFFICIENT_CONTEXT_ANSWER

SHORT_DOCUMENT = "Acme Corp was founded by Jane Doe."

SENTENCES = [
    "The valley has a mild climate all year.",
    "Most families there grow apples and pears.",
    "A small railway links the valley towns.",
    "Acme Corp was founded by Jane Doe in 1999.",
    "Its first factory made cast iron anvils.",
    "The town hall dates from the last century.",
    "A weekly market fills the main square.",
    "Local schools teach three languages.",
]
LONG_DOCUMENT = " ".join(SENTENCES)
COMPANY_PARAGRAPH = (
    "Acme Corp was founded by Jane Doe in 1999 in a rented workshop on the edge of town. "
    "Its first product was a cast iron anvil sold to local blacksmiths and farm suppliers. "
    "By 2005 the company had opened a second factory and hired more than two hundred people. "
    "Today it makes garden tools and sells them through hardware stores across the region."
)
DRILL_SETTINGS = {
    "target_chunk_count": 2,
    "child_chunk_count": 2,
    "min_chunk_chars": 60,
    "max_recursive_depth": 3,
}

EXTRACTION = {
    "entities": [
        {"name": "Acme Corp", "type": "ORGANIZATION", "confidence": 0.9},
        {"name": "Jane Doe", "type": "PERSON", "confidence": 0.9},
    ],
    "relations": [],
}


def mentions_acme(text: str) -> float:
    return 0.9 if "Acme" in text else 0.1


class KeywordEmbedder(ChunkEmbedder):
    """Two-dimensional embeddings: does the text mention Acme or not."""

    def embed_chunks(self, document_text, chunks):
        return [[1.0, 0.0] if "Acme" in c.text else [0.0, 1.0] for c in chunks]

    def embed_query(self, query):
        return [1.0, 0.0]


@pytest.fixture
def make_rag(make_gateway):
    def _make(llm, **kwargs):
        settings = kwargs.pop("settings", None)
        return AgenticRAG(make_gateway(llm), settings, **kwargs)

    return _make


class TestAsDocument:
    def test_text(self):
        assert as_document("hello").text == "hello"

    def test_document_passes_through(self):
        document = Document(text="hello", source="a.txt")
        assert as_document(document) is document
        assert as_document([document]) is document

    def test_several_inputs_are_joined(self):
        document = as_document(
            ["first", Document(text="second", source="b.txt"), Document(text="third", source="c.txt")]
        )

        assert document.text == "first\n\nsecond\n\nthird"
        assert document.source == "b.txt, c.txt"


class TestAgenticRAG:
    @pytest.mark.asyncio
    async def test_relevant_short_document(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(
            relevance=lambda text: 0.9,
            claims=["Acme Corp was founded by Jane Doe."],
            answer="Jane Doe founded Acme Corp.",
        )
        rag = make_rag(llm)

        result = await rag.aprocess("Who founded Acme?", SHORT_DOCUMENT)

        answer = result.answer
        assert answer.text == "Jane Doe founded Acme Corp."
        assert answer.sources_used == [0]
        assert result.verification.overall_status is VerificationStatus.VERIFIED
        assert answer.confidence_score == pytest.approx(0.6 * 0.9 + 0.4 * 1.0)

        meta = answer.metadata
        assert meta.recursion_depth == 0
        assert meta.terminal_reason is TerminalReason.GRANULARITY_REACHED
        assert meta.chunks_processed == 1
        assert meta.degraded_stages == []
        # relevance, extraction, draft, decomposition, one claim check, final answer
        assert meta.model_calls == 6
        assert meta.token_usage.total_tokens == 90
        assert llm.calls["knowledge_extraction"] == 1
        assert llm.calls["response_generation"] == 2
        assert [c.text for c in result.context] == [SHORT_DOCUMENT]

    @pytest.mark.asyncio
    async def test_irrelevant_document(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.1)
        rag = make_rag(llm)

        result = await rag.aprocess("What is the capital of France?", SHORT_DOCUMENT)

        assert result.answer.text == INSUFFICIENT_CONTEXT_ANSWER
        assert result.answer.sources_used == []
        assert result.answer.confidence_score == 0.0
        assert result.answer.metadata.terminal_reason is TerminalReason.NO_RELEVANT_CHUNKS
        assert result.context == []
        assert result.verification is None
        assert llm.calls["response_generation"] == 0
        assert llm.calls["claim_decomposition"] == 0

    @pytest.mark.asyncio
    async def test_drill_down_run(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(
            relevance=mentions_acme,
            extraction=EXTRACTION,
            claims=["Acme Corp was founded by Jane Doe in 1999."],
        )
        rag = make_rag(llm, settings=Settings(**DRILL_SETTINGS))

        result = await rag.aprocess("Who founded Acme?", LONG_DOCUMENT)

        assert result.answer.metadata.recursion_depth >= 1
        assert result.context
        assert all("Acme Corp was founded" in c.text for c in result.context)
        assert result.answer.sources_used == [c.index for c in result.context]
        assert set(result.knowledge_graph.entities) == {"acme corp", "jane doe"}
        assert [e.iteration_id for e in result.scratchpad_entries][0] == "depth-0"
        assert result.verification.overall_status is VerificationStatus.VERIFIED

    def test_sync_process(self, make_rag, fake_llm_cls):
        rag = make_rag(fake_llm_cls(relevance=lambda text: 0.9))

        result = rag.process("Who founded Acme?", SHORT_DOCUMENT)

        assert result.answer.sources_used == [0]

    @pytest.mark.asyncio
    async def test_several_documents(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.9)
        rag = make_rag(llm)

        result = await rag.aprocess("q", ["Part one.", Document(text="Part two.")])

        assert result.context[0].text == "Part one.\n\nPart two."

    @pytest.mark.asyncio
    async def test_paragraph_stays_one_chunk(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.95, extraction=EXTRACTION)
        rag = make_rag(llm)

        result = await rag.aprocess("Who founded Acme?", COMPANY_PARAGRAPH)

        meta = result.answer.metadata
        assert meta.chunks_processed == 1
        assert meta.recursion_depth == 0
        assert meta.terminal_reason is TerminalReason.GRANULARITY_REACHED
        assert result.answer.sources_used == [0]
        assert [c.text for c in result.context] == [COMPANY_PARAGRAPH]
        assert set(result.knowledge_graph.entities) == {"acme corp", "jane doe"}


class TestDegradedStages:
    @pytest.mark.asyncio
    async def test_graph_failure(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(
            relevance=mentions_acme,
            failures={"knowledge_extraction": FatalCallError("denied")},
        )
        rag = make_rag(llm, settings=Settings(**DRILL_SETTINGS))

        result = await rag.aprocess("Who founded Acme?", LONG_DOCUMENT)

        assert result.answer.metadata.degraded_stages == ["knowledge_graph"]
        assert result.answer.metadata.degraded_confidence
        assert result.answer.sources_used
        assert result.knowledge_graph.is_empty()

    @pytest.mark.asyncio
    async def test_verification_failure(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(
            relevance=lambda text: 0.9,
            claims=["Acme Corp was founded by Jane Doe."],
            failures={"fact_verification": FatalCallError("denied")},
        )
        rag = make_rag(llm)

        result = await rag.aprocess("Who founded Acme?", SHORT_DOCUMENT)

        assert result.verification is None
        assert result.answer.metadata.degraded_stages == ["fact_verification"]
        # A failed verification counts as nothing verified
        assert result.answer.confidence_score == pytest.approx(0.6 * 0.9)

    @pytest.mark.asyncio
    async def test_draft_failure_skips_verification(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(
            relevance=lambda text: 0.9,
            claims=["Acme Corp was founded by Jane Doe."],
            answer="Jane Doe founded Acme Corp.",
            failures={"response_generation": FatalCallError("denied")},
            fail_times={"response_generation": 1},
        )
        rag = make_rag(llm)

        result = await rag.aprocess("Who founded Acme?", SHORT_DOCUMENT)

        assert result.answer.text == "Jane Doe founded Acme Corp."
        assert result.answer.sources_used == [0]
        assert result.verification is None
        assert result.answer.metadata.degraded_stages == ["fact_verification"]
        assert result.answer.confidence_score == pytest.approx(0.6 * 0.9)
        assert llm.calls["response_generation"] == 2
        assert llm.calls["claim_decomposition"] == 0

    @pytest.mark.asyncio
    async def test_scoring_failure_propagates(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(failures={"relevance_scoring": FatalCallError("denied")})
        rag = make_rag(llm)

        with pytest.raises(FatalCallError):
            await rag.aprocess("q", SHORT_DOCUMENT)


class TestRunOptions:
    @pytest.mark.asyncio
    async def test_verification_disabled(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.9, claims=["x"])
        rag = make_rag(llm)

        result = await rag.aprocess(
            "q", SHORT_DOCUMENT, RunOptions(enable_fact_verification=False)
        )

        assert result.verification is None
        assert llm.calls["claim_decomposition"] == 0
        assert llm.calls["response_generation"] == 1
        assert result.answer.confidence_score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_depth_override(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        rag = make_rag(llm, settings=Settings(**DRILL_SETTINGS))

        result = await rag.aprocess("q", LONG_DOCUMENT, RunOptions(recursive_depth=0))

        assert result.answer.metadata.recursion_depth == 0
        assert result.answer.metadata.terminal_reason is TerminalReason.RECURSION_LIMIT
        # Pipeline settings are untouched
        assert rag.settings.max_recursive_depth == 3

    @pytest.mark.asyncio
    async def test_threshold_override(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.3)
        rag = make_rag(llm)

        result = await rag.aprocess("q", SHORT_DOCUMENT, RunOptions(relevance_threshold=0.2))

        assert result.answer.sources_used == [0]


class TestValidation:
    @pytest.mark.asyncio
    async def test_empty_query(self, make_rag, fake_llm_cls):
        with pytest.raises(ValueError):
            await make_rag(fake_llm_cls()).aprocess("  ", SHORT_DOCUMENT)

    @pytest.mark.asyncio
    async def test_empty_document(self, make_rag, fake_llm_cls):
        with pytest.raises(EmptyDocumentError):
            await make_rag(fake_llm_cls()).aprocess("q", "   \n ")

    def test_embedder_needs_vector_store(self, make_gateway, fake_llm_cls):
        with pytest.raises(ValueError):
            AgenticRAG(make_gateway(fake_llm_cls()), chunk_embedder=KeywordEmbedder())


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_run_still_answers(self, make_rag, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.9)
        token = CancellationToken()
        token.request_cancel()

        result = await make_rag(llm).aprocess("q", SHORT_DOCUMENT, cancel_token=token)

        assert result.answer.metadata.terminal_reason is TerminalReason.CANCELLED
        assert result.answer.text == INSUFFICIENT_CONTEXT_ANSWER


class TestPersistence:
    @pytest.mark.asyncio
    async def test_run_saved(self, make_rag, fake_llm_cls, temp_dir):
        store = SQLiteRunStore(os.path.join(temp_dir, "runs.db"))
        rag = make_rag(fake_llm_cls(relevance=lambda text: 0.9), run_store=store)

        result = await rag.aprocess("q", SHORT_DOCUMENT)

        record = store.load(result.answer.metadata.run_id)
        assert record.answer == result.answer
        assert [e.iteration_id for e in record.scratchpad_entries] == ["depth-0"]

    @pytest.mark.asyncio
    async def test_scratchpad_persisted(self, make_rag, fake_llm_cls, temp_dir):
        store = SQLiteScratchpadStore(os.path.join(temp_dir, "pad.db"))
        rag = make_rag(
            fake_llm_cls(relevance=mentions_acme),
            settings=Settings(**DRILL_SETTINGS),
            scratchpad_store=store,
        )

        result = await rag.aprocess("q", LONG_DOCUMENT)

        entries = store.load_entries(result.answer.metadata.run_id)
        assert [e.iteration_id for e in entries] == [
            e.iteration_id for e in result.scratchpad_entries
        ]


class TestPreranking:
    @pytest.mark.asyncio
    async def test_vector_index_caps_depth_zero_chunks(self, make_rag, fake_llm_cls):
        seen: list[str] = []

        def relevance(text: str) -> float:
            seen.append(text)
            return mentions_acme(text)

        vector_store = InMemoryVectorStore()
        rag = make_rag(
            fake_llm_cls(relevance=relevance),
            settings=Settings(**{**DRILL_SETTINGS, "max_chunks": 1}),
            chunk_embedder=KeywordEmbedder(),
            vector_store=vector_store,
        )

        result = await rag.aprocess("Who founded Acme?", LONG_DOCUMENT)

        assert not any("mild climate" in text for text in seen)
        assert result.context
        assert vector_store.count() == 3

    @pytest.mark.asyncio
    async def test_without_index_all_chunks_are_scored(self, make_rag, fake_llm_cls):
        seen: list[str] = []

        def relevance(text: str) -> float:
            seen.append(text)
            return mentions_acme(text)

        rag = make_rag(
            fake_llm_cls(relevance=relevance),
            settings=Settings(**{**DRILL_SETTINGS, "max_chunks": 1}),
        )

        await rag.aprocess("Who founded Acme?", LONG_DOCUMENT)

        assert any("mild climate" in text for text in seen)
