# tests/test_drilldown.py
"""Tests for the drill-down controller state machine."""

import asyncio

import pytest

from recursa.cancel import CancellationToken
from recursa.chunker import SentenceChunker
from recursa.drilldown import DrillDownController
from recursa.exceptions import FatalCallError
from recursa.graph_builder import KnowledgeGraphBuilder
from recursa.models import DrillPhase, TerminalReason
from recursa.scorer import RelevanceScorer

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
DOCUMENT = " ".join(SENTENCES)
QUERY = "Who founded Acme?"

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
    "relations": [
        {
            "from_entity": "Jane Doe",
            "to_entity": "Acme Corp",
            "relation_type": "FOUNDED",
            "confidence": 0.9,
            "evidence": "Acme Corp was founded by Jane Doe in 1999.",
        }
    ],
}


def mentions_acme(text: str) -> float:
    return 0.9 if "Acme" in text else 0.1


class RecordingScorer(RelevanceScorer):
    """Remembers every span it was asked to score."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.scored_spans: list[tuple[int, int]] = []

    async def score(self, query, chunks, max_chunks_per_call=None, notes="", *, ctx=None):
        self.scored_spans.extend(c.char_span for c in chunks)
        return await super().score(query, chunks, max_chunks_per_call, notes, ctx=ctx)


@pytest.fixture
def hanging_llm(fake_llm_cls):
    class HangingLLM(fake_llm_cls):
        """Answers the first relevance call, then blocks on every later one."""

        def __init__(self, **kwargs) -> None:
            super().__init__(**kwargs)
            self.hanging = asyncio.Event()

        async def agenerate(self, prompt, temperature=None):
            if prompt.startswith("You are judging") and self.calls["relevance_scoring"] >= 1:
                self.hanging.set()
                await asyncio.Event().wait()
            return await super().agenerate(prompt, temperature)

    return HangingLLM(relevance=mentions_acme)


@pytest.fixture
def make_controller(make_gateway):
    def _make(llm, with_graph: bool = True, scorer_cls=RelevanceScorer):
        gateway = make_gateway(llm)
        builder = KnowledgeGraphBuilder(gateway) if with_graph else None
        return DrillDownController(SentenceChunker(), scorer_cls(gateway), builder)

    return _make


class TestTermination:
    @pytest.mark.asyncio
    async def test_short_document_stops_at_depth_zero(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=lambda text: 0.9)
        ctx = make_context(QUERY, "Acme Corp was founded by Jane Doe.")

        state = await make_controller(llm).run(ctx)

        assert state.phase is DrillPhase.TERMINAL
        assert state.terminal_reason is TerminalReason.GRANULARITY_REACHED
        assert state.depth == 0
        assert [c.text for c in state.context_chunks()] == ["Acme Corp was founded by Jane Doe."]
        assert llm.calls["relevance_scoring"] == 1
        assert llm.calls["knowledge_extraction"] == 1

    @pytest.mark.asyncio
    async def test_nothing_relevant(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=lambda text: 0.2)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason is TerminalReason.NO_RELEVANT_CHUNKS
        assert state.context_chunks() == []
        assert state.depth == 0

    @pytest.mark.asyncio
    async def test_drills_down_to_the_relevant_sentence(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason in {
            TerminalReason.GRANULARITY_REACHED,
            TerminalReason.NO_CHILDREN,
        }
        assert 1 <= state.depth <= 3
        context = state.context_chunks()
        assert context
        assert all("Acme Corp was founded" in c.text for c in context)
        assert all(c.length < len(DOCUMENT) // 2 for c in context)

    @pytest.mark.asyncio
    async def test_recursion_limit_bounds_depth(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **{**DRILL_SETTINGS, "max_recursive_depth": 1})

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason is TerminalReason.RECURSION_LIMIT
        assert state.depth == 1
        assert all(c.depth <= 1 for c in ctx.chunks.values())
        assert all(c.depth == 1 for c in state.context_chunks())

    @pytest.mark.asyncio
    async def test_zero_depth_answers_from_top_level(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **{**DRILL_SETTINGS, "max_recursive_depth": 0})

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason is TerminalReason.RECURSION_LIMIT
        assert state.depth == 0
        assert [c.depth for c in state.context_chunks()] == [0]
        assert llm.calls["relevance_scoring"] == 1

    @pytest.mark.asyncio
    async def test_parent_kept_when_no_child_is_relevant(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=lambda text: 0.9 if len(text) > 120 else 0.1)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason is TerminalReason.NO_RELEVANT_CHUNKS
        context = state.context_chunks()
        assert context
        assert all(c.depth == 0 for c in context)


class TestInvariants:
    @pytest.mark.asyncio
    async def test_no_span_scored_twice(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)
        controller = make_controller(llm, scorer_cls=RecordingScorer)

        await controller.run(ctx)

        spans = controller.scorer.scored_spans
        assert len(spans) == len(set(spans))

    @pytest.mark.asyncio
    async def test_children_get_fresh_indices(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        await make_controller(llm).run(ctx)

        for index, chunk in ctx.chunks.items():
            assert chunk.index == index
            if chunk.parent_index is not None:
                parent = ctx.chunks[chunk.parent_index]
                assert parent.contains(chunk)
                assert chunk.depth == parent.depth + 1
        assert set(ctx.scores) == set(ctx.chunks)


class TestOptionalStages:
    @pytest.mark.asyncio
    async def test_graph_built_from_selected_chunks(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme, extraction=EXTRACTION)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        await make_controller(llm).run(ctx)

        assert llm.calls["knowledge_extraction"] >= 1
        assert set(ctx.graph.entities) == {"acme corp", "jane doe"}
        assert ctx.graph.relations[0].relation_type == "FOUNDED"

    @pytest.mark.asyncio
    async def test_graph_built_when_stopping_at_depth_zero(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=lambda text: 0.9, extraction=EXTRACTION)
        ctx = make_context(QUERY, "Acme Corp was founded by Jane Doe in 1999.")

        state = await make_controller(llm).run(ctx)

        assert state.depth == 0
        assert llm.calls["knowledge_extraction"] == 1
        assert set(ctx.graph.entities) == {"acme corp", "jane doe"}

    @pytest.mark.asyncio
    async def test_graph_built_at_recursion_limit(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme, extraction=EXTRACTION)
        ctx = make_context(QUERY, DOCUMENT, **{**DRILL_SETTINGS, "max_recursive_depth": 0})

        await make_controller(llm).run(ctx)

        assert llm.calls["knowledge_extraction"] == 1
        assert not ctx.graph.is_empty()

    @pytest.mark.asyncio
    async def test_text_inside_an_extracted_chunk_is_not_extracted_again(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(relevance=mentions_acme, extraction=EXTRACTION)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        state = await make_controller(llm).run(ctx)

        assert state.depth >= 1
        extraction_prompts = [p for p in llm.prompts if p.startswith("Extract entities")]
        assert len(extraction_prompts) == 1
        assert "Its first factory made cast iron anvils." in extraction_prompts[0]

    @pytest.mark.asyncio
    async def test_graph_disabled(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme, extraction=EXTRACTION)
        ctx = make_context(QUERY, DOCUMENT, enable_knowledge_graph=False, **DRILL_SETTINGS)

        await make_controller(llm).run(ctx)

        assert llm.calls["knowledge_extraction"] == 0
        assert ctx.graph.is_empty()

    @pytest.mark.asyncio
    async def test_graph_failure_degrades_but_completes(
        self, make_controller, make_context, fake_llm_cls
    ):
        llm = fake_llm_cls(
            relevance=mentions_acme,
            failures={"knowledge_extraction": FatalCallError("denied")},
        )
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        state = await make_controller(llm).run(ctx)

        assert state.phase is DrillPhase.TERMINAL
        assert state.context_chunks()
        assert ctx.degraded_stages == ["knowledge_graph"]

    @pytest.mark.asyncio
    async def test_notes_carry_between_levels(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)

        await make_controller(llm).run(ctx)

        assert ctx.scratchpad.read("depth-0").startswith("Depth 0:")
        scoring_prompts = [p for p in llm.prompts if p.startswith("You are judging")]
        assert "Notes from earlier iterations" not in scoring_prompts[0]
        assert "Notes from earlier iterations" in scoring_prompts[1]

    @pytest.mark.asyncio
    async def test_scratchpad_disabled(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, enable_scratchpad=False, **DRILL_SETTINGS)

        await make_controller(llm).run(ctx)

        assert len(ctx.scratchpad) == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_controller, make_context, fake_llm_cls):
        llm = fake_llm_cls(relevance=mentions_acme)
        ctx = make_context(QUERY, DOCUMENT, **DRILL_SETTINGS)
        ctx.cancel_token = CancellationToken()
        ctx.cancel_token.request_cancel()

        state = await make_controller(llm).run(ctx)

        assert state.terminal_reason is TerminalReason.CANCELLED
        assert state.context_chunks() == []
        assert llm.calls["relevance_scoring"] == 0

    @pytest.mark.asyncio
    async def test_cancel_abandons_in_flight_call(
        self, make_controller, make_context, hanging_llm
    ):
        llm = hanging_llm
        ctx = make_context(QUERY, DOCUMENT, enable_knowledge_graph=False, **DRILL_SETTINGS)
        token = CancellationToken()
        ctx.cancel_token = token

        async def cancel_when_hanging():
            await llm.hanging.wait()
            token.request_cancel()

        state, _ = await asyncio.wait_for(
            asyncio.gather(make_controller(llm).run(ctx), cancel_when_hanging()),
            timeout=5,
        )

        assert state.terminal_reason is TerminalReason.CANCELLED
        # Context falls back to the last completed selection
        context = state.context_chunks()
        assert context
        assert all(c.depth == 0 and "Acme" in c.text for c in context)

    @pytest.mark.asyncio
    async def test_deadline_cancels(self, make_controller, make_context, hanging_llm):
        llm = hanging_llm
        ctx = make_context(
            QUERY,
            DOCUMENT,
            enable_knowledge_graph=False,
            deadline_seconds=0.05,
            **DRILL_SETTINGS,
        )

        state = await asyncio.wait_for(make_controller(llm).run(ctx), timeout=5)

        assert state.terminal_reason is TerminalReason.CANCELLED
        assert state.context_chunks()
