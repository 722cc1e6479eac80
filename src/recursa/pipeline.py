# src/recursa/pipeline.py
"""Central pipeline class for Recursa."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from recursa.chunker import SentenceChunker
from recursa.context import RunContext
from recursa.drilldown import DrillDownController
from recursa.exceptions import EmptyDocumentError, OptionalStageFailure
from recursa.graph_builder import KnowledgeGraphBuilder
from recursa.models import Document, ProcessingMetadata, RunResult
from recursa.prompts import PromptLibrary
from recursa.scorer import RelevanceScorer
from recursa.scratchpad import Scratchpad
from recursa.settings import Settings
from recursa.synthesizer import ResponseSynthesizer
from recursa.timing import timed
from recursa.verifier import FactVerifier

if TYPE_CHECKING:
    from recursa.cancel import CancellationToken
    from recursa.chunker import ChunkEmbedder
    from recursa.gateway import LMGateway
    from recursa.models import Chunk, VerificationResult
    from recursa.settings import RunOptions
    from recursa.stores import RunStore, ScratchpadStore, VectorStore

logger = logging.getLogger(__name__)

DocumentInput = str | Document | list[str | Document]


@dataclass(frozen=True)
class _Stages:
    scorer: RelevanceScorer
    graph_builder: KnowledgeGraphBuilder
    controller: DrillDownController
    verifier: FactVerifier
    synthesizer: ResponseSynthesizer


def as_document(documents: DocumentInput) -> Document:
    """Combine the accepted input forms into one Document."""
    if isinstance(documents, Document):
        return documents
    if isinstance(documents, str):
        return Document(text=documents)
    if len(documents) == 1 and isinstance(documents[0], Document):
        return documents[0]
    texts = [d.text if isinstance(d, Document) else d for d in documents]
    sources = [d.source for d in documents if isinstance(d, Document) and d.source]
    return Document.combine(texts, source=", ".join(sources) or None)


class AgenticRAG:
    """Recursive drill-down question answering over a document.

    AgenticRAG wires the chunker, relevance scorer, drill-down controller,
    knowledge graph builder, scratchpad, fact verifier and response
    synthesizer around one LM gateway. Every call to aprocess() gets its
    own RunContext, so concurrent runs share nothing but the gateway.

    Example:
        from recursa import AgenticRAG, LMGateway
        from recursa.providers.litellm import LiteLLMProvider

        rag = AgenticRAG(gateway=LMGateway(primary=LiteLLMProvider()))
        result = rag.process("Who founded Acme?", document_text)
        print(result.answer.text, result.answer.sources_used)
    """

    def __init__(
        self,
        gateway: LMGateway,
        settings: Settings | None = None,
        *,
        chunker: SentenceChunker | None = None,
        prompts: PromptLibrary | None = None,
        chunk_embedder: ChunkEmbedder | None = None,
        vector_store: VectorStore | None = None,
        run_store: RunStore | None = None,
        scratchpad_store: ScratchpadStore | None = None,
    ) -> None:
        """Create a pipeline.

        Args:
            gateway: Call layer for every model invocation.
            settings: Behavioral settings. Default: Settings().
            chunker: Sentence chunker. Default: SentenceChunker(settings.sentence_language).
            prompts: Prompt templates. Default: built-ins with settings.prompt_variants.
            chunk_embedder: With vector_store, pre-ranks depth-0 chunks so at
                most settings.max_chunks reach the scorer.
            vector_store: Embedding store used for pre-ranking.
            run_store: Where finished runs are saved. None keeps runs in memory only.
            scratchpad_store: Persists scratchpad entries as they are written.
        """
        if (chunk_embedder is None) != (vector_store is None):
            raise ValueError("chunk_embedder and vector_store must be given together")
        self.gateway = gateway
        self.settings = settings if settings is not None else Settings()
        self.chunker = chunker or SentenceChunker(language=self.settings.sentence_language)
        self.prompts = prompts or PromptLibrary(variants=self.settings.prompt_variants)
        self.chunk_embedder = chunk_embedder
        self.vector_store = vector_store
        self.run_store = run_store
        self.scratchpad_store = scratchpad_store

    def _stages(self, settings: Settings) -> _Stages:
        scorer = RelevanceScorer(
            self.gateway, self.prompts, max_chunks_per_call=settings.max_chunks_per_call
        )
        graph_builder = KnowledgeGraphBuilder(self.gateway, self.prompts)
        return _Stages(
            scorer=scorer,
            graph_builder=graph_builder,
            controller=DrillDownController(self.chunker, scorer, graph_builder),
            verifier=FactVerifier(
                self.gateway, self.prompts, require_evidence=settings.require_evidence
            ),
            synthesizer=ResponseSynthesizer(
                self.gateway,
                self.prompts,
                relevance_weight=settings.relevance_weight,
                temperature=settings.temperature,
            ),
        )

    def process(
        self,
        query: str,
        documents: DocumentInput,
        options: RunOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """Answer a query over documents (sync wrapper around aprocess)."""
        return asyncio.run(self.aprocess(query, documents, options, cancel_token))

    async def aprocess(
        self,
        query: str,
        documents: DocumentInput,
        options: RunOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """Answer a query over documents.

        Args:
            query: The question.
            documents: Text, a Document, or several of either (joined by blank lines).
            options: Per-run overrides of the pipeline settings.
            cancel_token: Stops the drill-down early; the answer is built
                from the context gathered so far.

        Returns:
            RunResult with the cited answer, knowledge graph, verification,
            scratchpad entries and final context.

        Raises:
            ConfigurationError: If options produce invalid settings.
            EmptyDocumentError: If the documents contain no text.
            GatewayError: If a mandatory stage (scoring, synthesis) fails.
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        settings = self.settings.apply(options)
        document = as_document(documents)
        if not document.text.strip():
            raise EmptyDocumentError("Cannot process an empty document")

        ctx = RunContext(
            query=query.strip(), document=document, settings=settings, cancel_token=cancel_token
        )
        ctx.scratchpad = Scratchpad(
            run_id=ctx.run_id if self.scratchpad_store is not None else None,
            store=self.scratchpad_store,
            max_entries=settings.scratchpad_max_entries,
            compression_level=settings.compression_level,
        )
        stages = self._stages(settings)
        logger.info("Run %s started: %d chars", ctx.run_id, len(document.text))

        with timed(logger, "pipeline.chunk", run=ctx.run_id):
            chunks = stages.controller.initial_chunks(ctx)
        frontier = self._prerank(ctx, chunks)

        with timed(logger, "pipeline.drill", run=ctx.run_id):
            state = await stages.controller.run(ctx, frontier)
        context = state.context_chunks()

        verification = None
        verification_degraded = False
        if context and settings.enable_fact_verification:
            try:
                verification = await self._verify_draft(ctx, stages, context)
            except OptionalStageFailure as failure:
                ctx.mark_degraded(failure)
                verification_degraded = True

        with timed(logger, "pipeline.synthesize", run=ctx.run_id):
            answer = await stages.synthesizer.synthesize(
                ctx.query,
                context,
                ctx.graph,
                self._notes(ctx),
                verification,
                ctx.scores,
                verification_degraded=verification_degraded,
                ctx=ctx,
            )

        metadata = ProcessingMetadata(
            run_id=ctx.run_id,
            chunks_processed=len(ctx.scores),
            recursion_depth=state.depth,
            terminal_reason=state.terminal_reason,
            degraded_stages=list(ctx.degraded_stages),
            model_calls=ctx.model_calls,
            token_usage=ctx.usage,
            processing_time_seconds=ctx.elapsed(),
        )
        answer = answer.model_copy(update={"metadata": metadata})

        if self.run_store is not None:
            self.run_store.save(ctx.export(answer))

        logger.info(
            "Run %s finished: %d sources, confidence %.2f, %d model calls",
            ctx.run_id,
            len(answer.sources_used),
            answer.confidence_score,
            ctx.model_calls,
        )
        return RunResult(
            query=ctx.query,
            answer=answer,
            knowledge_graph=ctx.graph,
            verification=verification,
            scratchpad_entries=ctx.scratchpad.entries(),
            context=context,
        )

    async def _verify_draft(
        self, ctx: RunContext, stages: _Stages, context: list[Chunk]
    ) -> VerificationResult:
        """Draft an answer from the context and check it claim by claim.

        Raises:
            OptionalStageFailure: If drafting or verification fails.
        """
        notes = self._notes(ctx)
        try:
            with timed(logger, "pipeline.draft", run=ctx.run_id):
                draft = await stages.synthesizer.draft(
                    ctx.query, context, ctx.graph, notes, ctx=ctx
                )
        except Exception as e:
            raise OptionalStageFailure("fact_verification", e) from e
        with timed(logger, "pipeline.verify", run=ctx.run_id):
            return await stages.verifier.verify(
                draft.answer,
                context,
                ctx.settings.verification_min_confidence,
                ctx=ctx,
            )

    def _notes(self, ctx: RunContext) -> str:
        if not ctx.settings.enable_scratchpad or ctx.scratchpad is None:
            return ""
        try:
            return ctx.scratchpad.read_all()
        except Exception as e:
            ctx.mark_degraded(OptionalStageFailure("scratchpad", e))
            return ""

    def _prerank(self, ctx: RunContext, chunks: list[Chunk]) -> list[Chunk]:
        """Keep the max_chunks depth-0 chunks most similar to the query."""
        limit = ctx.settings.max_chunks
        if len(chunks) <= limit:
            return chunks
        if self.chunk_embedder is None or self.vector_store is None:
            logger.debug("%d chunks exceed max_chunks=%d but no vector index is set", len(chunks), limit)
            return chunks

        with timed(logger, "pipeline.prerank", chunks=len(chunks), keep=limit):
            vectors = self.chunk_embedder.embed_chunks(ctx.document.text, chunks)
            for chunk, vector in zip(chunks, vectors, strict=True):
                self.vector_store.put(
                    f"{ctx.run_id}:{chunk.index}",
                    vector,
                    {"run_id": ctx.run_id, "chunk_index": chunk.index},
                )
            ranked = self.vector_store.query(
                self.chunk_embedder.embed_query(ctx.query), k=limit, where={"run_id": ctx.run_id}
            )
        keep = {int(chunk_id.rsplit(":", 1)[1]) for chunk_id in ranked}
        return [c for c in chunks if c.index in keep]
