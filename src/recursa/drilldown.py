# src/recursa/drilldown.py
"""Drill-down controller: iterative narrowing from coarse chunks to paragraphs.

The traversal is an explicit loop over depth levels rather than recursion,
so it can be cancelled between any two steps and fans out across the
whole frontier at once:

    INITIAL -> SCORING -> SELECTING -> DRILLING -> SCORING -> ... -> TERMINAL
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING, TypeVar

from recursa.exceptions import EmptyDocumentError, OptionalStageFailure
from recursa.models import Chunk, DrillPhase, DrillState, TerminalReason
from recursa.timing import timed

if TYPE_CHECKING:
    from recursa.chunker import SentenceChunker
    from recursa.context import RunContext
    from recursa.graph_builder import KnowledgeGraphBuilder
    from recursa.scorer import RelevanceScorer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Cancelled(Exception):
    """Internal signal: the run's cancellation token fired."""


class DrillDownController:
    """Run the drill-down state machine for one run context.

    Each level scores the frontier, keeps chunks at or above the relevance
    threshold and re-splits them into children for the next level. Spans
    are never scored twice, depth never exceeds max_recursive_depth, and
    every level either goes one deeper or terminates, so the loop always
    ends.

    Example:
        controller = DrillDownController(chunker, scorer, graph_builder)
        state = await controller.run(ctx)
        context = state.context_chunks()
    """

    def __init__(
        self,
        chunker: SentenceChunker,
        scorer: RelevanceScorer,
        graph_builder: KnowledgeGraphBuilder | None = None,
    ) -> None:
        self.chunker = chunker
        self.scorer = scorer
        self.graph_builder = graph_builder

    def initial_chunks(self, ctx: RunContext) -> list[Chunk]:
        """Depth-0 chunks of the run's document."""
        settings = ctx.settings
        return self.chunker.split(
            ctx.document.text,
            settings.target_chunk_count,
            settings.respect_sentences,
            min_chunk_size=settings.min_chunk_chars,
        )

    async def run(self, ctx: RunContext, initial: list[Chunk] | None = None) -> DrillState:
        """Drive the state machine to TERMINAL.

        Args:
            ctx: Run context. Its drill state, scores, graph and scratchpad
                are updated in place.
            initial: Depth-0 frontier. Default: the chunker's output for the
                whole document.

        Returns:
            The terminal DrillState. Its context_chunks() are the final context.
        """
        state = ctx.drill
        frontier = initial if initial is not None else self.initial_chunks(ctx)
        ctx.register_chunks(frontier)
        state.frontier = list(frontier)
        state.phase = DrillPhase.INITIAL

        try:
            async with asyncio.timeout(ctx.settings.deadline_seconds):
                await self._loop(ctx)
        except (_Cancelled, TimeoutError):
            logger.warning(
                "Run %s cancelled at depth %d; answering from gathered context",
                ctx.run_id,
                state.depth,
            )
            # The latest selection is the best context available
            state.add_leaves(state.selected)
            self._terminate(state, TerminalReason.CANCELLED)
        return state

    async def _loop(self, ctx: RunContext) -> None:
        state = ctx.drill
        settings = ctx.settings
        drilled_parents: list[Chunk] = []
        extracted: list[Chunk] = []

        while True:
            self._check_cancelled(ctx)
            state.steps += 1
            frontier = state.frontier

            state.phase = DrillPhase.SCORING
            notes = self._read_notes(ctx)
            with timed(logger, "drill.score", depth=state.depth, chunks=len(frontier)):
                scores = await self._guard(
                    ctx,
                    self.scorer.score(
                        ctx.query,
                        frontier,
                        settings.max_chunks_per_call,
                        notes=notes,
                        ctx=ctx,
                    ),
                )
            ctx.record_scores(scores)
            state.mark_visited(frontier)

            state.phase = DrillPhase.SELECTING
            selected = [
                c for c in frontier if ctx.scores[c.index].score >= settings.relevance_threshold
            ]
            if drilled_parents:
                # A parent whose children all fell below threshold stays as context
                surviving = {c.parent_index for c in selected}
                state.add_leaves([p for p in drilled_parents if p.index not in surviving])
            state.selected = selected
            logger.info(
                "Depth %d: selected %d of %d chunks", state.depth, len(selected), len(frontier)
            )
            await self._write_note(ctx, frontier, selected)

            if not selected:
                self._terminate(state, TerminalReason.NO_RELEVANT_CHUNKS)
                return
            if state.depth >= settings.max_recursive_depth:
                await self._extract(ctx, selected, extracted)
                state.add_leaves(selected)
                self._terminate(state, TerminalReason.RECURSION_LIMIT)
                return
            if all(c.length < settings.min_chunk_chars for c in selected):
                await self._extract(ctx, selected, extracted)
                state.add_leaves(selected)
                self._terminate(state, TerminalReason.GRANULARITY_REACHED)
                return

            state.phase = DrillPhase.DRILLING
            children: list[Chunk] = []
            drilled_parents = []
            for chunk in selected:
                branch = self._split_branch(ctx, chunk)
                if branch:
                    children.extend(branch)
                    drilled_parents.append(chunk)
                else:
                    state.add_leaves([chunk])

            await self._extract(ctx, selected, extracted)

            if not children:
                self._terminate(state, TerminalReason.NO_CHILDREN)
                return

            ctx.register_chunks(children)
            state.depth += 1
            state.frontier = children

    async def _extract(
        self, ctx: RunContext, selected: list[Chunk], extracted: list[Chunk]
    ) -> None:
        """Enrich the graph from selected chunks not inside an already extracted one."""
        if self.graph_builder is None or not ctx.settings.enable_knowledge_graph:
            return
        pending = [c for c in selected if not any(e.contains(c) for e in extracted)]
        if not pending:
            return
        extracted.extend(pending)
        with timed(logger, "drill.graph", depth=ctx.drill.depth, branches=len(pending)):
            await self._guard(
                ctx,
                asyncio.gather(*[self.graph_builder.enrich(ctx, [c.text]) for c in pending]),
            )

    def _split_branch(self, ctx: RunContext, chunk: Chunk) -> list[Chunk]:
        """Children of a selected chunk, with fresh run-wide indices."""
        settings = ctx.settings
        state = ctx.drill
        if chunk.length < settings.min_chunk_chars:
            return []
        try:
            pieces = self.chunker.split(
                chunk.text,
                settings.child_chunk_count,
                settings.respect_sentences,
                offset=chunk.start,
                depth=chunk.depth + 1,
                parent_index=chunk.index,
                min_chunk_size=settings.min_chunk_chars,
            )
        except EmptyDocumentError:
            return []
        pieces = [
            p for p in pieces if p.char_span != chunk.char_span and not state.is_visited(p)
        ]
        if not pieces:
            return []
        first = ctx.allocate_indices(len(pieces))
        return [p.model_copy(update={"index": first + i}) for i, p in enumerate(pieces)]

    def _read_notes(self, ctx: RunContext) -> str:
        if not ctx.settings.enable_scratchpad or ctx.scratchpad is None:
            return ""
        try:
            return ctx.scratchpad.read_all()
        except Exception as e:
            ctx.mark_degraded(OptionalStageFailure("scratchpad", e))
            return ""

    async def _write_note(self, ctx: RunContext, frontier: list[Chunk], selected: list[Chunk]) -> None:
        """Summarize this level's scoring into the scratchpad."""
        if not ctx.settings.enable_scratchpad or ctx.scratchpad is None:
            return
        depth = ctx.drill.depth
        lines = [
            f"Depth {depth}: {len(selected)} of {len(frontier)} chunks at or above "
            f"{ctx.settings.relevance_threshold:.2f}."
        ]
        for chunk in selected:
            score = ctx.scores[chunk.index]
            reason = f" {score.reasoning}" if score.reasoning else ""
            lines.append(f"- [{chunk.index}] {score.score:.2f}{reason}")
        if not ctx.graph.is_empty():
            names = sorted(ctx.graph.entities)[:10]
            lines.append("Known entities: " + ", ".join(names))
        try:
            await ctx.write_note(f"depth-{depth}", "\n".join(lines))
        except Exception as e:
            ctx.mark_degraded(OptionalStageFailure("scratchpad", e))

    @staticmethod
    def _check_cancelled(ctx: RunContext) -> None:
        if ctx.cancel_token is not None and ctx.cancel_token.cancelled:
            raise _Cancelled()

    async def _guard(self, ctx: RunContext, awaitable: Awaitable[T]) -> T:
        """Await a step, abandoning it as soon as the run is cancelled."""
        token = ctx.cancel_token
        if token is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        if token.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise _Cancelled()
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # asyncio.wait leaves its tasks running when the caller is cancelled
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _Cancelled()

    @staticmethod
    def _terminate(state: DrillState, reason: TerminalReason) -> None:
        state.phase = DrillPhase.TERMINAL
        state.terminal_reason = reason
        logger.info(
            "Drill-down terminal at depth %d (%s), %d context chunks",
            state.depth,
            reason.value,
            len(state.leaves),
        )
