# src/recursa/synthesizer.py
"""Final answer synthesis with citations and a confidence score."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

from recursa.models import Answer, KnowledgeGraph, Verdict
from recursa.prompts import PromptLibrary
from recursa.schemas import AnswerResult

if TYPE_CHECKING:
    from recursa.context import RunContext
    from recursa.gateway import LMGateway
    from recursa.models import Chunk, RelevanceScore, VerificationResult
    from recursa.scratchpad import Scratchpad

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTEXT_ANSWER = (
    "Insufficient context: the document does not contain information "
    "relevant enough to answer this question."
)

_INDEX_RE = re.compile(r"\d+")


def parse_sources(sources_used: list[str], context_indices: list[int]) -> list[int]:
    """Chunk indices cited in sources_used that are part of the context.

    Accepts forms such as "3", "[3]" or "chunk 3". Result is sorted and
    free of duplicates.
    """
    allowed = set(context_indices)
    cited = {int(m) for source in sources_used for m in _INDEX_RE.findall(source)}
    return sorted(cited & allowed)


def combine_confidence(
    relevance: float,
    verified_ratio: float | None,
    relevance_weight: float,
) -> float:
    """Weighted mix of relevance and verification, clamped to [0, 1].

    verified_ratio is None when verification did not run; relevance then
    stands alone.
    """
    relevance = min(1.0, max(0.0, relevance))
    if verified_ratio is None:
        return relevance
    verified_ratio = min(1.0, max(0.0, verified_ratio))
    return relevance_weight * relevance + (1.0 - relevance_weight) * verified_ratio


class ResponseSynthesizer:
    """Write the cited answer from context, graph, notes and verified claims.

    Example:
        synthesizer = ResponseSynthesizer(gateway, relevance_weight=0.6)
        answer = await synthesizer.synthesize(
            query, context, ctx.graph, ctx.scratchpad, verification, ctx.scores
        )
    """

    def __init__(
        self,
        gateway: LMGateway,
        prompts: PromptLibrary | None = None,
        relevance_weight: float = 0.6,
        temperature: float | None = 0.3,
    ) -> None:
        self.gateway = gateway
        self.prompts = prompts or PromptLibrary()
        self.relevance_weight = relevance_weight
        self.temperature = temperature

    def _build_prompt(
        self,
        query: str,
        context_spans: list[Chunk],
        knowledge_graph: KnowledgeGraph | None,
        notes: str,
        verification: VerificationResult | None,
    ) -> str:
        context = "\n\n".join(f"[{c.index}]\n{c.text.strip()}" for c in context_spans)
        claims_section = ""
        if verification is not None and verification.claims:
            lines = ["", "Fact check of a draft answer:"]
            for claim in verification.claims:
                lines.append(f"- {claim.verdict.value}: {claim.text}")
            lines.append("Keep VERIFIED claims. Drop or correct REFUTED and UNSUPPORTED ones.")
            claims_section = "\n".join(lines) + "\n"
        return self.prompts.render(
            "response_generation",
            query=query,
            context=context,
            knowledge_graph=(knowledge_graph or KnowledgeGraph()).summary(),
            notes=notes or "(none)",
            claims_section=claims_section,
        )

    async def draft(
        self,
        query: str,
        context_spans: list[Chunk],
        knowledge_graph: KnowledgeGraph | None = None,
        notes: str = "",
        *,
        ctx: RunContext | None = None,
    ) -> AnswerResult:
        """Pre-verification draft, written with the same prompt as the final answer."""
        result = await self.gateway.call(
            self._build_prompt(query, context_spans, knowledge_graph, notes, None),
            schema=AnswerResult,
            temperature=self.temperature,
        )
        if ctx is not None:
            ctx.record_call(result)
        return result.result

    async def synthesize(
        self,
        query: str,
        context_spans: list[Chunk],
        knowledge_graph: KnowledgeGraph | None,
        scratchpad: Scratchpad | str | None,
        claims: VerificationResult | None,
        scores: Mapping[int, RelevanceScore],
        *,
        verification_degraded: bool = False,
        ctx: RunContext | None = None,
    ) -> Answer:
        """Produce the final Answer.

        Args:
            query: The user question.
            context_spans: Final context chunks, in document order.
            knowledge_graph: Run graph, summarized into the prompt.
            scratchpad: Working notes (a Scratchpad or already-read text).
            claims: Verification of the draft, or None if it did not run.
            scores: Relevance score per chunk index.
            verification_degraded: Verification was attempted and failed;
                the verified ratio then counts as 0.
            ctx: Run context that records model usage.

        Raises:
            GatewayError: If the model call fails. Synthesis is mandatory.
        """
        if not context_spans:
            logger.info("No relevant context; returning insufficient-context answer")
            return Answer(text=INSUFFICIENT_CONTEXT_ANSWER, sources_used=[], confidence_score=0.0)

        if scratchpad is None:
            notes = ""
        elif isinstance(scratchpad, str):
            notes = scratchpad
        else:
            notes = scratchpad.read_all()
        result = await self.gateway.call(
            self._build_prompt(query, context_spans, knowledge_graph, notes, claims),
            schema=AnswerResult,
            temperature=self.temperature,
        )
        if ctx is not None:
            ctx.record_call(result)
        parsed: AnswerResult = result.result

        sources = parse_sources(parsed.sources_used, [c.index for c in context_spans])
        used_scores = [scores[i].score for i in sources if i in scores]
        relevance = sum(used_scores) / len(used_scores) if used_scores else 0.0

        if verification_degraded:
            ratio: float | None = 0.0
        elif claims is None:
            ratio = None
        else:
            ratio = claims.verified_ratio
        confidence = combine_confidence(relevance, ratio, self.relevance_weight)

        if claims is not None:
            refuted = sum(1 for c in claims.claims if c.verdict is Verdict.REFUTED)
            if refuted:
                logger.info("Draft had %d refuted claims", refuted)
        return Answer(text=parsed.answer.strip(), sources_used=sources, confidence_score=confidence)
