# src/recursa/verifier.py
"""Claim-level fact verification of a draft answer."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from recursa.exceptions import OptionalStageFailure
from recursa.models import Claim, Verdict, VerificationResult, VerificationStatus
from recursa.prompts import PromptLibrary
from recursa.schemas import ClaimDecomposition, ClaimVerdict

if TYPE_CHECKING:
    from recursa.context import RunContext
    from recursa.gateway import LMGateway
    from recursa.models import Chunk

logger = logging.getLogger(__name__)

STAGE = "fact_verification"


def _fold(text: str) -> str:
    return " ".join(text.split()).casefold()


def overall_status(claims: list[Claim], min_confidence: float) -> VerificationStatus:
    """VERIFIED if every claim is verified above min_confidence, PARTIAL if some are.

    A claim verified at exactly min_confidence does not pass.
    """
    passed = sum(
        1 for c in claims if c.verdict is Verdict.VERIFIED and c.confidence > min_confidence
    )
    if claims and passed == len(claims):
        return VerificationStatus.VERIFIED
    if passed:
        return VerificationStatus.PARTIAL
    return VerificationStatus.UNVERIFIED


class FactVerifier:
    """Split a draft answer into atomic claims and check each against the context.

    Claims are verified concurrently, each with its own gateway call that
    sees only the retrieved context. With require_evidence, a VERIFIED
    verdict whose evidence is not found in the context is downgraded to
    UNSUPPORTED.

    Example:
        verifier = FactVerifier(gateway)
        result = await verifier.verify(draft.answer, context_chunks, min_confidence=0.75)
        result.overall_status  # VerificationStatus.PARTIAL
    """

    def __init__(
        self,
        gateway: LMGateway,
        prompts: PromptLibrary | None = None,
        require_evidence: bool = True,
        temperature: float | None = 0.0,
    ) -> None:
        self.gateway = gateway
        self.prompts = prompts or PromptLibrary()
        self.require_evidence = require_evidence
        self.temperature = temperature

    async def decompose(self, draft_answer: str, *, ctx: RunContext | None = None) -> list[str]:
        """Atomic claims in the draft."""
        result = await self.gateway.call(
            self.prompts.render("claim_decomposition", answer=draft_answer),
            schema=ClaimDecomposition,
            temperature=self.temperature,
        )
        if ctx is not None:
            ctx.record_call(result)
        # Keep order, drop duplicates
        return list(dict.fromkeys(result.result.claims))

    async def check_claim(
        self,
        claim: str,
        context: str,
        *,
        ctx: RunContext | None = None,
    ) -> Claim:
        """Verdict for one claim against the context text."""
        result = await self.gateway.call(
            self.prompts.render("fact_verification", claim=claim, context=context),
            schema=ClaimVerdict,
            temperature=self.temperature,
        )
        if ctx is not None:
            ctx.record_call(result)
        verdict: ClaimVerdict = result.result
        checked = Claim(
            text=claim,
            verdict=verdict.verdict,
            evidence=verdict.evidence.strip(),
            confidence=verdict.confidence,
        )
        if (
            self.require_evidence
            and checked.verdict is Verdict.VERIFIED
            and not self._grounded(checked.evidence, context)
        ):
            logger.debug("Claim evidence not found in context, marking unsupported: %s", claim)
            checked = checked.model_copy(update={"verdict": Verdict.UNSUPPORTED})
        return checked

    @staticmethod
    def _grounded(evidence: str, context: str) -> bool:
        folded = _fold(evidence)
        return bool(folded) and folded in _fold(context)

    async def verify(
        self,
        draft_answer: str,
        context_spans: list[Chunk],
        min_confidence: float = 0.75,
        *,
        ctx: RunContext | None = None,
    ) -> VerificationResult:
        """Verify every claim in the draft against context_spans.

        Raises:
            OptionalStageFailure: If decomposition or any claim check fails.
        """
        context = "\n\n".join(f"[{c.index}] {c.text.strip()}" for c in context_spans)
        try:
            claim_texts = await self.decompose(draft_answer, ctx=ctx)
        except Exception as e:
            raise OptionalStageFailure(STAGE, e) from e

        if not claim_texts:
            return VerificationResult(claims=[], overall_status=VerificationStatus.UNVERIFIED)

        results = await asyncio.gather(
            *[self.check_claim(text, context, ctx=ctx) for text in claim_texts],
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.warning("%d/%d claim checks failed", len(errors), len(claim_texts))
            raise OptionalStageFailure(STAGE, errors[0]) from errors[0]

        claims: list[Claim] = list(results)  # type: ignore[arg-type]
        status = overall_status(claims, min_confidence)
        logger.info(
            "Verified %d/%d claims (%s)",
            sum(1 for c in claims if c.verdict is Verdict.VERIFIED),
            len(claims),
            status.value,
        )
        return VerificationResult(claims=claims, overall_status=status)
