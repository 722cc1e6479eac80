# src/recursa/models/claim.py
"""Fact verification data models."""

from enum import Enum

from pydantic import BaseModel, Field


class Verdict(str, Enum):
    """Verdict for a single claim."""

    VERIFIED = "VERIFIED"
    REFUTED = "REFUTED"
    UNSUPPORTED = "UNSUPPORTED"


class VerificationStatus(str, Enum):
    """Overall verification outcome for a draft answer."""

    VERIFIED = "VERIFIED"
    PARTIAL = "PARTIAL"
    UNVERIFIED = "UNVERIFIED"


class Claim(BaseModel):
    """An atomic factual assertion and its verdict against the context."""

    text: str
    verdict: Verdict = Verdict.UNSUPPORTED
    evidence: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class VerificationResult(BaseModel):
    """All checked claims plus the overall status."""

    claims: list[Claim] = Field(default_factory=list)
    overall_status: VerificationStatus = VerificationStatus.UNVERIFIED

    @property
    def verified_ratio(self) -> float:
        """Fraction of claims verified (0.0 when there are no claims)."""
        if not self.claims:
            return 0.0
        verified = sum(1 for c in self.claims if c.verdict is Verdict.VERIFIED)
        return verified / len(self.claims)
