"""Additive verification confidence and gold/silver/bronze tiering."""

from __future__ import annotations

from collections.abc import Sequence

from app.models.candidate import Identity
from app.models.verification import RegistryMatch, VerificationResult, VerificationTier
from pipelines.verification.registry import SPECIALTY_KEYWORD, select_best_match

GOLD_THRESHOLD = 70
SILVER_THRESHOLD = 40
MAX_CONFIDENCE = 100

CONFIDENCE_POINTS = {"high": 10, "medium": 5, "low": 0}


def assign_tier(confidence: int, has_match: bool) -> VerificationTier:
    """Gold needs both the score and a registry match; silver only the score."""
    if confidence >= GOLD_THRESHOLD and has_match:
        return VerificationTier.GOLD
    if confidence >= SILVER_THRESHOLD:
        return VerificationTier.SILVER
    return VerificationTier.BRONZE


def compute_verification(
    identity: Identity,
    matches: Sequence[RegistryMatch],
    total_count: int,
) -> VerificationResult:
    confidence = 0
    reasons: list[str] = []

    if identity.is_professional:
        confidence += 15
        reasons.append("LLM identified as medical doctor")
    if identity.is_specialist:
        confidence += 15
        reasons.append("LLM identified as dermatologist")
    if identity.board_certified:
        confidence += 10
        reasons.append("Board certification indicated")
    if identity.credentials:
        confidence += 5
        reasons.append(f"Credentials: {identity.credentials}")
    confidence += CONFIDENCE_POINTS.get(identity.confidence, 0)

    best = select_best_match(identity, matches)
    if best is not None:
        confidence += 25
        reasons.append(f"NPI match: {best.npi_number}")
        if SPECIALTY_KEYWORD in best.taxonomy_description.lower():
            confidence += 10
            reasons.append("NPI taxonomy confirms dermatology")
        if best.is_active:
            confidence += 5
            reasons.append("NPI status: Active")
    elif total_count > 0:
        confidence += 5
        reasons.append(f"{total_count} NPI results but no strong match")

    return VerificationResult(
        tier=assign_tier(confidence, best is not None),
        registry_match=best,
        match_count=total_count,
        confidence=min(confidence, MAX_CONFIDENCE),
        reasoning="; ".join(reasons),
    )
