"""Registry verification models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, conint

ACTIVE_STATUS = "A"


class VerificationTier(str, Enum):
    """Coarse confidence bucket assigned after verification."""

    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


class PracticeAddress(BaseModel):
    """Practice location attached to a registry record."""

    address1: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    phone: str | None = None


class RegistryMatch(BaseModel):
    """Single individual provider record returned by the NPI registry."""

    npi_number: int
    first_name: str = ""
    last_name: str = ""
    credential: str = ""
    status: str = ""
    taxonomy_description: str = ""
    taxonomy_code: str = ""
    is_primary: bool = False
    practice_address: PracticeAddress | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS


class RegistrySearchResult(BaseModel):
    """Matches plus the registry-reported total for one lookup."""

    matches: list[RegistryMatch] = Field(default_factory=list)
    total_count: int = 0
    strategy: str | None = Field(default=None, description="Cascade step that produced the matches.")


class VerificationResult(BaseModel):
    """Confidence score and tier for a candidate."""

    tier: VerificationTier
    registry_match: RegistryMatch | None = None
    match_count: int = 0
    confidence: conint(ge=0, le=100)  # type: ignore[valid-type]
    reasoning: str = ""
