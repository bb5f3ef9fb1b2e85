"""NPI registry lookups: region derivation, the search cascade, and best-match selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from app.clients.errors import ProviderError
from app.models.candidate import Identity
from app.models.verification import PracticeAddress, RegistryMatch, RegistrySearchResult

logger = logging.getLogger("pipelines.verification.registry")

SPECIALTY_TAXONOMY = "Dermatology"
SPECIALTY_KEYWORD = "dermatology"
MIN_MATCH_SCORE = 3

STATE_CODES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA", "HI", "ID", "IL", "IN", "IA",
    "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT",
    "VA", "WA", "WV", "WI", "WY", "DC",
)  # fmt: skip

REGION_SUFFIX = re.compile(r"(?:,\s*|\s)([A-Z]{2})$")

STATE_NAMES = {
    "california": "CA",
    "new york": "NY",
    "texas": "TX",
    "florida": "FL",
    "illinois": "IL",
    "pennsylvania": "PA",
    "ohio": "OH",
    "georgia": "GA",
    "michigan": "MI",
    "new jersey": "NJ",
    "virginia": "VA",
    "washington": "WA",
    "arizona": "AZ",
    "massachusetts": "MA",
    "tennessee": "TN",
    "indiana": "IN",
    "maryland": "MD",
    "colorado": "CO",
    "minnesota": "MN",
    "wisconsin": "WI",
    "connecticut": "CT",
    "oregon": "OR",
    "north carolina": "NC",
    "south carolina": "SC",
}


class RegistryClient(Protocol):
    def search(
        self,
        *,
        first_name: str,
        last_name: str,
        state: str | None = None,
        taxonomy_description: str | None = None,
        limit: int = 10,
    ) -> tuple[list[dict[str, Any]], int]:
        ...


def derive_region(text: str | None) -> str | None:
    """Map free-text location to a 2-letter US state code, or ``None``."""
    if not text:
        return None
    upper = text.strip().upper()
    if upper in STATE_CODES:
        return upper
    suffix = REGION_SUFFIX.search(upper)
    if suffix and suffix.group(1) in STATE_CODES:
        return suffix.group(1)
    lower = text.lower()
    for name, code in STATE_NAMES.items():
        if name in lower:
            return code
    return None


def parse_registry_match(record: Mapping[str, Any]) -> RegistryMatch | None:
    """Parse one raw registry record; missing taxonomy or address blocks are tolerated."""
    basic = record.get("basic") or {}
    taxonomies = [item for item in record.get("taxonomies") or [] if isinstance(item, Mapping)]
    addresses = [item for item in record.get("addresses") or [] if isinstance(item, Mapping)]

    taxonomy = next((item for item in taxonomies if item.get("primary")), taxonomies[0] if taxonomies else {})
    address = next(
        (item for item in addresses if item.get("address_purpose") == "LOCATION"),
        addresses[0] if addresses else None,
    )
    try:
        practice = None
        if address is not None:
            practice = PracticeAddress(
                address1=address.get("address_1") or "",
                city=address.get("city") or "",
                state=address.get("state") or "",
                postal_code=address.get("postal_code") or "",
                phone=address.get("telephone_number") or None,
            )
        return RegistryMatch(
            npi_number=int(record.get("number")),
            first_name=basic.get("first_name") or "",
            last_name=basic.get("last_name") or "",
            credential=basic.get("credential") or "",
            status=basic.get("status") or "",
            taxonomy_description=taxonomy.get("desc") or "",
            taxonomy_code=taxonomy.get("code") or "",
            is_primary=taxonomy.get("primary") is True,
            practice_address=practice,
        )
    except (AttributeError, TypeError, ValueError, ValidationError) as exc:
        logger.warning("Skipping malformed registry record %s: %s", record.get("number"), exc)
        return None


class RegistryVerifier:
    """Cascading registry search: specialty + region, specialty only, then name only."""

    def __init__(self, client: RegistryClient, *, limit: int = 10) -> None:
        self._client = client
        self._limit = limit

    def verify(self, first_name: str, last_name: str, location: str | None = None) -> RegistrySearchResult:
        region = derive_region(location)
        steps: list[tuple[str, str | None, str | None]] = []
        if region:
            steps.append(("taxonomy+region", region, SPECIALTY_TAXONOMY))
        steps.append(("taxonomy", None, SPECIALTY_TAXONOMY))
        steps.append(("name", None, None))

        result = RegistrySearchResult()
        for strategy, state, taxonomy in steps:
            result = self._search(first_name, last_name, state=state, taxonomy=taxonomy, strategy=strategy)
            if result.matches:
                break
        return result

    def _search(
        self,
        first_name: str,
        last_name: str,
        *,
        state: str | None,
        taxonomy: str | None,
        strategy: str,
    ) -> RegistrySearchResult:
        try:
            records, total = self._client.search(
                first_name=first_name,
                last_name=last_name,
                state=state,
                taxonomy_description=taxonomy,
                limit=self._limit,
            )
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "strategy": strategy},
            )
            return RegistrySearchResult(strategy=strategy)

        matches = [match for match in (parse_registry_match(record) for record in records) if match is not None]
        return RegistrySearchResult(matches=matches, total_count=total, strategy=strategy)


def score_registry_match(identity: Identity, match: RegistryMatch) -> int:
    score = 0
    if identity.last_name and match.last_name.lower() == identity.last_name.lower():
        score += 3
    if identity.first_name and identity.first_name.lower() in match.first_name.lower():
        score += 2
    if SPECIALTY_KEYWORD in match.taxonomy_description.lower():
        score += 3
    if match.is_active:
        score += 1
    address = match.practice_address
    if address and address.state and derive_region(identity.location) == address.state.upper():
        score += 1
    return score


def select_best_match(identity: Identity, matches: Sequence[RegistryMatch]) -> RegistryMatch | None:
    """Highest-scoring match at or above the floor; earlier matches win ties."""
    best: RegistryMatch | None = None
    best_score = 0
    for match in matches:
        score = score_registry_match(identity, match)
        if score > best_score:
            best, best_score = match, score
    if best_score < MIN_MATCH_SCORE:
        return None
    return best
