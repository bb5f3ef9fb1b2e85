"""Contact enrichment waterfall: ordered strategies folded left to right.

Each strategy offers a partial record; the fold only fills fields that are
still empty, so a value set by an earlier step is never replaced.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.clients.errors import ProviderError
from app.clients.hunter import EmailFinding
from app.models.contact import SOURCED_FIELDS, ContactRecord, ContactSource
from pipelines.accounting import RunAccumulators
from pipelines.enrichment.context import ContactAttempt, ContactStrategy, EnrichmentContext
from pipelines.enrichment.description import extract_contacts
from pipelines.enrichment.web_search import WebSearchClient, WebSearchStrategy

logger = logging.getLogger("pipelines.enrichment.waterfall")


class EmailFinderClient(Protocol):
    def find_email(self, *, domain: str, first_name: str, last_name: str) -> EmailFinding | None:
        ...


class DescriptionStrategy(ContactStrategy):
    """Regex extraction from the channel description (free)."""

    label = "YouTube description"
    sources = (ContactSource.YOUTUBE_DESCRIPTION,)

    def attempt(self, context: EnrichmentContext, record: ContactRecord) -> ContactAttempt:
        found = extract_contacts(context.channel.description)
        source = ContactSource.YOUTUBE_DESCRIPTION
        attempt = ContactAttempt(
            instagram_handle=found.instagram_handle,
            practice_domain=found.practice_domain,
            checked=[source],
            probes={source: ("email", "linkedin_url")},
        )
        attempt.offer("email", found.email, source)
        attempt.offer("phone", found.phone, source)
        attempt.offer("linkedin_url", found.linkedin_url, source)
        attempt.offer("website", found.website, source)

        if found.email:
            attempt.log.append(f"YouTube description: EMAIL found ({found.email})")
        if found.phone:
            attempt.log.append("YouTube description: PHONE found")
        if found.linkedin_url:
            attempt.log.append("YouTube description: LINKEDIN found")
        if not found.email and not found.linkedin_url:
            attempt.log.append("YouTube description: No email or LinkedIn found")
        return attempt


class DomainEmailStrategy(ContactStrategy):
    """Name + practice domain email lookup."""

    cost_provider = "provider"

    def __init__(self, client: EmailFinderClient) -> None:
        self._client = client

    def applies(self, context: EnrichmentContext, record: ContactRecord) -> bool:
        identity = context.identity
        return bool(record.practice_domain and identity.first_name and identity.last_name and record.email is None)

    def skip_message(self, context: EnrichmentContext, record: ContactRecord) -> str:
        if not record.practice_domain:
            return f"{self.label}: SKIPPED (no practice domain)"
        if record.email is not None:
            return f"{self.label}: SKIPPED (already have email)"
        return f"{self.label}: SKIPPED (name unknown)"

    def attempt(self, context: EnrichmentContext, record: ContactRecord) -> ContactAttempt:
        (source,) = self.sources
        domain = record.practice_domain or ""
        attempt = ContactAttempt(checked=[source], probes={source: ("email",)}, cost_provider=self.cost_provider)
        try:
            finding = self._client.find_email(
                domain=domain,
                first_name=context.identity.first_name or "",
                last_name=context.identity.last_name or "",
            )
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "domain": domain},
            )
            finding = None

        if finding is None:
            attempt.log.append(f"{self.label}: FAILED for domain {domain}")
            return attempt
        attempt.offer("email", finding.email, source)
        attempt.log.append(self._found_message(finding))
        return attempt

    def _found_message(self, finding: EmailFinding) -> str:
        return f"{self.label}: EMAIL found ({finding.email})"


class HunterStrategy(DomainEmailStrategy):
    label = "Hunter.io"
    sources = (ContactSource.HUNTER,)
    cost_provider = "hunter"

    def _found_message(self, finding: EmailFinding) -> str:
        return f"{self.label}: EMAIL found ({finding.email}, score: {finding.score})"


class SnovStrategy(DomainEmailStrategy):
    label = "Snov.io"
    sources = (ContactSource.SNOV,)
    cost_provider = "snov"


class RegistryPhoneStrategy(ContactStrategy):
    """Fall back to the practice phone on the matched registry record."""

    label = "NPI phone"
    sources = (ContactSource.NPI,)

    def applies(self, context: EnrichmentContext, record: ContactRecord) -> bool:
        return record.phone is None and _registry_phone(context) is not None

    def skip_message(self, context: EnrichmentContext, record: ContactRecord) -> str:
        if record.phone is not None:
            return f"{self.label}: SKIPPED (already have phone)"
        return f"{self.label}: SKIPPED (no registry phone)"

    def attempt(self, context: EnrichmentContext, record: ContactRecord) -> ContactAttempt:
        phone = _registry_phone(context)
        attempt = ContactAttempt(checked=[ContactSource.NPI])
        attempt.offer("phone", phone, ContactSource.NPI)
        attempt.log.append(f"{self.label}: SUCCESS ({phone})")
        return attempt


def _registry_phone(context: EnrichmentContext) -> str | None:
    match = context.registry_match
    if match is None or match.practice_address is None:
        return None
    return match.practice_address.phone or None


def build_strategies(
    *,
    web_search: WebSearchClient,
    hunter: EmailFinderClient,
    snov: EmailFinderClient,
) -> list[ContactStrategy]:
    """The waterfall in its fixed order."""
    return [
        DescriptionStrategy(),
        WebSearchStrategy(web_search),
        HunterStrategy(hunter),
        SnovStrategy(snov),
        RegistryPhoneStrategy(),
    ]


@dataclass
class WaterfallResult:
    record: ContactRecord
    log: list[str] = field(default_factory=list)


def _fold(data: dict[str, Any], attempt: ContactAttempt, accumulators: RunAccumulators) -> set[str]:
    filled: set[str] = set()
    for field_name, value, source in attempt.fills:
        if field_name not in SOURCED_FIELDS or data[field_name] is not None:
            continue
        data[field_name] = value
        data[SOURCED_FIELDS[field_name]] = source
        filled.add(field_name)
        accumulators.record_source(field_name, source)

    for field_name in ("instagram_handle", "practice_domain"):
        value = getattr(attempt, field_name)
        if value and data[field_name] is None:
            data[field_name] = value

    for source in attempt.checked:
        if source not in data["sources_checked"]:
            data["sources_checked"].append(source)

    for source, fields in attempt.probes.items():
        accumulators.record_probe(source, found=bool(filled.intersection(fields)))

    if attempt.cost and attempt.cost_provider:
        accumulators.add_cost(attempt.cost_provider, attempt.cost)
    return filled


def run_waterfall(
    context: EnrichmentContext,
    strategies: Sequence[ContactStrategy],
    *,
    accumulators: RunAccumulators,
    record: ContactRecord | None = None,
) -> WaterfallResult:
    """Fold every applicable strategy into the record, in order."""
    data = (record or ContactRecord()).model_dump()
    log: list[str] = []
    for strategy in strategies:
        current = ContactRecord.model_validate(data)
        if not strategy.applies(context, current):
            log.append(strategy.skip_message(context, current))
            continue
        attempt = strategy.attempt(context, current)
        _fold(data, attempt, accumulators)
        log.extend(attempt.log)
    return WaterfallResult(record=ContactRecord.model_validate(data), log=log)
