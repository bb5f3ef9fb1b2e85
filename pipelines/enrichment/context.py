"""Shared types for the contact enrichment waterfall."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.models.candidate import Channel, Identity
from app.models.contact import ContactRecord, ContactSource
from app.models.verification import RegistryMatch, VerificationResult
from pipelines.enrichment.profile_match import ProfileMatchContext


@dataclass(frozen=True)
class EnrichmentContext:
    """Everything a strategy may read about the candidate being enriched."""

    channel: Channel
    identity: Identity
    verification: VerificationResult
    doctor_name: str
    match: ProfileMatchContext

    @classmethod
    def build(cls, channel: Channel, identity: Identity, verification: VerificationResult) -> "EnrichmentContext":
        registry_match = verification.registry_match
        address = registry_match.practice_address if registry_match else None
        return cls(
            channel=channel,
            identity=identity,
            verification=verification,
            doctor_name=identity.display_name or identity.full_name or channel.title,
            match=ProfileMatchContext(
                first_name=identity.first_name,
                last_name=identity.last_name,
                credentials=identity.credentials,
                city=(address.city if address else None) or None,
                state=(address.state if address else None) or identity.location,
            ),
        )

    @property
    def registry_match(self) -> RegistryMatch | None:
        return self.verification.registry_match


@dataclass
class ContactAttempt:
    """Partial record offered by one strategy; the fold decides what lands."""

    fills: list[tuple[str, str, ContactSource]] = field(default_factory=list)
    instagram_handle: str | None = None
    practice_domain: str | None = None
    checked: list[ContactSource] = field(default_factory=list)
    # probe source -> fields whose fill by this attempt counts as a hit
    probes: dict[ContactSource, tuple[str, ...]] = field(default_factory=dict)
    cost: float = 0.0
    cost_provider: str | None = None
    log: list[str] = field(default_factory=list)

    def offer(self, field_name: str, value: str | None, source: ContactSource) -> None:
        if value:
            self.fills.append((field_name, value, source))


class ContactStrategy:
    """One waterfall step."""

    label = "strategy"
    sources: tuple[ContactSource, ...] = ()

    def applies(self, context: EnrichmentContext, record: ContactRecord) -> bool:
        return True

    def attempt(self, context: EnrichmentContext, record: ContactRecord) -> ContactAttempt:
        raise NotImplementedError

    def skip_message(self, context: EnrichmentContext, record: ContactRecord) -> str:
        return f"{self.label}: SKIPPED"
