"""Per-run cost, quota, and enrichment-source accounting."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from app.models.contact import ContactSource
from app.models.run import ApiEffectiveness, CostBreakdown, SourceStats

logger = logging.getLogger("pipelines.accounting")

COST_PROVIDERS = ("youtube", "llm", "exa", "hunter", "snov", "npi")

# YouTube Data API quota units
SEARCH_QUOTA_UNITS = 100
CHANNEL_BATCH_QUOTA_UNITS = 1
PLAYLIST_QUOTA_UNITS = 1

# Exa pricing in USD
EXA_SEARCH_COST = 0.005
EXA_CONTENT_COST = 0.001
EXA_PRACTICE_SEARCH_COST = EXA_SEARCH_COST + EXA_CONTENT_COST

# Record fields reported in SourceStats, keyed by the attribution label used there.
SOURCE_STAT_FIELDS = {
    "email": "email",
    "phone": "phone",
    "linkedin_url": "linkedin",
    "doximity_url": "doximity",
    "website": "website",
}

# provider probe -> (display label, per-search cost used for cost-per-success)
EFFECTIVENESS_PROVIDERS: dict[ContactSource, tuple[str, float]] = {
    ContactSource.YOUTUBE_DESCRIPTION: ("YouTube Description", 0.0),
    ContactSource.EXA_LINKEDIN: ("Exa LinkedIn", EXA_SEARCH_COST),
    ContactSource.EXA_DOXIMITY: ("Exa Doximity", EXA_SEARCH_COST),
    ContactSource.EXA_PRACTICE: ("Exa Practice (Email)", EXA_PRACTICE_SEARCH_COST),
    ContactSource.HUNTER: ("Hunter.io", 0.0),
    ContactSource.SNOV: ("Snov.io", 0.0),
}


@dataclass
class ProviderProbe:
    """Searched/found counter for one enrichment provider."""

    searched: int = 0
    found: int = 0


@dataclass
class RunAccumulators:
    """Mutable counters owned by a single pipeline run."""

    costs: dict[str, float] = field(default_factory=lambda: dict.fromkeys(COST_PROVIDERS, 0.0))
    quota_units: int = 0
    gate_reasons: Counter[str] = field(default_factory=Counter)
    source_counts: dict[str, Counter[str]] = field(
        default_factory=lambda: {label: Counter() for label in SOURCE_STAT_FIELDS.values()}
    )
    probes: dict[ContactSource, ProviderProbe] = field(
        default_factory=lambda: {source: ProviderProbe() for source in EFFECTIVENESS_PROVIDERS}
    )

    def add_cost(self, provider: str, amount: float) -> None:
        if provider not in self.costs:
            raise KeyError(f"Unknown cost provider: {provider}")
        if amount < 0:
            raise ValueError("Cost deltas must be non-negative.")
        self.costs[provider] += amount

    def add_quota(self, units: int) -> None:
        self.quota_units += units

    def record_gate(self, reason: str) -> None:
        self.gate_reasons[reason] += 1

    def record_source(self, field_name: str, source: ContactSource) -> None:
        """Count a successful fill of ``field_name`` by ``source``."""
        label = SOURCE_STAT_FIELDS.get(field_name)
        if label is None:
            return
        self.source_counts[label][source.value] += 1

    def record_probe(self, source: ContactSource, *, found: bool) -> None:
        probe = self.probes.get(source)
        if probe is None:
            return
        probe.searched += 1
        if found:
            probe.found += 1

    @property
    def total_cost(self) -> float:
        return sum(self.costs.values())

    def cost_breakdown(self) -> CostBreakdown:
        rounded = {provider: round(amount, 6) for provider, amount in self.costs.items()}
        return CostBreakdown(**rounded, total=round(self.total_cost, 6))

    def effectiveness(self) -> list[ApiEffectiveness]:
        """Hit rate and cost per success for every enrichment provider."""
        report: list[ApiEffectiveness] = []
        for source, (label, unit_cost) in EFFECTIVENESS_PROVIDERS.items():
            probe = self.probes[source]
            hit_rate = round(probe.found / probe.searched * 100) if probe.searched else 0
            cost_per_success = probe.searched * unit_cost / probe.found if probe.found and unit_cost else 0.0
            report.append(
                ApiEffectiveness(
                    provider=label,
                    searched=probe.searched,
                    found=probe.found,
                    hit_rate=hit_rate,
                    cost_per_success=round(cost_per_success, 6),
                )
            )
        return report

    def source_stats(self) -> SourceStats:
        return SourceStats(
            **{label: dict(counter) for label, counter in self.source_counts.items()},
            api_effectiveness=self.effectiveness(),
        )
