"""Domestic (US) heuristic applied before paid enrichment."""

from __future__ import annotations

import re

from app.models.candidate import Channel, Identity

DOMESTIC_COUNTRY_CODES = frozenset({"US", "us", ""})

NON_DOMESTIC_INDICATORS = (
    "india",
    "uk",
    "united kingdom",
    "canada",
    "australia",
    "philippines",
    "pakistan",
    "nigeria",
    "south africa",
    "germany",
    "brazil",
    "country: in",
    "country: gb",
    "country: ca",
    "country: au",
    "country: ph",
)
NON_DOMESTIC_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(indicator) for indicator in NON_DOMESTIC_INDICATORS) + r")\b"
)


def is_domestic(channel: Channel, identity: Identity | None) -> bool:
    """Explicit channel country wins; otherwise scan identity text for foreign indicators."""
    if channel.country is not None:
        return channel.country in DOMESTIC_COUNTRY_CODES
    if identity is None:
        return True

    location = (identity.location or "").lower()
    reasoning = (identity.reasoning or "").lower()
    return not (NON_DOMESTIC_PATTERN.search(location) or NON_DOMESTIC_PATTERN.search(reasoning))
