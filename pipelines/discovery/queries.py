"""Fixed catalog of high-intent dermatology discovery queries.

The queries target practicing dermatologists who publish content rather than
beauty influencers.
"""

from __future__ import annotations

DISCOVERY_QUERIES: tuple[str, ...] = (
    "dermatologist skincare routine board certified",
    "dermatologist explains acne treatment",
    "board certified dermatologist skin cancer screening",
    "dermatologist reacts to skincare products",
    "dermatologist cosmetic procedures before after",
    "dermatologist Mohs surgery patient education",
    "dermatologist botox filler injection technique",
    "dermatologist eczema psoriasis treatment plan",
    "dermatologist laser treatment skin resurfacing",
    "dermatologist practice day in the life clinic",
)


def select_queries(max_queries: int) -> list[str]:
    """Return the first ``max_queries`` catalog entries, never more than the catalog holds."""
    if max_queries < 1:
        raise ValueError("max_queries must be >= 1")
    return list(DISCOVERY_QUERIES[: min(max_queries, len(DISCOVERY_QUERIES))])
