"""Multi-signal scoring that picks the right profile among ambiguous search hits."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

LINKEDIN_MARKER = "linkedin.com/in/"
DOXIMITY_MARKER = "doximity.com"
MIN_PROFILE_SCORE = 50

SPECIALTY_KEYWORDS = ("dermatolog", "derm ", "skin", "mohs")
CREDENTIAL_KEYWORDS = (" md", "m.d.", " do", "d.o.", "doctor", " dr ", "dr.")

# Most common US surnames; a bare family-name hit on one of these is not evidence.
COMMON_SURNAMES = frozenset(
    """
    smith johnson williams brown jones garcia miller davis rodriguez martinez hernandez lopez
    gonzalez wilson anderson thomas taylor moore jackson martin lee thompson white harris clark
    lewis robinson walker hall allen young king wright hill scott green adams baker nelson
    mitchell roberts carter phillips evans turner torres parker collins edwards stewart morris
    rogers reed cook morgan bell murphy bailey rivera cooper richardson cox howard ward peterson
    gray james watson brooks kelly sanders price bennett wood barnes ross henderson coleman
    jenkins perry powell long patterson hughes flores washington butler simmons foster gonzales
    bryant alexander russell griffin diaz hayes myers ford hamilton graham sullivan wallace woods
    cole west jordan owens reynolds fisher ellis harrison gibson mcdonald cruz marshall ortiz
    gomez murray freeman wells webb simpson stevens tucker porter hunter hicks crawford henry
    boyd mason morales kennedy warren dixon ramos reyes burns gordon shaw holmes rice robertson
    hunt black daniels palmer mills nichols grant knight ferguson rose stone hawkins dunn perkins
    hudson spencer gardner stephens payne pierce berry matthews arnold wagner willis ray watkins
    olson carroll duncan snyder hart cunningham bradley lane andrews ruiz harper fox riley
    armstrong carpenter weaver greene lawrence elliott chavez sims austin peters kelley franklin
    lawson
    """.split()
)


@dataclass(frozen=True)
class ProfileMatchContext:
    """Identity signals used to disambiguate profile hits."""

    first_name: str | None = None
    last_name: str | None = None
    credentials: str | None = None
    city: str | None = None
    state: str | None = None

    @property
    def has_common_surname(self) -> bool:
        return bool(self.last_name) and self.last_name.lower() in COMMON_SURNAMES


@dataclass(frozen=True)
class ProfileScore:
    url: str
    score: int
    breakdown: str


def clean_profile_url(url: str) -> str:
    """Drop the query string and fragment."""
    return url.split("?", 1)[0].split("#", 1)[0]


def _slug(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


def _region_in_title(region: str, title: str) -> bool:
    lowered = region.lower()
    if len(lowered) == 2:
        return re.search(rf"\b{re.escape(lowered)}\b", title) is not None
    return len(lowered) >= 3 and lowered in title


def score_profile_match(result: Mapping[str, Any], context: ProfileMatchContext, url_marker: str) -> ProfileScore:
    """Score one search hit against the context; 0 means rejected."""
    raw_url = str(result.get("url") or "")
    url = raw_url.lower()
    title = str(result.get("title") or "").lower()
    text = f"{url} {title}"

    if url_marker not in url:
        return ProfileScore(raw_url, 0, "wrong URL type")
    if not context.last_name:
        return ProfileScore(raw_url, 0, "no lastName provided")
    if context.last_name.lower() not in text:
        return ProfileScore(raw_url, 0, "no lastName match")

    score = 30
    parts = ["lastName:30"]
    given_signal = False

    if context.first_name:
        first = context.first_name.lower()
        if first in text:
            score += 30
            parts.append("firstName:30")
            given_signal = True
        else:
            slug = _slug(url)
            initial = first[0]
            if slug.startswith(initial) or f"-{initial}" in slug:
                score += 15
                parts.append("firstInitial:15")
                given_signal = True

    if any(keyword in title for keyword in SPECIALTY_KEYWORDS):
        score += 20
        parts.append("specialty:20")

    if context.city and len(context.city) >= 3 and context.city.lower() in title:
        score += 15
        parts.append("city:15")

    if context.state and _region_in_title(context.state, title):
        score += 10
        parts.append("state:10")

    if any(keyword in title for keyword in CREDENTIAL_KEYWORDS):
        score += 5
        parts.append("credential:5")

    if context.has_common_surname and not given_signal:
        return ProfileScore(raw_url, 0, "common surname + no firstName match -> rejected")

    return ProfileScore(raw_url, score, " + ".join(parts))


def find_best_profile(
    results: Sequence[Mapping[str, Any]],
    context: ProfileMatchContext,
    url_marker: str,
    min_score: int = MIN_PROFILE_SCORE,
) -> ProfileScore | None:
    """Highest-scoring hit at or above ``min_score``; earlier hits win ties.

    Without a family name there is nothing to score, so the first hit carrying
    the marker is taken as-is.
    """
    if not context.last_name:
        for result in results:
            url = str(result.get("url") or "")
            if url_marker in url.lower():
                return ProfileScore(clean_profile_url(url), 0, "no-context-fallback")
        return None

    best: ProfileScore | None = None
    for result in results:
        scored = score_profile_match(result, context, url_marker)
        if scored.score < min_score:
            continue
        if best is None or scored.score > best.score:
            best = scored
    if best is None:
        return None
    return ProfileScore(clean_profile_url(best.url), best.score, best.breakdown)
