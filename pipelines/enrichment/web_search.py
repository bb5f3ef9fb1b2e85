"""Exa enrichment: LinkedIn, Doximity, and practice-page searches run concurrently."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol

from app.clients.errors import ProviderError
from app.models.contact import ContactRecord, ContactSource
from pipelines.accounting import EXA_CONTENT_COST, EXA_SEARCH_COST
from pipelines.enrichment.context import ContactAttempt, ContactStrategy, EnrichmentContext
from pipelines.enrichment.description import domain_from_url
from pipelines.enrichment.profile_match import (
    DOXIMITY_MARKER,
    LINKEDIN_MARKER,
    MIN_PROFILE_SCORE,
    ProfileMatchContext,
    ProfileScore,
    find_best_profile,
)

logger = logging.getLogger("pipelines.enrichment.web_search")

RESULTS_PER_SEARCH = 5
SEARCHES_PER_CANDIDATE = 3

# Directories, review sites, search engines, and social networks are never the practice itself.
AGGREGATOR_DOMAINS = (
    "healthgrades.com",
    "zocdoc.com",
    "vitals.com",
    "webmd.com",
    "yelp.com",
    "realself.com",
    "ratemds.com",
    "castleconnolly.com",
    "npidb.org",
    "npino.com",
    "opencorporates.com",
    "bbb.org",
    "healthcarepricetool.com",
    "aamc.org",
    "sharecare.com",
    "google.com",
    "bing.com",
    "facebook.com",
    "twitter.com",
    "instagram.com",
    "tiktok.com",
    "linkedin.com",
    "doximity.com",
    "youtube.com",
    "youtu.be",
    "reddit.com",
    "wikipedia.org",
)

PRACTICE_CONTENTS = {
    "text": {"maxCharacters": 1000},
    "highlights": {"query": "email address phone number contact office", "maxCharacters": 300},
}

PRACTICE_EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[a-z]{2,}", flags=re.IGNORECASE)
# At least one separator so NPI numbers are not mistaken for phones.
PRACTICE_PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s])?\(\d{3}\)[-.\s]?\d{3}[-.\s]?\d{4}|\d{3}[-.\s]\d{3}[-.\s]\d{4}")
EMAIL_REJECT_SUFFIXES = (".png", ".jpg", ".gif")
EMAIL_REJECT_TOKENS = ("example", "noreply", "no-reply")


class WebSearchClient(Protocol):
    def search(
        self,
        *,
        query: str,
        num_results: int = 5,
        search_type: str = "auto",
        category: str | None = None,
        include_domains: Sequence[str] | None = None,
        exclude_domains: Sequence[str] | None = None,
        contents: dict[str, Any] | None = None,
        autoprompt: bool = True,
    ) -> list[dict[str, Any]]:
        ...


@dataclass(frozen=True)
class WebSearchFindings:
    linkedin: ProfileScore | None
    doximity: ProfileScore | None
    practice_url: str | None
    practice_email: str | None
    practice_phone: str | None
    cost: float
    linkedin_results: int
    doximity_results: int
    practice_results: int


def _is_aggregator(url: str) -> bool:
    lowered = url.lower()
    return any(domain in lowered for domain in AGGREGATOR_DOMAINS)


def practice_email_from(text: str) -> str | None:
    match = PRACTICE_EMAIL_PATTERN.search(text)
    if match is None:
        return None
    email = match.group(0).lower()
    if email.endswith(EMAIL_REJECT_SUFFIXES) or any(token in email for token in EMAIL_REJECT_TOKENS):
        return None
    return email


def practice_phone_from(text: str) -> str | None:
    match = PRACTICE_PHONE_PATTERN.search(text)
    return match.group(0) if match else None


def build_queries(doctor_name: str, credentials: str | None, location: str | None, match: ProfileMatchContext) -> dict[str, str]:
    name_query = f"{doctor_name} {credentials}" if credentials else doctor_name
    location_hint = f" {location}" if location else ""

    linkedin = f"{doctor_name} dermatologist"
    if match.has_common_surname and (match.city or match.state):
        linkedin = f"{linkedin} {match.city or ''} {match.state or ''}".strip()
    else:
        linkedin += location_hint

    return {
        "linkedin": linkedin,
        "doximity": f"{name_query} dermatologist",
        "practice": f"{name_query} dermatology practice contact{location_hint}",
    }


class ExaProfileSearch:
    """Dispatches the three searches for one candidate and reduces the hits."""

    def __init__(self, client: WebSearchClient, *, min_score: int = MIN_PROFILE_SCORE) -> None:
        self._client = client
        self._min_score = min_score

    def run(
        self,
        doctor_name: str,
        credentials: str | None,
        location: str | None,
        match: ProfileMatchContext,
    ) -> WebSearchFindings:
        queries = build_queries(doctor_name, credentials, location, match)
        with ThreadPoolExecutor(max_workers=SEARCHES_PER_CANDIDATE, thread_name_prefix="exa") as pool:
            linkedin_future = pool.submit(
                self._search,
                queries["linkedin"],
                category="people",
                include_domains=["linkedin.com"],
                search_type="neural",
            )
            doximity_future = pool.submit(
                self._search,
                queries["doximity"],
                include_domains=["doximity.com"],
                search_type="auto",
            )
            practice_future = pool.submit(
                self._search,
                queries["practice"],
                exclude_domains=list(AGGREGATOR_DOMAINS),
                search_type="auto",
                contents=PRACTICE_CONTENTS,
            )
            linkedin_results = linkedin_future.result()
            doximity_results = doximity_future.result()
            practice_results = practice_future.result()

        practice_url = practice_email = practice_phone = None
        for result in practice_results:
            highlights = result.get("highlights") or []
            parts = [result.get("text")] + (list(highlights) if isinstance(highlights, list) else [])
            text = " ".join(part for part in parts if isinstance(part, str) and part)
            if not text:
                continue
            practice_email = practice_email or practice_email_from(text)
            practice_phone = practice_phone or practice_phone_from(text)
            url = str(result.get("url") or "")
            if practice_url is None and url and not _is_aggregator(url):
                practice_url = url

        return WebSearchFindings(
            linkedin=find_best_profile(linkedin_results, match, LINKEDIN_MARKER, self._min_score),
            doximity=find_best_profile(doximity_results, match, DOXIMITY_MARKER, self._min_score),
            practice_url=practice_url,
            practice_email=practice_email,
            practice_phone=practice_phone,
            cost=EXA_SEARCH_COST * SEARCHES_PER_CANDIDATE + EXA_CONTENT_COST * len(practice_results),
            linkedin_results=len(linkedin_results),
            doximity_results=len(doximity_results),
            practice_results=len(practice_results),
        )

    def _search(self, query: str, **options: Any) -> list[Mapping[str, Any]]:
        try:
            return self._client.search(query=query, num_results=RESULTS_PER_SEARCH, **options)
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "query": query[:120]},
            )
            return []


class WebSearchStrategy(ContactStrategy):
    label = "Exa"
    sources = (ContactSource.EXA_LINKEDIN, ContactSource.EXA_DOXIMITY, ContactSource.EXA_PRACTICE)

    def __init__(self, client: WebSearchClient, *, min_score: int = MIN_PROFILE_SCORE) -> None:
        self._search = ExaProfileSearch(client, min_score=min_score)
        self._min_score = min_score

    def attempt(self, context: EnrichmentContext, record: ContactRecord) -> ContactAttempt:
        findings = self._search.run(
            context.doctor_name,
            context.identity.credentials,
            context.identity.location,
            context.match,
        )
        attempt = ContactAttempt(
            checked=list(self.sources),
            probes={
                ContactSource.EXA_LINKEDIN: ("linkedin_url",),
                ContactSource.EXA_DOXIMITY: ("doximity_url",),
                ContactSource.EXA_PRACTICE: ("email",),
            },
            cost=findings.cost,
            cost_provider="exa",
        )

        if findings.linkedin and record.linkedin_url is None:
            attempt.offer("linkedin_url", findings.linkedin.url, ContactSource.EXA_LINKEDIN)
            attempt.log.append(
                f"Exa LinkedIn: SUCCESS score={findings.linkedin.score} "
                f"[{findings.linkedin.breakdown}] ({findings.linkedin.url})"
            )
        elif findings.linkedin:
            attempt.log.append("Exa LinkedIn: Found but already had from YouTube")
        else:
            attempt.log.append(
                f"Exa LinkedIn: FAILED ({findings.linkedin_results} results, none scored >={self._min_score})"
            )

        if findings.doximity and record.doximity_url is None:
            attempt.offer("doximity_url", findings.doximity.url, ContactSource.EXA_DOXIMITY)
            attempt.log.append(
                f"Exa Doximity: SUCCESS score={findings.doximity.score} "
                f"[{findings.doximity.breakdown}] ({findings.doximity.url})"
            )
        elif not findings.doximity:
            attempt.log.append(
                f"Exa Doximity: FAILED ({findings.doximity_results} results, none scored >={self._min_score})"
            )

        if record.website is None:
            attempt.offer("website", findings.practice_url, ContactSource.EXA_PRACTICE)
        if findings.practice_email and record.email is None:
            attempt.offer("email", findings.practice_email, ContactSource.EXA_PRACTICE)
            attempt.log.append(f"Exa Practice: EMAIL found ({findings.practice_email})")
        if findings.practice_phone and record.phone is None:
            attempt.offer("phone", findings.practice_phone, ContactSource.EXA_PRACTICE)
            attempt.log.append("Exa Practice: PHONE found")

        if findings.practice_url:
            attempt.practice_domain = domain_from_url(findings.practice_url)
        return attempt
