"""Free contact extraction from a channel description."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
LINKEDIN_PATTERN = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/in/[\w-]+", flags=re.IGNORECASE)
INSTAGRAM_PATTERN = re.compile(r"@([\w.]+)|instagram\.com/([\w.]+)", flags=re.IGNORECASE)
WEBSITE_PATTERN = re.compile(
    r"(?:https?://)?(?:www\.)?[\w-]+\.(?:com|org|net|io|co|health|clinic|med|doctor)(?:/[\w-]*)*",
    flags=re.IGNORECASE,
)
PHONE_STRIP = re.compile(r"[^\d+]")

# Social platforms, webmail providers, and link aggregators are never a practice site.
EXCLUDED_WEBSITE_DOMAINS = (
    "youtube.com",
    "youtu.be",
    "facebook.com",
    "twitter.com",
    "instagram.com",
    "tiktok.com",
    "linkedin.com",
    "doximity.com",
    "gmail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "patreon.com",
    "linktr.ee",
)


@dataclass(frozen=True)
class DescriptionContacts:
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    instagram_handle: str | None = None
    website: str | None = None
    practice_domain: str | None = None


def domain_from_url(url: str) -> str | None:
    """Hostname without ``www.``, tolerating scheme-less input."""
    try:
        host = urlparse(_with_scheme(url)).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host.replace("www.", "", 1)


def _with_scheme(url: str) -> str:
    return url if url.startswith("http") else f"https://{url}"


def extract_contacts(description: str) -> DescriptionContacts:
    email = next(
        (
            candidate
            for candidate in EMAIL_PATTERN.findall(description)
            if not candidate.endswith((".png", ".jpg")) and "example" not in candidate
        ),
        None,
    )

    phone_match = PHONE_PATTERN.search(description)
    phone = PHONE_STRIP.sub("", phone_match.group(0)) if phone_match else None

    linkedin_match = LINKEDIN_PATTERN.search(description)
    linkedin_url = _with_scheme(linkedin_match.group(0)) if linkedin_match else None

    instagram_match = INSTAGRAM_PATTERN.search(description)
    instagram_handle = (instagram_match.group(1) or instagram_match.group(2)) if instagram_match else None

    website = next(
        (
            _with_scheme(candidate)
            for candidate in (match.group(0) for match in WEBSITE_PATTERN.finditer(description))
            if not any(domain in candidate.lower() for domain in EXCLUDED_WEBSITE_DOMAINS)
        ),
        None,
    )

    return DescriptionContacts(
        email=email,
        phone=phone or None,
        linkedin_url=linkedin_url,
        instagram_handle=instagram_handle,
        website=website,
        practice_domain=domain_from_url(website) if website else None,
    )
