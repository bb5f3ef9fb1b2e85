"""Contact enrichment models with per-field source attribution."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ContactSource(str, Enum):
    """Where a contact value came from."""

    YOUTUBE_DESCRIPTION = "youtube_description"
    EXA_LINKEDIN = "exa_linkedin"
    EXA_DOXIMITY = "exa_doximity"
    EXA_PRACTICE = "exa_practice"
    NPI = "npi"
    HUNTER = "hunter"
    SNOV = "snov"
    MANUAL = "manual"


# value field -> source field; instagram_handle is deliberately unattributed
SOURCED_FIELDS: dict[str, str] = {
    "email": "email_source",
    "phone": "phone_source",
    "linkedin_url": "linkedin_source",
    "doximity_url": "doximity_source",
    "website": "website_source",
}


class ContactRecord(BaseModel):
    """Resolved contact channels for a verified candidate."""

    email: str | None = None
    email_source: ContactSource | None = None
    phone: str | None = None
    phone_source: ContactSource | None = None
    linkedin_url: str | None = None
    linkedin_source: ContactSource | None = None
    doximity_url: str | None = None
    doximity_source: ContactSource | None = None
    website: str | None = None
    website_source: ContactSource | None = None
    instagram_handle: str | None = None
    practice_domain: str | None = None
    sources_checked: list[ContactSource] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_attribution(self) -> "ContactRecord":
        for value_field, source_field in SOURCED_FIELDS.items():
            has_value = getattr(self, value_field) is not None
            has_source = getattr(self, source_field) is not None
            if has_value != has_source:
                raise ValueError(f"{value_field} and {source_field} must be set together.")
        return self

    def contact_methods(self) -> list[str]:
        labels = (("email", "email"), ("linkedin_url", "linkedin"), ("doximity_url", "doximity"), ("phone", "phone"))
        return [label for field, label in labels if getattr(self, field)]
