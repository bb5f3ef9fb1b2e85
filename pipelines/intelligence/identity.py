"""Resolve a channel's real-world identity with one structured LLM call."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.clients.errors import ProviderError
from app.clients.openrouter import LLMResponse, estimate_cost
from app.models.candidate import Channel, GateOutcome, GateReason, Identity, RecentVideo

logger = logging.getLogger("pipelines.intelligence.identity")

DEFAULT_IDENTITY_MODEL = "anthropic/claude-haiku-4.5"
DESCRIPTION_PROMPT_CHARS = 800
PROMPT_VIDEO_TITLES = 5

SYSTEM_PROMPT = """You are a medical professional identifier. Given YouTube channel data, extract the doctor's real identity.

CRITICAL RULES:
1. Extract the REAL LEGAL NAME, not the channel/brand name
2. "Dr. Pimple Popper" -> Sandra Lee, MD. "Doctorly" -> not identifiable.
3. Look for credentials: MD, DO, MBBS, FAAD, FAACS
4. Determine if they are (a) a medical doctor AND (b) specifically a dermatologist
5. Board certification = FAAD, FAACS, or explicit mention
6. If you cannot determine the real name, set firstName/lastName to null
7. For country: extract from description, channel country, or location mentions

You MUST respond with ONLY a JSON object. No text before or after the JSON."""

RESPONSE_SHAPE = (
    '{"firstName":"string or null","lastName":"string or null","fullDisplay":"string or null",'
    '"credentials":"string or null","isMedicalDoctor":true,"isDermatologist":true,"boardCertified":true,'
    '"hospitalAffiliation":"string or null","stateOrLocation":"string or null",'
    '"countryCode":"US or GB or IN etc or null","confidence":"high","reasoning":"brief explanation"}'
)

_FENCE_OPEN = re.compile(r"^\s*```(?:json)?\s*\n?", flags=re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")


class CompletionClient(Protocol):
    def complete(
        self,
        *,
        prompt: str,
        model: str,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        json_mode: bool = False,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        ...


def extract_json_payload(raw_text: str) -> str:
    """Return the first balanced JSON object or array inside ``raw_text``.

    Markdown fences and conversational prose around the payload are ignored;
    braces inside string literals do not count towards balancing.
    """
    text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", raw_text.strip()))
    starts = [index for index in (text.find("{"), text.find("[")) if index >= 0]
    if not starts:
        raise ValueError("Response did not contain a JSON object or array.")

    start = min(starts)
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    raise ValueError("Response contained an unbalanced JSON payload.")


class IdentityPayload(BaseModel):
    """Wire shape of the model reply, coerced into an ``Identity``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    full_display: str | None = Field(default=None, alias="fullDisplay")
    credentials: str | None = None
    is_medical_doctor: bool = Field(default=False, alias="isMedicalDoctor")
    is_dermatologist: bool = Field(default=False, alias="isDermatologist")
    board_certified: bool | None = Field(default=None, alias="boardCertified")
    hospital_affiliation: str | None = Field(default=None, alias="hospitalAffiliation")
    state_or_location: str | None = Field(default=None, alias="stateOrLocation")
    country_code: str | None = Field(default=None, alias="countryCode")
    confidence: Literal["high", "medium", "low"] = "low"
    reasoning: str | None = None

    @field_validator(
        "first_name",
        "last_name",
        "full_display",
        "credentials",
        "hospital_affiliation",
        "state_or_location",
        "country_code",
        "reasoning",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("expected a string or null")
        return value.strip() or None

    @field_validator("is_medical_doctor", "is_dermatologist", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return value is True or value == "true"

    @field_validator("board_certified", mode="before")
    @classmethod
    def _tristate(cls, value: Any) -> bool | None:
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        return None

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> str:
        lowered = str(value or "").lower()
        return lowered if lowered in ("high", "medium") else "low"

    def to_identity(self) -> Identity:
        reasoning = self.reasoning or "No reasoning provided"
        if self.country_code and self.country_code != "US":
            reasoning = f"[Country: {self.country_code}] {reasoning}"
        return Identity(
            first_name=self.first_name,
            last_name=self.last_name,
            display_name=self.full_display,
            credentials=self.credentials,
            is_professional=self.is_medical_doctor,
            is_specialist=self.is_dermatologist,
            board_certified=self.board_certified,
            hospital_affiliation=self.hospital_affiliation,
            location=self.state_or_location,
            country_code=self.country_code,
            confidence=self.confidence,
            reasoning=reasoning,
        )


def parse_identity(raw_text: str) -> Identity:
    """Decode a model reply into an Identity; raises ``ValueError`` when malformed."""
    payload = json.loads(extract_json_payload(raw_text))
    if not isinstance(payload, dict):
        raise ValueError("Identity payload must be a JSON object.")
    try:
        return IdentityPayload.model_validate(payload).to_identity()
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def render_prompt(channel: Channel, videos: Sequence[RecentVideo]) -> str:
    titles = "\n".join(f"- {video.title}" for video in list(videos)[:PROMPT_VIDEO_TITLES])
    return (
        "Extract the doctor's identity from this YouTube channel:\n\n"
        f"Channel Name: {channel.title}\n"
        f"Custom URL: {channel.custom_url or 'none'}\n"
        f"Description (first {DESCRIPTION_PROMPT_CHARS} chars): {channel.description[:DESCRIPTION_PROMPT_CHARS]}\n"
        f"Subscriber Count: {channel.subscriber_count}\n"
        f"Channel Country: {channel.country or 'unknown'}\n\n"
        "Recent Video Titles:\n"
        f"{titles or 'none available'}\n\n"
        f"Return this exact JSON structure:\n{RESPONSE_SHAPE}"
    )


@dataclass(frozen=True)
class ExtractionOutcome:
    """Extracted identity (``None`` on any failure) and the USD cost of the call."""

    identity: Identity | None
    cost: float = 0.0


class IdentityExtractor:
    """Single-shot identity extraction; retries live in the LLM client."""

    def __init__(
        self,
        client: CompletionClient,
        *,
        model: str = DEFAULT_IDENTITY_MODEL,
        temperature: float = 0.1,
        max_tokens: int = 1024,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    def extract(self, channel: Channel, videos: Sequence[RecentVideo]) -> ExtractionOutcome:
        try:
            response = self._client.complete(
                prompt=render_prompt(channel, videos),
                model=self._model,
                system_prompt=SYSTEM_PROMPT,
                temperature=self._temperature,
                json_mode=True,
                max_tokens=self._max_tokens,
            )
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "channel_id": channel.channel_id},
            )
            return ExtractionOutcome(identity=None)

        cost = estimate_cost(self._model, response.input_tokens, response.output_tokens)
        try:
            identity = parse_identity(response.content)
        except ValueError as exc:
            logger.warning("Identity extraction failed for %s: %s", channel.title, exc)
            return ExtractionOutcome(identity=None, cost=cost)
        return ExtractionOutcome(identity=identity, cost=cost)


def professional_gate(identity: Identity) -> GateOutcome:
    """Secondary gate: drop subjects the model did not identify as medical doctors."""
    if not identity.is_professional:
        return GateOutcome(
            passed=False,
            reason=GateReason.NOT_PROFESSIONAL,
            detail=f"FAIL: Not a medical doctor ({identity.reasoning})",
        )
    return GateOutcome(passed=True)
