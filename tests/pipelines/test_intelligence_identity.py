from __future__ import annotations

import json

import pytest

from app.clients.errors import ProviderError
from app.models.candidate import GateReason, RecentVideo
from pipelines.intelligence.identity import (
    IdentityExtractor,
    extract_json_payload,
    parse_identity,
    professional_gate,
    render_prompt,
)
from tests.helpers.factories import make_channel, make_identity
from tests.helpers.stubs import StubLLMClient

REPLY = {
    "firstName": "Jane",
    "lastName": "Doe",
    "fullDisplay": "Dr. Jane Doe, MD, FAAD",
    "credentials": "MD, FAAD",
    "isMedicalDoctor": True,
    "isDermatologist": True,
    "boardCertified": True,
    "hospitalAffiliation": None,
    "stateOrLocation": "Austin, TX",
    "countryCode": "US",
    "confidence": "high",
    "reasoning": "Channel description names Dr. Jane Doe, FAAD",
}


def test_extract_json_payload_strips_fences_and_prose():
    raw = 'Sure! Here is the JSON:\n```json\n{"a": {"b": "has } brace"}, "c": [1, 2]}\n```\nLet me know.'

    assert json.loads(extract_json_payload(raw)) == {"a": {"b": "has } brace"}, "c": [1, 2]}


def test_extract_json_payload_rejects_missing_or_unbalanced():
    with pytest.raises(ValueError):
        extract_json_payload("no json here")
    with pytest.raises(ValueError):
        extract_json_payload('{"a": 1')


def test_parse_identity_maps_wire_names():
    identity = parse_identity(json.dumps(REPLY))

    assert identity.first_name == "Jane"
    assert identity.display_name == "Dr. Jane Doe, MD, FAAD"
    assert identity.is_professional and identity.is_specialist
    assert identity.board_certified is True
    assert identity.location == "Austin, TX"
    assert identity.reasoning == "Channel description names Dr. Jane Doe, FAAD"


def test_parse_identity_coerces_string_booleans_and_blank_text():
    reply = {
        **REPLY,
        "isMedicalDoctor": "true",
        "isDermatologist": "yes",
        "boardCertified": "unknown",
        "firstName": "  ",
        "confidence": "HIGH",
    }

    identity = parse_identity(json.dumps(reply))

    assert identity.is_professional is True
    assert identity.is_specialist is False
    assert identity.board_certified is None
    assert identity.first_name is None
    assert identity.confidence == "high"


def test_parse_identity_prefixes_foreign_country():
    identity = parse_identity(json.dumps({**REPLY, "countryCode": "GB", "reasoning": "London clinic"}))

    assert identity.reasoning == "[Country: GB] London clinic"
    assert identity.country_code == "GB"


def test_parse_identity_rejects_wrong_types():
    with pytest.raises(ValueError):
        parse_identity(json.dumps({**REPLY, "firstName": 42}))
    with pytest.raises(ValueError):
        parse_identity("[1, 2, 3]")


def test_render_prompt_truncates_description_and_lists_titles():
    channel = make_channel(description="x" * 2000, custom_url=None, country=None)
    videos = [RecentVideo(title=f"Video {index}") for index in range(7)]

    prompt = render_prompt(channel, videos)

    assert "x" * 800 in prompt and "x" * 801 not in prompt
    assert "- Video 4" in prompt and "- Video 5" not in prompt
    assert "Custom URL: none" in prompt
    assert "Channel Country: unknown" in prompt


def test_extractor_returns_identity_and_cost():
    llm = StubLLMClient(default="```json\n" + json.dumps(REPLY) + "\n```", input_tokens=1000, output_tokens=500)
    extractor = IdentityExtractor(llm)

    outcome = extractor.extract(make_channel(), [])

    assert outcome.identity is not None
    assert outcome.identity.last_name == "Doe"
    assert outcome.cost == pytest.approx(0.0028)


def test_extractor_degrades_on_provider_error_and_malformed_reply():
    failing = IdentityExtractor(StubLLMClient(error=ProviderError("down", code="OPENROUTER_502", provider="openrouter")))
    malformed = IdentityExtractor(StubLLMClient(default="I could not find a doctor here."))

    failed = failing.extract(make_channel(), [])
    garbled = malformed.extract(make_channel(), [])

    assert failed.identity is None and failed.cost == 0.0
    assert garbled.identity is None and garbled.cost > 0


def test_professional_gate():
    assert professional_gate(make_identity()).passed
    rejected = professional_gate(make_identity(is_professional=False, reasoning="Esthetician"))
    assert rejected.reason is GateReason.NOT_PROFESSIONAL
    assert rejected.detail == "FAIL: Not a medical doctor (Esthetician)"
