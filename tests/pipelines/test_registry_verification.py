from __future__ import annotations

import pytest

from app.clients.errors import ProviderError
from app.models.verification import PracticeAddress, VerificationTier
from pipelines.verification.registry import (
    RegistryVerifier,
    derive_region,
    parse_registry_match,
    score_registry_match,
    select_best_match,
)
from pipelines.verification.scoring import assign_tier, compute_verification
from tests.helpers.factories import make_identity, make_match, raw_registry_record
from tests.helpers.stubs import StubRegistryClient


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("TX", "TX"),
        ("Austin, TX", "TX"),
        ("Miami FL", "FL"),
        ("Los Angeles, California", "CA"),
        ("somewhere in north carolina", "NC"),
        ("Brooklyn, New York", "NY"),
        ("Phoenix, Arizona", "AZ"),
        ("Baltimore, Maryland", "MD"),
        ("Minneapolis, Minnesota", "MN"),
        ("Washington, DC", "DC"),
        ("Dermatologist in Miami, FL", "FL"),
        ("London", None),
        (None, None),
    ],
)
def test_derive_region(text, expected):
    assert derive_region(text) == expected


def test_parse_registry_match_prefers_location_address():
    match = parse_registry_match(raw_registry_record())

    assert match is not None
    assert match.npi_number == 1234567890
    assert match.practice_address.city == "AUSTIN"
    assert match.practice_address.phone == "512-555-0100"
    assert match.is_active


def test_parse_registry_match_tolerates_missing_blocks_and_drops_bad_numbers():
    bare = parse_registry_match({"number": "1500000000", "basic": {"last_name": "DOE"}})

    assert bare is not None
    assert bare.practice_address is None
    assert bare.taxonomy_description == ""
    assert parse_registry_match({"number": "not-a-number"}) is None


def test_cascade_stops_at_first_step_with_matches():
    def responder(**params):
        if params["state"] is None and params["taxonomy_description"] == "Dermatology":
            return [raw_registry_record()], 1
        return [], 0

    client = StubRegistryClient(responder)

    result = RegistryVerifier(client).verify("Jane", "Doe", "Austin, TX")

    assert result.strategy == "taxonomy"
    assert len(result.matches) == 1
    assert [(call["state"], call["taxonomy_description"]) for call in client.calls] == [
        ("TX", "Dermatology"),
        (None, "Dermatology"),
    ]


def test_cascade_skips_region_step_without_region():
    client = StubRegistryClient()

    result = RegistryVerifier(client).verify("Jane", "Doe", None)

    assert result.matches == []
    assert result.strategy == "name"
    assert [(call["state"], call["taxonomy_description"]) for call in client.calls] == [
        (None, "Dermatology"),
        (None, None),
    ]


def test_cascade_degrades_provider_errors_to_next_step():
    def responder(**params):
        if params["taxonomy_description"]:
            raise ProviderError("registry down", code="NPI_503", provider="npi")
        return [raw_registry_record(taxonomy="Internal Medicine")], 4

    result = RegistryVerifier(StubRegistryClient(responder)).verify("Jane", "Doe", "TX")

    assert result.strategy == "name"
    assert result.total_count == 4


def test_score_registry_match_components():
    identity = make_identity(location="Austin, TX")

    assert score_registry_match(identity, make_match()) == 3 + 2 + 3 + 1 + 1
    other_state = make_match(practice_address=PracticeAddress(state="CA"))
    assert score_registry_match(identity, other_state) == 9


def test_family_name_alone_meets_floor():
    identity = make_identity(first_name="Janet", location=None)
    match = make_match(first_name="ROBERT", taxonomy_description="Family Medicine", status="D", practice_address=None)

    assert score_registry_match(identity, match) == 3
    assert select_best_match(identity, [match]) is match


def test_below_floor_has_no_best_match():
    identity = make_identity(last_name="Doe", location=None)
    match = make_match(last_name="ROE", first_name="ROBERT", taxonomy_description="Pediatrics", status="A")

    assert score_registry_match(identity, match) == 1
    assert select_best_match(identity, [match]) is None


def test_select_best_match_keeps_earliest_on_ties():
    identity = make_identity()
    first = make_match(1000000001)
    second = make_match(1000000002)

    assert select_best_match(identity, [first, second]) is first


def test_compute_verification_gold_with_registry_match():
    result = compute_verification(make_identity(), [make_match()], 1)

    # 15 + 15 + 10 + 5 + 10 + 25 + 10 + 5 = 95
    assert result.confidence == 95
    assert result.tier is VerificationTier.GOLD
    assert result.registry_match.npi_number == 1234567890
    assert "NPI match: 1234567890" in result.reasoning
    assert "NPI taxonomy confirms dermatology" in result.reasoning


def test_compute_verification_without_match_cannot_be_gold():
    result = compute_verification(make_identity(), [], 7)

    # 15 + 15 + 10 + 5 + 10 + 5
    assert result.confidence == 60
    assert result.tier is VerificationTier.SILVER
    assert result.registry_match is None
    assert result.match_count == 7
    assert "7 NPI results but no strong match" in result.reasoning


def test_compute_verification_bronze_for_thin_identity():
    identity = make_identity(is_specialist=False, board_certified=None, credentials=None, confidence="low")

    result = compute_verification(identity, [], 0)

    assert result.confidence == 15
    assert result.tier is VerificationTier.BRONZE


@pytest.mark.parametrize("confidence", range(0, 101, 5))
def test_tier_is_monotone_in_confidence(confidence):
    order = [VerificationTier.BRONZE, VerificationTier.SILVER, VerificationTier.GOLD]
    for has_match in (True, False):
        lower = assign_tier(confidence, has_match)
        higher = assign_tier(min(confidence + 5, 100), has_match)
        assert order.index(higher) >= order.index(lower)
    assert assign_tier(confidence, False) is not VerificationTier.GOLD
