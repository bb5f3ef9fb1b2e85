from __future__ import annotations

import json

import httpx
import pytest

from app.clients.errors import (
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderSchemaError,
    ProviderTimeoutError,
)
from app.clients.exa import ExaClient
from app.clients.hunter import HunterClient
from app.clients.npi import NPIClient
from app.clients.snov import TOKEN_TTL_SECONDS, SnovClient
from app.clients.youtube import YouTubeClient
from tests.helpers.metrics_stub import StubMetrics


def _http(handler, base_url: str = "https://provider.test") -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), base_url=base_url)


class RecordingHandler:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


def test_youtube_search_returns_unique_channel_ids_in_order():
    handler = RecordingHandler(
        httpx.Response(
            200,
            json={
                "items": [
                    {"snippet": {"channelId": "UCa"}},
                    {"snippet": {"channelId": "UCb"}},
                    {"snippet": {"channelId": "UCa"}},
                    {"snippet": {}},
                ]
            },
        )
    )
    client = YouTubeClient("yt-key", http_client=_http(handler), metrics_reporter=StubMetrics())

    ids = client.search_channel_ids(query="dermatologist explains acne treatment", max_results=80)

    assert ids == ["UCa", "UCb"]
    params = handler.requests[0].url.params
    assert handler.requests[0].url.path == "/search"
    assert params["type"] == "video"
    assert params["maxResults"] == "50"
    assert params["regionCode"] == "US"
    assert params["key"] == "yt-key"


def test_youtube_missing_key_raises_config_error_without_calling_api():
    handler = RecordingHandler(httpx.Response(200, json={"items": []}))
    client = YouTubeClient(None, http_client=_http(handler), metrics_reporter=StubMetrics())

    with pytest.raises(ProviderConfigError) as excinfo:
        client.search_channel_ids(query="derm")

    assert excinfo.value.code == "YOUTUBE_NOT_CONFIGURED"
    assert not isinstance(excinfo.value, ProviderError)
    assert handler.requests == []


def test_youtube_rate_limit_and_http_errors_are_typed():
    metrics = StubMetrics()
    handler = RecordingHandler(httpx.Response(429, json={}), httpx.Response(403, text="quotaExceeded"))
    client = YouTubeClient("yt-key", http_client=_http(handler), metrics_reporter=metrics)

    with pytest.raises(ProviderRateLimitError) as rate_limited:
        client.fetch_channels(["UCa"])
    with pytest.raises(ProviderError) as forbidden:
        client.fetch_channels(["UCa"])

    assert rate_limited.value.code == "YOUTUBE_429"
    assert forbidden.value.code == "YOUTUBE_403"
    assert metrics.error_codes() == ["429", "403"]
    assert all(call["metric"] == "provider.latency_ms" for call in metrics.timing_calls)


def test_youtube_fetch_channels_enforces_batch_limit():
    client = YouTubeClient("yt-key", http_client=_http(RecordingHandler(httpx.Response(200, json={}))))

    with pytest.raises(ValueError):
        client.fetch_channels([f"UC{index}" for index in range(51)])
    assert client.fetch_channels([]) == []


def test_youtube_non_list_items_is_schema_error():
    handler = RecordingHandler(httpx.Response(200, json={"items": {"id": "UCa"}}))
    client = YouTubeClient("yt-key", http_client=_http(handler), metrics_reporter=StubMetrics())

    with pytest.raises(ProviderSchemaError):
        client.list_playlist_items("UUa")


def test_exa_search_posts_payload_with_api_key_header():
    handler = RecordingHandler(httpx.Response(200, json={"results": [{"url": "https://linkedin.com/in/jane-doe"}]}))
    client = ExaClient("exa-key", http_client=_http(handler), metrics_reporter=StubMetrics())

    results = client.search(
        query="Dr. Jane Doe dermatologist",
        category="people",
        include_domains=["linkedin.com"],
        search_type="neural",
    )

    assert results == [{"url": "https://linkedin.com/in/jane-doe"}]
    request = handler.requests[0]
    assert request.headers["x-api-key"] == "exa-key"
    body = json.loads(request.content)
    assert body["numResults"] == 5
    assert body["category"] == "people"
    assert body["includeDomains"] == ["linkedin.com"]
    assert body["type"] == "neural"
    assert "excludeDomains" not in body


def test_exa_rejects_missing_results():
    handler = RecordingHandler(httpx.Response(200, json={"requestId": "abc"}))
    client = ExaClient("exa-key", http_client=_http(handler), metrics_reporter=StubMetrics())

    with pytest.raises(ProviderSchemaError) as excinfo:
        client.search(query="derm")

    assert excinfo.value.code == "EXA_SCHEMA_ERR"


def test_exa_timeout_maps_to_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    metrics = StubMetrics()
    client = ExaClient("exa-key", http_client=_http(handler), metrics_reporter=metrics)

    with pytest.raises(ProviderTimeoutError) as excinfo:
        client.search(query="derm")

    assert excinfo.value.code == "EXA_TIMEOUT"
    assert metrics.error_codes() == ["TIMEOUT"]


def test_npi_search_builds_registry_params_and_returns_total():
    handler = RecordingHandler(
        httpx.Response(200, json={"result_count": 2, "results": [{"number": 1}, "junk", {"number": 2}]})
    )
    client = NPIClient(http_client=_http(handler), metrics_reporter=StubMetrics())

    records, total = client.search(first_name="Jane", last_name="Doe", state="tx", taxonomy_description="Dermatology")

    assert records == [{"number": 1}, {"number": 2}]
    assert total == 2
    params = handler.requests[0].url.params
    assert params["version"] == "2.1"
    assert params["enumeration_type"] == "NPI-1"
    assert params["state"] == "TX"
    assert params["taxonomy_description"] == "Dermatology"


def test_npi_search_omits_invalid_state_and_tolerates_missing_results():
    handler = RecordingHandler(httpx.Response(200, json={"Errors": [{"description": "No results"}]}))
    client = NPIClient(http_client=_http(handler), metrics_reporter=StubMetrics())

    records, total = client.search(first_name="Jane", last_name="Doe", state="Texas")

    assert (records, total) == ([], 0)
    assert "state" not in handler.requests[0].url.params
    assert "taxonomy_description" not in handler.requests[0].url.params


def test_hunter_returns_finding_or_none():
    handler = RecordingHandler(
        httpx.Response(200, json={"data": {"email": "jane@austinskin.com", "score": 91, "position": "Owner"}}),
        httpx.Response(200, json={"data": {"email": None}}),
    )
    client = HunterClient("hunter-key", http_client=_http(handler), metrics_reporter=StubMetrics())

    found = client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")
    missing = client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")

    assert found is not None
    assert found.email == "jane@austinskin.com"
    assert found.score == 91
    assert missing is None
    assert handler.requests[0].url.params["domain"] == "austinskin.com"


def test_snov_caches_access_token_until_expiry():
    now = [1000.0]
    token_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/oauth/access_token":
            token_calls.append(request)
            return httpx.Response(200, json={"access_token": f"token-{len(token_calls)}"})
        body = json.loads(request.content)
        return httpx.Response(200, json={"data": {"emails": [{"email": "jane@austinskin.com", "status": "valid"}]}, "token": body["access_token"]})

    client = SnovClient("id", "secret", http_client=_http(handler), metrics_reporter=StubMetrics(), clock=lambda: now[0])

    first = client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")
    client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")
    assert len(token_calls) == 1

    now[0] += TOKEN_TTL_SECONDS + 1
    client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")

    assert len(token_calls) == 2
    assert first is not None
    assert first.email == "jane@austinskin.com"
    assert first.detail == "valid"


def test_snov_without_credentials_raises_config_error():
    client = SnovClient(None, None, http_client=_http(RecordingHandler(httpx.Response(200, json={}))))

    with pytest.raises(ProviderConfigError) as excinfo:
        client.find_email(domain="austinskin.com", first_name="Jane", last_name="Doe")

    assert excinfo.value.code == "SNOV_NOT_CONFIGURED"
