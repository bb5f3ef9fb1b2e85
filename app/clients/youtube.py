"""Client for the YouTube Data API v3."""

from __future__ import annotations

import os
from typing import Any

import httpx

from app.clients.base import JsonProviderClient
from app.clients.errors import ProviderSchemaError
from app.observability.metrics import MetricsReporter

MAX_PAGE_SIZE = 50
CHANNEL_BATCH_SIZE = 50
CHANNEL_PARTS = "snippet,statistics,contentDetails,brandingSettings"


class YouTubeClient(JsonProviderClient):
    """Search, channel detail, and playlist listing calls."""

    provider = "youtube"
    api_key_env = "YOUTUBE_API_KEY"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        super().__init__(
            api_key,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
            metrics_reporter=metrics_reporter,
        )

    @classmethod
    def from_env(cls) -> "YouTubeClient":
        """Instantiate the client using the YOUTUBE_API_KEY environment variable."""
        return cls(os.getenv("YOUTUBE_API_KEY", ""))

    def search_channel_ids(self, *, query: str, region_code: str = "US", max_results: int = MAX_PAGE_SIZE) -> list[str]:
        """Search videos and return the unique uploader channel ids in result order."""
        if max_results <= 0:
            raise ValueError("max_results must be a positive integer.")
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": min(max_results, MAX_PAGE_SIZE),
            "regionCode": region_code,
            "relevanceLanguage": "en",
            "key": self._require_api_key(),
        }
        data = self._request_json("GET", "/search", params=params)
        channel_ids: dict[str, None] = {}
        for item in self._items(data):
            channel_id = (item.get("snippet") or {}).get("channelId")
            if isinstance(channel_id, str) and channel_id:
                channel_ids.setdefault(channel_id, None)
        return list(channel_ids)

    def fetch_channels(self, channel_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch raw channel resources for up to 50 ids."""
        if not channel_ids:
            return []
        if len(channel_ids) > CHANNEL_BATCH_SIZE:
            raise ValueError(f"At most {CHANNEL_BATCH_SIZE} channel ids per request.")
        params = {
            "part": CHANNEL_PARTS,
            "id": ",".join(channel_ids),
            "key": self._require_api_key(),
        }
        return self._items(self._request_json("GET", "/channels", params=params))

    def list_playlist_items(self, playlist_id: str, *, max_results: int = 5) -> list[dict[str, Any]]:
        """Return raw playlist items (most recent uploads first)."""
        params = {
            "part": "snippet",
            "playlistId": playlist_id,
            "maxResults": min(max_results, MAX_PAGE_SIZE),
            "key": self._require_api_key(),
        }
        return self._items(self._request_json("GET", "/playlistItems", params=params))

    @staticmethod
    def _items(data: dict[str, Any]) -> list[dict[str, Any]]:
        items = data.get("items")
        if items is None:
            return []
        if not isinstance(items, list):
            raise ProviderSchemaError("`items` must be a list.", code="YOUTUBE_SCHEMA_ERR", provider="youtube")
        return [item for item in items if isinstance(item, dict)]
