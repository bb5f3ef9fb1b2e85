"""Phase 1: discover candidate channels from YouTube search results."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from app.clients.errors import ProviderError
from app.models.candidate import HIDDEN_SUBSCRIBERS, Candidate, Channel, RecentVideo
from pipelines.accounting import (
    CHANNEL_BATCH_QUOTA_UNITS,
    PLAYLIST_QUOTA_UNITS,
    SEARCH_QUOTA_UNITS,
    RunAccumulators,
)

logger = logging.getLogger("pipelines.discovery.collector")

DEFAULT_PAGE_SIZE = 50
DEFAULT_VIDEO_COUNT = 5
DETAIL_BATCH_SIZE = 50


class ChannelSearchClient(Protocol):
    def search_channel_ids(self, *, query: str, region_code: str = "US", max_results: int = 50) -> list[str]:
        ...

    def fetch_channels(self, channel_ids: list[str]) -> list[dict[str, Any]]:
        ...

    def list_playlist_items(self, playlist_id: str, *, max_results: int = 5) -> list[dict[str, Any]]:
        ...


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a count")
    if isinstance(value, int):
        return value
    if value is None or value == "":
        return 0
    return int(str(value).strip())


def parse_channel(item: Mapping[str, Any], *, discovery_query: str = "unknown") -> Channel | None:
    """Map a raw ``channels.list`` resource to a Channel, or ``None`` when malformed."""
    if not isinstance(item, Mapping):
        return None
    snippet = item.get("snippet")
    stats = item.get("statistics")
    if not isinstance(snippet, Mapping) or not isinstance(stats, Mapping):
        return None

    try:
        thumbnails = snippet.get("thumbnails") or {}
        thumbnail_url = ""
        for size in ("high", "medium", "default"):
            url = (thumbnails.get(size) or {}).get("url")
            if url:
                thumbnail_url = url
                break

        uploads = ((item.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        subscriber_count = (
            HIDDEN_SUBSCRIBERS if stats.get("hiddenSubscriberCount") is True else _to_int(stats.get("subscriberCount"))
        )
        return Channel(
            channel_id=item.get("id"),
            title=snippet.get("title") or "Unknown",
            description=snippet.get("description") or "",
            thumbnail_url=thumbnail_url,
            subscriber_count=subscriber_count,
            video_count=_to_int(stats.get("videoCount")),
            view_count=_to_int(stats.get("viewCount")),
            country=snippet.get("country") or None,
            custom_url=snippet.get("customUrl") or None,
            uploads_playlist_id=uploads or None,
            discovery_query=discovery_query,
        )
    except (TypeError, ValueError, AttributeError, ValidationError) as exc:
        logger.warning("Dropping malformed channel %s: %s", item.get("id"), exc)
        return None


def parse_video(item: Mapping[str, Any]) -> RecentVideo | None:
    if not isinstance(item, Mapping):
        return None
    snippet = item.get("snippet")
    if not isinstance(snippet, Mapping):
        return None
    try:
        return RecentVideo(
            video_id=(snippet.get("resourceId") or {}).get("videoId") or "",
            title=snippet.get("title") or "Untitled",
            published_at=snippet.get("publishedAt"),
        )
    except (TypeError, ValueError, AttributeError, ValidationError) as exc:
        logger.warning("Dropping malformed playlist item: %s", exc)
        return None


def uploads_playlist_for(channel: Channel) -> str | None:
    """Uploads playlist id, derived from a ``UC…`` channel id when not reported."""
    if channel.uploads_playlist_id:
        return channel.uploads_playlist_id
    if channel.channel_id.startswith("UC"):
        return "UU" + channel.channel_id[2:]
    return None


def search_channel_ids(
    client: ChannelSearchClient,
    queries: Sequence[str],
    *,
    accumulators: RunAccumulators,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict[str, str]:
    """Return channel id -> attributed query; the first query to surface an id keeps it."""
    attribution: dict[str, str] = {}
    for query in queries:
        accumulators.add_quota(SEARCH_QUOTA_UNITS)
        try:
            channel_ids = client.search_channel_ids(query=query, max_results=page_size)
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "query": query[:120]},
            )
            continue
        for channel_id in channel_ids:
            attribution.setdefault(channel_id, query)
    return attribution


def fetch_channel_details(
    client: ChannelSearchClient,
    attribution: Mapping[str, str],
    *,
    accumulators: RunAccumulators,
) -> list[Channel]:
    channel_ids = list(attribution)
    channels: list[Channel] = []
    for start in range(0, len(channel_ids), DETAIL_BATCH_SIZE):
        batch = channel_ids[start : start + DETAIL_BATCH_SIZE]
        accumulators.add_quota(CHANNEL_BATCH_QUOTA_UNITS)
        try:
            items = client.fetch_channels(batch)
        except ProviderError as exc:
            logger.warning(
                "provider.degraded",
                extra={"provider": exc.provider, "code": exc.code, "batch_size": len(batch)},
            )
            continue
        for item in items:
            channel_id = item.get("id")
            channel = parse_channel(item, discovery_query=attribution.get(channel_id, "unknown"))
            if channel is not None:
                channels.append(channel)
    return channels


def fetch_recent_videos(
    client: ChannelSearchClient,
    channel: Channel,
    *,
    accumulators: RunAccumulators,
    video_count: int = DEFAULT_VIDEO_COUNT,
) -> list[RecentVideo]:
    playlist_id = uploads_playlist_for(channel)
    if playlist_id is None:
        return []
    accumulators.add_quota(PLAYLIST_QUOTA_UNITS)
    try:
        items = client.list_playlist_items(playlist_id, max_results=video_count)
    except ProviderError as exc:
        logger.warning(
            "provider.degraded",
            extra={"provider": exc.provider, "code": exc.code, "channel_id": channel.channel_id},
        )
        return []
    videos = [parse_video(item) for item in items]
    return [video for video in videos if video is not None]


def collect_candidates(
    client: ChannelSearchClient,
    queries: Sequence[str],
    *,
    accumulators: RunAccumulators,
    page_size: int = DEFAULT_PAGE_SIZE,
    video_count: int = DEFAULT_VIDEO_COUNT,
) -> list[Candidate]:
    """Search, dedupe, fetch details, and attach recent uploads for every channel."""
    attribution = search_channel_ids(client, queries, accumulators=accumulators, page_size=page_size)
    logger.info("Collected %s unique channel ids from %s queries", len(attribution), len(queries))

    candidates: list[Candidate] = []
    for channel in fetch_channel_details(client, attribution, accumulators=accumulators):
        videos = fetch_recent_videos(client, channel, accumulators=accumulators, video_count=video_count)
        candidates.append(Candidate.from_videos(channel, videos))
    return candidates
