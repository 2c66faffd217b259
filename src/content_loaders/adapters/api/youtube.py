"""
YouTube Data API v3 source.

Four acquisition modes are supported:

``videos``
    Explicit list of video ids (``videos.list``).
``channel``
    Latest uploads of a channel, addressed by id or ``@handle`` (``search.list``).
``search``
    Free-text search (``search.list``).
``playlist``
    Items of a playlist (``playlistItems.list``).

Only the primary request of a sync is revalidated with ETag / Last-Modified.
When ``fetch_full_details`` is on, search and playlist results are enriched
with a second ``videos.list`` call so durations and statistics are available.
"""

from __future__ import annotations

from datetime import datetime, timezone
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlparse

import httpx

from ...config import DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT
from ...core.errors import ConfigurationError, HttpStatusError, ValidationError
from ...core.logging import bind_extra, get_logger
from ...schemas.youtube import Video
from ...sync.filters import CollectionFilter, EntryFilter, FilterFields
from ...sync.normalize import NormalizationPipeline, PydanticValidator, check_body
from ...sync.revalidation import NOT_MODIFIED
from ..base import FetchResult
from .base import BaseAPIClient

YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"
DEFAULT_PARTS = ("snippet", "contentDetails", "statistics")
MODES = ("videos", "channel", "search", "playlist")
ORDERS = ("date", "rating", "relevance", "title", "videoCount", "viewCount")
MAX_RESULTS_CAP = 50

YOUTUBE_FILTER_FIELDS = FilterFields(
    date="published_at",
    categories=("tags", "category_id"),
    authors=("channel_title", "channel_id"),
    text=("title", "description"),
    url="url",
)


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def video_id_from_url(url: str) -> Optional[str]:
    """Extract the video id from ``watch?v=``, ``youtu.be/`` and ``/shorts/`` URLs."""

    parsed = urlparse(url)
    host = parsed.netloc.lower().removeprefix("www.").removeprefix("m.")
    if host == "youtu.be":
        return parsed.path.strip("/") or None
    if host.endswith("youtube.com"):
        if parsed.path == "/watch":
            return (parse_qs(parsed.query).get("v") or [None])[0]
        for prefix in ("/shorts/", "/embed/", "/live/"):
            if parsed.path.startswith(prefix):
                return parsed.path[len(prefix) :].strip("/") or None
    return None


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    stamp = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def shape_video(resource: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten a ``youtube#video`` resource into the :class:`Video` layout."""

    snippet = resource.get("snippet")
    if not isinstance(snippet, Mapping):
        raise ValidationError("YouTube video missing snippet data", source_url=watch_url(context["id"]))
    details = resource.get("contentDetails") or {}
    statistics = resource.get("statistics") or {}
    return {
        "id": context["id"],
        "title": snippet.get("title"),
        "description": snippet.get("description") or "",
        "url": watch_url(context["id"]),
        "published_at": snippet.get("publishedAt"),
        "duration": details.get("duration"),
        "channel_id": snippet.get("channelId"),
        "channel_title": snippet.get("channelTitle") or "",
        "thumbnails": snippet.get("thumbnails") or {},
        "tags": list(snippet.get("tags") or []),
        "category_id": snippet.get("categoryId"),
        "view_count": statistics.get("viewCount"),
        "like_count": statistics.get("likeCount"),
        "comment_count": statistics.get("commentCount"),
        "live_broadcast_content": snippet.get("liveBroadcastContent"),
        "default_language": snippet.get("defaultLanguage"),
    }


class YouTubeClient(BaseAPIClient):
    """Thin wrapper over the endpoints the source needs."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = YOUTUBE_API_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("YouTube API key is required", source_url=base_url)
        self.api_key = api_key
        headers = {"Accept": "application/json", "User-Agent": "content-loaders"}
        super().__init__(base_url=base_url, timeout=timeout, default_headers=headers, retries=retries, transport=transport)

    def call(
        self,
        endpoint: str,
        params: Mapping[str, Any],
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """Issue a GET; ``304`` is only accepted when conditional ``headers`` are sent."""

        query = {key: value for key, value in params.items() if value is not None}
        query["key"] = self.api_key
        return self._request("GET", f"/{endpoint}", params=query, headers=headers, allow_not_modified=bool(headers))

    def payload(self, response: httpx.Response) -> Dict[str, Any]:
        check_body(response.content, str(response.url))
        data = self._decode_json(response)
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise ValidationError("Failed to parse YouTube API response", source_url=str(response.url), details="missing 'items' list")
        return data

    def list_videos(self, video_ids: Sequence[str], *, parts: Sequence[str] = DEFAULT_PARTS) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for start in range(0, len(video_ids), MAX_RESULTS_CAP):
            chunk = video_ids[start : start + MAX_RESULTS_CAP]
            response = self.call("videos", {"part": ",".join(parts), "id": ",".join(chunk), "maxResults": MAX_RESULTS_CAP})
            items.extend(self.payload(response).get("items") or [])
        return items

    def resolve_handle(self, handle: str) -> str:
        normalised = handle if handle.startswith("@") else f"@{handle}"
        data = self.payload(self.call("channels", {"part": "id", "forHandle": normalised}))
        items = data.get("items") or []
        if not items or not items[0].get("id"):
            raise ValidationError(f"Could not find channel with handle: {handle}", source_url=self._full_url("/channels"))
        return str(items[0]["id"])


def _search_video_ids(items: Sequence[Mapping[str, Any]]) -> List[Tuple[str, Mapping[str, Any]]]:
    pairs = []
    for item in items:
        identifier = item.get("id") or {}
        if isinstance(identifier, Mapping) and identifier.get("kind") == "youtube#video" and identifier.get("videoId"):
            pairs.append((identifier["videoId"], item))
    return pairs


def _playlist_video_ids(items: Sequence[Mapping[str, Any]]) -> List[Tuple[str, Mapping[str, Any]]]:
    pairs = []
    for item in items:
        video_id = (item.get("contentDetails") or {}).get("videoId") or ((item.get("snippet") or {}).get("resourceId") or {}).get("videoId")
        if video_id:
            pairs.append((video_id, item))
    return pairs


class YouTubeSource:
    """Conditionally cacheable YouTube source with direct video lookup."""

    def __init__(
        self,
        mode: str,
        *,
        api_key: Optional[str] = None,
        video_ids: Optional[Sequence[str]] = None,
        channel_id: Optional[str] = None,
        channel_handle: Optional[str] = None,
        query: Optional[str] = None,
        playlist_id: Optional[str] = None,
        max_results: int = 25,
        order: Optional[str] = None,
        region_code: Optional[str] = None,
        published_after: Optional[datetime] = None,
        published_before: Optional[datetime] = None,
        parts: Sequence[str] = DEFAULT_PARTS,
        fetch_full_details: bool = True,
        name: Optional[str] = None,
        client: Optional[YouTubeClient] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        if mode not in MODES:
            raise ConfigurationError(f"Unknown YouTube mode '{mode}'; expected one of {', '.join(MODES)}")
        if client is None and not api_key:
            raise ConfigurationError("YouTube API key is required")
        if mode == "videos" and not video_ids:
            raise ConfigurationError("Video IDs are required when type is 'videos'")
        if mode == "channel" and not channel_id and not channel_handle:
            raise ConfigurationError("Channel ID or handle is required when type is 'channel'")
        if mode == "search" and not query:
            raise ConfigurationError("Search query is required when type is 'search'")
        if mode == "playlist" and not playlist_id:
            raise ConfigurationError("Playlist ID is required when type is 'playlist'")
        if order is not None and order not in ORDERS:
            raise ConfigurationError(f"Unsupported order '{order}'")

        self.mode = mode
        self.video_ids = list(video_ids or [])
        self.channel_id = channel_id
        self.channel_handle = channel_handle
        self.query = query
        self.playlist_id = playlist_id
        self.max_results = max(1, min(int(max_results), MAX_RESULTS_CAP))
        self.order = order
        self.region_code = region_code
        self.published_after = published_after
        self.published_before = published_before
        self.parts = tuple(parts)
        self.fetch_full_details = fetch_full_details
        self.client = client or YouTubeClient(api_key or "")
        self.name = name or f"youtube-{mode}"
        self.logger = bind_extra(logger or get_logger(f"{__name__}.{self.__class__.__name__}"), source=self.name)
        self.pipeline = NormalizationPipeline(
            id_fields=("id",),
            validator=PydanticValidator(Video),
            shape=shape_video,
            html_fields=("description",),
            logger=self.logger,
        )
        self.filter_fields = YOUTUBE_FILTER_FIELDS

    @property
    def source_url(self) -> str:
        return self.client._full_url(self._primary_endpoint())

    def _primary_endpoint(self) -> str:
        return {"videos": "/videos", "playlist": "/playlistItems"}.get(self.mode, "/search")

    def _primary_params(self, collection_filter: Optional[CollectionFilter]) -> tuple[str, Dict[str, Any]]:
        if self.mode == "videos":
            return "videos", {"part": ",".join(self.parts), "id": ",".join(self.video_ids), "maxResults": MAX_RESULTS_CAP}

        limit = self.max_results
        if collection_filter is not None and collection_filter.limit and not collection_filter.has_content_filters:
            limit = max(1, min(collection_filter.limit, MAX_RESULTS_CAP))

        if self.mode == "playlist":
            return "playlistItems", {"part": "snippet,contentDetails", "playlistId": self.playlist_id, "maxResults": limit}

        def option(key: str) -> Any:
            return collection_filter.option(key) if collection_filter is not None else None

        since = collection_filter.since if collection_filter is not None and collection_filter.since else self.published_after
        until = collection_filter.until if collection_filter is not None and collection_filter.until else self.published_before
        params: Dict[str, Any] = {
            "part": "snippet",
            "type": "video",
            "maxResults": limit,
            "order": option("order") or self.order or ("date" if self.mode == "channel" else "relevance"),
            "publishedAfter": _iso(since),
            "publishedBefore": _iso(until),
            "regionCode": self.region_code,
        }
        if self.mode == "search":
            params["q"] = self.query
        else:
            params["channelId"] = option("channel_id") or self.channel_id or self.client.resolve_handle(str(self.channel_handle))
        return "search", params

    def fetch_conditional(self, headers: Mapping[str, str], collection_filter: Optional[CollectionFilter]) -> FetchResult:
        endpoint, params = self._primary_params(collection_filter)
        try:
            response = self.client.call(endpoint, params, headers=headers)
        except HttpStatusError as exc:
            if exc.is_quota_exceeded:
                self.logger.error("YouTube API quota exceeded", extra={"status_code": exc.status_code})
            elif exc.is_invalid_api_key:
                self.logger.error("YouTube API key rejected", extra={"status_code": exc.status_code})
            raise
        if response.status_code == NOT_MODIFIED:
            return FetchResult(status_code=NOT_MODIFIED, headers=response.headers)

        items = self.client.payload(response).get("items") or []
        if self.mode == "videos":
            records = items
        else:
            pairs = _playlist_video_ids(items) if self.mode == "playlist" else _search_video_ids(items)
            if self.fetch_full_details and pairs:
                records = self.client.list_videos([video_id for video_id, _ in pairs], parts=self.parts)
            else:
                records = [{"id": video_id, "snippet": item.get("snippet")} for video_id, item in pairs]
        self.logger.debug("YouTube results received", extra={"mode": self.mode, "items": len(records)})
        return FetchResult(status_code=response.status_code, records=records, headers=response.headers)

    def fetch_entry(self, entry_filter: EntryFilter) -> Optional[FetchResult]:
        video_id = entry_filter.id or (video_id_from_url(entry_filter.url) if entry_filter.url else None)
        if not video_id:
            raise ValidationError("A video id or YouTube URL is required for lookups", source_url=self.source_url)
        try:
            items = self.client.list_videos([video_id], parts=self.parts)
        except HttpStatusError as exc:
            if exc.is_not_found:
                return None
            raise
        if not items:
            return None
        return FetchResult(records=items[:1])


__all__ = [
    "YOUTUBE_FILTER_FIELDS",
    "YouTubeClient",
    "YouTubeSource",
    "shape_video",
    "video_id_from_url",
    "watch_url",
]
