from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from content_loaders.adapters.api.youtube import YouTubeClient, YouTubeSource, video_id_from_url
from content_loaders.core.context import LoaderContext
from content_loaders.core.errors import ConfigurationError
from content_loaders.core.stores import InMemoryEntryStore, InMemoryMetaStore
from content_loaders.sync.filters import NOT_FOUND, CollectionFilter, EntryFilter
from content_loaders.sync.orchestrator import SyncMode, SyncOrchestrator


def _video(video_id: str, title: str, published: str = "2024-01-05T12:00:00Z"):
    return {
        "kind": "youtube#video",
        "id": video_id,
        "snippet": {
            "title": title,
            "description": f"About {title}",
            "publishedAt": published,
            "channelId": "UC123",
            "channelTitle": "Python",
            "thumbnails": {"default": {"url": f"https://i.ytimg.com/vi/{video_id}/default.jpg", "width": 120, "height": 90}},
            "tags": ["python"],
        },
        "contentDetails": {"duration": "PT4M13S"},
        "statistics": {"viewCount": "42", "likeCount": "7"},
    }


class _DataApi:
    """Minimal stand-in for the YouTube Data API v3 endpoints the source calls."""

    def __init__(self, videos=None, etag='"yt-1"'):
        self.videos = {video["id"]: video for video in videos or []}
        self.etag = etag
        self.requests: list[httpx.Request] = []
        self.error: httpx.Response | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            return self.error
        params = request.url.params
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if request.headers.get("If-None-Match") == self.etag:
            return httpx.Response(304, headers={"ETag": self.etag})
        if endpoint == "videos":
            ids = params["id"].split(",")
            return httpx.Response(200, json={"items": [self.videos[i] for i in ids if i in self.videos]}, headers={"ETag": self.etag})
        if endpoint == "channels":
            return httpx.Response(200, json={"items": [{"id": "UC123"}] if params["forHandle"] == "@python" else []})
        if endpoint == "search":
            items = [{"id": {"kind": "youtube#video", "videoId": key}, "snippet": value["snippet"]} for key, value in self.videos.items()]
            items.append({"id": {"kind": "youtube#channel", "channelId": "UC999"}})
            return httpx.Response(200, json={"items": items}, headers={"ETag": self.etag})
        if endpoint == "playlistItems":
            items = [{"contentDetails": {"videoId": key}, "snippet": value["snippet"]} for key, value in self.videos.items()]
            return httpx.Response(200, json={"items": items}, headers={"ETag": self.etag})
        return httpx.Response(404)


def _client(server) -> YouTubeClient:
    return YouTubeClient("test-key", transport=httpx.MockTransport(server))


def test_configuration_errors():
    with pytest.raises(ConfigurationError):
        YouTubeSource("videos", api_key="k")
    with pytest.raises(ConfigurationError):
        YouTubeSource("channel", api_key="k")
    with pytest.raises(ConfigurationError):
        YouTubeSource("search", api_key="k")
    with pytest.raises(ConfigurationError):
        YouTubeSource("playlist", api_key="k")
    with pytest.raises(ConfigurationError):
        YouTubeSource("videos", video_ids=["a"])
    with pytest.raises(ConfigurationError):
        YouTubeSource("trending", api_key="k")


def test_video_id_from_url():
    assert video_id_from_url("https://www.youtube.com/watch?v=abc123&t=4") == "abc123"
    assert video_id_from_url("https://youtu.be/abc123") == "abc123"
    assert video_id_from_url("https://www.youtube.com/shorts/abc123") == "abc123"
    assert video_id_from_url("https://example.org/watch?v=abc123") is None


def test_videos_mode_batch_sync_and_revalidation():
    server = _DataApi([_video("a1", "Intro"), _video("b2", "Advanced")])
    context = LoaderContext(store=InMemoryEntryStore(), meta=InMemoryMetaStore())
    source = YouTubeSource("videos", video_ids=["a1", "b2"], client=_client(server))
    orchestrator = SyncOrchestrator(source, context)

    result = orchestrator.sync(SyncMode.BATCH)

    assert [item.id for item in result.items] == ["a1", "b2"]
    video = result.items[0].data
    assert video.url == "https://www.youtube.com/watch?v=a1"
    assert video.view_count == 42
    assert video.duration == "PT4M13S"
    assert video.thumbnails["default"].width == 120
    assert result.items[0].rendered_html == "About Intro"
    assert server.requests[0].url.params["key"] == "test-key"
    assert context.meta.get("etag") == '"yt-1"'

    assert orchestrator.sync(SyncMode.BATCH).not_modified
    assert server.requests[-1].headers["If-None-Match"] == '"yt-1"'


def test_channel_mode_resolves_handle_and_fetches_details():
    server = _DataApi([_video("a1", "Intro")])
    source = YouTubeSource("channel", channel_handle="python", client=_client(server))
    since = datetime(2024, 1, 1, tzinfo=timezone.utc)

    result = SyncOrchestrator(source).sync(SyncMode.LIVE, CollectionFilter(since=since))

    assert [item.id for item in result.items] == ["a1"]
    endpoints = [request.url.path.rsplit("/", 1)[-1] for request in server.requests]
    assert endpoints == ["channels", "search", "videos"]
    search = server.requests[1].url.params
    assert search["channelId"] == "UC123"
    assert search["order"] == "date"
    assert search["publishedAfter"] == "2024-01-01T00:00:00Z"


def test_unknown_handle_is_a_validation_error():
    source = YouTubeSource("channel", channel_handle="nobody", client=_client(_DataApi()))

    result = SyncOrchestrator(source).sync(SyncMode.LIVE)

    assert result.error.kind == "validation"
    assert "nobody" in result.error.message


def test_search_and_playlist_without_full_details():
    server = _DataApi([_video("a1", "Intro"), _video("b2", "Advanced")])
    search = YouTubeSource("search", query="python", fetch_full_details=False, client=_client(server))
    playlist = YouTubeSource("playlist", playlist_id="PL1", fetch_full_details=False, client=_client(server))

    searched = SyncOrchestrator(search).sync(SyncMode.LIVE, CollectionFilter(search="advanced"))
    listed = SyncOrchestrator(playlist).sync(SyncMode.LIVE, CollectionFilter(limit=1))

    assert [item.id for item in searched.items] == ["b2"]
    assert [item.id for item in listed.items] == ["a1"]
    assert server.requests[0].url.params["q"] == "python"
    assert server.requests[1].url.params["maxResults"] == "1"
    assert all(request.url.path.endswith(("search", "playlistItems")) for request in server.requests)


def test_quota_errors_are_reported(caplog):
    server = _DataApi()
    server.error = httpx.Response(
        403,
        json={"error": {"code": 403, "message": "The request cannot be completed because you have exceeded your quota.", "errors": [{"reason": "quotaExceeded"}]}},
    )
    source = YouTubeSource("search", query="python", client=_client(server))

    result = SyncOrchestrator(source).sync(SyncMode.LIVE)

    assert result.error.kind == "http-status"
    assert result.error.details["reasons"] == ["quotaExceeded"]
    assert "quota exceeded" in caplog.text


def test_lookup_by_id_and_url():
    server = _DataApi([_video("a1", "Intro")])
    orchestrator = SyncOrchestrator(YouTubeSource("search", query="python", client=_client(server)))

    assert orchestrator.lookup(EntryFilter(id="a1")).data.title == "Intro"
    assert orchestrator.lookup(EntryFilter(url="https://youtu.be/a1")).id == "a1"
    assert orchestrator.lookup(EntryFilter(id="zz")) is NOT_FOUND
