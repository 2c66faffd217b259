from __future__ import annotations

import httpx
import pytest

from content_loaders.adapters.api.feed import FeedClient, FeedSource
from content_loaders.core.context import LoaderContext
from content_loaders.core.errors import ConfigurationError, HttpStatusError, TransportError, ValidationError
from content_loaders.core.stores import InMemoryEntryStore, InMemoryMetaStore
from content_loaders.sync.filters import NOT_FOUND, CollectionFilter, EntryFilter
from content_loaders.sync.orchestrator import SyncMode, SyncOrchestrator

FEED_URL = "https://example.org/feed.xml"


class _FeedServer:
    def __init__(self, body: str, etag: str = '"v1"'):
        self.body = body
        self.etag = etag
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("If-None-Match") == self.etag:
            return httpx.Response(304, headers={"ETag": self.etag})
        return httpx.Response(200, text=self.body, headers={"ETag": self.etag, "Content-Type": "application/rss+xml"})


def _source(handler, **kwargs) -> FeedSource:
    client = FeedClient(transport=httpx.MockTransport(handler))
    return FeedSource(FEED_URL, client=client, **kwargs)


def _context():
    return LoaderContext(store=InMemoryEntryStore(), meta=InMemoryMetaStore())


def test_feed_source_requires_http_url():
    with pytest.raises(ConfigurationError):
        FeedSource("ftp://example.org/feed.xml")
    with pytest.raises(ConfigurationError):
        FeedSource("")


def test_batch_sync_parses_entries_and_revalidates(rss_document):
    server = _FeedServer(rss_document)
    context = _context()
    orchestrator = SyncOrchestrator(_source(server), context)

    result = orchestrator.sync(SyncMode.BATCH)

    assert [item.id for item in result.items] == ["https://example.org/posts/2", "https://example.org/posts/1"]
    newest = result.items[0].data
    assert newest.title == "Second post"
    assert newest.url == "https://example.org/posts/2"
    assert newest.published.isoformat() == "2024-01-02T10:00:00+00:00"
    assert newest.updated is None
    assert newest.categories[0].term == "python"
    assert newest.media[0].url == "https://example.org/audio.mp3"
    assert newest.media[0].length == 1024
    assert "Second body" in result.items[0].rendered_html
    assert context.meta.get("etag") == '"v1"'
    assert "application/rss+xml" in server.requests[0].headers["Accept"]

    second = orchestrator.sync(SyncMode.BATCH)

    assert second.not_modified
    assert server.requests[-1].headers["If-None-Match"] == '"v1"'
    assert len(list(context.store.keys())) == 2


def test_legacy_mode_stores_flat_shape_with_meta(rss_document, caplog):
    context = _context()

    with caplog.at_level("WARNING"):
        source = _source(_FeedServer(rss_document), legacy=True)
    SyncOrchestrator(source, context).sync(SyncMode.BATCH)

    assert "legacy mode" in caplog.text.lower()
    stored = context.store.get("https://example.org/posts/2").data
    assert stored["guid"] == "https://example.org/posts/2"
    assert stored["link"] == "https://example.org/posts/2"
    assert stored["pubdate"] == "2024-01-02T10:00:00+00:00"
    assert stored["categories"] == [{"name": "python", "domain": "https://example.org/tags"}]
    assert stored["enclosures"] == [{"url": "https://example.org/audio.mp3", "type": "audio/mpeg", "length": "1024"}]
    assert stored["meta"]["title"] == "Example Feed"
    assert stored["meta"]["type"] == "rss"
    assert "published" not in stored


def test_live_query_filters_by_category_and_limit(rss_document):
    orchestrator = SyncOrchestrator(_source(_FeedServer(rss_document)))

    by_category = orchestrator.sync(SyncMode.LIVE, CollectionFilter(category="release"))
    limited = orchestrator.sync(SyncMode.LIVE, CollectionFilter(limit=1))

    assert [item.data.title for item in by_category.items] == ["First post"]
    assert [item.data.title for item in limited.items] == ["Second post"]


def test_category_filter_ignores_category_domain(rss_document):
    orchestrator = SyncOrchestrator(_source(_FeedServer(rss_document)))

    by_domain = orchestrator.sync(SyncMode.LIVE, CollectionFilter(category="example.org/tags"))
    by_term = orchestrator.sync(SyncMode.LIVE, CollectionFilter(category="PYTHON"))

    assert by_domain.items == []
    assert by_domain.error is None
    assert [item.data.title for item in by_term.items] == ["Second post"]


def test_lookup_by_url(rss_document):
    orchestrator = SyncOrchestrator(_source(_FeedServer(rss_document)))

    assert orchestrator.lookup(EntryFilter(url="https://example.org/posts/1")).data.title == "First post"
    assert orchestrator.lookup(EntryFilter(id="https://example.org/posts/9")) is NOT_FOUND


def test_empty_body_is_validation_error():
    source = _source(lambda request: httpx.Response(200, text="  "))

    with pytest.raises(ValidationError):
        SyncOrchestrator(source, _context()).sync(SyncMode.BATCH)

    live = SyncOrchestrator(source).sync(SyncMode.LIVE)
    assert live.error.kind == "validation"
    assert live.error.source_url == FEED_URL


def test_unparseable_body_is_validation_error():
    source = _source(lambda request: httpx.Response(200, text="this is not xml <<<"))

    with pytest.raises(ValidationError):
        SyncOrchestrator(source).sync(SyncMode.BATCH)


def test_http_errors_and_unexpected_not_modified():
    missing = _source(lambda request: httpx.Response(404, text="Not Found"))
    record = SyncOrchestrator(missing).sync(SyncMode.LIVE).error
    assert record.kind == "http-status"
    assert record.details["sub_kind"] == "not-found"

    unsolicited = _source(lambda request: httpx.Response(304))
    with pytest.raises(HttpStatusError):
        SyncOrchestrator(unsolicited, _context()).sync(SyncMode.BATCH)


def test_transport_failures_are_retried_then_reported(rss_document):
    calls = {"count": 0}

    def flaky(request):
        calls["count"] += 1
        if calls["count"] < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text=rss_document)

    client = FeedClient(retries=3, transport=httpx.MockTransport(flaky))
    client.retry_backoff = 0
    result = SyncOrchestrator(FeedSource(FEED_URL, client=client)).sync(SyncMode.LIVE)
    assert result.ok
    assert calls["count"] == 3

    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as excinfo:
        SyncOrchestrator(_source(down), _context()).sync(SyncMode.BATCH)
    assert excinfo.value.source_url == FEED_URL
