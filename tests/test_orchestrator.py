from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest
from pydantic import BaseModel

from content_loaders.adapters.base import FetchResult
from content_loaders.core.context import LoaderContext
from content_loaders.core.errors import ConfigurationError, ErrorRecord, HttpStatusError, TransportError
from content_loaders.core.stores import InMemoryEntryStore, InMemoryMetaStore
from content_loaders.sync.filters import NOT_FOUND, CollectionFilter, EntryFilter, FilterFields
from content_loaders.sync.normalize import NormalizationPipeline, PydanticValidator
from content_loaders.sync.orchestrator import SyncMode, SyncOrchestrator
from content_loaders.sync.pagination import WATERMARK_KEY, Page


class _Post(BaseModel):
    id: str
    title: Optional[str] = None
    url: Optional[str] = None
    published: Optional[datetime] = None


def _pipeline() -> NormalizationPipeline:
    return NormalizationPipeline(id_fields=("id",), validator=PydanticValidator(_Post), render_html=lambda post: f"<p>{post.title}</p>")


class _ConditionalSource:
    """Single document source honouring If-None-Match."""

    name = "conditional"
    source_url = "https://example.org/feed"
    filter_fields = FilterFields()

    def __init__(self, records, etag='"v1"'):
        self.pipeline = _pipeline()
        self.records = records
        self.etag = etag
        self.sent_headers = []
        self.error: Optional[Exception] = None

    def fetch_conditional(self, headers, collection_filter):
        self.sent_headers.append(dict(headers))
        if self.error is not None:
            raise self.error
        if headers.get("If-None-Match") == self.etag:
            return FetchResult(status_code=304, headers=httpx.Headers({"ETag": self.etag}))
        return FetchResult(records=self.records, headers=httpx.Headers({"ETag": self.etag}))


class _PagedSource:
    """Newest-first paginated source with cid watermarks."""

    name = "paged"
    source_url = "https://example.org/xrpc"
    filter_fields = FilterFields()
    incremental = True
    newest_first = True

    def __init__(self, pages):
        self.pipeline = _pipeline()
        self.pages = pages
        self.requested = []

    def fetch_page(self, cursor, collection_filter):
        self.requested.append(cursor)
        index = int(cursor or 0)
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return Page(records=self.pages[index], next_cursor=next_cursor)

    def watermark_key(self, record):
        return record["id"]


class _LookupSource(_ConditionalSource):
    def __init__(self, records, entry=None, error=None):
        super().__init__(records)
        self.entry = entry
        self.lookup_error = error

    def fetch_entry(self, entry_filter):
        if self.lookup_error is not None:
            raise self.lookup_error
        if self.entry is None:
            return None
        return FetchResult(records=[self.entry])


class _NoCapabilities:
    name = "bare"
    source_url = "memory://bare"
    filter_fields = FilterFields()

    def __init__(self):
        self.pipeline = _pipeline()


def _post(identifier, title=None, day=None):
    published = datetime(2024, 1, day, tzinfo=timezone.utc) if day else None
    return {"id": identifier, "title": title or identifier.upper(), "url": f"https://example.org/{identifier}", "published": published}


def _context():
    return LoaderContext(store=InMemoryEntryStore(), meta=InMemoryMetaStore())


def test_source_without_acquisition_capability_is_rejected():
    with pytest.raises(ConfigurationError):
        SyncOrchestrator(_NoCapabilities())
    with pytest.raises(ConfigurationError):
        SyncOrchestrator(object())


def test_batch_sync_replaces_store_and_persists_validators():
    context = _context()
    context.store.set("stale", {"title": "old"})
    source = _ConditionalSource([_post("a"), _post("b")])

    result = SyncOrchestrator(source, context).sync(SyncMode.BATCH)

    assert [item.id for item in result.items] == ["a", "b"]
    assert sorted(context.store.keys()) == ["a", "b"]
    assert context.store.get("a").rendered_html == "<p>A</p>"
    assert context.meta.get("etag") == '"v1"'
    assert source.sent_headers == [{}]


def test_not_modified_sync_is_idempotent():
    context = _context()
    source = _ConditionalSource([_post("a")])
    orchestrator = SyncOrchestrator(source, context)
    orchestrator.sync("batch")

    second = orchestrator.sync("batch")

    assert second.not_modified
    assert second.ok
    assert len(second) == 0
    assert source.sent_headers[-1] == {"If-None-Match": '"v1"'}
    assert list(context.store.keys()) == ["a"]
    assert context.meta.get("etag") == '"v1"'


def test_failed_batch_sync_leaves_store_and_meta_untouched():
    context = _context()
    source = _ConditionalSource([_post("a")])
    orchestrator = SyncOrchestrator(source, context)
    orchestrator.sync(SyncMode.BATCH)
    context.meta.delete("etag")
    source.error = HttpStatusError("HTTP 500: boom", status_code=500, source_url=source.source_url)

    with pytest.raises(HttpStatusError):
        orchestrator.sync(SyncMode.BATCH)

    assert list(context.store.keys()) == ["a"]
    assert context.meta.get("etag") is None


class _FailingPagedSource(_PagedSource):
    def __init__(self, pages, fail_at):
        super().__init__(pages)
        self.fail_at = fail_at

    def fetch_page(self, cursor, collection_filter):
        if int(cursor or 0) == self.fail_at:
            self.requested.append(cursor)
            raise TransportError("Network error while calling GET", source_url=self.source_url)
        return super().fetch_page(cursor, collection_filter)


def test_failure_mid_pagination_keeps_watermark_and_store():
    context = _context()
    SyncOrchestrator(_PagedSource([[_post("b"), _post("a")]]), context).sync(SyncMode.BATCH)
    assert context.meta.get(WATERMARK_KEY) == "b"

    source = _FailingPagedSource([[_post("d"), _post("c")], [_post("b"), _post("a")]], fail_at=1)
    with pytest.raises(TransportError):
        SyncOrchestrator(source, context).sync(SyncMode.BATCH)

    assert source.requested == [None, "1"]
    assert context.meta.get(WATERMARK_KEY) == "b"
    assert sorted(context.store.keys()) == ["a", "b"]


def test_batch_cancellation_raises_before_request():
    cancel = threading.Event()
    cancel.set()
    source = _ConditionalSource([_post("a")])

    with pytest.raises(TransportError):
        SyncOrchestrator(source, _context()).sync(SyncMode.BATCH, cancel_event=cancel)
    assert source.sent_headers == []


def test_incremental_sync_extends_store_up_to_watermark():
    context = _context()
    first = _PagedSource([[_post("b"), _post("a")]])
    SyncOrchestrator(first, context).sync(SyncMode.BATCH)
    assert context.meta.get(WATERMARK_KEY) == "b"

    second = _PagedSource([[_post("d"), _post("c")], [_post("b"), _post("a")]])
    result = SyncOrchestrator(second, context).sync(SyncMode.BATCH)

    assert [item.id for item in result.items] == ["d", "c"]
    assert result.watermark == "d"
    assert result.stop_reason == "watermark"
    assert sorted(context.store.keys()) == ["a", "b", "c", "d"]
    assert context.meta.get(WATERMARK_KEY) == "d"


def test_incremental_sync_without_new_records_keeps_watermark():
    context = _context()
    SyncOrchestrator(_PagedSource([[_post("b"), _post("a")]]), context).sync(SyncMode.BATCH)

    result = SyncOrchestrator(_PagedSource([[_post("b"), _post("a")]]), context).sync(SyncMode.BATCH)

    assert result.items == []
    assert result.watermark == "b"
    assert sorted(context.store.keys()) == ["a", "b"]


def test_live_query_filters_without_touching_store():
    context = _context()
    source = _ConditionalSource([_post("a", "Python news"), _post("b", "Other")])

    result = SyncOrchestrator(source, context).sync(SyncMode.LIVE, CollectionFilter(search="python"))

    assert [item.id for item in result.items] == ["a"]
    assert list(context.store.keys()) == []
    assert context.meta.get("etag") is None
    assert source.sent_headers == [{}]


def test_live_query_returns_errors_as_records():
    source = _ConditionalSource([])
    source.error = TransportError("Network error while calling GET", source_url=source.source_url)

    result = SyncOrchestrator(source).sync(SyncMode.LIVE)

    assert not result.ok
    assert isinstance(result.error, ErrorRecord)
    assert result.error.kind == "transport"
    assert result.error.source_url == source.source_url


def test_live_query_still_raises_configuration_errors():
    source = _ConditionalSource([])
    source.error = ConfigurationError("Identifier must be provided")

    with pytest.raises(ConfigurationError):
        SyncOrchestrator(source).sync(SyncMode.LIVE)


def test_live_since_filters_out_of_order_records_without_stopping():
    source = _PagedSource([[_post("c", day=5), _post("x", day=1), _post("b", day=4)], [_post("a", day=3)]])
    since = datetime(2024, 1, 2)

    result = SyncOrchestrator(source).sync(SyncMode.LIVE, CollectionFilter(since=since))

    assert [item.id for item in result.items] == ["c", "b", "a"]
    assert source.requested == [None, "1"]
    assert result.stop_reason == "exhausted"


def test_live_limit_pushed_down_only_without_content_filters():
    pages = [[_post("c", "x"), _post("b", "match")], [_post("a", "match")]]

    plain = _PagedSource(pages)
    result = SyncOrchestrator(plain).sync(SyncMode.LIVE, CollectionFilter(limit=1))
    assert [item.id for item in result.items] == ["c"]
    assert plain.requested == [None]

    filtered = _PagedSource(pages)
    result = SyncOrchestrator(filtered).sync(SyncMode.LIVE, CollectionFilter(limit=2, search="match"))
    assert [item.id for item in result.items] == ["b", "a"]
    assert filtered.requested == [None, "1"]


def test_lookup_distinguishes_not_found_from_errors():
    orchestrator = SyncOrchestrator(_ConditionalSource([_post("a"), _post("b")]))

    assert orchestrator.lookup(EntryFilter(id="b")).id == "b"
    assert orchestrator.lookup(EntryFilter(url="https://example.org/a")).id == "a"
    assert orchestrator.lookup(EntryFilter(id="zzz")) is NOT_FOUND

    empty = orchestrator.lookup(EntryFilter())
    assert isinstance(empty, ErrorRecord)
    assert empty.kind == "validation"

    failing = _ConditionalSource([])
    failing.error = HttpStatusError("HTTP 503", status_code=503)
    outcome = SyncOrchestrator(failing).lookup(EntryFilter(id="a"))
    assert isinstance(outcome, ErrorRecord)
    assert outcome.kind == "http-status"


def test_direct_lookup_uses_fetch_entry():
    found = SyncOrchestrator(_LookupSource([], entry=_post("x"))).lookup(EntryFilter(url="https://example.org/x"))
    assert found.id == "x"

    assert SyncOrchestrator(_LookupSource([])).lookup(EntryFilter(id="x")) is NOT_FOUND

    failing = SyncOrchestrator(_LookupSource([], error=TransportError("down"))).lookup(EntryFilter(id="x"))
    assert isinstance(failing, ErrorRecord)
