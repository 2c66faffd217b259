from __future__ import annotations

import threading

import pytest

from content_loaders.core.errors import TransportError
from content_loaders.sync.pagination import STOP_CONDITION, STOP_EXHAUSTED, STOP_LIMIT, STOP_MAX_PAGES, STOP_WATERMARK, Page, WatermarkPaginator, paginate


class _PagedSource:
    def __init__(self, pages):
        self.pages = pages
        self.requested = []

    def __call__(self, cursor):
        self.requested.append(cursor)
        index = int(cursor or 0)
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return Page(records=self.pages[index], next_cursor=next_cursor)


def _key(record):
    return record["cid"]


def _records(*names):
    return [{"cid": name} for name in names]


def test_walks_every_page_until_exhausted():
    source = _PagedSource([_records("A", "B"), _records("C")])
    paginator = paginate(source, watermark_key=_key)

    assert [record["cid"] for record in paginator] == ["A", "B", "C"]
    assert paginator.stop_reason == STOP_EXHAUSTED
    assert paginator.candidate_watermark == "A"
    assert source.requested == [None, "1"]


def test_stops_at_stored_watermark_without_emitting_it():
    source = _PagedSource([_records("A", "B"), _records("C", "D")])
    paginator = WatermarkPaginator(source, watermark_key=_key, watermark="B")

    assert [record["cid"] for record in paginator] == ["A"]
    assert paginator.stop_reason == STOP_WATERMARK
    assert paginator.candidate_watermark == "A"
    assert source.requested == [None]


def test_watermark_on_first_record_yields_nothing():
    paginator = WatermarkPaginator(_PagedSource([_records("A", "B")]), watermark_key=_key, watermark="A")

    assert list(paginator) == []
    assert paginator.candidate_watermark is None


def test_limit_stops_before_next_page_request():
    source = _PagedSource([_records("A", "B"), _records("C", "D")])
    paginator = WatermarkPaginator(source, limit=2)

    assert len(list(paginator)) == 2
    assert paginator.stop_reason == STOP_LIMIT
    assert source.requested == [None]


def test_limit_checked_within_a_page():
    paginator = WatermarkPaginator(_PagedSource([_records("A", "B", "C")]), limit=1)

    assert [record["cid"] for record in paginator] == ["A"]
    assert paginator.stop_reason == STOP_LIMIT


def test_stop_condition_and_max_pages():
    stopped = WatermarkPaginator(_PagedSource([_records("A", "B", "C")]), stop_when=lambda record: record["cid"] == "B")
    assert [record["cid"] for record in stopped] == ["A"]
    assert stopped.stop_reason == STOP_CONDITION

    bounded = WatermarkPaginator(_PagedSource([_records("A"), _records("B"), _records("C")]), max_pages=2)
    assert [record["cid"] for record in bounded] == ["A", "B"]
    assert bounded.stop_reason == STOP_MAX_PAGES


def test_iteration_is_restartable():
    paginator = WatermarkPaginator(_PagedSource([_records("A"), _records("B")]))

    assert len(list(paginator)) == 2
    assert len(list(paginator)) == 2
    assert paginator.pages_fetched == 2


def test_cancellation_raises_transport_error():
    cancel = threading.Event()
    cancel.set()
    paginator = WatermarkPaginator(_PagedSource([_records("A")]), cancel_event=cancel, source_url="https://example.org")

    with pytest.raises(TransportError):
        list(paginator)


def test_watermark_requires_key():
    with pytest.raises(ValueError):
        WatermarkPaginator(_PagedSource([]), watermark="A")
