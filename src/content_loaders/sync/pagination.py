"""
Cursor pagination with watermark and limit short-circuits.

:class:`WatermarkPaginator` walks a cursor-paginated source one page at a
time. Before each record is emitted it checks, in order, the result limit, the
stored watermark and an optional caller-supplied stop predicate; any of them
ends the walk without emitting the record. The first emitted record becomes
the candidate watermark, which callers persist only after the walk finished.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Sequence

from ..core.errors import TransportError

WATERMARK_KEY = "last-fetched"

STOP_EXHAUSTED = "exhausted"
STOP_LIMIT = "limit"
STOP_WATERMARK = "watermark"
STOP_CONDITION = "stop-condition"
STOP_MAX_PAGES = "max-pages"


@dataclass(slots=True)
class Page:
    """One page returned by a paginated source."""

    records: Sequence[Any] = field(default_factory=tuple)
    next_cursor: Optional[str] = None


FetchPage = Callable[[Optional[str]], Page]


class WatermarkPaginator:
    """
    Restartable, lazy iterator over the records of a paginated source.

    Parameters
    ----------
    fetch_page:
        Callable returning the :class:`Page` for a cursor (``None`` for the first page).
    watermark_key:
        Extracts the watermark identifier from a record. Required when ``watermark`` is set.
    watermark:
        Identifier of the newest record seen by the previous successful sync.
    limit:
        Maximum number of records to emit.
    stop_when:
        Extra predicate; a record for which it returns ``True`` ends the walk.
    max_pages:
        Safety bound on the number of page requests.
    cancel_event:
        Checked before every page request; once set the walk raises :class:`TransportError`.
    source_url:
        Used to label cancellation errors.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        *,
        watermark_key: Optional[Callable[[Any], Optional[str]]] = None,
        watermark: Optional[str] = None,
        limit: Optional[int] = None,
        stop_when: Optional[Callable[[Any], bool]] = None,
        max_pages: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        source_url: Optional[str] = None,
    ) -> None:
        if watermark is not None and watermark_key is None:
            raise ValueError("watermark_key is required when a watermark is supplied")
        self.fetch_page = fetch_page
        self.watermark_key = watermark_key
        self.watermark = watermark
        self.limit = limit if limit is None or limit > 0 else None
        self.stop_when = stop_when
        self.max_pages = max_pages
        self.cancel_event = cancel_event
        self.source_url = source_url
        self.candidate_watermark: Optional[str] = None
        self.stop_reason: Optional[str] = None
        self.pages_fetched = 0
        self.emitted = 0

    def __iter__(self) -> Iterator[Any]:
        return self._walk()

    def _reset(self) -> None:
        self.candidate_watermark = None
        self.stop_reason = None
        self.pages_fetched = 0
        self.emitted = 0

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise TransportError("Sync cancelled before page request", source_url=self.source_url)

    def _should_stop(self, record: Any) -> Optional[str]:
        if self.limit is not None and self.emitted >= self.limit:
            return STOP_LIMIT
        if self.watermark is not None and self.watermark_key is not None and self.watermark_key(record) == self.watermark:
            return STOP_WATERMARK
        if self.stop_when is not None and self.stop_when(record):
            return STOP_CONDITION
        return None

    def _walk(self) -> Iterator[Any]:
        self._reset()
        cursor: Optional[str] = None
        while True:
            if self.limit is not None and self.emitted >= self.limit:
                self.stop_reason = STOP_LIMIT
                return
            if self.max_pages is not None and self.pages_fetched >= self.max_pages:
                self.stop_reason = STOP_MAX_PAGES
                return
            self._check_cancelled()
            page = self.fetch_page(cursor)
            self.pages_fetched += 1
            for record in page.records:
                reason = self._should_stop(record)
                if reason is not None:
                    self.stop_reason = reason
                    return
                if self.emitted == 0 and self.watermark_key is not None:
                    self.candidate_watermark = self.watermark_key(record)
                self.emitted += 1
                yield record
            if not page.next_cursor:
                self.stop_reason = STOP_EXHAUSTED
                return
            cursor = page.next_cursor


def paginate(fetch_page: FetchPage, **options: Any) -> WatermarkPaginator:
    """Shorthand for :class:`WatermarkPaginator` construction."""

    return WatermarkPaginator(fetch_page, **options)


__all__ = [
    "FetchPage",
    "Page",
    "STOP_CONDITION",
    "STOP_EXHAUSTED",
    "STOP_LIMIT",
    "STOP_MAX_PAGES",
    "STOP_WATERMARK",
    "WATERMARK_KEY",
    "WatermarkPaginator",
    "paginate",
]
