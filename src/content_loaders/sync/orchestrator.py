"""
Sync orchestration shared by every source.

:class:`SyncOrchestrator` wires a source's capabilities to the revalidation
cache, the pagination driver, the normalisation pipeline and the filter
engine. It offers two consumption modes:

``batch``
    Fetch everything, normalise, then replace the host store (clear, then
    rewrite). Incremental sources with a stored watermark extend the store
    instead. Cache validators and the watermark are written only after the
    store was updated. Errors are raised to the caller.

``live``
    Fetch without touching any host store, filter in memory and return the
    result. Errors come back as :class:`~content_loaders.core.errors.ErrorRecord`
    values inside :class:`SyncResult`.

:class:`~content_loaders.core.errors.ConfigurationError` is raised in both modes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Union

from ..adapters.base import ConditionallyCacheable, EntryLookup, FetchResult, Normalizable, Paginatable, Snapshot
from ..core.context import LoaderContext
from ..core.errors import ConfigurationError, ErrorRecord, LoaderError, TransportError, ValidationError
from ..core.logging import bind_extra, get_logger, log_progress
from ..core.stores import MetaStore
from .filters import NOT_FOUND, CollectionFilter, EntryFilter, NotFound, filter_collection, find_entry
from .normalize import NormalizedItem
from .pagination import WATERMARK_KEY, WatermarkPaginator
from .revalidation import CacheValidators, ConditionalCache


class SyncMode(str, Enum):
    BATCH = "batch"
    LIVE = "live"


@dataclass(slots=True)
class SyncResult:
    """
    Outcome of a sync.

    ``not_modified`` signals a ``304`` short-circuit, which is distinct from a
    successful sync that found zero items.
    """

    items: List[NormalizedItem] = field(default_factory=list)
    not_modified: bool = False
    error: Optional[ErrorRecord] = None
    watermark: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __len__(self) -> int:
        return len(self.items)


LookupResult = Union[NormalizedItem, NotFound, ErrorRecord]


@dataclass(slots=True)
class _Acquisition:
    records: Sequence[Any] = field(default_factory=tuple)
    context: Mapping[str, Any] = field(default_factory=dict)
    not_modified: bool = False
    validators: Optional[CacheValidators] = None
    cache: Optional[ConditionalCache] = None
    paginator: Optional[WatermarkPaginator] = None
    watermark_in_effect: Optional[str] = None


class SyncOrchestrator:
    """
    Run batch and live syncs for one source.

    Parameters
    ----------
    source:
        Object implementing :class:`~content_loaders.adapters.base.Normalizable`
        plus one acquisition capability.
    context:
        Host collaborators. Defaults to an in-memory store without metadata.
    max_pages:
        Optional safety bound forwarded to the pagination driver.
    """

    def __init__(self, source: Any, context: Optional[LoaderContext] = None, *, max_pages: Optional[int] = None) -> None:
        if not isinstance(source, Normalizable):
            raise ConfigurationError(f"{type(source).__name__} does not expose a normalisation pipeline")
        if not isinstance(source, (ConditionallyCacheable, Paginatable, Snapshot)):
            raise ConfigurationError(f"{type(source).__name__} exposes no acquisition capability", source_url=source.source_url)
        self.source = source
        self.context = context or LoaderContext()
        self.max_pages = max_pages
        base_logger = self.context.logger or get_logger(f"{__name__}.{self.__class__.__name__}")
        self.logger = bind_extra(base_logger, source=source.name, url=source.source_url)

    # ------------------------------------------------------------------ entry points

    def sync(
        self,
        mode: SyncMode | str = SyncMode.BATCH,
        collection_filter: Optional[CollectionFilter] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Run one sync in ``mode``. See the module docstring for the mode contracts."""

        resolved = SyncMode(mode)
        if resolved is SyncMode.BATCH:
            return self._run_batch(collection_filter, cancel_event)
        try:
            return self._run_live(collection_filter, cancel_event)
        except ConfigurationError:
            raise
        except LoaderError as exc:
            self.logger.warning("Live query failed", extra={"mode": resolved.value, "error": str(exc)})
            return SyncResult(error=exc.to_record())

    def lookup(self, entry_filter: EntryFilter) -> LookupResult:
        """
        Find one entry by id or URL.

        Returns the item, :data:`~content_loaders.sync.filters.NOT_FOUND` when
        nothing matches, or an :class:`ErrorRecord` on failure (including an
        empty filter).
        """

        if entry_filter.empty:
            return ValidationError("Entry lookup requires an 'id' or 'url' filter", source_url=self.source.source_url).to_record()
        try:
            if isinstance(self.source, EntryLookup):
                return self._lookup_direct(entry_filter)
            result = self._run_live(None, None)
            return find_entry(result.items, entry_filter, self.source.filter_fields)
        except ConfigurationError:
            raise
        except LoaderError as exc:
            self.logger.warning("Entry lookup failed", extra={"error": str(exc)})
            return exc.to_record()

    # ------------------------------------------------------------------ modes

    def _run_batch(self, collection_filter: Optional[CollectionFilter], cancel_event: Optional[threading.Event]) -> SyncResult:
        log_progress(self.logger, "Starting sync", phase="batch", status="started")
        acquisition = self._acquire(self.context.meta, collection_filter, cancel_event, SyncMode.BATCH)
        if acquisition.not_modified:
            log_progress(self.logger, "Source not modified, skipping", phase="batch", status="completed", result="not-modified", extra={"cache": "hit"})
            return SyncResult(not_modified=True)

        items = list(self.source.pipeline.normalize_all(acquisition.records, acquisition.context))
        skipped = len(acquisition.records) - len(items)

        store = self.context.store
        incremental = acquisition.watermark_in_effect is not None
        if not incremental:
            store.clear()
        for item in items:
            store.set(item.id, item.as_data(), item.rendered_html)

        watermark = self._persist_state(acquisition, self.context.meta)
        log_progress(
            self.logger,
            "Sync completed",
            phase="batch",
            status="completed",
            result="incremental" if incremental else "replaced",
            extra={"items": len(items), "skipped": skipped or None, "watermark": watermark},
        )
        stop_reason = acquisition.paginator.stop_reason if acquisition.paginator else None
        return SyncResult(items=items, watermark=watermark, stop_reason=stop_reason)

    def _run_live(self, collection_filter: Optional[CollectionFilter], cancel_event: Optional[threading.Event]) -> SyncResult:
        acquisition = self._acquire(None, collection_filter, cancel_event, SyncMode.LIVE)
        items = list(self.source.pipeline.normalize_all(acquisition.records, acquisition.context))
        selected = filter_collection(items, collection_filter, self.source.filter_fields)
        self.logger.debug("Live query completed", extra={"mode": SyncMode.LIVE.value, "items": len(selected)})
        stop_reason = acquisition.paginator.stop_reason if acquisition.paginator else None
        return SyncResult(items=selected, stop_reason=stop_reason)

    def _lookup_direct(self, entry_filter: EntryFilter) -> LookupResult:
        fetched = self.source.fetch_entry(entry_filter)
        if fetched is None:
            return NOT_FOUND
        items = list(self.source.pipeline.normalize_all(fetched.records, fetched.context))
        # The source already resolved the entry; ids may differ from the filter (URL lookups).
        return items[0] if items else NOT_FOUND

    # ------------------------------------------------------------------ acquisition

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise TransportError("Sync cancelled before request", source_url=self.source.source_url)

    def _acquire(
        self,
        meta: Optional[MetaStore],
        collection_filter: Optional[CollectionFilter],
        cancel_event: Optional[threading.Event],
        mode: SyncMode,
    ) -> _Acquisition:
        source = self.source
        if isinstance(source, Paginatable):
            return self._acquire_paginated(meta, collection_filter, cancel_event, mode)

        if isinstance(source, ConditionallyCacheable):
            cache = ConditionalCache(meta)
            self._check_cancelled(cancel_event)
            result: FetchResult = source.fetch_conditional(cache.build_validation_headers(), collection_filter)
            outcome = cache.interpret_response(result.status_code, result.headers)
            if outcome.not_modified:
                return _Acquisition(not_modified=True, cache=cache)
            return _Acquisition(records=result.records, context=result.context, validators=outcome.validators, cache=cache)

        self._check_cancelled(cancel_event)
        result = source.read_snapshot(collection_filter)
        return _Acquisition(records=result.records, context=result.context)

    def _acquire_paginated(
        self,
        meta: Optional[MetaStore],
        collection_filter: Optional[CollectionFilter],
        cancel_event: Optional[threading.Event],
        mode: SyncMode,
    ) -> _Acquisition:
        source = self.source
        incremental = bool(source.incremental) and meta is not None
        watermark = meta.get(WATERMARK_KEY) if incremental and meta is not None else None

        limit = None
        if collection_filter is not None and collection_filter.limit:
            # Pushing the limit down is only safe when no later filter can drop records.
            if mode is SyncMode.BATCH or not collection_filter.has_content_filters:
                limit = collection_filter.limit

        paginator = WatermarkPaginator(
            lambda cursor: source.fetch_page(cursor, collection_filter),
            watermark_key=source.watermark_key if incremental else None,
            watermark=watermark or None,
            limit=limit,
            max_pages=self.max_pages,
            cancel_event=cancel_event,
            source_url=source.source_url,
        )
        records = list(paginator)
        self.logger.debug(
            "Pagination finished",
            extra={"page": paginator.pages_fetched, "items": len(records), "result": paginator.stop_reason},
        )
        return _Acquisition(records=records, paginator=paginator, watermark_in_effect=watermark or None)

    def _persist_state(self, acquisition: _Acquisition, meta: Optional[MetaStore]) -> Optional[str]:
        if acquisition.cache is not None and acquisition.validators is not None:
            acquisition.cache.persist_validators(acquisition.validators)
        paginator = acquisition.paginator
        if meta is None or paginator is None:
            return None
        if paginator.candidate_watermark:
            meta.set(WATERMARK_KEY, paginator.candidate_watermark)
            return paginator.candidate_watermark
        return meta.get(WATERMARK_KEY)


__all__ = [
    "LookupResult",
    "SyncMode",
    "SyncOrchestrator",
    "SyncResult",
]
