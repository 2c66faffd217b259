"""
Sync service façade coordinating the source catalogue, the execution context
and the sync orchestrator.

The service layer keeps orchestration reusable for both CLI commands and
scheduled automation: it turns catalogue descriptors into source objects,
binds them to their per-source JSON stores and runs batch syncs, live queries
and single-entry lookups.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from ..adapters.api import AirtableClient, AirtableSource, BlueskyClient, BlueskySource, FeedClient, FeedSource, YouTubeClient, YouTubeSource
from ..adapters.files import CsvFileSource
from ..core import ConfigurationError, ErrorRecord, ExecutionContext, LoaderContext, LoaderError, SourceDescriptor, SourceRegistry, SourceStatus, SourceType, log_separator
from ..sync import CollectionFilter, EntryFilter, LookupResult, SyncMode, SyncOrchestrator, SyncResult


@dataclass(slots=True)
class SourceRunReport:
    """Outcome of one source within :meth:`SyncServices.sync_all`."""

    source_id: str
    result: Optional[SyncResult] = None
    error: Optional[ErrorRecord] = None
    skipped: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"source": self.source_id}
        if self.skipped:
            payload["skipped"] = self.skipped
        if self.result is not None:
            payload.update(
                {
                    "items": len(self.result.items),
                    "not_modified": self.result.not_modified,
                    "watermark": self.result.watermark,
                }
            )
        if self.error is not None:
            payload["error"] = self.error.as_dict()
        return payload


def _option(options: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        value = options.get(name)
        if value is not None:
            return value
    return default


def _as_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item) for item in value]


@dataclass(slots=True)
class SyncServices:
    """High-level façade used by CLI commands and automations."""

    registry: SourceRegistry
    context: ExecutionContext
    transport: Optional[httpx.BaseTransport] = None
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = self.context.get_logger(f"content_loaders.services.{self.__class__.__name__}")

    # ------------------------------------------------------------------ catalogue

    def list_enabled_sources(self) -> List[SourceDescriptor]:
        """Return active descriptors enabled in the execution context."""

        return [descriptor for descriptor in self.registry.iter_active() if self.context.is_enabled(descriptor.source_id)]

    def resolve_source(self, source_id: str) -> SourceDescriptor:
        """Fetch a descriptor or raise a descriptive error."""

        descriptor = self.registry.get(source_id)
        if descriptor is None:
            raise ConfigurationError(f"Source '{source_id}' is not registered.")
        if not self.context.is_enabled(source_id):
            raise ConfigurationError(f"Source '{source_id}' is disabled in the current execution context.")
        return descriptor

    # ------------------------------------------------------------------ factory

    def build_source(self, descriptor: SourceDescriptor) -> Any:
        """Instantiate the source object described by ``descriptor``."""

        builders: Dict[SourceType, Callable[[SourceDescriptor], Any]] = {
            SourceType.FEED: self._build_feed,
            SourceType.BLUESKY: self._build_bluesky,
            SourceType.YOUTUBE: self._build_youtube,
            SourceType.AIRTABLE: self._build_airtable,
            SourceType.CSV: self._build_csv,
        }
        return builders[descriptor.source_type](descriptor)

    def _http_kwargs(self) -> Dict[str, Any]:
        http = self.context.secrets.http
        return {"timeout": http.timeout, "retries": http.retries, "transport": self.transport}

    def _build_feed(self, descriptor: SourceDescriptor) -> FeedSource:
        options = descriptor.options
        client = FeedClient(user_agent=self.context.secrets.http.user_agent, **self._http_kwargs())
        return FeedSource(
            str(_option(options, "url", default="")),
            name=descriptor.name,
            legacy=descriptor.legacy,
            client=client,
            logger=self.context.get_logger(f"content_loaders.sources.{descriptor.source_id}"),
        )

    def _build_bluesky(self, descriptor: SourceDescriptor) -> BlueskySource:
        options = descriptor.options
        service = _option(options, "service", default=self.context.secrets.credentials.bluesky_service)
        return BlueskySource(
            _option(options, "identifier", "handle"),
            name=descriptor.name,
            feed_filter=_option(options, "filter", "type"),
            client=BlueskyClient(service=service, **self._http_kwargs()),
            logger=self.context.get_logger(f"content_loaders.sources.{descriptor.source_id}"),
        )

    def _build_youtube(self, descriptor: SourceDescriptor) -> YouTubeSource:
        options = descriptor.options
        api_key = _option(options, "api_key", default=self.context.secrets.credentials.youtube_api_key)
        client = YouTubeClient(api_key, **self._http_kwargs()) if api_key else None
        return YouTubeSource(
            str(_option(options, "mode", "type", default="videos")),
            api_key=api_key,
            video_ids=_as_list(_option(options, "video_ids")),
            channel_id=_option(options, "channel_id"),
            channel_handle=_option(options, "channel_handle", "handle"),
            query=_option(options, "query"),
            playlist_id=_option(options, "playlist_id"),
            max_results=int(_option(options, "max_results", default=25)),
            order=_option(options, "order"),
            region_code=_option(options, "region_code"),
            fetch_full_details=bool(_option(options, "fetch_full_details", default=True)),
            name=descriptor.name,
            client=client,
            logger=self.context.get_logger(f"content_loaders.sources.{descriptor.source_id}"),
        )

    def _build_airtable(self, descriptor: SourceDescriptor) -> AirtableSource:
        options = descriptor.options
        token = _option(options, "token", default=self.context.secrets.credentials.airtable_token)
        client = AirtableClient(token, **self._http_kwargs()) if token else None
        return AirtableSource(
            str(_option(options, "base", default="")),
            str(_option(options, "table", default="")),
            token=token,
            view=_option(options, "view"),
            filter_by_formula=_option(options, "filter_by_formula", "formula"),
            fields=_as_list(_option(options, "fields")),
            max_records=_option(options, "max_records"),
            name=descriptor.name,
            client=client,
            logger=self.context.get_logger(f"content_loaders.sources.{descriptor.source_id}"),
        )

    def _build_csv(self, descriptor: SourceDescriptor) -> CsvFileSource:
        options = descriptor.options
        return CsvFileSource(
            str(_option(options, "file_name", "path", default="")),
            id_field=_option(options, "id_field"),
            transform_header=_option(options, "transform_header", default="camelize"),
            delimiter=str(_option(options, "delimiter", default=",")),
            date_field=_option(options, "date_field"),
            category_field=_option(options, "category_field"),
            author_field=_option(options, "author_field"),
            name=descriptor.name,
            logger=self.context.get_logger(f"content_loaders.sources.{descriptor.source_id}"),
        )

    # ------------------------------------------------------------------ operations

    def plan(self, source_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Describe what a sync would touch without contacting any source."""

        descriptors = [self.resolve_source(source_id) for source_id in source_ids] if source_ids else self.list_enabled_sources()
        return [
            {
                "source": descriptor.source_id,
                "type": descriptor.source_type.value,
                "store": str(self.context.store_path(descriptor.source_id)),
                "note": "Dry-run mode enabled; no requests were made.",
            }
            for descriptor in descriptors
        ]

    def sync_source(
        self,
        source_id: str,
        *,
        collection_filter: Optional[CollectionFilter] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Run a batch sync for ``source_id`` into its JSON store. Errors are raised."""

        descriptor = self.resolve_source(source_id)
        source = self.build_source(descriptor)
        store = self.context.open_store(source_id)
        with store.batch():
            orchestrator = SyncOrchestrator(source, self.context.loader_context(source_id, store, tags=descriptor.tags))
            return orchestrator.sync(SyncMode.BATCH, collection_filter, cancel_event=cancel_event)

    def sync_all(self, *, cancel_event: Optional[threading.Event] = None) -> List[SourceRunReport]:
        """
        Batch-sync every active, enabled source concurrently.

        One failing source does not abort the others; its error is reported in
        the returned :class:`SourceRunReport`.
        """

        reports: Dict[str, SourceRunReport] = {}
        runnable: List[str] = []
        for descriptor in self.registry.list():
            if descriptor.status != SourceStatus.ACTIVE:
                reports[descriptor.source_id] = SourceRunReport(descriptor.source_id, skipped=descriptor.status.value)
            elif not self.context.is_enabled(descriptor.source_id):
                reports[descriptor.source_id] = SourceRunReport(descriptor.source_id, skipped="disabled")
            else:
                runnable.append(descriptor.source_id)

        log_separator(self.logger, title=f"sync {len(runnable)} source(s)")
        workers = max(1, min(self.context.options.max_workers, len(runnable) or 1))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="content-loaders") as pool:
            futures = {pool.submit(self.sync_source, source_id, cancel_event=cancel_event): source_id for source_id in runnable}
            for future in as_completed(futures):
                source_id = futures[future]
                try:
                    reports[source_id] = SourceRunReport(source_id, result=future.result())
                except LoaderError as exc:
                    self.logger.error("Source sync failed", extra={"source": source_id, "error": str(exc)})
                    reports[source_id] = SourceRunReport(source_id, error=exc.to_record())
        log_separator(self.logger, title="sync finished")
        return [reports[descriptor.source_id] for descriptor in self.registry.list()]

    def query_source(self, source_id: str, collection_filter: Optional[CollectionFilter] = None) -> SyncResult:
        """Run a live query; failures come back inside the result."""

        descriptor = self.resolve_source(source_id)
        source = self.build_source(descriptor)
        orchestrator = SyncOrchestrator(source, self._live_context(source_id))
        return orchestrator.sync(SyncMode.LIVE, collection_filter)

    def lookup_entry(self, source_id: str, entry_filter: EntryFilter) -> LookupResult:
        """Look up one entry: the item, ``NOT_FOUND`` or an :class:`ErrorRecord`."""

        descriptor = self.resolve_source(source_id)
        source = self.build_source(descriptor)
        orchestrator = SyncOrchestrator(source, self._live_context(source_id))
        return orchestrator.lookup(entry_filter)

    def _live_context(self, source_id: str) -> LoaderContext:
        return LoaderContext(logger=self.context.get_logger(f"content_loaders.live.{source_id}", extra={"source": source_id}))


__all__ = ["SourceRunReport", "SyncServices"]
