"""
Execution context primitives shared by the CLI, the service layer and loaders.

:class:`LoaderContext` is what a single sync sees: the host entry store, the
optional metadata store and a logger. :class:`ExecutionContext` describes the
surrounding run: which sources are enabled, where per-source stores live and
which secrets are available.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from logging import LoggerAdapter
from pathlib import Path
from typing import Mapping, MutableSet, Optional, Sequence

from ..config import SecretsBundle, load_secrets
from .logging import bind_tags
from .logging import get_logger as _get_logger
from .stores import EntryStore, InMemoryEntryStore, JsonFileStore, MetaStore

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class LoaderContext:
    """
    Collaborators handed to the sync orchestrator.

    Attributes
    ----------
    store:
        Host entry store replaced or extended by batch syncs.
    meta:
        Host metadata store for cache validators and watermarks. ``None``
        disables conditional revalidation and watermarks altogether.
    logger:
        Logger adapter; defaults to one named after the orchestrator.
    """

    store: EntryStore = field(default_factory=InMemoryEntryStore)
    meta: Optional[MetaStore] = None
    logger: Optional[LoggerAdapter] = None


@dataclass(slots=True)
class ExecutionOptions:
    """
    Flags controlling how commands behave at runtime.

    Attributes
    ----------
    dry_run:
        Describe the sources that would be synced without touching the network.
    max_workers:
        Upper bound on sources synced concurrently by ``sync_all``.
    observability_tags:
        Extra tags surfaced in every log record.
    """

    dry_run: bool = False
    max_workers: int = 4
    observability_tags: Sequence[str] = field(default_factory=tuple)


@dataclass(slots=True)
class ExecutionContext:
    """
    Shared execution context across CLI commands.

    Attributes
    ----------
    enabled_sources:
        IDs of sources allowed to run. Empty means every registered source.
    cache_dir:
        Root directory holding one JSON store per source.
    secrets:
        Credentials and HTTP settings loaded from ``.secrets``.
    options:
        Runtime flags.
    """

    enabled_sources: MutableSet[str]
    cache_dir: Path
    secrets: SecretsBundle
    options: ExecutionOptions = field(default_factory=ExecutionOptions)

    @classmethod
    def build_default(
        cls,
        *,
        cache_dir: Optional[Path] = None,
        enabled_sources: Optional[Sequence[str]] = None,
        options: Optional[ExecutionOptions] = None,
        secrets: Optional[SecretsBundle] = None,
    ) -> "ExecutionContext":
        """
        Construct a context using sensible defaults.

        ``cache_dir`` defaults to ``.cache/content-loaders`` under the working
        directory and is created eagerly. Secrets are loaded with
        :func:`load_secrets` when not supplied.
        """

        resolved_cache = cache_dir or Path.cwd() / ".cache" / "content-loaders"
        resolved_cache.mkdir(parents=True, exist_ok=True)
        return cls(
            enabled_sources=set(enabled_sources or []),
            cache_dir=resolved_cache,
            secrets=secrets or load_secrets(strict=False),
            options=options or ExecutionOptions(),
        )

    def is_enabled(self, source_id: str) -> bool:
        if not self.enabled_sources:
            return True
        return source_id in self.enabled_sources

    def enable(self, source_id: str) -> None:
        self.enabled_sources.add(source_id)

    def disable(self, source_id: str) -> None:
        self.enabled_sources.discard(source_id)

    def store_path(self, source_id: str) -> Path:
        safe = _UNSAFE_FILENAME.sub("_", source_id).strip("._") or "source"
        return self.cache_dir / f"{safe}.json"

    def open_store(self, source_id: str) -> JsonFileStore:
        """Open the persisted store for ``source_id``."""

        return JsonFileStore(self.store_path(source_id))

    def loader_context(
        self,
        source_id: str,
        store: Optional[JsonFileStore] = None,
        *,
        tags: Sequence[str] = (),
    ) -> LoaderContext:
        """Build a :class:`LoaderContext` backed by the source's JSON store; ``tags`` are bound to its logger."""

        backing = store or self.open_store(source_id)
        logger = self.get_logger(f"content_loaders.sync.{source_id}", extra={"source": source_id})
        if tags:
            logger = bind_tags(logger, tags)
        return LoaderContext(store=backing.entries, meta=backing.meta, logger=logger)

    def get_logger(self, name: str, *, extra: Optional[Mapping[str, object]] = None) -> LoggerAdapter:
        tags = tuple(self.options.observability_tags)
        return _get_logger(name, tags=tags or None, extra=extra)
