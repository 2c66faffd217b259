"""
Capability protocols implemented by concrete sources.

A source is a small object that composes capabilities instead of inheriting
orchestration logic. Every source is :class:`Normalizable`; on top of that it
exposes exactly one acquisition capability:

* :class:`ConditionallyCacheable` for single-document HTTP resources revalidated
  with ETag/Last-Modified (feeds, YouTube queries),
* :class:`Paginatable` for cursor-paginated APIs (Bluesky, Airtable),
* :class:`Snapshot` for local files read in one go (CSV).

:class:`EntryLookup` is optional and lets a source answer single-entry lookups
without fetching the whole collection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, Sequence, runtime_checkable

import httpx

if TYPE_CHECKING:
    from ..sync.filters import CollectionFilter, EntryFilter, FilterFields
    from ..sync.normalize import NormalizationPipeline
    from ..sync.pagination import Page


@dataclass(slots=True)
class FetchResult:
    """
    Outcome of one acquisition request.

    Attributes
    ----------
    status_code:
        HTTP status (``200`` for local reads, ``304`` when not modified).
    records:
        Raw records in source delivery order. Empty on ``304``.
    headers:
        Response headers, used to persist cache validators.
    context:
        Source-level metadata handed to the normalisation pipeline (feed head...).
    """

    status_code: int = 200
    records: Sequence[Any] = field(default_factory=tuple)
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    context: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class Normalizable(Protocol):
    """Identity and normalisation rules shared by every source."""

    name: str
    pipeline: "NormalizationPipeline"
    filter_fields: "FilterFields"

    @property
    def source_url(self) -> str:
        """URL or identifier used in logs and error records."""


@runtime_checkable
class ConditionallyCacheable(Protocol):
    """Single request revalidated with cache validators."""

    def fetch_conditional(self, headers: Mapping[str, str], collection_filter: Optional["CollectionFilter"]) -> FetchResult:
        """Issue the request with ``headers``; return status ``304`` untouched when not modified."""


@runtime_checkable
class Paginatable(Protocol):
    """Cursor-paginated acquisition."""

    incremental: bool
    newest_first: bool

    def fetch_page(self, cursor: Optional[str], collection_filter: Optional["CollectionFilter"]) -> "Page":
        """Fetch the page addressed by ``cursor`` (``None`` for the first page)."""

    def watermark_key(self, record: Any) -> Optional[str]:
        """Identifier compared against the stored watermark."""


@runtime_checkable
class Snapshot(Protocol):
    """Local resource read completely on every sync."""

    def read_snapshot(self, collection_filter: Optional["CollectionFilter"]) -> FetchResult:
        """Return every record currently held by the resource."""


@runtime_checkable
class EntryLookup(Protocol):
    """Direct single-entry retrieval."""

    def fetch_entry(self, entry_filter: "EntryFilter") -> Optional[FetchResult]:
        """Return a result holding the matching raw record, or ``None`` when absent."""


__all__ = [
    "ConditionallyCacheable",
    "EntryLookup",
    "FetchResult",
    "Normalizable",
    "Paginatable",
    "Snapshot",
]
