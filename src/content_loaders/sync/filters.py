"""
In-memory query engine for the live consumption path.

Filters compose by conjunction and run in a fixed order: date range, category,
author, free-text search, then the result limit. An item missing a field that
an active filter needs does not match that filter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from ..core.errors import ValidationError
from .normalize import NormalizedItem, resolve_path


@dataclass(slots=True)
class CollectionFilter:
    """
    Optional predicate bundle for collection queries. ``None`` means "no constraint".

    Attributes
    ----------
    limit:
        Maximum number of results, applied after every other filter.
    since / until:
        Inclusive bounds on the item timestamp.
    category:
        Case-insensitive substring matched against category labels/terms.
    author:
        Case-insensitive substring matched against author names/emails/handles.
    search:
        Case-insensitive substring matched against title and description text.
    options:
        Source-specific refinements such as ``identifier``, ``channel_id``,
        ``order`` or ``type``.
    """

    limit: Optional[int] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    category: Optional[str] = None
    author: Optional[str] = None
    search: Optional[str] = None
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_content_filters(self) -> bool:
        return any(value is not None for value in (self.since, self.until, self.category, self.author, self.search))

    def option(self, key: str, default: Any = None) -> Any:
        value = self.options.get(key)
        return default if value is None else value


@dataclass(slots=True)
class EntryFilter:
    """Single-entry lookup by identifier and/or URL."""

    id: Optional[str] = None
    url: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.id and not self.url


@dataclass(slots=True, frozen=True)
class FilterFields:
    """
    Names of the canonical-model attributes each filter reads.

    Paths are dotted. A ``[]`` segment fans out over a list, so
    ``categories[].term`` reads the ``term`` of every category.
    """

    date: Optional[str] = "published"
    categories: Sequence[str] = ("categories",)
    authors: Sequence[str] = ("authors",)
    text: Sequence[str] = ("title", "description")
    url: Optional[str] = "url"


class _NotFound:
    """Sentinel returned by lookups that matched nothing."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()
NotFound = _NotFound

FilterTarget = Union[NormalizedItem, BaseModel, Mapping[str, Any]]


def _payload(item: FilterTarget) -> Any:
    return item.data if isinstance(item, NormalizedItem) else item


def _as_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _strings(value: Any) -> Iterator[str]:
    """Yield every string leaf under ``value`` (lists, mappings and models included)."""

    if value is None:
        return
    if isinstance(value, str):
        yield value
    elif isinstance(value, BaseModel):
        yield from _strings(value.model_dump())
    elif isinstance(value, Mapping):
        for nested in value.values():
            yield from _strings(nested)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for nested in value:
            yield from _strings(nested)


def _resolve_leaves(payload: Any, path: str) -> Iterator[Any]:
    head, marker, tail = path.partition("[].")
    if not marker:
        yield resolve_path(payload, path)
        return
    collection = resolve_path(payload, head)
    if not isinstance(collection, (list, tuple)):
        return
    for element in collection:
        yield from _resolve_leaves(element, tail)


def _contains(payload: Any, paths: Sequence[str], needle: str) -> bool:
    lowered = needle.lower()
    for path in paths:
        for leaf in _resolve_leaves(payload, path):
            if any(lowered in text.lower() for text in _strings(leaf)):
                return True
    return False


def _within_dates(payload: Any, fields: FilterFields, since: Optional[datetime], until: Optional[datetime]) -> bool:
    if fields.date is None:
        return False
    stamp = _as_utc(resolve_path(payload, fields.date))
    if stamp is None:
        return False
    lower = _as_utc(since)
    upper = _as_utc(until)
    if lower is not None and stamp < lower:
        return False
    if upper is not None and stamp > upper:
        return False
    return True


def filter_collection(
    items: Iterable[FilterTarget],
    collection_filter: Optional[CollectionFilter],
    fields: FilterFields = FilterFields(),
) -> List[Any]:
    """
    Apply ``collection_filter`` to ``items`` preserving their order.

    Date bounds are inclusive on both ends; naive datetimes are read as UTC.
    """

    selected = list(items)
    if collection_filter is None:
        return selected

    if collection_filter.since is not None or collection_filter.until is not None:
        selected = [item for item in selected if _within_dates(_payload(item), fields, collection_filter.since, collection_filter.until)]
    if collection_filter.category:
        selected = [item for item in selected if _contains(_payload(item), fields.categories, collection_filter.category)]
    if collection_filter.author:
        selected = [item for item in selected if _contains(_payload(item), fields.authors, collection_filter.author)]
    if collection_filter.search:
        selected = [item for item in selected if _contains(_payload(item), fields.text, collection_filter.search)]
    if collection_filter.limit is not None and collection_filter.limit > 0:
        selected = selected[: collection_filter.limit]
    return selected


def _item_id(item: FilterTarget) -> Optional[str]:
    if isinstance(item, NormalizedItem):
        return item.id
    value = resolve_path(item, "id")
    return str(value) if value is not None else None


def find_entry(
    items: Iterable[FilterTarget],
    entry_filter: EntryFilter,
    fields: FilterFields = FilterFields(),
) -> Any:
    """
    Return the item matching ``entry_filter`` or :data:`NOT_FOUND`.

    The identifier is matched first across every item; only when that fails is
    the URL compared (``entry_filter.url``, else the id itself, which covers
    sources whose ids are permalinks). An empty filter is a :class:`ValidationError`.
    """

    if entry_filter.empty:
        raise ValidationError("Entry lookup requires an 'id' or 'url' filter")

    candidates = list(items)
    if entry_filter.id:
        for item in candidates:
            if _item_id(item) == entry_filter.id:
                return item

    target_url = entry_filter.url or entry_filter.id
    if target_url and fields.url:
        for item in candidates:
            if resolve_path(_payload(item), fields.url) == target_url:
                return item
    return NOT_FOUND


__all__ = [
    "CollectionFilter",
    "EntryFilter",
    "FilterFields",
    "NOT_FOUND",
    "NotFound",
    "filter_collection",
    "find_entry",
]
