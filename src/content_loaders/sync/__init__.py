"""
Source-agnostic sync engine: revalidation, pagination, normalisation,
filtering and the orchestrator tying them together.
"""

from .filters import NOT_FOUND, CollectionFilter, EntryFilter, FilterFields, NotFound, filter_collection, find_entry
from .normalize import (
    LEGACY_DEPRECATION_MESSAGE,
    LegacyProjection,
    NormalizationPipeline,
    NormalizedItem,
    PydanticValidator,
    check_body,
    render_from_fields,
)
from .orchestrator import LookupResult, SyncMode, SyncOrchestrator, SyncResult
from .pagination import WATERMARK_KEY, Page, WatermarkPaginator, paginate
from .revalidation import ETAG_KEY, LAST_MODIFIED_KEY, CacheValidators, ConditionalCache, RevalidationOutcome

__all__ = [
    "CacheValidators",
    "CollectionFilter",
    "ConditionalCache",
    "ETAG_KEY",
    "EntryFilter",
    "FilterFields",
    "LAST_MODIFIED_KEY",
    "LEGACY_DEPRECATION_MESSAGE",
    "LegacyProjection",
    "LookupResult",
    "NOT_FOUND",
    "NormalizationPipeline",
    "NormalizedItem",
    "NotFound",
    "Page",
    "PydanticValidator",
    "RevalidationOutcome",
    "SyncMode",
    "SyncOrchestrator",
    "SyncResult",
    "WATERMARK_KEY",
    "WatermarkPaginator",
    "check_body",
    "filter_collection",
    "find_entry",
    "paginate",
    "render_from_fields",
]
