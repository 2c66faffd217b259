"""
Conditional HTTP revalidation backed by the host metadata store.

Validators from the previous successful fetch are replayed as
``If-None-Match`` (preferred) or ``If-Modified-Since``. A ``304`` response
short-circuits the sync. Fresh validators are written only once the caller
reports that the whole sync completed.

Without a metadata store the cache is disabled: no headers are added and a
``304`` is never treated as "not modified".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from ..core.stores import MetaStore

ETAG_KEY = "etag"
LAST_MODIFIED_KEY = "last-modified"
NOT_MODIFIED = 304


@dataclass(slots=True, frozen=True)
class CacheValidators:
    """Pair of HTTP cache validators. ETag wins when both are present."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str] | httpx.Headers) -> "CacheValidators":
        normalised = headers if isinstance(headers, httpx.Headers) else httpx.Headers(dict(headers))
        return cls(etag=normalised.get("etag") or None, last_modified=normalised.get("last-modified") or None)

    @classmethod
    def load(cls, meta: MetaStore) -> "CacheValidators":
        return cls(etag=meta.get(ETAG_KEY) or None, last_modified=meta.get(LAST_MODIFIED_KEY) or None)

    @property
    def empty(self) -> bool:
        return not self.etag and not self.last_modified


@dataclass(slots=True, frozen=True)
class RevalidationOutcome:
    not_modified: bool
    validators: CacheValidators


class ConditionalCache:
    """Build request validators and persist response validators for one source."""

    def __init__(self, meta: Optional[MetaStore]) -> None:
        self.meta = meta

    @property
    def enabled(self) -> bool:
        return self.meta is not None

    def stored_validators(self) -> CacheValidators:
        if self.meta is None:
            return CacheValidators()
        return CacheValidators.load(self.meta)

    def build_validation_headers(self, base_headers: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        headers = dict(base_headers or {})
        if self.meta is None:
            return headers
        stored = self.stored_validators()
        if stored.etag:
            headers["If-None-Match"] = stored.etag
        elif stored.last_modified:
            headers["If-Modified-Since"] = stored.last_modified
        return headers

    def interpret_response(self, status_code: int, headers: Mapping[str, str] | httpx.Headers) -> RevalidationOutcome:
        not_modified = self.enabled and status_code == NOT_MODIFIED
        return RevalidationOutcome(not_modified=not_modified, validators=CacheValidators.from_headers(headers))

    def persist_validators(self, source: Mapping[str, str] | httpx.Headers | CacheValidators) -> None:
        if self.meta is None:
            return
        validators = source if isinstance(source, CacheValidators) else CacheValidators.from_headers(source)
        self.meta.delete(ETAG_KEY)
        self.meta.delete(LAST_MODIFIED_KEY)
        if validators.etag:
            self.meta.set(ETAG_KEY, validators.etag)
        elif validators.last_modified:
            self.meta.set(LAST_MODIFIED_KEY, validators.last_modified)


__all__ = [
    "CacheValidators",
    "ConditionalCache",
    "ETAG_KEY",
    "LAST_MODIFIED_KEY",
    "NOT_MODIFIED",
    "RevalidationOutcome",
]
