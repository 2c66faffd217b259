"""
Source adapters.

:mod:`.base` defines the capability protocols; concrete sources live in
:mod:`.api` (HTTP services) and :mod:`.files` (local files).
"""

from .base import ConditionallyCacheable, EntryLookup, FetchResult, Normalizable, Paginatable, Snapshot

__all__ = [
    "ConditionallyCacheable",
    "EntryLookup",
    "FetchResult",
    "Normalizable",
    "Paginatable",
    "Snapshot",
]
