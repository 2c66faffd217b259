"""
Incremental content loaders for syndication feeds, Bluesky, YouTube, Airtable
and local CSV files.

Sources are described in a YAML catalogue and synced through
:class:`content_loaders.sync.SyncOrchestrator`, either in batch mode into a
per-source JSON store or live with in-memory filtering. The
:class:`content_loaders.services.SyncServices` façade is the main
developer-facing surface.
"""

from .services import SourceRunReport, SyncServices
from .sync import NOT_FOUND, CollectionFilter, EntryFilter, SyncMode, SyncOrchestrator, SyncResult

__version__ = "0.1.0"

__all__ = [
    "CollectionFilter",
    "EntryFilter",
    "NOT_FOUND",
    "SourceRunReport",
    "SyncMode",
    "SyncOrchestrator",
    "SyncResult",
    "SyncServices",
    "__version__",
]
