"""
Core infrastructure shared by loaders: errors, host stores, catalogue,
execution context and logging.
"""

from .context import ExecutionContext, ExecutionOptions, LoaderContext
from .errors import ConfigurationError, ErrorRecord, HttpStatusError, LoaderError, TransportError, ValidationError
from .logging import bind_extra, bind_tags, configure_logging, get_logger, log_progress, log_separator
from .registry import RegistryLoadError, SourceDescriptor, SourceRegistry, SourceStatus, SourceType
from .stores import EntryStore, InMemoryEntryStore, InMemoryMetaStore, JsonFileStore, MetaStore, StoredEntry

__all__ = [
    "ConfigurationError",
    "EntryStore",
    "ErrorRecord",
    "ExecutionContext",
    "ExecutionOptions",
    "HttpStatusError",
    "InMemoryEntryStore",
    "InMemoryMetaStore",
    "JsonFileStore",
    "LoaderContext",
    "LoaderError",
    "MetaStore",
    "RegistryLoadError",
    "SourceDescriptor",
    "SourceRegistry",
    "SourceStatus",
    "SourceType",
    "StoredEntry",
    "TransportError",
    "ValidationError",
    "bind_extra",
    "bind_tags",
    "configure_logging",
    "get_logger",
    "log_progress",
    "log_separator",
]
