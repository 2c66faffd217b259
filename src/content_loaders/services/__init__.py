"""Service layer reused by the CLI and automations."""

from .sync import SourceRunReport, SyncServices

__all__ = ["SourceRunReport", "SyncServices"]
