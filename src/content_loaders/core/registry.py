"""
Source catalogue declarations and helpers.

Each catalogue entry is a :class:`SourceDescriptor`: which loader type to
build, the options passed to it (feed URL, channel id, table name...) and
whether the legacy output shape is requested. Descriptors are read-only once
loaded; the catalogue itself lives in a YAML document so operators can add
sources without touching code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence

import yaml


class RegistryLoadError(RuntimeError):
    """Raised when a catalogue YAML file cannot be parsed or validated."""


class SourceType(str, Enum):
    """Loader implementations available to the catalogue."""

    FEED = "feed"
    BLUESKY = "bluesky"
    YOUTUBE = "youtube"
    AIRTABLE = "airtable"
    CSV = "csv"


class SourceStatus(str, Enum):
    """Lifecycle state for individual sources."""

    ACTIVE = "active"
    PAUSED = "paused"


@dataclass(slots=True, frozen=True)
class SourceDescriptor:
    """
    Immutable description of one external source instance.

    Parameters
    ----------
    source_id:
        Unique identifier; also names the per-source store file.
    source_type:
        Loader implementation to instantiate.
    name:
        Human-friendly display name.
    options:
        Loader-specific parameters (``url``, ``identifier``, ``channel_id``...).
        Credentials are better left to the secrets file.
    legacy:
        Emit the deprecated legacy item shape where the loader supports it.
    status:
        ``paused`` sources are skipped by ``sync_all``.
    tags:
        Keywords for quick filtering.
    """

    source_id: str
    source_type: SourceType
    name: str
    options: Mapping[str, Any] = field(default_factory=dict)
    legacy: bool = False
    status: SourceStatus = SourceStatus.ACTIVE
    tags: Sequence[str] = field(default_factory=tuple)
    description: str = ""

    def validate(self) -> None:
        if not self.source_id or not all(ch.isalnum() or ch in "_-" for ch in self.source_id):
            raise RegistryLoadError(f"Source '{self.source_id}' must use letters, digits, '-' or '_' only.")
        if not isinstance(self.options, Mapping):
            raise RegistryLoadError(f"Source '{self.source_id}' options must be a mapping.")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.source_id,
            "type": self.source_type.value,
            "name": self.name,
            "description": self.description,
            "options": dict(self.options),
            "legacy": self.legacy,
            "status": self.status.value,
            "tags": list(self.tags),
        }

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=2, default=str)


class SourceRegistry:
    """In-memory catalogue of :class:`SourceDescriptor` entries."""

    def __init__(self) -> None:
        self._entries: MutableMapping[str, SourceDescriptor] = {}

    def register(self, descriptor: SourceDescriptor) -> None:
        descriptor.validate()
        if descriptor.source_id in self._entries:
            raise RegistryLoadError(f"Source '{descriptor.source_id}' is declared more than once.")
        self._entries[descriptor.source_id] = descriptor

    def get(self, source_id: str) -> Optional[SourceDescriptor]:
        return self._entries.get(source_id)

    def require(self, source_id: str) -> SourceDescriptor:
        descriptor = self.get(source_id)
        if descriptor is None:
            raise KeyError(f"Source '{source_id}' is not registered.")
        return descriptor

    def list(self, *, source_type: Optional[SourceType] = None) -> List[SourceDescriptor]:
        items = self._entries.values()
        if source_type:
            return [item for item in items if item.source_type == source_type]
        return list(items)

    def iter_active(self) -> Iterator[SourceDescriptor]:
        for descriptor in self._entries.values():
            if descriptor.status == SourceStatus.ACTIVE:
                yield descriptor

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "SourceRegistry":
        """
        Load descriptors from a YAML document.

        The document is either a list of source mappings or a mapping with a
        ``sources`` list.
        """

        location = Path(path)
        if not location.exists():
            raise RegistryLoadError(f"Registry file '{location}' does not exist.")

        try:
            with location.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise RegistryLoadError(f"Failed to parse '{location}': {exc}") from exc

        if isinstance(payload, Mapping):
            payload = payload.get("sources")
        if not isinstance(payload, list):
            raise RegistryLoadError(f"Registry file '{location}' must contain a list of sources.")

        registry = cls()
        for entry in payload:
            registry.register(cls._descriptor_from_payload(entry, origin=location))
        return registry

    @staticmethod
    def _descriptor_from_payload(entry: object, *, origin: Path) -> SourceDescriptor:
        if not isinstance(entry, Mapping):
            raise RegistryLoadError(f"Invalid entry in '{origin}': expected mapping, got {type(entry)!r}")

        try:
            options = entry.get("options") or {}
            if not isinstance(options, Mapping):
                raise ValueError(f"options of '{entry['id']}' must be a mapping")
            return SourceDescriptor(
                source_id=str(entry["id"]),
                source_type=SourceType(str(entry["type"])),
                name=str(entry.get("name", entry["id"])),
                options=MappingProxyType(dict(options)),
                legacy=bool(entry.get("legacy", False)),
                status=SourceStatus(str(entry.get("status", SourceStatus.ACTIVE.value))),
                tags=tuple(_ensure_list(entry.get("tags"))),
                description=str(entry.get("description", "")),
            )
        except KeyError as exc:
            raise RegistryLoadError(f"Missing required key {exc!s} in '{origin}'.") from exc
        except ValueError as exc:
            raise RegistryLoadError(f"Invalid field in '{origin}': {exc}") from exc


def _ensure_list(value: object | None) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]
