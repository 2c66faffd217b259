"""
Host store interfaces consumed by the sync core.

The orchestrator only talks to the two protocols below. ``InMemory*`` classes
back tests and one-off live queries; :class:`JsonFileStore` persists both the
entries and the metadata of a single source into one JSON document so the CLI
can run incremental syncs across invocations.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional, Protocol, runtime_checkable


@dataclass(slots=True)
class StoredEntry:
    """Single entry held by an :class:`EntryStore`."""

    id: str
    data: Mapping[str, Any]
    rendered_html: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "data": dict(self.data)}
        if self.rendered_html is not None:
            payload["rendered"] = {"html": self.rendered_html}
        return payload


@runtime_checkable
class EntryStore(Protocol):
    """Persisted collection of normalised entries, keyed by entry id."""

    def clear(self) -> None: ...

    def set(self, id: str, data: Mapping[str, Any], rendered_html: Optional[str] = None) -> None: ...

    def get(self, id: str) -> Optional[StoredEntry]: ...

    def has(self, id: str) -> bool: ...

    def keys(self) -> Iterator[str]: ...


@runtime_checkable
class MetaStore(Protocol):
    """Small string-keyed store for cache validators and watermarks."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryEntryStore:
    """Dictionary-backed :class:`EntryStore`."""

    def __init__(self) -> None:
        self._entries: Dict[str, StoredEntry] = {}

    def clear(self) -> None:
        self._entries.clear()

    def set(self, id: str, data: Mapping[str, Any], rendered_html: Optional[str] = None) -> None:
        self._entries[id] = StoredEntry(id=id, data=data, rendered_html=rendered_html)

    def get(self, id: str) -> Optional[StoredEntry]:
        return self._entries.get(id)

    def has(self, id: str) -> bool:
        return id in self._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    def values(self) -> list[StoredEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class InMemoryMetaStore:
    """Dictionary-backed :class:`MetaStore`."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def as_dict(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """
    File-backed pair of entry and metadata stores for one source.

    Parameters
    ----------
    path:
        Location of the JSON document. Parent directories are created on first write.

    Every mutation rewrites the document through a temporary file followed by
    :func:`os.replace`, so readers never observe a half-written file. Wrap bulk
    writes in :meth:`batch` to rewrite the document once.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._entries: MutableMapping[str, StoredEntry] = {}
        self._meta: MutableMapping[str, str] = {}
        self._depth = 0
        self._dirty = False
        self._load()
        self.entries = _JsonEntryView(self)
        self.meta = _JsonMetaView(self)

    def _load(self) -> None:
        if not self.path.is_file():
            return
        with self.path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        for raw in payload.get("entries", []):
            rendered = raw.get("rendered") or {}
            self._entries[raw["id"]] = StoredEntry(id=raw["id"], data=raw.get("data") or {}, rendered_html=rendered.get("html"))
        meta = payload.get("meta") or {}
        self._meta.update({str(key): str(value) for key, value in meta.items()})

    @contextmanager
    def batch(self) -> Iterator["JsonFileStore"]:
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0 and self._dirty:
                self.flush()

    def _touch(self) -> None:
        self._dirty = True
        if self._depth == 0:
            self.flush()

    def flush(self) -> None:
        self._dirty = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "entries": [entry.as_dict() for entry in self._entries.values()],
            "meta": dict(self._meta),
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class _JsonEntryView:
    def __init__(self, owner: JsonFileStore) -> None:
        self._owner = owner

    def clear(self) -> None:
        self._owner._entries.clear()
        self._owner._touch()

    def set(self, id: str, data: Mapping[str, Any], rendered_html: Optional[str] = None) -> None:
        self._owner._entries[id] = StoredEntry(id=id, data=data, rendered_html=rendered_html)
        self._owner._touch()

    def get(self, id: str) -> Optional[StoredEntry]:
        return self._owner._entries.get(id)

    def has(self, id: str) -> bool:
        return id in self._owner._entries

    def keys(self) -> Iterator[str]:
        return iter(list(self._owner._entries))

    def values(self) -> list[StoredEntry]:
        return list(self._owner._entries.values())

    def __len__(self) -> int:
        return len(self._owner._entries)


class _JsonMetaView:
    def __init__(self, owner: JsonFileStore) -> None:
        self._owner = owner

    def get(self, key: str) -> Optional[str]:
        return self._owner._meta.get(key)

    def set(self, key: str, value: str) -> None:
        self._owner._meta[key] = value
        self._owner._touch()

    def delete(self, key: str) -> None:
        if self._owner._meta.pop(key, None) is not None:
            self._owner._touch()


__all__ = [
    "EntryStore",
    "InMemoryEntryStore",
    "InMemoryMetaStore",
    "JsonFileStore",
    "MetaStore",
    "StoredEntry",
]
