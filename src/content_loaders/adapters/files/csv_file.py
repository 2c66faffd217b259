"""
Local CSV file source.

The whole file is read on every sync. Header cells become field names
(camelized by default), cell values are typed dynamically (booleans, numbers,
empty cells as ``None``) and the identifier column defaults to the first one.
Rows without an identifier are skipped with a warning.
"""

from __future__ import annotations

import csv
import re
from logging import LoggerAdapter
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from ...core.errors import ConfigurationError, ValidationError
from ...core.logging import bind_extra, get_logger
from ...schemas.records import CsvRow
from ...sync.filters import CollectionFilter, FilterFields
from ...sync.normalize import NormalizationPipeline, PydanticValidator
from ..base import FetchResult

HeaderTransform = Callable[[str, int], str]

_INTEGER = re.compile(r"^[-+]?\d+$")
_FLOAT = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?$")
_WORD_SPLIT = re.compile(r"[-_\s]+")


def camelize(header: str, index: int = 0) -> str:
    """``"Release Date"`` -> ``"releaseDate"``; ``"first-name"`` -> ``"firstName"``."""

    words = [word for word in _WORD_SPLIT.split(header.strip()) if word]
    if not words:
        return header
    head, *rest = words
    return head[:1].lower() + head[1:] + "".join(word[:1].upper() + word[1:] for word in rest)


def coerce_cell(value: Optional[str]) -> Any:
    """Dynamic typing for CSV cells."""

    if value is None or value == "":
        return None
    if value in ("true", "TRUE", "True"):
        return True
    if value in ("false", "FALSE", "False"):
        return False
    if _INTEGER.match(value):
        return int(value)
    if _FLOAT.match(value):
        return float(value)
    return value


def _resolve_transform(transform: Union[str, bool, HeaderTransform, None]) -> Optional[HeaderTransform]:
    if transform is None or transform is True or transform == "camelize":
        return camelize
    if transform is False or transform == "none":
        return None
    if callable(transform):
        return transform
    raise ConfigurationError(f"Unsupported header transform {transform!r}; use 'camelize', 'none' or a callable")


class CsvFileSource:
    """Snapshot source reading a local CSV file."""

    def __init__(
        self,
        file_name: Union[str, Path],
        *,
        id_field: Optional[str] = None,
        transform_header: Union[str, bool, HeaderTransform, None] = "camelize",
        delimiter: str = ",",
        encoding: str = "utf-8",
        base_dir: Optional[Path] = None,
        date_field: Optional[str] = None,
        text_fields: Sequence[str] = ("title", "description", "name"),
        category_field: Optional[str] = None,
        author_field: Optional[str] = None,
        url_field: Optional[str] = "url",
        name: Optional[str] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        if not file_name:
            raise ConfigurationError("CSV sources require a 'file_name'")
        if len(delimiter) != 1:
            raise ConfigurationError(f"CSV delimiter must be a single character, got {delimiter!r}")
        path = Path(file_name).expanduser()
        self.path = path if path.is_absolute() else (base_dir or Path.cwd()) / path
        self.id_field = id_field
        self.transform_header = _resolve_transform(transform_header)
        self.delimiter = delimiter
        self.encoding = encoding
        self.name = name or self.path.stem
        self.logger = bind_extra(logger or get_logger(f"{__name__}.{self.__class__.__name__}"), source=self.name)
        self.pipeline = NormalizationPipeline(
            id_fields=("id",),
            validator=PydanticValidator(CsvRow),
            shape=lambda raw, context: {**raw["row"], "id": context["id"]},
            render_html=lambda row: "",
            logger=self.logger,
        )
        self.filter_fields = FilterFields(
            date=date_field,
            categories=(category_field,) if category_field else (),
            authors=(author_field,) if author_field else (),
            text=tuple(text_fields),
            url=url_field,
        )

    @property
    def source_url(self) -> str:
        return str(self.path)

    def _headers(self, raw_headers: Sequence[str]) -> List[str]:
        if self.transform_header is None:
            return list(raw_headers)
        return [self.transform_header(header, index) for index, header in enumerate(raw_headers)]

    def read_rows(self) -> List[Dict[str, Any]]:
        """Parse the file into typed row mappings keyed by (transformed) header."""

        if not self.path.is_file():
            raise ValidationError(f"File not found: {self.path.name}", source_url=str(self.path))
        try:
            with self.path.open("r", encoding=self.encoding, newline="") as handle:
                reader = csv.reader(handle, delimiter=self.delimiter)
                raw_headers = next(reader, None)
                if not raw_headers:
                    return []
                headers = self._headers(raw_headers)
                rows = []
                for cells in reader:
                    if not any(cell.strip() for cell in cells):
                        continue
                    rows.append({header: coerce_cell(cells[index] if index < len(cells) else None) for index, header in enumerate(headers)})
                return rows
        except (csv.Error, UnicodeDecodeError) as exc:
            raise ValidationError("Error reading CSV data", source_url=str(self.path), cause=exc) from exc

    def read_snapshot(self, collection_filter: Optional[CollectionFilter]) -> FetchResult:
        rows = self.read_rows()
        id_field = self.id_field
        if id_field is None and rows:
            id_field = next(iter(rows[0]))
            self.logger.info("No ID field specified, using first column", extra={"field": id_field})

        records: List[Mapping[str, Any]] = []
        for number, row in enumerate(rows, start=1):
            value = row.get(id_field) if id_field else None
            if value is None or value == "":
                self.logger.warning("No ID found in row, skipping", extra={"field": id_field, "row": number})
                continue
            records.append({"id": str(value), "row": row})
        self.logger.info("Loaded CSV entries", extra={"items": len(records), "url": str(self.path)})
        return FetchResult(records=records, context={"file": str(self.path)})


__all__ = ["CsvFileSource", "camelize", "coerce_cell"]
