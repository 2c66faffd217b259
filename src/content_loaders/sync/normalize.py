"""
Canonical normalisation pipeline.

A raw record goes through four steps:

1. identifier selection from a fixed priority list of candidate fields,
2. an optional source-specific ``shape`` function building the canonical mapping,
3. schema validation through a :class:`SchemaValidator`,
4. projection into rendered HTML and, for legacy consumers, a legacy mapping.

Records without any usable identifier are dropped with a warning and records
that fail validation are skipped with a warning, so one bad record never aborts
a whole sync. An empty response body is a hard :class:`ValidationError`
(see :func:`check_body`).
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import LoggerAdapter
from typing import Any, Callable, Generic, Iterable, Iterator, Mapping, Optional, Protocol, Sequence, Type, TypeVar

import pydantic
from pydantic import BaseModel

from ..core.errors import ValidationError
from ..core.logging import get_logger

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_HTML_FIELDS: Sequence[str] = ("content", "summary", "description")
LEGACY_DEPRECATION_MESSAGE = "Using legacy mode. This is deprecated and will be removed in a future version. Please migrate to the new format."

_MISSING = object()


def resolve_path(obj: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted ``path`` against nested mappings and attributes."""

    current = obj
    for part in path.split("."):
        if current is None:
            return default
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        else:
            current = getattr(current, part, _MISSING)
        if current is _MISSING:
            return default
    return current


def check_body(body: Optional[bytes | str], source_url: Optional[str]) -> None:
    """Raise :class:`ValidationError` when a response body is empty."""

    if body is None or not body.strip():
        raise ValidationError("Response body is empty", source_url=source_url)


class SchemaValidator(Protocol):
    """Validate and coerce a raw canonical mapping into a model instance."""

    def validate(self, raw: Mapping[str, Any]) -> BaseModel: ...


class PydanticValidator(Generic[ModelT]):
    """:class:`SchemaValidator` backed by a pydantic model."""

    def __init__(self, model: Type[ModelT]) -> None:
        self.model = model

    def validate(self, raw: Mapping[str, Any]) -> ModelT:
        try:
            return self.model.model_validate(raw)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Record failed {self.model.__name__} validation",
                details=_summarise_pydantic_errors(exc),
                cause=exc,
            ) from exc


def _summarise_pydantic_errors(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class LegacyProjection:
    """
    Pure mapping from a canonical item to the deprecated legacy shape.

    Parameters
    ----------
    renames:
        ``legacy_name -> canonical_field`` pairs copied verbatim.
    transforms:
        ``legacy_name -> callable(item)`` for fields whose legacy form differs.
    context_fields:
        ``legacy_name -> context_key`` pairs read from source-level context
        (for example the feed head).

    Only declared names can appear in the result; ``None`` values are omitted.
    """

    def __init__(
        self,
        renames: Mapping[str, str],
        *,
        transforms: Optional[Mapping[str, Callable[[BaseModel], Any]]] = None,
        context_fields: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.renames = dict(renames)
        self.transforms = dict(transforms or {})
        self.context_fields = dict(context_fields or {})

    @property
    def declared_fields(self) -> frozenset[str]:
        return frozenset(self.renames) | frozenset(self.transforms) | frozenset(self.context_fields)

    def __call__(self, item: BaseModel, context: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        legacy: dict[str, Any] = {}
        for legacy_name, canonical_name in self.renames.items():
            value = getattr(item, canonical_name, None)
            if value is not None:
                legacy[legacy_name] = value
        for legacy_name, transform in self.transforms.items():
            value = transform(item)
            if value is not None:
                legacy[legacy_name] = value
        if context:
            for legacy_name, context_key in self.context_fields.items():
                value = context.get(context_key)
                if value is not None:
                    legacy[legacy_name] = value
        return legacy


@dataclass(slots=True)
class NormalizedItem:
    """Validated canonical item plus its derived projections."""

    id: str
    data: BaseModel
    rendered_html: str = ""
    legacy: Optional[dict[str, Any]] = None

    def as_data(self) -> dict[str, Any]:
        """Mapping persisted to the entry store: the legacy shape when present."""

        if self.legacy is not None:
            return dict(self.legacy)
        return self.data.model_dump(mode="json")


def render_from_fields(item: BaseModel, fields: Sequence[str] = DEFAULT_HTML_FIELDS) -> str:
    """Return the first non-empty text field in ``fields`` order, else ``""``."""

    for name in fields:
        value = getattr(item, name, None)
        if isinstance(value, str) and value.strip():
            return value
    return ""


class NormalizationPipeline:
    """
    Turn raw source records into :class:`NormalizedItem` instances.

    Parameters
    ----------
    id_fields:
        Candidate identifier paths in priority order, evaluated on the raw record.
    validator:
        Schema validator producing the canonical model.
    shape:
        Optional ``(raw, context) -> mapping`` converting the raw record into the
        canonical field layout before validation. Receives the selected id as
        ``context["id"]``.
    render_html:
        Optional custom renderer; defaults to :func:`render_from_fields`.
    legacy:
        Optional :class:`LegacyProjection`; when set every item carries a legacy mapping.
    """

    def __init__(
        self,
        *,
        id_fields: Sequence[str],
        validator: SchemaValidator,
        shape: Optional[Callable[[Any, Mapping[str, Any]], Mapping[str, Any]]] = None,
        render_html: Optional[Callable[[BaseModel], str]] = None,
        legacy: Optional[LegacyProjection] = None,
        html_fields: Sequence[str] = DEFAULT_HTML_FIELDS,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        if not id_fields:
            raise ValueError("At least one identifier field is required")
        self.id_fields = tuple(id_fields)
        self.validator = validator
        self.shape = shape
        self.render_html = render_html
        self.legacy = legacy
        self.html_fields = tuple(html_fields)
        self.logger = logger or get_logger(f"{__name__}.{self.__class__.__name__}")

    def select_identifier(self, raw: Any) -> Optional[str]:
        for path in self.id_fields:
            value = resolve_path(raw, path)
            if value is None:
                continue
            candidate = str(value).strip()
            if candidate:
                return candidate
        return None

    def normalize(self, raw: Any, context: Optional[Mapping[str, Any]] = None) -> Optional[NormalizedItem]:
        """
        Normalise one record.

        Returns ``None`` when the record has no identifier. Raises
        :class:`ValidationError` when the record fails schema validation.
        """

        identifier = self.select_identifier(raw)
        if identifier is None:
            self.logger.warning(
                "Record has no identifier, skipping",
                extra={"candidates": list(self.id_fields)},
            )
            return None

        shape_context = dict(context or {})
        shape_context["id"] = identifier
        mapping = self.shape(raw, shape_context) if self.shape else dict(raw)
        mapping = dict(mapping)
        mapping.setdefault("id", identifier)

        item = self.validator.validate(mapping)
        item_id = str(getattr(item, "id", "") or identifier)
        rendered = self.render_html(item) if self.render_html else render_from_fields(item, self.html_fields)
        legacy = self.legacy(item, context) if self.legacy else None
        return NormalizedItem(id=item_id, data=item, rendered_html=rendered, legacy=legacy)

    def normalize_all(self, records: Iterable[Any], context: Optional[Mapping[str, Any]] = None) -> Iterator[NormalizedItem]:
        """Normalise ``records`` lazily, skipping unidentifiable or invalid ones."""

        for index, raw in enumerate(records):
            try:
                item = self.normalize(raw, context)
            except ValidationError as exc:
                self.logger.warning(
                    "Record failed validation, skipping",
                    extra={"record": index, "error": exc.details or exc.message},
                )
                continue
            if item is not None:
                yield item


__all__ = [
    "DEFAULT_HTML_FIELDS",
    "LEGACY_DEPRECATION_MESSAGE",
    "LegacyProjection",
    "NormalizationPipeline",
    "NormalizedItem",
    "PydanticValidator",
    "SchemaValidator",
    "check_body",
    "render_from_fields",
    "resolve_path",
]
