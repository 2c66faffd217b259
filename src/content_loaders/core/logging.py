"""
Logging helpers shared by loaders, clients and the sync orchestrator.

Every module obtains its logger through :func:`get_logger`, which returns a
:class:`logging.LoggerAdapter` carrying structured extras such as the source id
or feed URL. :class:`StructuredLogFormatter` renders those extras as trailing
``key=value`` pairs so a sync run can be followed line by line.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from copy import copy
from functools import lru_cache
from logging import Logger, LoggerAdapter
from typing import Any, Iterable, Mapping, MutableMapping, Optional, Sequence

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LEVEL = "INFO"
_ENV_LEVEL = "CONTENT_LOADERS_LOG_LEVEL"
_ENV_COLOR = "CONTENT_LOADERS_LOG_COLOR"
_EXTRA_FOCUS_ORDER: Sequence[str] = (
    "source",
    "mode",
    "phase",
    "status",
    "result",
    "items",
    "skipped",
    "cursor",
    "page",
    "watermark",
    "cache",
    "method",
    "url",
    "status_code",
    "attempt",
    "tags",
)

_LEVEL_STYLES = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[95m",
}
_RESET = "\033[0m"

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    candidate = (level or os.getenv(_ENV_LEVEL) or DEFAULT_LEVEL).upper()
    resolved = logging.getLevelName(candidate)
    return resolved if isinstance(resolved, int) else logging.INFO


def _coerce_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return None


def _supports_color(stream: Any) -> bool:
    preference = os.getenv(_ENV_COLOR)
    if preference:
        resolved = _coerce_bool(preference)
        if resolved is not None:
            return resolved
    return hasattr(stream, "isatty") and bool(stream.isatty())


def _iter_extras(record: logging.LogRecord) -> Iterable[tuple[str, Any]]:
    payload = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS and not key.startswith("_") and value is not None}

    for key in _EXTRA_FOCUS_ORDER:
        if key in payload:
            yield key, payload.pop(key)

    for key in sorted(payload):
        yield key, payload[key]


def _format_extra_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ", ".join(_format_extra_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        try:
            return json.dumps(value, ensure_ascii=False, default=str)
        except TypeError:
            return repr(dict(value))
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that appends structured extras and supports optional colour output."""

    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        working = copy(record)
        if self.use_color:
            style = _LEVEL_STYLES.get(working.levelname.strip().upper())
            if style:
                working.levelname = f"{style}{working.levelname}{_RESET}"
        base = super().format(working)
        extras = " ".join(f"{key}={_format_extra_value(value)}" for key, value in _iter_extras(record))
        if extras:
            return f"{base} | {extras}"
        return base


@lru_cache(maxsize=1)
def _base_logger_configured() -> bool:
    return False


def _build_handler(level: Optional[int | str]) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(_resolve_level(level))
    handler.setFormatter(StructuredLogFormatter(use_color=_supports_color(handler.stream)))
    return handler


def configure_logging(level: Optional[int | str] = None, *, force: bool = False) -> None:
    """
    Install the structured stderr handler on the root logger.

    Parameters
    ----------
    level:
        Optional level override. Falls back to ``CONTENT_LOADERS_LOG_LEVEL`` or ``INFO``.
    force:
        Reinstall the handler even when logging was configured before.
    """

    if not force and _base_logger_configured.cache_info().currsize:
        return
    handler = _build_handler(level)
    logging.basicConfig(level=_resolve_level(level), handlers=[handler], force=force)
    _base_logger_configured.cache_clear()
    _base_logger_configured()


def _merge_extra(
    *,
    tags: Optional[Sequence[str]],
    extra: Optional[Mapping[str, object]],
) -> MutableMapping[str, object]:
    payload: MutableMapping[str, object] = {}
    if tags:
        payload["tags"] = tuple(tags)
    if extra:
        payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


def get_logger(
    name: str,
    *,
    level: Optional[int | str] = None,
    tags: Optional[Sequence[str]] = None,
    extra: Optional[Mapping[str, object]] = None,
) -> LoggerAdapter:
    """
    Return a :class:`logging.LoggerAdapter` bound to ``extra``.

    Parameters
    ----------
    name:
        Logger namespace, typically ``__name__`` or ``module.ClassName``.
    level:
        Optional per-logger level override.
    tags:
        Observability tags attached to every record.
    extra:
        Structured metadata recorded with each log entry (``source``, ``url``...).
    """

    configure_logging(level)
    base: Logger = logging.getLogger(name)
    if level is not None:
        base.setLevel(_resolve_level(level))
    return LoggerAdapter(base, _merge_extra(tags=tags, extra=extra))


def bind_extra(logger: LoggerAdapter, **extra: object) -> LoggerAdapter:
    """Return a child adapter with ``extra`` merged over the parent's extras."""

    current = dict(logger.extra) if isinstance(logger.extra, Mapping) else {}
    current.update({key: value for key, value in extra.items() if value is not None})
    return LoggerAdapter(logger.logger, current)


def bind_tags(logger: LoggerAdapter, tags: Sequence[str]) -> LoggerAdapter:
    """Create a child logger with additional observability tags."""

    current = dict(logger.extra) if isinstance(logger.extra, Mapping) else {}
    current["tags"] = tuple(dict.fromkeys((*current.get("tags", ()), *tags)))
    return LoggerAdapter(logger.logger, current)


def _emit_with_extra(
    logger: LoggerAdapter | Logger,
    level: int,
    message: str,
    payload: Optional[Mapping[str, object]],
) -> None:
    if isinstance(logger, LoggerAdapter):
        merged: MutableMapping[str, object] = {}
        if isinstance(logger.extra, Mapping):
            merged.update({key: value for key, value in logger.extra.items() if value is not None})
        if payload:
            merged.update(payload)
        logger.logger.log(level, message, extra=merged or None)
        return
    logger.log(level, message, extra=dict(payload) if payload else None)


def log_progress(
    logger: LoggerAdapter | Logger,
    message: str,
    *,
    phase: Optional[str] = None,
    status: Optional[str] = None,
    result: Optional[str] = None,
    level: int = logging.INFO,
    extra: Optional[Mapping[str, object]] = None,
) -> None:
    """Emit a sync progress record tagged with ``phase``/``status``/``result``."""

    payload: MutableMapping[str, object] = dict(extra or {})
    if phase:
        payload["phase"] = phase
    if status:
        payload["status"] = status
    if result:
        payload["result"] = result
    _emit_with_extra(logger, level, message, payload or None)


def log_separator(
    logger: LoggerAdapter | Logger,
    *,
    title: Optional[str] = None,
    level: int = logging.INFO,
    char: str = "-",
    width: int = 72,
) -> None:
    """Emit a visual separator between sources in a multi-source run."""

    width = max(16, width)
    body = char * width
    if title:
        padded = f" {title.strip()} "
        if len(padded) < width:
            side = (width - len(padded)) // 2
            body = f"{char * side}{padded}{char * (width - len(padded) - side)}"
        else:
            body = padded
    _emit_with_extra(logger, level, body, {"separator": title or True})
