"""
Error taxonomy shared by every loader.

The set of error kinds is closed: transport failures, unexpected HTTP status
codes, validation failures and configuration mistakes. Each error carries the
URL or identifier of the offending source and, when available, the upstream
exception as ``cause``.

Live queries convert errors into :class:`ErrorRecord` values via
:meth:`LoaderError.to_record`; batch synchronisation raises them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Optional, Sequence


@dataclass(slots=True, frozen=True)
class ErrorRecord:
    """
    Plain-data rendition of a :class:`LoaderError`.

    Attributes
    ----------
    kind:
        One of ``transport``, ``http-status``, ``validation`` or ``configuration``.
    source_url:
        URL or identifier of the source that failed.
    message:
        Human-readable summary without the URL decoration.
    cause:
        String form of the upstream exception, if any.
    details:
        Kind-specific fields such as ``status_code`` or ``sub_kind``.
    """

    kind: str
    source_url: Optional[str]
    message: str
    cause: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind,
            "source_url": self.source_url,
            "message": self.message,
        }
        if self.cause:
            payload["cause"] = self.cause
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class LoaderError(RuntimeError):
    """Base class for every error raised by the sync core and its sources."""

    kind: ClassVar[str] = "loader"

    def __init__(
        self,
        message: str,
        *,
        source_url: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.source_url = source_url
        self.cause = cause
        super().__init__(self._compose())
        if cause is not None:
            self.__cause__ = cause

    def _compose(self) -> str:
        text = self.message
        if self.source_url:
            text = f"{text} (URL: {self.source_url})"
        if self.cause is not None:
            text = f"{text} - {self.cause}"
        return text

    def _details(self) -> dict[str, Any]:
        return {}

    def to_record(self) -> ErrorRecord:
        return ErrorRecord(
            kind=self.kind,
            source_url=self.source_url,
            message=self.message,
            cause=str(self.cause) if self.cause is not None else None,
            details=self._details(),
        )


class TransportError(LoaderError):
    """Network, DNS or timeout failure before any HTTP response, including cancellation."""

    kind = "transport"


class HttpStatusError(LoaderError):
    """Upstream answered with a status other than 2xx or an expected 304."""

    kind = "http-status"

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        source_url: Optional[str] = None,
        api_error: Optional[str] = None,
        reasons: Sequence[str] = (),
        cause: Optional[BaseException] = None,
    ) -> None:
        self.status_code = status_code
        self.api_error = api_error
        self.reasons = tuple(reasons)
        super().__init__(message, source_url=source_url, cause=cause)

    @property
    def sub_kind(self) -> str:
        if self.status_code == 404:
            return "not-found"
        if 400 <= self.status_code < 500:
            return "client-error"
        return "server-error"

    @property
    def is_not_found(self) -> bool:
        return self.sub_kind == "not-found" or "videoNotFound" in self.reasons

    @property
    def is_quota_exceeded(self) -> bool:
        if self.status_code != 403:
            return False
        return "quotaExceeded" in self.reasons or "quota" in (self.api_error or "").lower()

    @property
    def is_invalid_api_key(self) -> bool:
        if self.status_code not in (400, 403):
            return False
        return "keyInvalid" in self.reasons or "api key" in (self.api_error or "").lower()

    def _details(self) -> dict[str, Any]:
        details: dict[str, Any] = {"status_code": self.status_code, "sub_kind": self.sub_kind}
        if self.api_error:
            details["api_error"] = self.api_error
        if self.reasons:
            details["reasons"] = list(self.reasons)
        return details


class ValidationError(LoaderError):
    """Body failed to parse or a record failed schema validation."""

    kind = "validation"

    def __init__(
        self,
        message: str,
        *,
        source_url: Optional[str] = None,
        details: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.details = details
        super().__init__(message, source_url=source_url, cause=cause)

    def _details(self) -> dict[str, Any]:
        return {"details": self.details} if self.details else {}


class ConfigurationError(LoaderError):
    """Loader constructed with missing or contradictory options. Always raised."""

    kind = "configuration"


__all__ = [
    "ConfigurationError",
    "ErrorRecord",
    "HttpStatusError",
    "LoaderError",
    "TransportError",
    "ValidationError",
]
