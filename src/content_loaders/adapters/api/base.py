"""
Shared HTTP utilities for API-backed sources.

The helper is a thin HTTPX wrapper: it keeps the code synchronous, avoids
global state and translates every failure into the loader error taxonomy.
Retries are opt-in (``retries > 1``) and only cover transport failures; an HTTP
status answer is never retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, List, Mapping, MutableMapping, Optional, Tuple

import httpx
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...config import DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT
from ...core.errors import HttpStatusError, TransportError, ValidationError
from ...core.logging import get_logger
from ...sync.revalidation import NOT_MODIFIED


@dataclass(slots=True)
class BaseAPIClient:
    """
    Base synchronous HTTP client.

    Parameters
    ----------
    base_url:
        Root URL for the upstream service. Empty for clients requesting absolute URLs.
    timeout:
        Request timeout in seconds.
    default_headers:
        Headers automatically attached to every request.
    retries:
        Total attempts for transport failures. ``1`` disables retrying.
    retry_backoff:
        Multiplier for the exponential wait between attempts.
    transport:
        Optional HTTPX transport, used to plug in ``httpx.MockTransport``.
    """

    base_url: str = ""
    timeout: float = DEFAULT_HTTP_TIMEOUT
    default_headers: MutableMapping[str, str] = field(default_factory=dict)
    retries: int = DEFAULT_HTTP_RETRIES
    retry_backoff: float = 1.0
    transport: Optional[httpx.BaseTransport] = None
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(
            f"{self.__class__.__module__}.{self.__class__.__name__}",
            extra={"base_url": self.base_url or None},
        )

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=dict(self.default_headers),
            follow_redirects=True,
            transport=self.transport,
        )

    def _full_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self.base_url:
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    @staticmethod
    def _error_payload(response: httpx.Response) -> Tuple[Optional[str], List[str]]:
        """Extract an API error message and reason codes from common JSON error envelopes."""

        try:
            payload = response.json()
        except ValueError:
            return None, []
        if not isinstance(payload, Mapping):
            return None, []

        error = payload.get("error")
        if isinstance(error, Mapping):
            message = error.get("message") or error.get("type")
            reasons = [str(item.get("reason")) for item in error.get("errors") or [] if isinstance(item, Mapping) and item.get("reason")]
            if error.get("type") and not reasons:
                reasons = [str(error["type"])]
            return (str(message) if message else None), reasons
        message = payload.get("message")
        reasons = [str(error)] if isinstance(error, str) else []
        return (str(message) if message else (str(error) if error else None)), reasons

    def _raise_for_status(self, response: httpx.Response, *, allow_not_modified: bool) -> None:
        if response.is_success:
            return
        if response.status_code == NOT_MODIFIED and allow_not_modified:
            return
        api_error, reasons = self._error_payload(response)
        reason_phrase = response.reason_phrase or "error"
        raise HttpStatusError(
            f"HTTP {response.status_code}: {api_error or reason_phrase}",
            status_code=response.status_code,
            source_url=str(response.request.url),
            api_error=api_error,
            reasons=reasons,
        )

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        allow_not_modified: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        self.logger.debug(
            "HTTP request",
            extra={
                "method": method,
                "url": url,
                "params": kwargs.get("params"),
            },
        )

        @retry(
            retry=retry_if_exception_type(httpx.TransportError),
            wait=wait_exponential(multiplier=self.retry_backoff, min=0, max=8),
            stop=stop_after_attempt(max(1, self.retries)),
            reraise=True,
        )
        def _send() -> httpx.Response:
            with self._build_client() as client:
                response = client.request(method, url, headers=dict(headers or {}), **kwargs)
                response.read()
                return response

        try:
            response = _send()
        except RetryError as exc:
            self.logger.error(
                "HTTP request failed after retries",
                extra={"method": method, "url": url, "error": str(exc)},
            )
            raise TransportError(f"Failed to call {method} after {self.retries} attempts", source_url=self._full_url(url), cause=exc) from exc
        except httpx.HTTPError as exc:
            self.logger.error(
                "HTTP error during request",
                extra={"method": method, "url": url, "error": str(exc)},
            )
            raise TransportError(f"Network error while calling {method}", source_url=self._full_url(url), cause=exc) from exc

        self._raise_for_status(response, allow_not_modified=allow_not_modified)
        self.logger.debug(
            "HTTP response",
            extra={
                "status_code": response.status_code,
                "url": str(response.url),
            },
        )
        return response

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ValidationError("Failed to decode JSON response", source_url=str(response.url), cause=exc) from exc

    def _get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        response = self._request("GET", url, params=params, headers=headers)
        return self._decode_json(response)


__all__ = ["BaseAPIClient"]
