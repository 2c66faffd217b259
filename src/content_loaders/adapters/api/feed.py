"""
RSS, Atom and RDF feed source.

Feeds are single documents, so the source is revalidated with ETag /
Last-Modified validators. Parsing is delegated to ``feedparser``; entries are
reshaped into :class:`~content_loaders.schemas.feed.FeedItem`. Setting
``legacy=True`` additionally stores the deprecated flat item shape (``guid``,
``link``, ``pubdate``...) with the feed head attached as ``meta``.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import feedparser
import httpx

from ...config import DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT
from ...core.errors import ConfigurationError, ValidationError
from ...core.logging import bind_extra, get_logger
from ...schemas.feed import Category, FeedImage, FeedItem, FeedMeta, Media, Person
from ...sync.filters import CollectionFilter, FilterFields
from ...sync.normalize import LEGACY_DEPRECATION_MESSAGE, LegacyProjection, NormalizationPipeline, PydanticValidator, check_body
from ...sync.revalidation import NOT_MODIFIED
from ..base import FetchResult
from .base import BaseAPIClient

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/rdf+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5"

FEED_FILTER_FIELDS = FilterFields(
    date="published",
    categories=("categories[].label", "categories[].term"),
    authors=("authors[].name", "authors[].email"),
    text=("title", "description"),
    url="url",
)


def _to_datetime(value: Any) -> Optional[datetime]:
    """Convert feedparser's UTC ``struct_time`` values into aware datetimes."""

    if not value:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _feed_type(version: str) -> Optional[str]:
    if not version:
        return None
    if version.startswith("atom"):
        return "atom"
    if version in ("rss090", "rss10"):
        return "rdf"
    return "rss"


def feed_meta(parsed: Mapping[str, Any]) -> Dict[str, Any]:
    """Summarise the feed head of a ``feedparser`` result."""

    head = parsed.get("feed") or {}
    image = head.get("image") or {}
    meta = FeedMeta(
        type=_feed_type(parsed.get("version") or ""),
        version=parsed.get("version") or None,
        title=head.get("title"),
        description=head.get("subtitle"),
        link=head.get("link"),
        xmlurl=parsed.get("href"),
        language=head.get("language"),
        author=head.get("author"),
        copyright=head.get("rights"),
        generator=head.get("generator"),
        updated=_to_datetime(dict.get(head, "updated_parsed")),
        image=FeedImage(url=image.get("href") or image.get("url"), title=image.get("title")) if image else None,
        categories=[tag.get("term") for tag in head.get("tags") or [] if tag.get("term")],
    )
    return meta.model_dump(mode="json", exclude_none=True)


def _authors(entry: Mapping[str, Any]) -> List[Person]:
    people = [
        Person(name=author.get("name"), email=author.get("email"), url=author.get("href"))
        for author in entry.get("authors") or []
        if author.get("name") or author.get("email")
    ]
    if not people and entry.get("author"):
        people.append(Person(name=entry["author"]))
    return people


def _media(entry: Mapping[str, Any]) -> List[Media]:
    media: List[Media] = []
    seen: set[str] = set()
    for enclosure in entry.get("enclosures") or []:
        url = enclosure.get("href") or enclosure.get("url")
        if url and url not in seen:
            seen.add(url)
            media.append(Media(url=url, type=enclosure.get("type"), length=_to_int(enclosure.get("length"))))
    for content in entry.get("media_content") or []:
        url = content.get("url")
        if url and url not in seen:
            seen.add(url)
            media.append(Media(url=url, type=content.get("type"), length=_to_int(content.get("filesize")), title=content.get("title")))
    return media


def _image(entry: Mapping[str, Any]) -> Optional[FeedImage]:
    image = entry.get("image")
    if isinstance(image, Mapping) and (image.get("href") or image.get("url")):
        return FeedImage(url=image.get("href") or image.get("url"), title=image.get("title"))
    for thumbnail in entry.get("media_thumbnail") or []:
        if thumbnail.get("url"):
            return FeedImage(url=thumbnail["url"])
    return None


def shape_feed_entry(entry: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
    """Build the canonical :class:`FeedItem` mapping from a ``feedparser`` entry."""

    content = entry.get("content") or []
    published = _to_datetime(entry.get("published_parsed"))
    # dict.get skips feedparser's deprecated updated -> published fallback
    updated = _to_datetime(dict.get(entry, "updated_parsed"))
    return {
        "id": context["id"],
        "url": entry.get("link"),
        "title": entry.get("title"),
        "description": entry.get("description"),
        "summary": entry.get("summary"),
        "content": content[0].get("value") if content else None,
        "published": published or updated,
        "updated": updated,
        "authors": _authors(entry),
        "categories": [
            Category(term=tag["term"], label=tag.get("label"), url=tag.get("scheme"))
            for tag in entry.get("tags") or []
            if tag.get("term")
        ],
        "media": _media(entry),
        "image": _image(entry),
        "comments": entry.get("comments"),
    }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


FEED_LEGACY_PROJECTION = LegacyProjection(
    {
        "guid": "id",
        "link": "url",
        "title": "title",
        "description": "description",
        "summary": "summary",
        "comments": "comments",
    },
    transforms={
        "date": lambda item: _iso(item.published or item.updated),
        "pubdate": lambda item: _iso(item.published),
        "author": lambda item: next((person.name or person.email for person in item.authors), None),
        "categories": lambda item: [{"name": category.label or category.term, "domain": category.url} for category in item.categories],
        "enclosures": lambda item: [
            {"url": media.url, "type": media.type, "length": str(media.length) if media.length is not None else None}
            for media in item.media
        ],
        "image": lambda item: item.image.model_dump(mode="json") if item.image else None,
    },
    context_fields={"meta": "meta"},
)


class FeedClient(BaseAPIClient):
    """Fetch and parse feed documents."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        user_agent: str = "content-loaders",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": FEED_ACCEPT, "User-Agent": user_agent}
        super().__init__(timeout=timeout, default_headers=headers, retries=retries, transport=transport)

    def fetch(self, url: str, *, headers: Optional[Mapping[str, str]] = None) -> FetchResult:
        """
        Download and parse ``url``.

        A ``304`` is accepted only when conditional ``headers`` were sent; it comes
        back as an empty result carrying the response headers.
        """

        response = self._request("GET", url, headers=headers, allow_not_modified=bool(headers))
        if response.status_code == NOT_MODIFIED:
            return FetchResult(status_code=NOT_MODIFIED, headers=response.headers)

        check_body(response.content, url)
        parsed = feedparser.parse(response.content, response_headers=dict(response.headers))
        if parsed.get("bozo") and not parsed.get("entries"):
            raise ValidationError("Failed to parse feed", source_url=url, cause=parsed.get("bozo_exception"))
        parsed["href"] = url
        return FetchResult(
            status_code=response.status_code,
            records=list(parsed.get("entries") or []),
            headers=response.headers,
            context={"meta": feed_meta(parsed)},
        )


class FeedSource:
    """Conditionally cacheable feed source."""

    def __init__(
        self,
        url: str,
        *,
        name: Optional[str] = None,
        legacy: bool = False,
        client: Optional[FeedClient] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError("Feed source requires an absolute http(s) URL", source_url=url or None)
        self.url = url
        self.name = name or parsed.netloc
        self.legacy = legacy
        self.client = client or FeedClient()
        self.logger = bind_extra(logger or get_logger(f"{__name__}.{self.__class__.__name__}"), source=self.name)
        if legacy:
            self.logger.warning(LEGACY_DEPRECATION_MESSAGE)
        self.pipeline = NormalizationPipeline(
            id_fields=("id", "link"),
            validator=PydanticValidator(FeedItem),
            shape=shape_feed_entry,
            legacy=FEED_LEGACY_PROJECTION if legacy else None,
            logger=self.logger,
        )
        self.filter_fields = FEED_FILTER_FIELDS

    @property
    def source_url(self) -> str:
        return self.url

    def fetch_conditional(self, headers: Mapping[str, str], collection_filter: Optional[CollectionFilter]) -> FetchResult:
        return self.client.fetch(self.url, headers=headers)


__all__ = ["FEED_FILTER_FIELDS", "FEED_LEGACY_PROJECTION", "FeedClient", "FeedSource", "feed_meta", "shape_feed_entry"]
