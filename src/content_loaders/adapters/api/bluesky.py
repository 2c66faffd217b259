"""
Bluesky author feed source backed by the public XRPC API.

``app.bsky.feed.getAuthorFeed`` returns posts newest first, one cursor page at
a time. Incremental syncs stop at the CID of the newest post stored by the
previous run. Single posts are looked up through ``app.bsky.feed.getPosts``,
which only accepts full ``at://`` URIs.
"""

from __future__ import annotations

import html
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ...config import DEFAULT_BLUESKY_SERVICE, DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT
from ...core.errors import ConfigurationError, ValidationError
from ...core.logging import bind_extra, get_logger
from ...schemas.bluesky import BlueskyPost
from ...sync.filters import CollectionFilter, EntryFilter, FilterFields
from ...sync.normalize import NormalizationPipeline, PydanticValidator
from ...sync.pagination import Page
from ..base import FetchResult
from .base import BaseAPIClient

PAGE_SIZE = 100
FEED_TYPES = ("posts_with_replies", "posts_no_replies", "posts_with_media", "posts_and_author_threads")

LINK_FACET = "app.bsky.richtext.facet#link"
MENTION_FACET = "app.bsky.richtext.facet#mention"
TAG_FACET = "app.bsky.richtext.facet#tag"

BLUESKY_FILTER_FIELDS = FilterFields(
    date="indexed_at",
    categories=("tags",),
    authors=("author.handle", "author.display_name"),
    text=("text",),
    url="url",
)


def nl2br(text: str) -> str:
    return text.replace("\n", "<br />\n")


def _render_feature(feature: Mapping[str, Any], text: str) -> Optional[str]:
    kind = feature.get("$type")
    if kind == LINK_FACET and feature.get("uri"):
        return f'<a href="{html.escape(feature["uri"])}">{html.escape(text)}</a>'
    if kind == MENTION_FACET and feature.get("did"):
        return f'<a href="https://bsky.app/profile/{html.escape(feature["did"])}">{html.escape(text)}</a>'
    if kind == TAG_FACET and feature.get("tag"):
        tag = html.escape(feature["tag"])
        return f'<a href="https://bsky.app/hashtag/{tag}">#{tag}</a>'
    return None


def render_post_html(text: str, facets: Sequence[Mapping[str, Any]] = (), *, transform_newlines: bool = True) -> str:
    """
    Render post text and its rich-text facets as HTML.

    Facet offsets count UTF-8 bytes. Facets that overlap an earlier one or fall
    outside the text are ignored and their span is rendered as plain text.
    """

    encoded = text.encode("utf-8")

    def plain(chunk: bytes) -> str:
        escaped = html.escape(chunk.decode("utf-8", errors="replace"))
        return nl2br(escaped) if transform_newlines else escaped

    spans = []
    for facet in facets or ():
        index = facet.get("index") or {}
        start, end = index.get("byteStart"), index.get("byteEnd")
        if not isinstance(start, int) or not isinstance(end, int) or not 0 <= start < end <= len(encoded):
            continue
        spans.append((start, end, facet.get("features") or []))
    spans.sort(key=lambda span: span[0])

    parts: List[str] = []
    position = 0
    for start, end, features in spans:
        if start < position:
            continue
        segment = encoded[start:end].decode("utf-8", errors="replace")
        rendered = next((out for out in (_render_feature(feature, segment) for feature in features) if out), None)
        if rendered is None:
            continue
        parts.append(plain(encoded[position:start]))
        parts.append(rendered)
        position = end
    parts.append(plain(encoded[position:]))
    return "".join(parts)


def post_url(uri: str, handle: Optional[str]) -> Optional[str]:
    """Public web URL for an ``at://did/app.bsky.feed.post/rkey`` URI."""

    parts = uri.removeprefix("at://").split("/")
    if len(parts) != 3 or parts[1] != "app.bsky.feed.post":
        return None
    return f"https://bsky.app/profile/{handle or parts[0]}/post/{parts[2]}"


def shape_post(view: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten a ``postView`` into the :class:`BlueskyPost` layout."""

    record = view.get("record") or {}
    author = view.get("author") or {}
    facets = list(record.get("facets") or [])
    tags = [
        feature["tag"]
        for facet in facets
        for feature in facet.get("features") or []
        if feature.get("$type") == TAG_FACET and feature.get("tag")
    ]
    return {
        "id": context["id"],
        "cid": view.get("cid"),
        "url": post_url(str(view.get("uri", "")), author.get("handle")),
        "author": {
            "did": author.get("did"),
            "handle": author.get("handle"),
            "display_name": author.get("displayName"),
            "avatar": author.get("avatar"),
        },
        "text": record.get("text") or "",
        "facets": facets,
        "tags": tags + [tag for tag in record.get("tags") or [] if tag not in tags],
        "langs": list(record.get("langs") or []),
        "created_at": record.get("createdAt"),
        "indexed_at": view.get("indexedAt"),
        "reply_count": view.get("replyCount") or 0,
        "repost_count": view.get("repostCount") or 0,
        "like_count": view.get("likeCount") or 0,
        "quote_count": view.get("quoteCount") or 0,
    }


class BlueskyClient(BaseAPIClient):
    """Minimal XRPC client for the public AppView."""

    def __init__(
        self,
        *,
        service: str = DEFAULT_BLUESKY_SERVICE,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        retries: int = DEFAULT_HTTP_RETRIES,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json", "User-Agent": "content-loaders"}
        super().__init__(base_url=service, timeout=timeout, default_headers=headers, retries=retries, transport=transport)

    def get_author_feed(
        self,
        actor: str,
        *,
        cursor: Optional[str] = None,
        feed_filter: Optional[str] = None,
        limit: int = PAGE_SIZE,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"actor": actor, "limit": min(max(limit, 1), PAGE_SIZE)}
        if cursor:
            params["cursor"] = cursor
        if feed_filter:
            params["filter"] = feed_filter
        data = self._get_json("/xrpc/app.bsky.feed.getAuthorFeed", params=params)
        if not isinstance(data, dict) or not isinstance(data.get("feed"), list):
            raise ValidationError("Unexpected payload for getAuthorFeed", source_url=self._full_url("/xrpc/app.bsky.feed.getAuthorFeed"))
        return data

    def get_posts(self, uris: Sequence[str]) -> List[Dict[str, Any]]:
        data = self._get_json("/xrpc/app.bsky.feed.getPosts", params={"uris": list(uris)})
        if not isinstance(data, dict) or not isinstance(data.get("posts"), list):
            raise ValidationError("Unexpected payload for getPosts", source_url=self._full_url("/xrpc/app.bsky.feed.getPosts"))
        return data["posts"]


class BlueskySource:
    """Paginated, incremental Bluesky author feed."""

    incremental = True
    newest_first = True

    def __init__(
        self,
        identifier: Optional[str] = None,
        *,
        name: Optional[str] = None,
        feed_filter: Optional[str] = None,
        client: Optional[BlueskyClient] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        if feed_filter is not None and feed_filter not in FEED_TYPES:
            raise ConfigurationError(f"Unknown Bluesky feed filter '{feed_filter}'; expected one of {', '.join(FEED_TYPES)}")
        self.identifier = identifier
        self.feed_filter = feed_filter
        self.client = client or BlueskyClient()
        self.name = name or identifier or "bluesky"
        self.logger = bind_extra(logger or get_logger(f"{__name__}.{self.__class__.__name__}"), source=self.name)
        self.pipeline = NormalizationPipeline(
            id_fields=("uri",),
            validator=PydanticValidator(BlueskyPost),
            shape=shape_post,
            render_html=lambda post: render_post_html(post.text, post.facets),
            logger=self.logger,
        )
        self.filter_fields = BLUESKY_FILTER_FIELDS

    @property
    def source_url(self) -> str:
        return f"{self.client.base_url.rstrip('/')}/profile/{self.identifier or ''}"

    def _resolve_identifier(self, collection_filter: Optional[CollectionFilter]) -> str:
        identifier = collection_filter.option("identifier") if collection_filter else None
        identifier = identifier or self.identifier
        if not identifier:
            raise ConfigurationError("Identifier must be provided either in loader options or collection filter")
        return str(identifier)

    def fetch_page(self, cursor: Optional[str], collection_filter: Optional[CollectionFilter]) -> Page:
        identifier = self._resolve_identifier(collection_filter)
        feed_filter = (collection_filter.option("type") if collection_filter else None) or self.feed_filter
        data = self.client.get_author_feed(identifier, cursor=cursor, feed_filter=feed_filter)
        posts = [entry["post"] for entry in data["feed"] if isinstance(entry, Mapping) and isinstance(entry.get("post"), Mapping)]
        return Page(records=posts, next_cursor=data.get("cursor") or None)

    def watermark_key(self, record: Mapping[str, Any]) -> Optional[str]:
        return record.get("cid")

    def fetch_entry(self, entry_filter: EntryFilter) -> Optional[FetchResult]:
        if not entry_filter.id:
            raise ValidationError("'id' must be provided in the filter", source_url=self.source_url)
        if not entry_filter.id.startswith("at://"):
            raise ValidationError(
                f"Invalid ID format: '{entry_filter.id}'. Must be a full AT URI (e.g., 'at://did:plc:user/app.bsky.feed.post/id')",
                source_url=self.source_url,
            )
        posts = self.client.get_posts([entry_filter.id])
        if not posts:
            return None
        return FetchResult(records=posts[:1])


__all__ = [
    "BLUESKY_FILTER_FIELDS",
    "BlueskyClient",
    "BlueskySource",
    "post_url",
    "render_post_html",
    "shape_post",
]
