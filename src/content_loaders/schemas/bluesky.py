"""Bluesky post model derived from ``app.bsky.feed.defs#postView``."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BlueskyAuthor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    did: str
    handle: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None


class BlueskyPost(BaseModel):
    """
    One post as exposed to hosts.

    ``id`` is the post's ``at://`` URI; ``cid`` is the content hash used as the
    pagination watermark. ``facets`` keep the raw rich-text annotations so the
    HTML rendering can be recomputed.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    cid: str
    url: Optional[str] = None
    author: BlueskyAuthor
    text: str = ""
    facets: List[Dict[str, Any]] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    langs: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    indexed_at: datetime
    reply_count: int = 0
    repost_count: int = 0
    like_count: int = 0
    quote_count: int = 0
