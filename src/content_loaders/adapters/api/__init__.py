"""
HTTP API clients and sources.

Each submodule exposes two layers:

* ``Client`` classes wrap low-level HTTP calls on top of :class:`BaseAPIClient`.
* ``Source`` classes compose the capability protocols from
  :mod:`content_loaders.adapters.base` and are driven by the sync orchestrator.
"""

from .airtable import AirtableClient, AirtableSource
from .base import BaseAPIClient
from .bluesky import BlueskyClient, BlueskySource, render_post_html
from .feed import FeedClient, FeedSource
from .youtube import YouTubeClient, YouTubeSource

__all__ = [
    "AirtableClient",
    "AirtableSource",
    "BaseAPIClient",
    "BlueskyClient",
    "BlueskySource",
    "FeedClient",
    "FeedSource",
    "YouTubeClient",
    "YouTubeSource",
    "render_post_html",
]
