"""Pydantic models for the canonical item shape of every source."""

from .bluesky import BlueskyAuthor, BlueskyPost
from .feed import Category, FeedImage, FeedItem, FeedMeta, Media, Person
from .records import AirtableRecord, CsvRow
from .youtube import Thumbnail, Video

__all__ = [
    "AirtableRecord",
    "BlueskyAuthor",
    "BlueskyPost",
    "Category",
    "CsvRow",
    "FeedImage",
    "FeedItem",
    "FeedMeta",
    "Media",
    "Person",
    "Thumbnail",
    "Video",
]
