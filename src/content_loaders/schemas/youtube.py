"""Simplified YouTube video model built from Data API v3 resources."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Thumbnail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class Video(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    description: str = ""
    url: str
    published_at: datetime
    duration: Optional[str] = None
    channel_id: str
    channel_title: str = ""
    thumbnails: Dict[str, Thumbnail] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    comment_count: Optional[int] = None
    live_broadcast_content: Optional[str] = None
    default_language: Optional[str] = None
