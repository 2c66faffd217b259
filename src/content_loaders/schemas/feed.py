"""Canonical feed item model shared by RSS, Atom and RDF sources."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Person(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    url: Optional[str] = None


class Category(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: Optional[str] = None
    term: str
    url: Optional[str] = None


class Media(BaseModel):
    """Enclosure or attached media object."""

    model_config = ConfigDict(extra="ignore")

    url: str
    type: Optional[str] = None
    length: Optional[int] = None
    title: Optional[str] = None


class FeedImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    title: Optional[str] = None


class FeedItem(BaseModel):
    """Format-independent view of one feed entry."""

    model_config = ConfigDict(extra="ignore")

    id: str
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    published: Optional[datetime] = None
    updated: Optional[datetime] = None
    authors: List[Person] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    media: List[Media] = Field(default_factory=list)
    image: Optional[FeedImage] = None
    comments: Optional[str] = None


class FeedMeta(BaseModel):
    """Feed head metadata, attached to legacy items as ``meta``."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    version: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    xmlurl: Optional[str] = None
    language: Optional[str] = None
    author: Optional[str] = None
    copyright: Optional[str] = None
    generator: Optional[str] = None
    updated: Optional[datetime] = None
    image: Optional[FeedImage] = None
    categories: List[str] = Field(default_factory=list)
