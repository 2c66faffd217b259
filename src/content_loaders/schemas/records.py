"""Models for tabular sources: Airtable records and CSV rows."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AirtableRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    created_time: Optional[datetime] = None
    fields: Dict[str, Any] = Field(default_factory=dict)


class CsvRow(BaseModel):
    """A CSV row keyed by (optionally camelized) column names; every column is kept."""

    model_config = ConfigDict(extra="allow")

    id: str
