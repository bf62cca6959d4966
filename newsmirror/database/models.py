"""
NewsMirror Data Models
=====================

Pydantic data models for the durable records written by the crawler.
These models correspond to the database schema and provide validation,
serialization, and type hints.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NewsCategory(BaseModel):
    """Category new articles are filed under."""
    id: str = Field(default_factory=_new_id)
    slug: str = Field(..., min_length=1, max_length=200)
    name: str = Field(..., min_length=1, max_length=255)
    is_active: bool = Field(default=True)
    created_at: Optional[datetime] = Field(default_factory=_utcnow)

    def __str__(self) -> str:
        return f"NewsCategory({self.slug})"


class NewsSource(BaseModel):
    """Upstream site; ingestion only runs while it is active."""
    id: str = Field(default_factory=_new_id)
    slug: str = Field(..., min_length=1, max_length=200)
    name: str = Field(..., min_length=1, max_length=255)
    is_active: bool = Field(default=True, description="Whether the crawler may ingest from this source")
    created_at: Optional[datetime] = Field(default_factory=_utcnow)

    def __str__(self) -> str:
        return f"NewsSource({self.slug}, active={self.is_active})"


class ContentRecord(BaseModel):
    """Ingested article as stored in the ``news`` table."""
    id: str = Field(default_factory=_new_id, description="Unique record ID")
    title: str = Field(..., min_length=1, max_length=1000, description="Article title")
    slug: str = Field(..., min_length=1, max_length=255, description="Unique dedup key")
    short_text: Optional[str] = Field(default=None, description="Short summary")
    content: str = Field(..., min_length=1, description="Assembled HTML body with provenance marker")
    main_image_url: Optional[str] = Field(default=None, description="Mirrored main image URL")
    category_id: str = Field(..., min_length=1)
    source_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(..., description="Original publication time")
    ingested_at: Optional[datetime] = Field(default_factory=_utcnow)

    @field_validator('short_text')
    @classmethod
    def empty_short_text_is_none(cls, v):
        """Store a missing summary as NULL, not as an empty string."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator('created_at')
    @classmethod
    def ensure_timezone(cls, v):
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "ContentRecord":
        """Create a record from a ``news`` row."""
        return cls(**dict(row))

    def __str__(self) -> str:
        return f"ContentRecord({self.slug})"
