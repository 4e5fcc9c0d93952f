"""Deal catalog schema — read-only to the redirect core."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Network(str, Enum):
    AMAZON = "amazon"
    TRAVEL = "travel"


class DealStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Deal(BaseModel):
    """One affiliate offer as edited in the CMS / catalog JSON files."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str = ""
    affiliate_url: str = ""
    image: str = ""
    category: str = ""
    network: Network = Network.AMAZON
    status: DealStatus = DealStatus.PUBLISHED
    priority: float = 0
    featured: bool = False
    brand: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _missing_status_is_published(cls, v):
        # Legacy catalog entries predate the status field
        return v or DealStatus.PUBLISHED

    @field_validator("title", "image", "category", mode="before")
    @classmethod
    def _null_text_is_empty(cls, v):
        # The CMS writes null for display fields it never filled in
        return "" if v is None else v

    @field_validator("priority", mode="before")
    @classmethod
    def _null_priority_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("featured", mode="before")
    @classmethod
    def _null_featured_is_false(cls, v):
        return False if v is None else v

    @field_validator("affiliate_url", mode="before")
    @classmethod
    def _strip_url(cls, v):
        return (v or "").strip()

    @property
    def is_published(self) -> bool:
        return self.status == DealStatus.PUBLISHED
