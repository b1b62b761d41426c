"""Slot extraction and enrichment results."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Urgency(str, Enum):
    LOW = "baixa"
    MEDIUM = "media"
    HIGH = "alta"
    CRITICAL = "critica"


class ExtractionSource(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"


class ExtractionResult(BaseModel):
    """Slots a single message contributed, plus an optional suggested reply."""

    description: Optional[str] = None
    category: Optional[str] = None
    address_text: Optional[str] = None
    neighborhood: Optional[str] = None
    urgency: Optional[Urgency] = None
    suggested_reply: str = ""
    transcript: Optional[str] = None
    is_demand: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: ExtractionSource = ExtractionSource.AI


class GeoResult(BaseModel):
    """Reverse geocoding of a GPS pin."""

    address_text: str
    neighborhood: Optional[str] = None
