"""Pydantic schemas for persisted rows and ingestion reports."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class IngestionStatus(str, Enum):
    """Outcome of an ingestion run."""

    processed = "processed"
    partial = "partial"
    failed = "failed"


class StoredStatistics(BaseModel):
    """Value persisted under an encoded data point key."""

    statistics: Dict[str, float] = Field(default_factory=dict)


class IngestionError(BaseModel):
    """Details about a row that was rejected."""

    row_number: int = Field(..., ge=1)
    reason: str


class IngestionResult(BaseModel):
    """Report of a CSV ingestion run."""

    status: IngestionStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )
    row_count: int = Field(default=0, ge=0)
    stored_count: int = Field(default=0, ge=0)
    deduplicated: int = Field(default=0, ge=0)
    keys: List[str] = Field(default_factory=list)
    errors: List[IngestionError] = Field(default_factory=list)
