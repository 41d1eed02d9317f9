"""
AI Enrichment Schemas

Request/response models for enrichment jobs, plus the payload returned by
the AI analysis collaborator.
"""
from datetime import datetime
from typing import Optional, Literal, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enrichment import EnrichmentJobFilter, EnrichmentJobStatus, QueueItemStatus

Difficulty = Literal["beginner", "intermediate", "advanced", "expert"]
VALID_DIFFICULTIES = ("beginner", "intermediate", "advanced", "expert")


# =============================================================
# AI Analysis Payload
# =============================================================

class AnalysisResult(BaseModel):
    """
    Structured content analysis for a URL.

    The analysis service speaks camelCase JSON; fields accept either the
    alias or the Python name.
    """
    model_config = ConfigDict(populate_by_name=True)

    suggested_title: str = Field("", alias="suggestedTitle")
    suggested_description: str = Field("", alias="suggestedDescription")
    suggested_tags: List[str] = Field(default_factory=list, alias="suggestedTags")
    suggested_category: str = Field("", alias="suggestedCategory")
    difficulty: Difficulty = "intermediate"
    confidence: float = 0.5
    key_topics: List[str] = Field(default_factory=list, alias="keyTopics")
    og_image: Optional[str] = Field(None, alias="ogImage")
    cached: bool = False

    @field_validator("difficulty", mode="before")
    @classmethod
    def coerce_difficulty(cls, v):
        return v if v in VALID_DIFFICULTIES else "intermediate"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        if not isinstance(v, (int, float)) or isinstance(v, bool):
            return 0.5
        return max(0.0, min(1.0, float(v)))

    def to_metadata(self) -> Dict[str, Any]:
        """Catalog metadata keys written on enrichment (camelCase, no cache flag)."""
        return self.model_dump(by_alias=True, exclude={"cached"}, exclude_none=True)


# =============================================================
# Request Schemas
# =============================================================

class EnrichmentStartRequest(BaseModel):
    """Start an enrichment job."""
    filter: Literal["all", "unenriched"] = "unenriched"
    batch_size: int = Field(20, ge=1, le=100)


# =============================================================
# Response Schemas
# =============================================================

class ErrorLogEntry(BaseModel):
    resource_id: Optional[int] = None
    error: str
    timestamp: str


class EnrichmentJobRead(BaseModel):
    """Snapshot of a job record."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: EnrichmentJobStatus
    filter: EnrichmentJobFilter
    total_items: int = 0
    processed_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    error_log: List[ErrorLogEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class QueueItemRead(BaseModel):
    """Snapshot of a queue item."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    resource_id: int
    status: QueueItemStatus
    retry_count: int = 0
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class EnrichmentJobStatusRead(EnrichmentJobRead):
    """Job record plus queue item counts grouped by status, for progress polling."""
    queue_counts: Dict[str, int] = Field(default_factory=dict)


class EnrichmentStartResponse(BaseModel):
    job_id: int
