"""
AI Enrichment Job Models

- EnrichmentJob: one enrichment run over a selected set of catalog entries
- EnrichmentQueueItem: per-entry unit of work within a job

Counters on the job are only ever incremented, so at every point
processed_items + failed_items + skipped_items <= total_items.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, Text, DateTime, ForeignKey, JSON, Index,
    Enum as SQLAEnum,
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.utils import utcnow


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class EnrichmentJobStatus(str, Enum):
    """Lifecycle of an enrichment job. Everything except PROCESSING is terminal."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not EnrichmentJobStatus.PROCESSING


class EnrichmentJobFilter(str, Enum):
    """Selection criterion applied once, at job creation."""
    ALL = "all"                # every approved resource
    UNENRICHED = "unenriched"  # approved resources with no metadata yet


class QueueItemStatus(str, Enum):
    """Per-item state."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Counter columns the processor is allowed to increment
JOB_COUNTER_FIELDS = ("processed_items", "failed_items", "skipped_items")


class EnrichmentJob(Base):
    """
    Persistent representation of an enrichment run.

    error_log is a JSON list of {"resource_id", "error", "timestamp"} entries,
    appended to by the single processor that owns the job.
    """
    __tablename__ = "enrichment_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    status = Column(
        SQLAEnum(EnrichmentJobStatus, name="enrichment_job_status", values_callable=_enum_values),
        nullable=False,
        default=EnrichmentJobStatus.PROCESSING,
    )
    filter = Column(
        SQLAEnum(EnrichmentJobFilter, name="enrichment_job_filter", values_callable=_enum_values),
        nullable=False,
    )

    # Progress counters
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)
    skipped_items = Column(Integer, nullable=False, default=0)

    error_log = Column(JSON, nullable=False, default=list)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    queue_items = relationship(
        "EnrichmentQueueItem",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_enrichment_jobs_status", "status"),
        Index("ix_enrichment_jobs_created_at", "created_at"),
    )


class EnrichmentQueueItem(Base):
    """One catalog entry waiting for, undergoing, or done with AI enrichment."""
    __tablename__ = "enrichment_queue_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("enrichment_jobs.id", ondelete="CASCADE"), nullable=False)
    resource_id = Column(Integer, nullable=False)

    status = Column(
        SQLAEnum(QueueItemStatus, name="enrichment_queue_item_status", values_callable=_enum_values),
        nullable=False,
        default=QueueItemStatus.PENDING,
    )
    retry_count = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    result = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    job = relationship("EnrichmentJob", back_populates="queue_items")

    __table_args__ = (
        # Drain loop: next pending item of a job in creation order
        Index("ix_enrichment_queue_items_job_status", "job_id", "status", "id"),
    )
