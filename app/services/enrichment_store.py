"""
Enrichment Job Record Store

Durable job and queue item records. Every method is one short transaction;
callers never hold a session across the AI call.

Terminal transitions are conditional on the job still being PROCESSING,
so completed_at is written exactly once and terminal states stay final.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from app.core.database import AsyncSessionLocal
from app.core.utils import utcnow, utcnow_iso
from app.models.enrichment import (
    EnrichmentJob,
    EnrichmentJobFilter,
    EnrichmentJobStatus,
    EnrichmentQueueItem,
    QueueItemStatus,
    JOB_COUNTER_FIELDS,
)
from app.schemas.enrichment import EnrichmentJobRead, QueueItemRead

logger = logging.getLogger(__name__)

OPEN_ITEM_STATUSES = (QueueItemStatus.PENDING, QueueItemStatus.PROCESSING)


def build_error_entry(error: str, resource_id: Optional[int] = None) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"error": error, "timestamp": utcnow_iso()}
    if resource_id is not None:
        entry = {"resource_id": resource_id, **entry}
    return entry


class EnrichmentJobStore:

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    async def create_job(
        self,
        job_filter: EnrichmentJobFilter,
        resource_ids: List[int],
    ) -> EnrichmentJobRead:
        """
        Create a job with one pending queue item per resource.

        With no resources the job is born COMPLETED with zero items.
        """
        now = utcnow()
        async with self._session_factory() as db:
            job = EnrichmentJob(
                status=EnrichmentJobStatus.PROCESSING if resource_ids else EnrichmentJobStatus.COMPLETED,
                filter=job_filter,
                total_items=len(resource_ids),
                processed_items=0,
                failed_items=0,
                skipped_items=0,
                error_log=[],
                started_at=now,
                created_at=now,
                completed_at=None if resource_ids else now,
            )
            db.add(job)
            await db.flush()

            db.add_all([
                EnrichmentQueueItem(
                    job_id=job.id,
                    resource_id=resource_id,
                    status=QueueItemStatus.PENDING,
                    retry_count=0,
                    created_at=now,
                    updated_at=now,
                )
                for resource_id in resource_ids
            ])
            await db.commit()
            return EnrichmentJobRead.model_validate(job)

    async def get_job(self, job_id: int) -> Optional[EnrichmentJobRead]:
        async with self._session_factory() as db:
            job = await db.get(EnrichmentJob, job_id)
            return EnrichmentJobRead.model_validate(job) if job else None

    async def get_job_status(self, job_id: int) -> Optional[EnrichmentJobStatus]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob.status).where(EnrichmentJob.id == job_id)
            )
            return result.scalar_one_or_none()

    async def list_jobs(self) -> List[EnrichmentJobRead]:
        """All jobs, most recent first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob).order_by(EnrichmentJob.created_at.desc(), EnrichmentJob.id.desc())
            )
            return [EnrichmentJobRead.model_validate(job) for job in result.scalars().all()]

    async def list_job_ids(self, status: EnrichmentJobStatus) -> List[int]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob.id).where(EnrichmentJob.status == status).order_by(EnrichmentJob.id)
            )
            return list(result.scalars().all())

    async def increment_counter(self, job_id: int, field: str) -> None:
        if field not in JOB_COUNTER_FIELDS:
            raise ValueError(f"Unknown job counter: {field}")
        column = getattr(EnrichmentJob, field)
        async with self._session_factory() as db:
            await db.execute(
                update(EnrichmentJob)
                .where(EnrichmentJob.id == job_id)
                .values({field: column + 1})
            )
            await db.commit()

    async def append_error(self, job_id: int, error: str, resource_id: Optional[int] = None) -> None:
        """Append to the job's error log (row locked for the read-modify-write)."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob).where(EnrichmentJob.id == job_id).with_for_update()
            )
            job = result.scalar_one_or_none()
            if job is None:
                logger.warning(f"[Enrichment] Cannot log error for missing job {job_id}: {error}")
                return
            # Reassign so the JSON column is flagged dirty
            job.error_log = [*(job.error_log or []), build_error_entry(error, resource_id)]
            await db.commit()

    async def finish_job(
        self,
        job_id: int,
        status: EnrichmentJobStatus,
        error: Optional[str] = None,
    ) -> bool:
        """
        Move a PROCESSING job to a terminal status, optionally logging an error.

        Returns False (and changes nothing) when the job is missing or already terminal.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentJob).where(EnrichmentJob.id == job_id).with_for_update()
            )
            job = result.scalar_one_or_none()
            if job is None or job.status != EnrichmentJobStatus.PROCESSING:
                return False

            job.status = status
            job.completed_at = utcnow()
            if error is not None:
                job.error_log = [*(job.error_log or []), build_error_entry(error)]
            await db.commit()
            return True

    # -------------------------------------------------------------------------
    # Queue items
    # -------------------------------------------------------------------------

    async def next_pending_item(self, job_id: int) -> Optional[QueueItemRead]:
        """Oldest pending item of the job."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentQueueItem)
                .where(
                    EnrichmentQueueItem.job_id == job_id,
                    EnrichmentQueueItem.status == QueueItemStatus.PENDING,
                )
                .order_by(EnrichmentQueueItem.id)
                .limit(1)
            )
            item = result.scalar_one_or_none()
            return QueueItemRead.model_validate(item) if item else None

    async def list_items(self, job_id: int) -> List[QueueItemRead]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentQueueItem)
                .where(EnrichmentQueueItem.job_id == job_id)
                .order_by(EnrichmentQueueItem.id)
            )
            return [QueueItemRead.model_validate(item) for item in result.scalars().all()]

    async def claim_item(self, item_id: int) -> bool:
        """
        PENDING -> PROCESSING while the parent job is still PROCESSING.

        False if the item was cancelled or claimed meanwhile, or the job stopped.
        """
        job_running = (
            select(EnrichmentJob.id)
            .where(
                EnrichmentJob.id == EnrichmentQueueItem.job_id,
                EnrichmentJob.status == EnrichmentJobStatus.PROCESSING,
            )
            .exists()
        )
        async with self._session_factory() as db:
            result = await db.execute(
                update(EnrichmentQueueItem)
                .where(
                    EnrichmentQueueItem.id == item_id,
                    EnrichmentQueueItem.status == QueueItemStatus.PENDING,
                    job_running,
                )
                .values(status=QueueItemStatus.PROCESSING, updated_at=utcnow())
            )
            await db.commit()
            return result.rowcount == 1

    async def update_item(self, item_id: int, **values: Any) -> None:
        values["updated_at"] = utcnow()
        async with self._session_factory() as db:
            await db.execute(
                update(EnrichmentQueueItem)
                .where(EnrichmentQueueItem.id == item_id)
                .values(**values)
            )
            await db.commit()

    async def cancel_open_items(self, job_id: int) -> int:
        """Bulk-move the job's pending/processing items to CANCELLED."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(EnrichmentQueueItem)
                .where(
                    EnrichmentQueueItem.job_id == job_id,
                    EnrichmentQueueItem.status.in_(OPEN_ITEM_STATUSES),
                )
                .values(status=QueueItemStatus.CANCELLED, updated_at=utcnow())
            )
            await db.commit()
            return result.rowcount or 0

    async def count_items_by_status(self, job_id: int) -> Dict[str, int]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(EnrichmentQueueItem.status, func.count(EnrichmentQueueItem.id))
                .where(EnrichmentQueueItem.job_id == job_id)
                .group_by(EnrichmentQueueItem.status)
            )
            return {
                (status.value if isinstance(status, QueueItemStatus) else str(status)): count
                for status, count in result.all()
            }
