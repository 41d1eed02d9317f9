"""
AI Enrichment Job Processor

Drains an enrichment job's queue ONE item at a time:

1. Re-read the job status; stop if it is no longer processing (cancelled).
2. Claim the oldest pending item.
3. Look up the catalog entry (missing = skipped, never retried).
4. Call the AI analysis service; merge the analysis into the entry's metadata.
5. On failure retry with exponential backoff (2s, 4s), at most 3 attempts.
6. Pause between items to respect the analysis service's rate limits.

Jobs run as supervised background tasks: an exception escaping the drain
loop marks the job failed with an error log entry instead of being lost.
Drains are serialized, so only one queue item is in flight process-wide.

Cancellation is cooperative. An AI call already in flight is allowed to
finish; its result is discarded and no new work is claimed.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from app.core.config import settings
from app.core.exceptions import (
    CatalogJobsError,
    InvalidJobFilterError,
    JobNotFoundError,
    ResourceNotFoundError,
)
from app.core.utils import utcnow_iso
from app.models.enrichment import EnrichmentJobFilter, EnrichmentJobStatus, QueueItemStatus
from app.schemas.enrichment import (
    AnalysisResult,
    EnrichmentJobRead,
    EnrichmentJobStatusRead,
    QueueItemRead,
)
from app.services.analysis_client import AnalysisClient, HTTPAnalysisClient
from app.services.catalog import CatalogStore
from app.services.enrichment_store import EnrichmentJobStore

logger = logging.getLogger(__name__)

RESTART_INTERRUPTED_ERROR = "Interrupted by service restart"
SHUTDOWN_INTERRUPTED_ERROR = "Interrupted by service shutdown"

Sleep = Callable[[float], Awaitable[None]]


def error_message(exc: BaseException) -> str:
    if isinstance(exc, CatalogJobsError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def merge_metadata(existing: Optional[Dict[str, Any]], analysis: AnalysisResult) -> Dict[str, Any]:
    """Additive merge: analysis fields overwrite their own keys, everything else is kept."""
    base = dict(existing) if isinstance(existing, dict) else {}
    return {
        **base,
        **analysis.to_metadata(),
        "enrichedAt": utcnow_iso(),
    }


class EnrichmentProcessor:
    """
    Starts, drains, cancels and reports on enrichment jobs.

    Collaborators are injected so the state machine can run against any
    store implementation; sleep is injectable for the same reason.
    """

    def __init__(
        self,
        store: Optional[EnrichmentJobStore] = None,
        catalog: Optional[CatalogStore] = None,
        analyzer: Optional[AnalysisClient] = None,
        *,
        max_attempts: Optional[int] = None,
        item_delay: Optional[float] = None,
        backoff_base: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store or EnrichmentJobStore()
        self.catalog = catalog or CatalogStore()
        self.analyzer = analyzer or HTTPAnalysisClient()
        self.max_attempts = settings.ENRICHMENT_MAX_ATTEMPTS if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.item_delay = settings.ENRICHMENT_ITEM_DELAY_SECONDS if item_delay is None else item_delay
        self.backoff_base = settings.ENRICHMENT_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self._sleep = sleep
        self._tasks: Dict[int, asyncio.Task] = {}
        self._drain_lock = asyncio.Lock()

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def start_job(self, job_filter: Union[str, EnrichmentJobFilter]) -> int:
        """
        Create a job over the matching catalog entries and start draining it.

        Returns the job id without waiting. A job with nothing to do is
        created already completed.
        """
        try:
            job_filter = EnrichmentJobFilter(job_filter)
        except ValueError:
            raise InvalidJobFilterError(
                f"Invalid enrichment filter: {job_filter!r}",
                details={"allowed": [f.value for f in EnrichmentJobFilter]},
            )

        resource_ids = await self.catalog.list_resource_ids(job_filter)
        job = await self.store.create_job(job_filter, resource_ids)

        if not resource_ids:
            logger.info(f"[Enrichment] Job {job.id} ({job_filter.value}): no matching resources, completed")
            return job.id

        logger.info(f"[Enrichment] Job {job.id} ({job_filter.value}) started with {len(resource_ids)} items")
        self._launch(job.id)
        return job.id

    async def cancel_job(self, job_id: int) -> EnrichmentJobRead:
        """
        Cancel a running job and its open queue items.

        Cancelling a job that is already terminal changes nothing.
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status.is_terminal:
            logger.info(f"[Enrichment] Job {job_id} already {job.status.value}, cancel is a no-op")
            return job

        if await self.store.finish_job(job_id, EnrichmentJobStatus.CANCELLED):
            cancelled = await self.store.cancel_open_items(job_id)
            logger.info(f"[Enrichment] Job {job_id} cancelled ({cancelled} open items cancelled)")

        return await self.store.get_job(job_id)

    async def get_job_status(self, job_id: int) -> Optional[EnrichmentJobStatusRead]:
        """Job record plus queue item counts grouped by status."""
        job = await self.store.get_job(job_id)
        if job is None:
            return None
        counts = await self.store.count_items_by_status(job_id)
        return EnrichmentJobStatusRead(**job.model_dump(), queue_counts=counts)

    async def list_jobs(self) -> List[EnrichmentJobRead]:
        return await self.store.list_jobs()

    # =========================================================================
    # BACKGROUND SUPERVISION
    # =========================================================================

    def _launch(self, job_id: int) -> None:
        task = asyncio.create_task(self._run_supervised(job_id), name=f"enrichment-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, jid=job_id: self._tasks.pop(jid, None))

    async def _run_supervised(self, job_id: int) -> None:
        """Top-level wrapper: nothing raised by the drain loop escapes the task."""
        try:
            async with self._drain_lock:
                await self.process_queue(job_id)
        except asyncio.CancelledError:
            logger.warning(f"[Enrichment] Job {job_id} task cancelled")
            raise
        except Exception as e:
            logger.exception(f"[Enrichment] Job {job_id} crashed: {e}")
            try:
                if await self.store.finish_job(job_id, EnrichmentJobStatus.FAILED, error=error_message(e)):
                    await self.store.cancel_open_items(job_id)
            except Exception as mark_error:
                logger.error(
                    f"[Enrichment] Could not mark job {job_id} failed: {mark_error}",
                    exc_info=True,
                )

    def is_running(self, job_id: int) -> bool:
        return job_id in self._tasks

    async def wait_for_job(self, job_id: int) -> None:
        """Block until the job's background task (if any) has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task

    async def recover_interrupted_jobs(self) -> List[int]:
        """
        Fail jobs left PROCESSING by a previous process.

        Background tasks do not survive a restart; without this such jobs
        would report progress forever.
        """
        recovered = []
        for job_id in await self.store.list_job_ids(EnrichmentJobStatus.PROCESSING):
            if self.is_running(job_id):
                continue
            if await self.store.finish_job(job_id, EnrichmentJobStatus.FAILED, error=RESTART_INTERRUPTED_ERROR):
                await self.store.cancel_open_items(job_id)
                recovered.append(job_id)
                logger.warning(f"[Enrichment] Job {job_id} was interrupted by a restart, marked failed")
        return recovered

    async def shutdown(self) -> None:
        """Cancel running drains and fail their jobs."""
        tasks = dict(self._tasks)
        for task in tasks.values():
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks.values(), return_exceptions=True)
        for job_id in tasks:
            if await self.store.finish_job(job_id, EnrichmentJobStatus.FAILED, error=SHUTDOWN_INTERRUPTED_ERROR):
                await self.store.cancel_open_items(job_id)
        await self.analyzer.close()

    # =========================================================================
    # DRAIN LOOP
    # =========================================================================

    async def _job_is_stopped(self, job_id: int) -> bool:
        status = await self.store.get_job_status(job_id)
        return status != EnrichmentJobStatus.PROCESSING

    async def process_queue(self, job_id: int) -> None:
        """Process pending items in creation order until none remain or the job stops."""
        items_done = 0
        while True:
            if await self._job_is_stopped(job_id):
                logger.info(f"[Enrichment] Job {job_id} stopped after {items_done} items")
                return

            item = await self.store.next_pending_item(job_id)
            if item is None:
                break

            if items_done:
                # Rate limit between items; a cancel during the pause makes the claim fail
                await self._sleep(self.item_delay)

            await self._process_item(job_id, item)
            items_done += 1

        if await self.store.finish_job(job_id, EnrichmentJobStatus.COMPLETED):
            logger.info(f"[Enrichment] Job {job_id} completed ({items_done} items)")

    async def _discard(self, job_id: int, item: QueueItemRead) -> None:
        await self.store.update_item(item.id, status=QueueItemStatus.CANCELLED)
        logger.info(f"[Enrichment] Job {job_id} stopped mid-item, discarded result for resource {item.resource_id}")

    async def _process_item(self, job_id: int, item: QueueItemRead) -> None:
        """
        Run one queue item to a terminal state.

        Bounded loop: each pass is one AI attempt, at most max_attempts.
        retry_count ends at max_attempts - 1 when the item fails.
        """
        if not await self.store.claim_item(item.id):
            return

        resource = await self.catalog.get_resource(item.resource_id)
        if resource is None:
            missing = ResourceNotFoundError(item.resource_id)
            await self.store.update_item(item.id, status=QueueItemStatus.FAILED, error=missing.message)
            await self.store.increment_counter(job_id, "skipped_items")
            logger.warning(f"[Enrichment] Job {job_id}: resource {item.resource_id} not found, skipped")
            return

        retry_count = item.retry_count
        while True:
            try:
                analysis = await self.analyzer.analyze(resource.url)
            except Exception as e:
                error = error_message(e)

                if await self._job_is_stopped(job_id):
                    await self._discard(job_id, item)
                    return

                if retry_count + 1 >= self.max_attempts:
                    await self.store.update_item(
                        item.id,
                        status=QueueItemStatus.FAILED,
                        retry_count=retry_count,
                        error=error,
                    )
                    await self.store.increment_counter(job_id, "failed_items")
                    await self.store.append_error(job_id, error, resource_id=item.resource_id)
                    logger.warning(
                        f"[Enrichment] Job {job_id}: resource {item.resource_id} failed after "
                        f"{retry_count + 1} attempts: {error}"
                    )
                    return

                retry_count += 1
                await self.store.update_item(
                    item.id,
                    status=QueueItemStatus.PENDING,
                    retry_count=retry_count,
                    error=error,
                )
                delay = self.backoff_base ** retry_count
                logger.info(
                    f"[Enrichment] Job {job_id}: resource {item.resource_id} attempt {retry_count} failed "
                    f"({error}), retrying in {delay:.0f}s"
                )
                await self._sleep(delay)

                if await self._job_is_stopped(job_id) or not await self.store.claim_item(item.id):
                    await self._discard(job_id, item)
                    return
                continue

            if await self._job_is_stopped(job_id):
                await self._discard(job_id, item)
                return

            merged = merge_metadata(resource.metadata, analysis)
            await self.catalog.update_metadata(resource.id, merged)
            await self.store.update_item(item.id, status=QueueItemStatus.COMPLETED, result=merged, error=None)
            await self.store.increment_counter(job_id, "processed_items")
            logger.debug(f"[Enrichment] Job {job_id}: resource {item.resource_id} enriched")
            return


# Global processor (singleton)
_processor: Optional[EnrichmentProcessor] = None


def get_enrichment_processor() -> EnrichmentProcessor:
    """Get the global enrichment processor (creates if needed)."""
    global _processor
    if _processor is None:
        _processor = EnrichmentProcessor()
    return _processor
