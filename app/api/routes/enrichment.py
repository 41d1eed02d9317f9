"""
AI Enrichment Admin API

Start, monitor and cancel enrichment jobs. Jobs run in the background;
callers poll GET /jobs/{job_id} for progress.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from app.api.deps import get_processor
from app.core.exceptions import JobNotFoundError
from app.jobs.enrichment_processor import EnrichmentProcessor
from app.schemas.enrichment import (
    EnrichmentJobRead,
    EnrichmentJobStatusRead,
    EnrichmentStartRequest,
    EnrichmentStartResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrichment", tags=["Enrichment Admin"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=EnrichmentStartResponse)
async def start_enrichment(
    request: Optional[EnrichmentStartRequest] = None,
    processor: EnrichmentProcessor = Depends(get_processor),
):
    """
    Start an enrichment job over approved resources.

    filter=unenriched (default) only picks resources without metadata.
    batch_size is accepted for client compatibility; items are always
    processed one at a time.
    """
    request = request or EnrichmentStartRequest()
    job_id = await processor.start_job(request.filter)
    logger.info(f"[Enrichment] API started job {job_id} (filter={request.filter}, batch_size={request.batch_size})")
    return EnrichmentStartResponse(job_id=job_id)


@router.get("/jobs", response_model=List[EnrichmentJobRead])
async def list_enrichment_jobs(processor: EnrichmentProcessor = Depends(get_processor)):
    """All enrichment jobs, most recent first."""
    return await processor.list_jobs()


@router.get("/jobs/{job_id}", response_model=EnrichmentJobStatusRead)
async def get_enrichment_job(job_id: int, processor: EnrichmentProcessor = Depends(get_processor)):
    job = await processor.get_job_status(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


@router.delete("/jobs/{job_id}", response_model=EnrichmentJobRead)
async def cancel_enrichment_job(job_id: int, processor: EnrichmentProcessor = Depends(get_processor)):
    """Cancel a running job. Cancelling a finished job returns it unchanged."""
    return await processor.cancel_job(job_id)
