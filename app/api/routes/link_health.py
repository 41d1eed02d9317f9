"""
Link Health Admin API

Trigger a link check over all approved resources and read back the
latest report, optionally with the rolling run history.
"""
import logging

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_checker
from app.jobs.link_health import LinkHealthChecker
from app.schemas.link_health import LINK_HEALTH_FILTERS, LinkHealthReport, LinkHealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/link-health", tags=["Link Health Admin"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=LinkHealthReport)
async def run_link_health_check(checker: LinkHealthChecker = Depends(get_checker)):
    """Check every approved resource URL now and return the report."""
    return await checker.check_links()


@router.get("", response_model=LinkHealthResponse)
async def get_link_health(
    filter: str = Query("all", description="all | healthy | broken"),
    include_history: bool = Query(False),
    checker: LinkHealthChecker = Depends(get_checker),
):
    """
    Latest link health report, results sorted by status code.

    Unknown filters fall back to "all". Before the first run the report is empty.
    """
    result_filter = filter if filter in LINK_HEALTH_FILTERS else "all"

    report = await checker.get_results(result_filter)
    response = LinkHealthResponse.model_validate(report.model_dump()) if report else LinkHealthResponse()
    response.last_run_at = await checker.get_last_run_at()

    if include_history:
        response.history = await checker.get_history()

    return response
