"""
Link Health Checker

Verifies every approved catalog URL with a bounded pool of concurrent
workers and stores the outcome in the settings store:

- linkHealth.lastResults  full report of the latest run (overwritten)
- linkHealth.lastRunAt    ISO timestamp of the latest run
- linkHealth.history      rolling per-run summaries, newest last, capped

Each URL gets a HEAD request. Servers that reject HEAD (405) and requests
that time out get exactly one more attempt, with GET.
"""
import asyncio
import logging
import time
from typing import List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import InvalidLinkFilterError
from app.core.utils import utcnow_iso
from app.schemas.link_health import (
    LINK_HEALTH_FILTERS,
    LinkHealthFilter,
    LinkCheckResult,
    LinkHealthHistoryEntry,
    LinkHealthReport,
    LinkTarget,
)
from app.services.catalog import CatalogStore
from app.services.site_settings import LinkHealthStore, SiteSettingsService

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Request timed out"


def is_healthy(status_code: Optional[int]) -> bool:
    return status_code is not None and 200 <= status_code < 400


def build_report(results: List[LinkCheckResult], started_at: str, completed_at: str) -> LinkHealthReport:
    """Aggregate per-URL results. healthy + broken + timeout == total_checked."""
    healthy = sum(1 for r in results if r.healthy)
    timeout = sum(1 for r in results if not r.healthy and r.is_timeout)
    return LinkHealthReport(
        total_checked=len(results),
        healthy=healthy,
        broken=len(results) - healthy - timeout,
        timeout=timeout,
        results=results,
        started_at=started_at,
        completed_at=completed_at,
    )


def sort_by_status(results: List[LinkCheckResult]) -> List[LinkCheckResult]:
    """Ascending status code, results without one last (stable)."""
    return sorted(results, key=lambda r: (r.status_code is None, r.status_code or 0))


class LinkHealthChecker:

    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        store: Optional[LinkHealthStore] = None,
        *,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.catalog = catalog or CatalogStore()
        self.store = store or LinkHealthStore(SiteSettingsService())
        self.concurrency = settings.LINK_HEALTH_CONCURRENCY if concurrency is None else concurrency
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.timeout = settings.LINK_HEALTH_TIMEOUT_SECONDS if timeout is None else timeout
        self.user_agent = user_agent or settings.LINK_HEALTH_USER_AGENT
        self._transport = transport

    def _build_client(self, pool_size: int) -> httpx.AsyncClient:
        """One client per run, connection limits sized to the worker pool."""
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            limits=httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size),
            transport=self._transport,
        )

    # =========================================================================
    # CHECKING
    # =========================================================================

    async def check_single_url(
        self,
        client: httpx.AsyncClient,
        target: LinkTarget,
        is_retry: bool = False,
    ) -> LinkCheckResult:
        """
        Check one URL. Never raises for network failures; they become an
        unhealthy result with an error message.
        """
        method = "GET" if is_retry else "HEAD"
        started = time.monotonic()

        try:
            # Streamed so a GET retry never downloads the body
            async with client.stream(method, target.url) as response:
                status_code = response.status_code
        except httpx.TimeoutException:
            if not is_retry:
                logger.debug(f"[LinkHealth] {target.url} timed out, retrying with GET")
                return await self.check_single_url(client, target, is_retry=True)
            return self._result(target, started, error=TIMEOUT_ERROR)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._result(target, started, error=str(e) or e.__class__.__name__)

        if status_code == 405 and not is_retry:
            logger.debug(f"[LinkHealth] {target.url} rejected HEAD, retrying with GET")
            return await self.check_single_url(client, target, is_retry=True)

        return self._result(target, started, status_code=status_code)

    @staticmethod
    def _result(
        target: LinkTarget,
        started: float,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> LinkCheckResult:
        return LinkCheckResult(
            resource_id=target.id,
            url=target.url,
            title=target.title,
            status_code=status_code,
            response_time=int((time.monotonic() - started) * 1000),
            error=error,
            healthy=is_healthy(status_code),
            checked_at=utcnow_iso(),
        )

    async def _check_all(self, targets: List[LinkTarget]) -> List[LinkCheckResult]:
        """Bounded worker pool over a shared cursor; results keep input order."""
        if not targets:
            return []

        results: List[Optional[LinkCheckResult]] = [None] * len(targets)
        pool_size = min(self.concurrency, len(targets))
        cursor = 0

        async with self._build_client(pool_size) as client:

            async def worker() -> None:
                nonlocal cursor
                while cursor < len(targets):
                    # Claim and advance with no await in between
                    index = cursor
                    cursor += 1
                    results[index] = await self.check_single_url(client, targets[index])

            await asyncio.gather(*(worker() for _ in range(pool_size)))

        return results

    async def check_links(self) -> LinkHealthReport:
        """Check all approved resources, persist the report and a history entry."""
        started_at = utcnow_iso()
        targets = await self.catalog.list_link_targets()
        logger.info(f"[LinkHealth] Checking {len(targets)} links")

        results = await self._check_all(targets)
        report = build_report(results, started_at, utcnow_iso())

        await self.store.save_last_report(report)
        await self.store.set_last_run_at(report.completed_at)
        await self.store.append_history(
            LinkHealthHistoryEntry(
                timestamp=report.completed_at,
                total_checked=report.total_checked,
                healthy=report.healthy,
                broken=report.broken,
                timeout=report.timeout,
            )
        )

        logger.info(
            f"[LinkHealth] Checked {report.total_checked} links: "
            f"{report.healthy} healthy, {report.broken} broken, {report.timeout} timed out"
        )
        return report

    # =========================================================================
    # READING
    # =========================================================================

    async def get_results(self, result_filter: LinkHealthFilter = "all") -> Optional[LinkHealthReport]:
        """Latest report with results filtered and sorted by status code."""
        if result_filter not in LINK_HEALTH_FILTERS:
            raise InvalidLinkFilterError(
                f"Invalid link health filter: {result_filter!r}",
                details={"allowed": list(LINK_HEALTH_FILTERS)},
            )

        report = await self.store.get_last_report()
        if report is None:
            return None

        results = report.results
        if result_filter == "healthy":
            results = [r for r in results if r.healthy]
        elif result_filter == "broken":
            results = [r for r in results if not r.healthy]

        return report.model_copy(update={"results": sort_by_status(results)})

    async def get_history(self) -> List[LinkHealthHistoryEntry]:
        return await self.store.get_history()

    async def get_last_run_at(self) -> Optional[str]:
        return await self.store.get_last_run_at()


# Global checker (singleton)
_checker: Optional[LinkHealthChecker] = None


def get_link_health_checker() -> LinkHealthChecker:
    """Get the global link health checker (creates if needed)."""
    global _checker
    if _checker is None:
        _checker = LinkHealthChecker()
    return _checker
