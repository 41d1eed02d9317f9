"""
Admin route tests.

Requests go through httpx.ASGITransport. The job services are replaced
with mocks through dependency overrides; the routes only translate HTTP
to service calls and back.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient, Response

from app.api.deps import get_checker, get_processor
from app.core.database import get_db
from app.core.exceptions import JobNotFoundError
from app.core.utils import utcnow
from app.main import app
from app.models.enrichment import EnrichmentJobFilter, EnrichmentJobStatus
from app.schemas.enrichment import EnrichmentJobRead, EnrichmentJobStatusRead
from app.schemas.link_health import LinkCheckResult, LinkHealthHistoryEntry, LinkHealthReport

pytestmark = pytest.mark.unit


def make_job(job_id: int = 5, status=EnrichmentJobStatus.PROCESSING) -> EnrichmentJobRead:
    return EnrichmentJobRead(
        id=job_id,
        status=status,
        filter=EnrichmentJobFilter.ALL,
        total_items=3,
        processed_items=1,
        started_at=utcnow(),
        created_at=utcnow(),
    )


def make_report() -> LinkHealthReport:
    return LinkHealthReport(
        total_checked=1,
        healthy=0,
        broken=1,
        timeout=0,
        results=[
            LinkCheckResult(
                resource_id=1,
                url="https://gone.example",
                title="Gone",
                status_code=404,
                response_time=12,
                healthy=False,
                checked_at="2026-01-01T00:00:00+00:00",
            )
        ],
        started_at="2026-01-01T00:00:00+00:00",
        completed_at="2026-01-01T00:00:01+00:00",
    )


@pytest.fixture
def processor() -> MagicMock:
    mock = MagicMock()
    mock.start_job = AsyncMock(return_value=7)
    mock.list_jobs = AsyncMock(return_value=[make_job(6), make_job(5)])
    mock.get_job_status = AsyncMock(return_value=None)
    mock.cancel_job = AsyncMock(return_value=make_job(status=EnrichmentJobStatus.CANCELLED))
    return mock


@pytest.fixture
def checker() -> MagicMock:
    mock = MagicMock()
    mock.check_links = AsyncMock(return_value=make_report())
    mock.get_results = AsyncMock(return_value=None)
    mock.get_last_run_at = AsyncMock(return_value=None)
    mock.get_history = AsyncMock(return_value=[])
    return mock


async def send(method: str, url: str, **kwargs) -> Response:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.request(method, url, **kwargs)


@pytest.fixture
def overrides(processor, checker):
    app.dependency_overrides[get_processor] = lambda: processor
    app.dependency_overrides[get_checker] = lambda: checker
    yield
    app.dependency_overrides.clear()


# =============================================================================
# Enrichment
# =============================================================================

@pytest.mark.asyncio
async def test_start_enrichment_returns_job_id(overrides, processor):
    response = await send("POST", "/api/admin/enrichment", json={"filter": "all", "batch_size": 50})

    assert response.status_code == 201
    assert response.json() == {"job_id": 7}
    processor.start_job.assert_awaited_once_with("all")


@pytest.mark.asyncio
async def test_start_enrichment_defaults_to_unenriched(overrides, processor):
    response = await send("POST", "/api/admin/enrichment")

    assert response.status_code == 201
    processor.start_job.assert_awaited_once_with("unenriched")


@pytest.mark.parametrize("body", [{"filter": "bogus"}, {"batch_size": 0}, {"batch_size": 101}])
@pytest.mark.asyncio
async def test_start_enrichment_validates_body(overrides, processor, body):
    response = await send("POST", "/api/admin/enrichment", json=body)

    assert response.status_code == 422
    processor.start_job.assert_not_awaited()


@pytest.mark.asyncio
async def test_list_jobs(overrides):
    response = await send("GET", "/api/admin/enrichment/jobs")

    assert response.status_code == 200
    assert [job["id"] for job in response.json()] == [6, 5]


@pytest.mark.asyncio
async def test_get_job_status(overrides, processor):
    processor.get_job_status.return_value = EnrichmentJobStatusRead(
        **make_job().model_dump(),
        queue_counts={"completed": 1, "pending": 2},
    )

    response = await send("GET", "/api/admin/enrichment/jobs/5")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "processing"
    assert body["queue_counts"] == {"completed": 1, "pending": 2}


@pytest.mark.asyncio
async def test_get_missing_job_returns_404(overrides):
    response = await send("GET", "/api/admin/enrichment/jobs/404")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_cancel_job(overrides, processor):
    response = await send("DELETE", "/api/admin/enrichment/jobs/5")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    processor.cancel_job.assert_awaited_once_with(5)


@pytest.mark.asyncio
async def test_cancel_missing_job_returns_404(overrides, processor):
    processor.cancel_job.side_effect = JobNotFoundError(9)

    response = await send("DELETE", "/api/admin/enrichment/jobs/9")

    assert response.status_code == 404
    assert response.json()["detail"] == "Enrichment job 9 not found"


# =============================================================================
# Link health
# =============================================================================

@pytest.mark.asyncio
async def test_run_link_health_check(overrides, checker):
    response = await send("POST", "/api/admin/link-health")

    assert response.status_code == 201
    assert response.json()["broken"] == 1
    checker.check_links.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_link_health_before_first_run_is_empty(overrides):
    response = await send("GET", "/api/admin/link-health")

    assert response.status_code == 200
    body = response.json()
    assert body["total_checked"] == 0
    assert body["results"] == []
    assert body["last_run_at"] is None
    assert body["history"] is None


@pytest.mark.asyncio
async def test_get_link_health_unknown_filter_falls_back_to_all(overrides, checker):
    checker.get_results.return_value = make_report()
    checker.get_last_run_at.return_value = "2026-01-01T00:00:01+00:00"

    response = await send("GET", "/api/admin/link-health", params={"filter": "sideways"})

    assert response.status_code == 200
    checker.get_results.assert_awaited_once_with("all")
    body = response.json()
    assert body["results"][0]["status_code"] == 404
    assert body["last_run_at"] == "2026-01-01T00:00:01+00:00"


@pytest.mark.asyncio
async def test_get_link_health_with_history(overrides, checker):
    checker.get_history.return_value = [
        LinkHealthHistoryEntry(timestamp="2026-01-01T00:00:01+00:00", total_checked=1, healthy=0, broken=1, timeout=0)
    ]

    response = await send("GET", "/api/admin/link-health", params={"filter": "broken", "include_history": "true"})

    assert response.status_code == 200
    checker.get_results.assert_awaited_once_with("broken")
    assert response.json()["history"][0]["broken"] == 1


# =============================================================================
# Health
# =============================================================================

@pytest.mark.asyncio
async def test_health(overrides):
    response = await send("GET", "/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_readiness_reports_database_down(overrides):
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=ConnectionRefusedError("db down"))

    async def broken_db():
        yield session

    app.dependency_overrides[get_db] = broken_db

    response = await send("GET", "/health/ready")

    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"
