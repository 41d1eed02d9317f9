"""
Resource Catalog Jobs
FastAPI application entry point

- AI enrichment jobs (background queue drain, admin start/poll/cancel)
- Link health checks (bounded concurrent URL verification)
- Startup recovery of jobs orphaned by a restart
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from app.api.routes import enrichment, link_health
from app.core.config import settings
from app.core.database import create_tables, engine, get_db
from app.core.exceptions import CatalogJobsError
from app.core.utils import utcnow_iso
from app.jobs.enrichment_processor import get_enrichment_processor

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables and recover orphaned jobs on startup; stop running
    drains and release connections on shutdown.
    """
    await create_tables()

    processor = get_enrichment_processor()
    recovered = await processor.recover_interrupted_jobs()
    if recovered:
        logger.warning(f"[Enrichment] Recovered {len(recovered)} interrupted jobs: {recovered}")

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")

    yield

    await processor.shutdown()
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} shut down")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    description="Background AI enrichment and link health checks for the resource catalog.",
    version="1.0.0",
)


@app.exception_handler(CatalogJobsError)
async def catalog_jobs_error_handler(request: Request, exc: CatalogJobsError):
    """Structured errors become JSON responses with the error's HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc!r}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.to_dict()},
    )


app.include_router(enrichment.router, prefix="/api/admin")
app.include_router(link_health.router, prefix="/api/admin")


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness: the process is up and serving requests."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "timestamp": utcnow_iso(),
    }


@app.get("/health/ready", tags=["Health"])
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness: database reachable. Returns 503 when it is not."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )
    return {"status": "healthy", "database": "connected", "timestamp": utcnow_iso()}
