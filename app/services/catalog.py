"""
Catalog Store

Narrow read/write access to catalog resources for the background jobs.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from app.core.database import AsyncSessionLocal
from app.models.enrichment import EnrichmentJobFilter
from app.models.resource import Resource, ResourceStatus
from app.schemas.link_health import LinkTarget

logger = logging.getLogger(__name__)


@dataclass
class ResourceSnapshot:
    id: int
    url: str
    metadata: Optional[Dict[str, Any]]


class CatalogStore:

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def list_resource_ids(self, job_filter: EnrichmentJobFilter) -> List[int]:
        """
        Ids of approved resources matching the filter, ascending.

        "Unenriched" means metadata is SQL NULL, JSON null or an empty object.
        JSON equality is not portable across dialects, so that check runs here.
        """
        async with self._session_factory() as db:
            result = await db.execute(
                select(Resource.id, Resource.resource_metadata)
                .where(Resource.status == ResourceStatus.APPROVED.value)
                .order_by(Resource.id)
            )
            rows = result.all()

        if job_filter == EnrichmentJobFilter.UNENRICHED:
            return [row.id for row in rows if not row.resource_metadata]
        return [row.id for row in rows]

    async def list_link_targets(self) -> List[LinkTarget]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Resource.id, Resource.url, Resource.title)
                .where(Resource.status == ResourceStatus.APPROVED.value)
                .order_by(Resource.id)
            )
            return [LinkTarget(id=row.id, url=row.url, title=row.title or "") for row in result]

    async def get_resource(self, resource_id: int) -> Optional[ResourceSnapshot]:
        async with self._session_factory() as db:
            resource = await db.get(Resource, resource_id)
            if resource is None:
                return None
            return ResourceSnapshot(
                id=resource.id,
                url=resource.url,
                metadata=resource.resource_metadata,
            )

    async def update_metadata(self, resource_id: int, metadata: Dict[str, Any]) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(Resource)
                .where(Resource.id == resource_id)
                .values({Resource.resource_metadata: metadata})
            )
            await db.commit()
