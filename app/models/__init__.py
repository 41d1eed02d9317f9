from app.models.resource import Resource, ResourceStatus
from app.models.site_settings import SiteSetting
from app.models.enrichment import (
    EnrichmentJob,
    EnrichmentJobFilter,
    EnrichmentJobStatus,
    EnrichmentQueueItem,
    QueueItemStatus,
)

__all__ = [
    "Resource",
    "ResourceStatus",
    "SiteSetting",
    "EnrichmentJob",
    "EnrichmentJobFilter",
    "EnrichmentJobStatus",
    "EnrichmentQueueItem",
    "QueueItemStatus",
]
