"""
Jobs Package

Background work for the resource catalog:
- AI enrichment job processor (sequential queue drain with retries)
- Link health checker (bounded concurrent URL verification)
"""
from app.jobs.enrichment_processor import (
    EnrichmentProcessor,
    get_enrichment_processor,
)
from app.jobs.link_health import (
    LinkHealthChecker,
    get_link_health_checker,
)

__all__ = [
    "EnrichmentProcessor",
    "get_enrichment_processor",
    "LinkHealthChecker",
    "get_link_health_checker",
]
