"""
API dependencies

Route handlers receive the background job services through these so
tests can swap in instances wired to in-memory stores.
"""
from app.jobs.enrichment_processor import EnrichmentProcessor, get_enrichment_processor
from app.jobs.link_health import LinkHealthChecker, get_link_health_checker


def get_processor() -> EnrichmentProcessor:
    return get_enrichment_processor()


def get_checker() -> LinkHealthChecker:
    return get_link_health_checker()
