"""
Resource Catalog Jobs Exception Hierarchy

Structured exception classes for the background job subsystems.
All exceptions include code, message, and details for the error log
and debugging.

Exception Hierarchy:
    CatalogJobsError
    ├── EnrichmentError
    │   ├── JobNotFoundError
    │   ├── InvalidJobFilterError
    │   ├── ResourceNotFoundError
    │   └── AnalysisError
    └── LinkHealthError
        └── InvalidLinkFilterError
"""
from typing import Optional, Dict, Any


class CatalogJobsError(Exception):
    """
    Base exception for all catalog job errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        status_code: HTTP status the API layer responds with
    """

    default_code: str = "CATALOG_JOBS_ERROR"
    default_severity: str = "P2"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# ENRICHMENT ERRORS
# =============================================================================

class EnrichmentError(CatalogJobsError):
    """Base exception for AI enrichment job errors."""
    default_code = "ENRICHMENT_ERROR"


class JobNotFoundError(EnrichmentError):
    """Requested enrichment job does not exist."""
    default_code = "NOT_FOUND"
    default_severity = "P3"
    status_code = 404

    def __init__(self, job_id: int, **kwargs):
        details = kwargs.pop("details", {})
        details["job_id"] = job_id
        super().__init__(f"Enrichment job {job_id} not found", details=details, **kwargs)
        self.job_id = job_id


class InvalidJobFilterError(EnrichmentError):
    """Job filter is not one of the supported selections."""
    default_code = "VALIDATION_ERROR"
    default_severity = "P3"
    status_code = 422


class ResourceNotFoundError(EnrichmentError):
    """Catalog entry behind a queue item is gone. Permanent, never retried."""
    default_code = "RESOURCE_NOT_FOUND"
    default_severity = "P3"
    status_code = 404

    def __init__(self, resource_id: int, **kwargs):
        details = kwargs.pop("details", {})
        details["resource_id"] = resource_id
        super().__init__("Resource not found", details=details, **kwargs)
        self.resource_id = resource_id


class AnalysisError(EnrichmentError):
    """AI analysis call failed (configuration, network or parse failure)."""
    default_code = "AI_ANALYSIS_FAILED"
    status_code = 502


# =============================================================================
# LINK HEALTH ERRORS
# =============================================================================

class LinkHealthError(CatalogJobsError):
    """Base exception for link health check errors."""
    default_code = "LINK_HEALTH_ERROR"


class InvalidLinkFilterError(LinkHealthError):
    """Result filter is not one of all/healthy/broken."""
    default_code = "VALIDATION_ERROR"
    default_severity = "P3"
    status_code = 422
