"""
Link Health Schemas

Reports and history entries are persisted as JSON in the settings store,
so timestamps are kept as ISO-8601 strings.
"""
from typing import Optional, Literal, List

from pydantic import BaseModel, Field

LinkHealthFilter = Literal["all", "healthy", "broken"]
LINK_HEALTH_FILTERS = ("all", "healthy", "broken")


class LinkTarget(BaseModel):
    """An approved catalog entry to verify."""
    id: int
    url: str
    title: str = ""


class LinkCheckResult(BaseModel):
    resource_id: int
    url: str
    title: str
    status_code: Optional[int] = None
    response_time: int = 0  # milliseconds
    error: Optional[str] = None
    healthy: bool = False
    checked_at: str

    @property
    def is_timeout(self) -> bool:
        return bool(self.error) and "timed out" in self.error


class LinkHealthReport(BaseModel):
    total_checked: int = 0
    healthy: int = 0
    broken: int = 0
    timeout: int = 0
    results: List[LinkCheckResult] = Field(default_factory=list)
    started_at: str
    completed_at: str


class LinkHealthHistoryEntry(BaseModel):
    timestamp: str
    total_checked: int
    healthy: int
    broken: int
    timeout: int


class LinkHealthResponse(BaseModel):
    """GET payload: the latest report (or an empty one) plus optional history."""
    total_checked: int = 0
    healthy: int = 0
    broken: int = 0
    timeout: int = 0
    results: List[LinkCheckResult] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    last_run_at: Optional[str] = None
    history: Optional[List[LinkHealthHistoryEntry]] = None
