"""
AI Analysis Client

Contract for the external AI analysis service: given a URL, return a
structured content analysis. The service owns its own caching, prompting
and model choice; this module only makes the call and validates the reply.
"""
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import AnalysisError
from app.schemas.enrichment import AnalysisResult

logger = logging.getLogger(__name__)


class AnalysisClient:
    """Interface consumed by the enrichment processor."""

    async def analyze(self, url: str) -> AnalysisResult:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HTTPAnalysisClient(AnalysisClient):
    """
    POSTs {"url": ...} to AI_ANALYSIS_URL and parses the analysis JSON.

    Any failure (configuration, network, status, parse) surfaces as
    AnalysisError; the processor retries all of them the same way.
    No timeout policy beyond the transport timeout is applied here.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.AI_ANALYSIS_URL
        self.api_key = api_key if api_key is not None else settings.AI_ANALYSIS_API_KEY
        self.timeout = timeout or settings.AI_ANALYSIS_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy load the HTTP client."""
        if self._client is None:
            headers = {"User-Agent": "ResourceCatalog-Enrichment/1.0"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def analyze(self, url: str) -> AnalysisResult:
        if not self.endpoint:
            raise AnalysisError(
                "AI analysis is not configured. Set AI_ANALYSIS_URL environment variable.",
                code="AI_NOT_CONFIGURED",
            )

        try:
            response = await self._get_client().post(self.endpoint, json={"url": url})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AnalysisError(
                f"AI analysis service returned {e.response.status_code}",
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise AnalysisError(f"AI analysis request failed: {e}", details={"url": url}) from e
        except ValueError as e:
            raise AnalysisError("AI analysis response was not valid JSON", details={"url": url}) from e

        # Some deployments wrap the payload as {"success": true, "data": {...}}
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]

        try:
            return AnalysisResult.model_validate(payload)
        except ValidationError as e:
            raise AnalysisError(
                "AI analysis response did not match the expected shape",
                details={"url": url, "errors": str(e)},
            ) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
