"""
Site Settings Service

Database-driven key-value settings holding named JSON values, plus a typed
wrapper for the values the link health checker owns.
"""
from typing import Any, List, Optional
import logging

from sqlalchemy import select

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.models.site_settings import (
    SiteSetting,
    LINK_HEALTH_HISTORY_KEY,
    LINK_HEALTH_LAST_RESULTS_KEY,
    LINK_HEALTH_LAST_RUN_AT_KEY,
)
from app.schemas.link_health import LinkHealthHistoryEntry, LinkHealthReport

logger = logging.getLogger(__name__)


class SiteSettingsService:
    """
    Reads and upserts settings rows.

    Each call opens its own short session so callers running long batches
    never hold a transaction open between reads and writes.
    """

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[Any]:
        """Get a setting value by key, or None when the key was never set."""
        async with self._session_factory() as db:
            result = await db.execute(select(SiteSetting).where(SiteSetting.key == key))
            setting = result.scalar_one_or_none()
            return setting.value if setting else None

    async def set(self, key: str, value: Any, description: Optional[str] = None) -> None:
        """Insert or overwrite a setting. An omitted description keeps the stored one."""
        async with self._session_factory() as db:
            result = await db.execute(select(SiteSetting).where(SiteSetting.key == key))
            setting = result.scalar_one_or_none()

            if setting is None:
                db.add(SiteSetting(key=key, value=value, description=description))
            else:
                setting.value = value
                if description is not None:
                    setting.description = description

            await db.commit()
        logger.debug(f"[Settings] Saved {key}")


class LinkHealthStore:
    """
    Typed access to the link health values in the settings store.

    Writer and reader share these models, so the JSON shape cannot drift.
    """

    def __init__(self, site_settings: SiteSettingsService, history_limit: Optional[int] = None):
        self._settings = site_settings
        self.history_limit = history_limit or settings.LINK_HEALTH_HISTORY_LIMIT

    async def get_last_report(self) -> Optional[LinkHealthReport]:
        raw = await self._settings.get(LINK_HEALTH_LAST_RESULTS_KEY)
        if not raw:
            return None
        return LinkHealthReport.model_validate(raw)

    async def save_last_report(self, report: LinkHealthReport) -> None:
        await self._settings.set(
            LINK_HEALTH_LAST_RESULTS_KEY,
            report.model_dump(mode="json"),
            "Last link health check results",
        )

    async def get_last_run_at(self) -> Optional[str]:
        return await self._settings.get(LINK_HEALTH_LAST_RUN_AT_KEY)

    async def set_last_run_at(self, timestamp: str) -> None:
        await self._settings.set(
            LINK_HEALTH_LAST_RUN_AT_KEY,
            timestamp,
            "Last link health check timestamp",
        )

    async def get_history(self) -> List[LinkHealthHistoryEntry]:
        raw = await self._settings.get(LINK_HEALTH_HISTORY_KEY) or []
        return [LinkHealthHistoryEntry.model_validate(entry) for entry in raw]

    async def append_history(self, entry: LinkHealthHistoryEntry) -> List[LinkHealthHistoryEntry]:
        """Append a run summary, keeping only the newest history_limit entries."""
        history = await self.get_history()
        history.append(entry)
        capped = history[-self.history_limit:]
        await self._settings.set(
            LINK_HEALTH_HISTORY_KEY,
            [h.model_dump(mode="json") for h in capped],
            "Link health check history",
        )
        return capped
