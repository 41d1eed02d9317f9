"""
Site Settings Model

Key-value store for named JSON values: link health reports, run history,
and other site-wide settings.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func

from app.core.database import Base


class SiteSetting(Base):
    """
    Key-value store for site configuration.

    value holds any JSON document; readers know the shape for their key.
    """
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, index=True)

    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(JSON, nullable=True)
    description = Column(Text)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# Keys owned by the link health checker
LINK_HEALTH_LAST_RESULTS_KEY = "linkHealth.lastResults"
LINK_HEALTH_LAST_RUN_AT_KEY = "linkHealth.lastRunAt"
LINK_HEALTH_HISTORY_KEY = "linkHealth.history"
