"""
Catalog Resource Model

Only the columns the background jobs read or write are mapped here;
the rest of the catalog is managed by the CRUD side of the application.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index

from app.core.database import Base
from app.core.utils import utcnow


class ResourceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Resource(Base):
    """A catalog entry pointing at an external URL."""
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=False)
    url = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ResourceStatus.PENDING.value)

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    resource_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_resources_status", "status"),
    )
