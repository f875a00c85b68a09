"""
Connection status model.

One row per workspace. Just the data structure; reads and writes go through
ConnectionStatusRepository.
"""

from sqlalchemy import Boolean, Column, DateTime, String, Text

from .db_base import TimestampMixin
from .db_config import Base


class ConnectionStatusRecord(Base, TimestampMixin):
    """Persisted ConnectionStatus keyed by workspace."""

    __tablename__ = "connection_status"

    workspace_id = Column(String(200), primary_key=True)

    state = Column(String(20), nullable=False)
    account = Column(String(100), nullable=True)
    region = Column(String(50), nullable=True)
    profile = Column(String(200), nullable=True)
    secret_access_ok = Column(Boolean, nullable=False, default=False)

    session_expiry_estimate = Column(DateTime(timezone=True), nullable=True)
    connected_at = Column(DateTime(timezone=True), nullable=True)

    soft_error = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
