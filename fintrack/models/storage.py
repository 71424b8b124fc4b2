from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func

from ..db.session import Base


class StoredItem(Base):
    """One key of a browser's local storage, namespaced by its client id."""

    __tablename__ = "client_storage"
    __table_args__ = (UniqueConstraint("client_id", "key", name="uq_client_storage_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(64), nullable=False, index=True)
    key = Column(String(64), nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
