"""
SQLAlchemy models for GraftWatch
A single generic table backs every document-store collection.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """
    One document of one collection.

    ``data`` holds the JSON body; timestamps inside it are encoded by the
    store layer. ``created_at``/``updated_at`` track the row itself.
    """
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_documents_collection", collection),
    )

    def __repr__(self):
        return f"<DocumentRecord({self.collection}/{self.doc_id})>"
