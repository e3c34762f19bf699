from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, UniqueConstraint

from tabqueue.db.connection import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tab(Base):
    """
    Imported tab

    One row per (owner_id, url); re-importing a tab updates the row.
    """
    __tablename__ = 'tabs'

    id = Column(String(40), primary_key=True, default=lambda: f"tab_{uuid4().hex}")
    owner_id = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    title = Column(String(255), nullable=True)
    summary = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    content = Column(Text, nullable=True)
    thumbnail_url = Column(String(2048), nullable=True)
    screenshot_url = Column(String(2048), nullable=True)
    full_screenshot_url = Column(String(2048), nullable=True)
    embedding = Column(JSON, nullable=True)
    import_job_id = Column(String(40), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint('owner_id', 'url', name='uq_tabs_owner_url'),
        Index('ix_tabs_import_job_id', 'import_job_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'url': self.url,
            'title': self.title,
            'summary': self.summary,
            'category': self.category,
            'tags': self.tags or [],
            'thumbnail_url': self.thumbnail_url,
            'screenshot_url': self.screenshot_url,
            'full_screenshot_url': self.full_screenshot_url,
            'has_embedding': self.embedding is not None,
            'import_job_id': self.import_job_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
