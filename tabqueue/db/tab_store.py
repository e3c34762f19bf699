"""
SQL tab store

Persists processed tabs through SQLAlchemy. Saves are upserts on
(owner_id, url), so a retried item never creates a duplicate row. The
blocking session work runs in the default executor so the event loop keeps
pacing other workers while a save waits on the database.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from tabqueue.db.connection import Database
from tabqueue.db.models import Tab
from tabqueue.pipeline.base import TabResult, TabStore

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10000


class SqlTabStore(TabStore):
    """
    TabStore backed by the 'tabs' table.

    Usage:
        db = Database(url='sqlite:///tabs.db')
        db.initialize()
        store = SqlTabStore(db)
    """

    def __init__(self, db: Database):
        self.db = db
        # SQLite allows one writer; in-memory databases share a single connection
        self._write_lock = threading.Lock()

    async def save(self, owner_id: str, job_id: str, result: TabResult) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._save_sync, owner_id, job_id, result)

    def _save_sync(self, owner_id: str, job_id: str, result: TabResult) -> str:
        with self._write_lock, self.db.transaction() as session:
            tab = session.execute(
                select(Tab).where(Tab.owner_id == owner_id, Tab.url == result.item.url)
            ).scalar_one_or_none()

            created = tab is None
            if created:
                tab = Tab(owner_id=owner_id, url=result.item.url)
                session.add(tab)

            self._apply(tab, job_id, result)
            session.flush()
            tab_id = tab.id

        logger.debug(f"{'Inserted' if created else 'Updated'} tab {tab_id} for {result.item.url}")
        return tab_id

    def get(self, tab_id: str) -> Optional[Dict[str, Any]]:
        with self.db.session() as session:
            tab = session.get(Tab, tab_id)
            return tab.to_dict() if tab else None

    def list_for_job(self, job_id: str) -> List[Dict[str, Any]]:
        with self.db.session() as session:
            tabs = session.execute(
                select(Tab).where(Tab.import_job_id == job_id).order_by(Tab.created_at)
            ).scalars().all()
            return [tab.to_dict() for tab in tabs]

    def count(self, owner_id: Optional[str] = None) -> int:
        with self.db.session() as session:
            query = select(Tab)
            if owner_id:
                query = query.where(Tab.owner_id == owner_id)
            return len(session.execute(query).scalars().all())

    @staticmethod
    def _apply(tab: Tab, job_id: str, result: TabResult) -> None:
        if result.title:
            tab.title = result.title[:255]
        if result.summary:
            tab.summary = result.summary.summary
            tab.category = result.summary.category
            tab.tags = list(result.summary.tags)
        if result.content:
            tab.content = result.content.content[:MAX_CONTENT_LENGTH]
        if result.screenshots:
            tab.thumbnail_url = result.screenshots.thumbnail_url
            tab.screenshot_url = result.screenshots.screenshot_url
            tab.full_screenshot_url = result.screenshots.full_screenshot_url
        if result.embedding is not None:
            tab.embedding = list(result.embedding)
        tab.import_job_id = job_id
