from tabqueue.db.connection import Base, Database
from tabqueue.db.models import Tab
from tabqueue.db.tab_store import SqlTabStore

__all__ = ['Base', 'Database', 'Tab', 'SqlTabStore']
