import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional
from urllib.parse import quote_plus

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Database connection manager for tabqueue

    Handles SQLite and PostgreSQL connections. Used by the tab store, which
    is the only persistence the import pipeline performs.
    """

    def __init__(self, config=None, url: Optional[str] = None):
        """
        Initialize database connection

        Args:
            config: TabQueueConfig whose 'database' section selects the engine
            url: Explicit SQLAlchemy URL, overrides config (e.g. 'sqlite://' for tests)
        """
        self.config = config
        self.url = url or self._build_url(config.get_database_config() if config else {})
        self.engine: Engine = self._create_engine(self.url)
        self.Session = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False
        )

    @staticmethod
    def _build_url(db_config: Dict[str, Any]) -> str:
        db_type = db_config.get('type', 'sqlite')

        if db_type == 'sqlite':
            db_path = Path(db_config.get('sqlite', {}).get('path') or db_config.get('path') or 'tabqueue.db')
            db_path.parent.mkdir(parents=True, exist_ok=True)
            return f'sqlite:///{db_path}'

        if db_type in ('postgresql', 'postgres'):
            postgres_config = db_config.get('postgres', db_config.get('postgresql', {}))
            host = postgres_config.get('host', 'localhost')
            port = postgres_config.get('port', 5432)
            database = postgres_config.get('database', 'tabqueue')
            user = quote_plus(postgres_config.get('user', 'postgres'))
            password = quote_plus(postgres_config.get('password', ''))
            sslmode = postgres_config.get('sslmode', 'disable' if host in ('localhost', '127.0.0.1') else 'require')
            return f'postgresql://{user}:{password}@{host}:{port}/{database}?sslmode={sslmode}'

        raise ValueError(f"Unsupported database type: {db_type}")

    @staticmethod
    def _create_engine(url: str) -> Engine:
        if url.startswith('sqlite'):
            kwargs: Dict[str, Any] = {'connect_args': {'check_same_thread': False}}
            if url in ('sqlite://', 'sqlite:///:memory:'):
                # One shared connection, otherwise every session sees an empty database
                kwargs['poolclass'] = StaticPool
            engine = create_engine(url, **kwargs)

            # Enable foreign key support
            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        return create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800
        )

    def initialize(self) -> None:
        """Create tables"""
        from tabqueue.db import models  # noqa: F401  registers the tables on Base

        Base.metadata.create_all(self.engine)
        logger.info(f"Database initialized at {self.engine.url.render_as_string(hide_password=True)}")

    def drop_all(self) -> None:
        """Drop all tables"""
        Base.metadata.drop_all(self.engine)

    def ping(self) -> bool:
        """Check the connection"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database ping failed: {e}")
            return False

    def session(self) -> Session:
        """
        Get a database session

        Returns:
            SQLAlchemy session
        """
        return self.Session()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Get a database session with transaction management

        Yields:
            SQLAlchemy session
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database transaction error: {e}")
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()
