# picking_replenishment/db/connection.py
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from picking_replenishment.config import config
from picking_replenishment.exceptions import DatabaseError
from picking_replenishment.models import Base


class DatabaseConnection:
    """Database handle shared by the scheduler, its services and the CLI.

    One instance is created by the entry point and passed around; there is no
    module-level connection.
    """

    def __init__(self, url: Optional[str] = None):
        """Create the engine and session factory.

        Args:
            url: SQLAlchemy URL. Defaults to config.get_db_url().
        """
        self._url = url or config.get_db_url()

        try:
            self._engine = self._create_engine(self._url)
        except Exception as e:
            raise DatabaseError(f"Failed to initialize database connection: {str(e)}")

        self._SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self._engine
        )

    @staticmethod
    def _create_engine(url: str):
        pool_config = config.pool_config

        if url.startswith('sqlite'):
            engine_args = {
                'echo': pool_config['echo'],
                'connect_args': {'check_same_thread': False}
            }
            # In-memory databases must share a single connection across sessions
            if url in ('sqlite://', 'sqlite:///:memory:'):
                engine_args['poolclass'] = StaticPool
            engine = create_engine(url, **engine_args)

            # pysqlite manages BEGIN itself and breaks SAVEPOINT; let SQLAlchemy emit it
            @event.listens_for(engine, 'connect')
            def _on_connect(dbapi_connection, connection_record):
                dbapi_connection.isolation_level = None
                cursor = dbapi_connection.cursor()
                cursor.execute('PRAGMA foreign_keys=ON')
                cursor.close()

            @event.listens_for(engine, 'begin')
            def _on_begin(conn):
                conn.exec_driver_sql('BEGIN')

            return engine

        return create_engine(
            url,
            pool_size=pool_config['pool_size'],
            max_overflow=pool_config['max_overflow'],
            pool_timeout=pool_config['pool_timeout'],
            pool_recycle=pool_config['pool_recycle'],
            echo=pool_config['echo']
        )

    def test_connection(self):
        """Run a trivial query to make sure the database is reachable."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            raise DatabaseError(f"Database connection test failed: {str(e)}")

    @contextmanager
    def session_scope(self) -> Session:
        """Provide transaction scope for database operations."""
        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all_tables(self):
        """Create all tables defined in the models."""
        Base.metadata.create_all(bind=self._engine)

    def drop_all_tables(self):
        """Drop all tables defined in the models."""
        Base.metadata.drop_all(bind=self._engine)

    def dispose(self):
        """Close pooled connections."""
        self._engine.dispose()

    @property
    def engine(self):
        """Get SQLAlchemy engine."""
        return self._engine

    @property
    def url(self) -> str:
        return self._url
