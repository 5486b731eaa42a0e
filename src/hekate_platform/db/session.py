from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import Session, sessionmaker


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT nests correctly.

    Sync runs isolate each remote event in a savepoint.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def create_engine_from_url(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
        return enable_sqlite_savepoints(engine)

    # PgBouncer already pools connections
    if "-pooler" in db_url or "pgbouncer=true" in db_url:
        return create_engine(db_url, poolclass=NullPool)
    return create_engine(db_url, pool_size=20, max_overflow=40, pool_pre_ping=True)


class SessionManager:
    def __init__(self, base_engine: Engine):
        self.base_engine = base_engine
        self._factory = sessionmaker(bind=base_engine, expire_on_commit=False)

    def get_session(self) -> Session:
        """
        Returns a raw session.
        Caller MUST manually commit/rollback and close the session.
        Use with_session() instead for automatic cleanup.
        """
        return self._factory()

    @contextmanager
    def with_session(self):
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
