from .session import SessionManager, create_engine_from_url, enable_sqlite_savepoints

__all__ = ["SessionManager", "create_engine_from_url", "enable_sqlite_savepoints"]
