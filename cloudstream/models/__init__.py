from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base

from ..config import load_pipeline_config

ActivityBase = declarative_base()


def _sqlite_engine(db_path: str, timeout: float = 30.0):
    url = f"sqlite:///{db_path}"
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": timeout},
        pool_pre_ping=True,
    )

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA busy_timeout=5000;")
        cursor.close()

    return engine


@lru_cache(maxsize=4)
def get_activity_engine(db_path: str | None = None):
    return _sqlite_engine(db_path or load_pipeline_config().activity_db_path)
