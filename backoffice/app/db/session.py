from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from backoffice.app.core.config import get_settings


def make_engine(url: str, *, echo: bool = False, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=echo, **kwargs)

        # pysqlite gère mal BEGIN/SAVEPOINT : on reprend la main (recette SQLAlchemy)
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True, **kwargs)


settings = get_settings()

engine = make_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
