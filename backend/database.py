from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from pathlib import Path

from config.worker_config import get_config


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets WAL mode and a busy timeout"""
    if database_url.startswith('sqlite'):
        db_file = database_url.split(':///', 1)[-1]
        if db_file and db_file != ':memory:':
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)

        sqlite_engine = create_engine(
            database_url,
            connect_args={'check_same_thread': False},
            echo=False,
        )

        @event.listens_for(sqlite_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")  # Wait up to 5s for locks instead of failing immediately
            cursor.close()

        return sqlite_engine

    return create_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections are alive before using
        pool_recycle=3600
    )


engine = build_engine(get_config().database_url)

SessionLocal = sessionmaker(bind=engine)
Base = declarative_base()

def get_db():
    """Dependency for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
