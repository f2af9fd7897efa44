import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Return a process-wide SQLAlchemy Engine, initializing if needed."""
    global _engine
    if _engine is not None:
        return _engine

    # Default to backend/data/recommendations.db relative to this backend package
    backend_dir = os.path.dirname(os.path.dirname(__file__))
    default_db_path = os.path.join(backend_dir, "data", "recommendations.db")
    db_path = os.getenv("SQLITE_DB_PATH", default_db_path)

    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    uri = f"sqlite:///{db_path}"
    engine = create_engine(uri, connect_args={"check_same_thread": False, "timeout": 30})
    _engine = engine
    return engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Apply connection pragmas and create schema if missing."""
    engine = engine or get_engine()
    with engine.begin() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL;")

    from .models import Base  # local import to avoid circulars at import time
    Base.metadata.create_all(bind=engine)
