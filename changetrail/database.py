"""Engine and session factory for the event store."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from changetrail.config import settings


def engine_options(url: str) -> dict:
    """SQLite connections are shared with the API's worker threads; server databases get a checked pool."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session for the read API."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
