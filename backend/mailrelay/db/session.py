"""Database engine and session management"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mailrelay.core.config import settings
from mailrelay.models.base import Base


def engine_options(database_url: str) -> dict:
    """Pool settings per backend; SQLite is used for local runs and tests"""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            # One shared connection, or every session sees an empty database
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True, "pool_recycle": 3600}


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create the email_log table if it does not exist"""
    import mailrelay.models  # noqa: F401 - registers models with Base.metadata
    Base.metadata.create_all(bind=engine)
