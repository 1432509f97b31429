"""
Database engine, session factory and declarative base
"""
import logging
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool
from bbos.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: str):
    """Create an engine; SQLite URLs get a thread-tolerant, shared in-memory pool"""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True, pool_recycle=3600)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """FastAPI dependency yielding a request-scoped session"""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create missing tables (idempotent)"""
    # Register every model on Base.metadata
    import bbos.models  # noqa: F401

    bind = bind or engine
    existing = set(inspect(bind).get_table_names())
    expected = set(Base.metadata.tables.keys())
    if expected.issubset(existing):
        logger.info("All tables exist. Skipping creation.")
        return

    missing = sorted(expected - existing)
    logger.info(f"Creating tables: {', '.join(missing)}")
    Base.metadata.create_all(bind=bind)
