"""
Base database model and session management
"""
import logging
import os
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import declarative_base, sessionmaker
from adpilot.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Resolve relative SQLite paths to absolute so cwd changes can't break it
_db_url = settings.database_url
if _db_url.startswith("sqlite:///") and not _db_url.startswith("sqlite:////"):
    rel_path = _db_url[len("sqlite:///"):]
    _db_url = "sqlite:///" + os.path.abspath(rel_path)

if _db_url.startswith("sqlite"):
    engine = create_engine(
        _db_url,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,
        pool_pre_ping=True
    )
else:
    engine = create_engine(
        _db_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=300,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped database session (FastAPI dependency)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.expire_all()
        db.close()


def _migrate_missing_columns():
    """Add model columns that an existing table lacks.

    create_all() only creates missing tables, so new columns on old tables
    are added here with a plain ALTER TABLE.
    """
    inspector = inspect(engine)
    with engine.connect() as conn:
        for table_name, table in Base.metadata.tables.items():
            if not inspector.has_table(table_name):
                continue
            existing = {c["name"] for c in inspector.get_columns(table_name)}
            for col in table.columns:
                if col.name not in existing:
                    col_type = col.type.compile(dialect=engine.dialect)
                    sql = f'ALTER TABLE {table_name} ADD COLUMN {col.name} {col_type}'
                    logger.info(f"Auto-migrating: {sql}")
                    conn.execute(text(sql))
        conn.commit()


def init_db():
    """Create tables for every registered model and add missing columns."""
    import adpilot.models  # noqa: F401  registers all tables on Base.metadata
    Base.metadata.create_all(bind=engine)
    _migrate_missing_columns()


def drop_db():
    """Drop every table (test teardown and local resets)."""
    import adpilot.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
