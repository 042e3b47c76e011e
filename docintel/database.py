"""
SQLAlchemy engine and sessions for documents, templates and filing rules.
"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from docintel.config import get_settings

settings = get_settings()

# sqlite: single file, no connection pool sizing
if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for route handlers."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the document and reference tables."""
    from docintel.models import document  # noqa: F401
    from docintel.models import reference  # noqa: F401

    Base.metadata.create_all(bind=engine)
