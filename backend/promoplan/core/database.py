from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from promoplan.core.config import settings


def connect_args_for(dsn: str) -> dict[str, Any]:
    """Driver arguments for ``dsn``.

    SQLite connections are shared across request threads and wait up to
    ``SQLITE_BUSY_TIMEOUT`` seconds for a concurrent redemption to release
    the write lock.
    """
    if dsn.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT}
    return {}


engine = create_engine(
    settings.APP_DATABASE_DSN, connect_args=connect_args_for(settings.APP_DATABASE_DSN)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for coupon and subscription services."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the coupon, ledger and subscription tables if missing."""
    import promoplan.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
