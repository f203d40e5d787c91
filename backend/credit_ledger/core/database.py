from collections.abc import Iterator
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from credit_ledger.core.config import settings


def utcnow() -> datetime:
    """Naive UTC timestamp — the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def engine_kwargs(url: str) -> dict:
    """Engine options bounding every wait on the database."""
    if url.startswith("sqlite"):
        # SQLite busy timeout is in seconds
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000,
            },
        }

    timeout_ms = settings.DB_STATEMENT_TIMEOUT_MS
    return {
        "pool_pre_ping": True,
        "pool_timeout": settings.DB_POOL_TIMEOUT_SECONDS,
        "connect_args": {
            "connect_timeout": max(int(settings.DB_POOL_TIMEOUT_SECONDS), 1),
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        },
    }


class Base(DeclarativeBase):
    pass


engine = create_engine(settings.DATABASE_URL, **engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
