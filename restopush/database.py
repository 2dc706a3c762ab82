import os
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from restopush.config import settings

IS_SQLITE = settings.DATABASE_URL.startswith("sqlite")

if os.getenv("TESTING") == "true" and not IS_SQLITE:
    import warnings

    warnings.warn(
        "TESTING is set but DATABASE_URL is not SQLite; the suite would write to "
        f"{settings.DATABASE_URL[:50]}...",
        RuntimeWarning,
        stacklevel=2,
    )

if IS_SQLITE:
    engine_kwargs = {
        "connect_args": {"check_same_thread": False},
        "poolclass": NullPool,
    }
else:
    # one driver run holds a single connection; API requests share the rest
    engine_kwargs = {
        "connect_args": {"connect_timeout": 10},
        "pool_size": 5,
        "max_overflow": 5,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_timeout": 30,
    }

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utc_now():
    """Return current UTC timezone-aware datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
