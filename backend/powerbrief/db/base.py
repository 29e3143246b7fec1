from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from powerbrief.config import settings


def _engine_kwargs() -> dict:
    if settings.DATABASE_URL.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
    }


engine = create_engine(
    settings.DATABASE_URL,
    future=True,
    pool_pre_ping=True,
    **_engine_kwargs(),
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    # Import for side effects so every table is registered on Base.metadata.
    from powerbrief.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

