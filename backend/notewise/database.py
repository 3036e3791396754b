"""
NoteWise Backend — Database Session Management
===============================================

What:  Async SQLAlchemy engine, session factory and declarative base.
How:   Creates an async engine with connection pooling; callers open
       short-lived sessions from `async_session_factory`.
Who:   The health route (engine) and the notification pipeline store
       collaborators (session factory).
When:  Engine is created at module import; sessions are created per use.

Connection Pooling:
    pool_size=20, max_overflow=10, pre-ping on, recycle every hour.
    Every statement is bounded by `db_command_timeout` (asyncpg command_timeout).
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notewise.config import settings


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
    pool_recycle=3600,
    connect_args={"command_timeout": settings.db_command_timeout},
    echo=settings.log_level == "DEBUG",
)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: rows stay readable after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Tables owned by the mobile app (notes, profiles) are mapped with
    `info={"managed": False}`; alembic/env.py leaves them out of migrations.
    """
    pass


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections. Called during application shutdown."""
    await engine.dispose()
