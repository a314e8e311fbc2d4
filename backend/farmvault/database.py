"""Database engine, session factory, and declarative base.

The ledger never reaches for these module globals directly — it is handed
a session factory at construction time (see services.ledger).  The HTTP
layer wires the default factory below into the ledger via get_ledger().
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from farmvault.config import Settings, settings


def build_engine(config: Settings) -> AsyncEngine:
    """Create the async engine for a given configuration."""
    kwargs = {"echo": config.debug}
    if not config.database_url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10)
    return create_async_engine(config.database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings)

async_session = build_session_factory(engine)


# ── Base class ──────────────────────────────────────────────

class Base(DeclarativeBase):
    """All ledger tables; rows are scoped per company via company_id."""
    pass
