"""Datastore client — async SQLAlchemy engine & session management.

One ``Datastore`` per engine instance.  Repositories get sessions from it
and build idempotent inserts with :meth:`Datastore.insert_ignore`, which is
what keeps wallet registration and ledger ingestion free of duplicates when
the same row is written twice.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from stablecoin_pay.datastore.engines import create_engine
from stablecoin_pay.engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.sql.dml import Insert

    from stablecoin_pay.config.settings import DatabaseConfig

_NOT_OPEN = "Datastore is not open. Call open() first."

_INSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class Datastore:
    """Owns the async engine and session factory.

    Usage::

        ds = Datastore(db_config)
        await ds.open(migrate=True)
        async with ds.session() as session:
            ...
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """The async engine.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._engine is None:
            raise RuntimeError(_NOT_OPEN)
        return self._engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self, *, migrate: bool = False) -> None:
        """Create the engine; with *migrate*, also create missing tables."""
        self._engine = create_engine(self._config)
        # Rows outlive their session (services hand them to the API layer)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        if migrate:
            await self.create_tables()

    async def create_tables(self) -> None:
        """Create every table of the ORM models that does not exist yet.

        Production deployments apply the Alembic revisions instead.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    def session(self) -> AsyncSession:
        """A new session; use it as an async context manager and commit explicitly.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._sessions is None:
            raise RuntimeError(_NOT_OPEN)
        return self._sessions()

    async def ping(self) -> None:
        """Round-trip a trivial query; raises whatever the driver raises."""
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    def insert_ignore(self, model: Any, values: dict[str, Any], *, key: str) -> Insert:
        """``INSERT ... ON CONFLICT (key) DO NOTHING`` for the active dialect.

        Executing it yields ``rowcount`` 1 when the row was inserted and 0 when
        a row with the same *key* already existed.

        Raises:
            RuntimeError: On a dialect without ``ON CONFLICT`` support here.
        """
        build = _INSERT_BUILDERS.get(self.dialect)
        if build is None:
            msg = f"Unsupported dialect for idempotent insert: {self.dialect}"
            raise RuntimeError(msg)
        return build(model).values(**values).on_conflict_do_nothing(index_elements=[key])
