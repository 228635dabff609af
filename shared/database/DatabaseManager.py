import os

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.database.models import Base
from shared.helper.HelperConfig import HelperConfig


class DatabaseManager:
    """Owns the async engine and session factory of the chat database."""

    def __init__(self, helper_config: HelperConfig, database_url: str | None = None):
        self.logging = helper_config.get_logger()
        self.database_url = database_url or helper_config.get_database_url()
        self.engine: AsyncEngine = self._create_engine(self.database_url, echo=helper_config.get_bool_val("DATABASE_ECHO", default=False))
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @staticmethod
    def _create_engine(database_url: str, echo: bool) -> AsyncEngine:
        url = make_url(database_url)
        if url.get_backend_name() != "sqlite":
            return create_async_engine(database_url, echo=echo, pool_pre_ping=True)

        if url.database in (None, "", ":memory:"):
            # one shared connection, otherwise every session sees its own empty db
            return create_async_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)
        return create_async_engine(database_url, echo=echo, connect_args={"check_same_thread": False})

    async def init_db(self) -> None:
        """Create all tables that do not exist yet. Call once at startup."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.logging.info("Database initialised (%s).", make_url(self.database_url).render_as_string(hide_password=True))

    async def dispose(self) -> None:
        await self.engine.dispose()
