import logging
from typing import Any, AsyncIterator, Dict, Optional
from datetime import datetime, timezone

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from shopease.config import Settings

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("shopease")


def configure_logging(level: str) -> None:
    """Apply the configured level to every shopease logger."""
    logger.setLevel(level.upper())


Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """
    Owns the async engine and session factory for one application instance.
    """
    def __init__(self, url: str, echo: bool = False):
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
            # one shared connection, otherwise every session sees its own empty database
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting a database session."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        yield session


def get_settings(request: Request) -> Settings:
    """Dependency returning the settings the app was built with."""
    return request.app.state.settings


class MCPResponse(JSONResponse):
    """
    Standard response envelope for all API endpoints.
    """
    def __init__(self, data: Any = None, message: str = "success", status: str = "ok", **kwargs):
        content = {
            "status": status,
            "message": message,
            "data": data,
        }
        super().__init__(content=content, **kwargs)


class BaseMicroservice:
    """
    Base class for all services. Provides:
    - Error/event logging
    - Standard response envelope
    """
    def __init__(self, name: str = "shopease"):
        self.name = name
        self.logger = logger if name == logger.name else logger.getChild(name)

    def mcp_response(self, data: Any = None, message: str = "success", status: str = "ok", status_code: int = 200):
        """
        Return a standard response envelope.
        """
        return MCPResponse(data=data, message=message, status=status, status_code=status_code)

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None):
        self.logger.info(f"EVENT: {event} | Details: {details}")

    def log_error(self, error: Exception, context: str = ""):
        self.logger.error(f"ERROR: {error.__class__.__name__}: {error} | Context: {context}")
