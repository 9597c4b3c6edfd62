"""
Application lifecycle: open the store and Redis on startup, flush the
audit sink and close them on shutdown.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from orgchart.core.database import database
from orgchart.core.redis import revocation_store
from orgchart.services.audit import audit_logger

logger = logging.getLogger(__name__)


async def open_connections() -> None:
    """Connect PostgreSQL, then Redis. A failure aborts startup."""
    for name, backend in (("PostgreSQL", database), ("Redis", revocation_store)):
        try:
            await backend.connect()
        except Exception as e:
            logger.error(f"Failed to connect to {name}: {e}")
            raise
        logger.info(f"{name} connection established")


async def close_connections() -> None:
    """Drain pending audit records, then close Redis and PostgreSQL."""
    if audit_logger.pending:
        logger.info(f"Waiting for {audit_logger.pending} pending audit records")
    await audit_logger.drain()

    for name, backend in (("Redis", revocation_store), ("PostgreSQL", database)):
        try:
            await backend.disconnect()
        except Exception as e:
            logger.warning(f"Error closing {name} connection: {e}")
        else:
            logger.info(f"{name} connection closed")


async def check_health() -> Dict[str, bool]:
    return {
        "postgresql": await database.ping(),
        "redis": await revocation_store.ping(),
    }


@asynccontextmanager
async def lifespan(app=None) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan handler.

    Example:
        app = FastAPI(lifespan=lifespan)
    """
    await open_connections()
    try:
        yield
    finally:
        await close_connections()
