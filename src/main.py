"""chorely - household chore tracking with proposals, voting and recurring series."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core import db_client
from src.core.config import settings
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.schema import USERS_COLLECTION
from src.interface.api_router import members_router, router as chores_router


logger = logging.getLogger(__name__)


async def validate_document_store() -> None:
    """Create the schema if needed and prove the store answers queries.

    Exits the process when the SQLite file cannot be opened or read, so a bad
    ``SQLITE_DB_PATH`` fails at startup instead of on the first request.
    """
    logger.info("startup_validation_begin", extra={"db_path": settings.sqlite_db_path})

    try:
        await db_client.init_db()
        await db_client.list_records(collection=USERS_COLLECTION, per_page=1)
    except (db_client.DatabaseError, aiosqlite.Error, OSError) as e:
        logger.error("startup_validation_failed", extra={"service": "sqlite", "error": str(e)})
        print(f"\n❌ Document store unavailable: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger.info("startup_validation_complete", extra={"service": "sqlite", "status": "ok"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()
    await validate_document_store()

    yield

    # Shutdown
    db_client.clear_listeners()
    await db_client.close_connection()
    logger.info("Database connection closed")


app = FastAPI(
    title="chorely",
    description="Household chore tracking with proposals, voting and recurring series",
    version="0.1.0",
    lifespan=lifespan,
)

instrument_fastapi(app)

app.include_router(chores_router)
app.include_router(members_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
