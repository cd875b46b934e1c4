"""FastAPI application entry point."""

import sys
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from raffle_tickets.config import settings

# Windows asyncio policy for asyncpg compatibility
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configure loguru
logger.remove()
logger.add(sys.stderr, level="DEBUG" if settings.DEBUG else "INFO")
logger.add("logs/app.log", rotation="10 MB", retention="7 days", level="INFO")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting {} ...", settings.APP_NAME)

    settings.PRINT_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    settings.TEMPLATE_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    Path("logs").mkdir(exist_ok=True)

    # Fail fast on a broken template file
    from raffle_tickets.printing.templates import get_catalog
    get_catalog()

    from raffle_tickets.db.engine import async_session_factory, create_tables
    if settings.APP_ENV == "development":
        await create_tables()

    from raffle_tickets.services.print_service import recover_interrupted_jobs
    async with async_session_factory() as session:
        await recover_interrupted_jobs(session)

    # Start scheduler if enabled
    if settings.SCHEDULER_ENABLED:
        try:
            from raffle_tickets.scheduler import start_scheduler
            start_scheduler()
        except Exception as e:
            logger.warning("Failed to start scheduler: {}", e)

    yield

    # Shutdown
    if settings.SCHEDULER_ENABLED:
        from raffle_tickets.scheduler import stop_scheduler
        stop_scheduler()

    from raffle_tickets.api.deps import close_orchestrator
    await close_orchestrator()

    from raffle_tickets.db.engine import engine
    await engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Raffle ticket barcodes, print jobs and point-of-sale checks",
    lifespan=lifespan,
)

# Include API routers
from raffle_tickets.api.v1.router import api_router  # noqa: E402
app.include_router(api_router, prefix="/api/v1")


@app.get("/health", include_in_schema=False)
async def health():
    from raffle_tickets.scheduler import get_scheduler_status
    return {"status": "ok", "scheduler_jobs": get_scheduler_status()}
