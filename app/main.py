# app/main.py
import asyncio
import logging

from fastapi import FastAPI

from app.api.deps import get_orphan_reclaimer
from app.api.v1.api import api_router
from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import dispose_engine, init_db
from app.services.orphan_reclaimer import run_orphan_loop

logger = logging.getLogger("tracking.main")

app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
)

_orphan_task: asyncio.Task | None = None


@app.on_event("startup")
async def on_startup() -> None:
    global _orphan_task

    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    await init_db()

    # 👇 Reclamação periódica de trackings órfãos
    if settings.ORPHAN_RECLAIM_ENABLED:
        logger.info("Starting orphan reclaim task...")
        _orphan_task = asyncio.create_task(
            run_orphan_loop(
                get_orphan_reclaimer(),
                interval_minutes=settings.ORPHAN_RECLAIM_INTERVAL_MINUTES,
            ),
            name="orphan_reclaim",
        )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    global _orphan_task

    if _orphan_task:
        logger.info("Stopping orphan reclaim task...")
        _orphan_task.cancel()
        try:
            await _orphan_task
        except asyncio.CancelledError:
            logger.info("Orphan reclaim task cancelled")

    await dispose_engine()


@app.get("/health", tags=["health"])
async def healthcheck():
    return {"status": "ok"}


app.include_router(api_router, prefix="/api/v1")
