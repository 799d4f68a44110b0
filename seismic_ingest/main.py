from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .endpoints import health_router, stats_router
from .receiver import start_service, stop_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Arranca el servicio de ingesta al iniciar y lo detiene al cerrar."""
    if not start_service():
        logger.warning("[STARTUP] Ingest service started with errors, see /ingest/stats")
    yield
    stop_service()


app = FastAPI(title="Seismic Ingest Service", version="0.1.0", lifespan=lifespan)

app.include_router(health_router)
app.include_router(stats_router)
