"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oplai.api.functions import router as functions_router
from oplai.api.router import api_router
from oplai.config import get_settings
from oplai.core.events import get_event_publisher
from oplai.db.client import get_supabase_client
from oplai.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("oplai.starting", port=settings.port)

    get_supabase_client()
    logger.info("oplai.supabase_connected")

    # NATS is optional; publishing degrades to a no-op without it
    publisher = get_event_publisher()
    await publisher.connect()

    yield

    await publisher.disconnect()
    logger.info("oplai.shutdown")


app = FastAPI(
    title="Oplai",
    description="Playbooks, generated evaluation questions and answers, and the APIs that serve them",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")
app.include_router(functions_router, tags=["functions"])


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "oplai", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "oplai", "version": "0.1.0"}


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("oplai.main:app", host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":
    run()
