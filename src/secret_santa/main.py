# src/secret_santa/main.py
"""Main entry point for the Secret Santa application."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from secret_santa.api.v1 import chat_router, exclusions_router, groups_router
from secret_santa.core.logging_config import configure_logging
from secret_santa.core.settings import settings
from secret_santa.services.hub import ConnectionHub

logger = configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title="Secret Santa API",
    description="Gift exchange groups with a one-time draw and anonymous giver/receiver chat",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(groups_router, prefix="/api/v1")
app.include_router(exclusions_router, prefix="/api/v1")
app.include_router(chat_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    hub = ConnectionHub()
    await hub.start()
    app.state.hub = hub
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    hub: ConnectionHub | None = getattr(app.state, "hub", None)
    if hub:
        await hub.stop()
        app.state.hub = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Gift exchange groups with a one-time draw and anonymous chat",
        "docs": "/docs",
        "redoc": "/redoc"
    }


def run() -> None:
    """Serve the app with uvicorn, capping inbound WebSocket frames at the chat limit."""
    import uvicorn
    uvicorn.run(
        "secret_santa.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        ws_max_size=settings.chat_max_frame_bytes,
    )


if __name__ == "__main__":
    run()
