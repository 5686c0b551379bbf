"""
FastAPI application entry point.

Wires the chat and orchestrator routes to one shared ModelManager, created at
startup and cleaned up at shutdown.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from .routers import health, chat, orchestrator
from src.models.manager import ModelManager

logger = logging.getLogger(__name__)

# Global application state
app_state = {}

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    The ModelManager (config, prompts, HTTP clients) is built once at startup
    and its providers are closed at shutdown.
    """
    logger.info("Starting Vicovibe orchestrator API...")
    model_manager = ModelManager()
    app_state["model_manager"] = model_manager
    logger.info(f"ModelManager initialized from {model_manager.config_path}")

    yield  # Server runs here

    logger.info("Shutting down Vicovibe orchestrator API...")
    model_manager.cleanup()
    app_state.clear()

def create_app() -> FastAPI:
    """Factory function to create and configure the FastAPI application."""

    app = FastAPI(
        title="Vicovibe Orchestrator API",
        description="Multi-stage AI prompt orchestration for project chat",
        version="1.0.0",
        lifespan=lifespan
    )

    # Configure CORS middleware for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Common frontend ports
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routers
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
    app.include_router(orchestrator.router, prefix="/api/v1/orchestrator", tags=["orchestrator"])

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with basic API information."""
        return {
            "name": "Vicovibe Orchestrator API",
            "version": "1.0.0",
            "status": "operational",
            "endpoints": {
                "health": "/health",
                "chat": "/api/v1/chat/{project_id}/messages",
                "files": "/api/v1/chat/{project_id}/files",
                "orchestrator": "/api/v1/orchestrator/run",
                "docs": "/docs",
                "redoc": "/redoc"
            }
        }

    return app

# Create the FastAPI app instance
app = create_app()
