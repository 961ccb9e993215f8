"""
Grounded Report Engine - Main Application

FastAPI server turning ideas, pasted text or uploaded tables into
grounded narrative reports.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import datasets, outline, reports
from api.schemas.responses import HealthResponse
from config import get_settings
from core.logging_config import report_logger as logger
from llm.ollama_client import ollama_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()

    # Startup
    Path(settings.reports_dir).mkdir(parents=True, exist_ok=True)
    logger.info(f"{settings.app_name} v{settings.app_version} starting...")
    logger.info(f"Reports directory: {settings.reports_dir}")
    logger.info(f"Model: {settings.llm.model} at {settings.llm.base_url}")

    yield

    # Shutdown
    await ollama_client.close()
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Report wizard: outline, grounded synthesis and quality-checked narrative reports",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(datasets.router, prefix="/api/v1", tags=["Datasets"])
    app.include_router(outline.router, prefix="/api/v1", tags=["Outline"])
    app.include_router(reports.router, prefix="/api/v1", tags=["Reports"])

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            app=settings.app_name,
            version=settings.app_version,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
