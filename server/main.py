"""
Main entry point for the Detection Anchoring API server.
"""

import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import router as api_router
from vision import __version__

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Detection Anchoring API",
        description="Decode detector output and place a spatial anchor on scene geometry.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint pointing at the docs."""
        return {
            "message": "Detection Anchoring API",
            "docs": "/docs",
            "health": "/api/v1/health"
        }

    return app


app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    logging.info(f"Starting Detection Anchoring API on {host}:{port}")
    uvicorn.run("server.main:app", host=host, port=port, reload=True)
