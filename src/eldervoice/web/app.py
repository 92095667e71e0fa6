"""
ElderVoice Web - FastAPI application.

Hosts the signup backend routes under /api.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eldervoice import __version__
from eldervoice.config import settings
from signup.api import router as onboard_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="ElderVoice", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(onboard_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    logger.info(f"ElderVoice API ready (env={settings.eldervoice_env})")
    return app
