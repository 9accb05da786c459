"""FastAPI application factory and middleware setup."""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from main_configs import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    MAIN_APP_DESCRIPTION,
    MAIN_APP_TITLE,
    MAIN_APP_VERSION,
)
from nba_engine.service import NextBestActionService, build_default_service

logger = logging.getLogger("HCP NBA API")


def create_app(service: Optional[NextBestActionService] = None) -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.

    Includes:
    - CORS middleware
    - Health check endpoint
    - Recommendation service wiring (injected, or the default SQL-backed one)
    - Recommendation routes

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=MAIN_APP_TITLE,
        description=MAIN_APP_DESCRIPTION,
        version=MAIN_APP_VERSION,
    )

    # --------------------
    # CORS Middleware
    # --------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=CORS_ALLOW_CREDENTIALS,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )

    # --------------------
    # Health Check
    # --------------------
    @app.get("/ping")
    def ping():
        """Health check endpoint."""
        return {"status": "ok"}

    # --------------------
    # Service Setup
    # --------------------
    if service is None:
        logger.info("No service injected, building the default one")
        service = build_default_service()
    app.state.nba_service = service

    # --------------------
    # API Routes
    # --------------------
    from api.handlers import create_api_router

    app.include_router(create_api_router())

    return app
