#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Main FastAPI application setup for the YouTube Lens backend.

Initializes the FastAPI application, sets up lifespan management for services,
registers middleware and exception handlers, and includes API routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import version directly from __init__.py
from __init__ import __version__

from api import dependencies, routes
from config import config
from exceptions import AppBaseError, handle_exception
from logging_config import StructuredLogger
from middleware import RequestMetricsMiddleware
from services.admin import AdminAuthenticator
from services.engine import YouTubeLensEngine
from services.translator import Translator

logger = StructuredLogger(__name__)

# --- Lifespan Management ---

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Creates the engine (translator HTTP client, admin table) on startup and
    closes it on shutdown. No YouTube API key is needed at startup.
    """
    logger.info("Starting YouTube Lens FastAPI application lifespan...")
    try:
        dependencies.engine = YouTubeLensEngine(
            translator=Translator(),
            admin=AdminAuthenticator(config.ADMIN_CREDENTIALS)
        )
        logger.info("YouTube Lens services initialized successfully.")
    except Exception as e:
        logger.critical(f"Critical unexpected error during service initialization: {e}", exc_info=True)
        dependencies.engine = None

    yield

    # --- Shutdown ---
    logger.info("Shutting down YouTube Lens FastAPI application lifespan...")
    if dependencies.engine:
        try:
            await dependencies.engine.shutdown()
        except Exception as e:
            logger.error(f"Error during engine shutdown: {e}", exc_info=True)
        dependencies.engine = None
    logger.info("Lifespan cleanup finished.")


# --- FastAPI Application Instantiation ---

app = FastAPI(
    lifespan=lifespan,
    title="YouTube Lens Backend",
    description="YouTube Data API proxy with API key rotation, impact scoring, filtering and sorting.",
    version=__version__
)

# --- Exception Handlers ---

@app.exception_handler(AppBaseError)
async def app_error_handler(request: Request, exc: AppBaseError) -> JSONResponse:
    """Errors raised outside the action dispatcher (e.g. by dependencies)."""
    return JSONResponse(status_code=exc.http_status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = handle_exception(ValueError("; ".join(str(item.get("msg", "")) for item in exc.errors())))
    return JSONResponse(status_code=error.http_status_code, content=error.to_envelope())


# --- Middleware Registration ---
# Added first so it runs inside CORS: preflights are answered by CORSMiddleware
app.add_middleware(RequestMetricsMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"]
)
logger.debug(f"CORS Middleware added. Allowed origins: {config.ALLOWED_ORIGINS}")

# --- API Router Inclusion ---
app.include_router(routes.router)
logger.info("FastAPI application setup complete.")
