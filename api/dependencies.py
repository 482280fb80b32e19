#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI dependency injection functions for the YouTube Lens services.

The engine is created during the application lifespan. It holds no API keys:
those arrive with every request and live in a per-request context.
"""

from typing import Optional

from fastapi import status

from exceptions import AppBaseError
from logging_config import StructuredLogger
from services.engine import YouTubeLensEngine

logger = StructuredLogger(__name__)

# --- Global Service Instances ---
# Populated during the application lifespan startup.
engine: Optional[YouTubeLensEngine] = None


def get_engine() -> YouTubeLensEngine:
    """Dependency function to get the initialized YouTubeLensEngine instance.

    Raises:
        AppBaseError: 503 Service Unavailable if the engine is not initialized.
    """
    if not engine:
        logger.critical("Dependency Error: YouTube Lens engine not initialized.")
        raise AppBaseError(
            "Service Initialization Error: the backend engine is not available.",
            error_code="SERVICE_UNAVAILABLE",
            http_status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    return engine
