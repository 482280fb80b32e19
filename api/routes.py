#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
API Routes for the YouTube Lens backend using FastAPI.

One action-dispatched endpoint (``/api/backend``, also ``/api``) taking its
parameters from the query string (GET) or a JSON body (POST), plus ``/health``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from api.dependencies import get_engine
from exceptions import AppBaseError, InvalidInputError, handle_exception
from logging_config import StructuredLogger
from middleware import request_metrics
from models import ApiResponse
from services.engine import YouTubeLensEngine

# Import version directly from root __init__.py
from __init__ import __version__ as app_version

logger = StructuredLogger(__name__)

router = APIRouter()

# Query parameters that carry JSON documents when sent via GET
JSON_QUERY_FIELDS = ("results", "filters", "segments", "apiKeys")

# Actions whose error envelope echoes the input list / an empty list
ECHO_RESULTS_ACTIONS = ("filter", "sort")
LIST_ACTIONS = ("search", "analyze", "channelVideos")


def _query_params(request: Request) -> Dict[str, Any]:
    """Collect GET parameters, decoding JSON-valued fields.

    ``apiKeys`` may be repeated (``?apiKeys=a&apiKeys=b`` or ``apiKeys[]``),
    JSON encoded, or comma separated; the model normalizes the last form.
    """
    params: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        name = key[:-2] if key.endswith("[]") else key
        if name == "apiKeys" and (len(values) > 1 or key.endswith("[]")):
            params[name] = values
        else:
            params[name] = values[-1]

    for field in JSON_QUERY_FIELDS:
        value = params.get(field)
        if isinstance(value, str) and value.strip()[:1] in ("[", "{"):
            try:
                params[field] = json.loads(value)
            except json.JSONDecodeError as e:
                raise InvalidInputError(f"Query parameter '{field}' is not valid JSON.") from e
    return params


async def _read_params(request: Request) -> Dict[str, Any]:
    params = _query_params(request)
    if request.method == "POST":
        body = await request.body()
        if body.strip():
            try:
                payload = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidInputError("Request body is not valid JSON.") from e
            if not isinstance(payload, dict):
                raise InvalidInputError("Request body must be a JSON object.")
            params.update(payload)
    return params


def _error_data(action: Optional[str], params: Dict[str, Any]) -> Any:
    if action in ECHO_RESULTS_ACTIONS:
        results = params.get("results")
        return results if isinstance(results, list) else []
    if action in LIST_ACTIONS:
        return []
    return None


@router.api_route("/api/backend", methods=["GET", "POST", "OPTIONS"])
@router.api_route("/api", methods=["GET", "POST", "OPTIONS"], include_in_schema=False)
async def backend(request: Request, engine: YouTubeLensEngine = Depends(get_engine)):
    """Single entry point for every client action.

    Returns:
        JSONResponse: ``{"success", "data", "message"}`` with 200, or the
        error's status (400, 401, 500) and ``success: false``.
    """
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK)

    action: Optional[str] = None
    params: Dict[str, Any] = {}
    try:
        params = await _read_params(request)
        action = params.pop("action", None)
        data, message = await engine.dispatch(action, params)
    except Exception as e:
        error = handle_exception(e)
        if error.http_status_code >= 500 and not isinstance(e, AppBaseError):
            logger.critical(f"Unexpected error processing action '{action}': {e}", exc_info=True, action=action)
        elif error.http_status_code >= 500:
            logger.error(f"{type(e).__name__} processing action '{action}': {error.message}",
                         exc_info=False, action=action, error_code=error.error_code)
        else:
            logger.info(f"Rejected action '{action}': {error.message}", action=action, error_code=error.error_code)
        return JSONResponse(status_code=error.http_status_code, content=error.to_envelope(_error_data(action, params)))

    envelope = ApiResponse(success=True, data=data, message=message)
    return JSONResponse(status_code=status.HTTP_200_OK, content=envelope.model_dump())


@router.get(
    "/health",
    summary="Health Check",
    description="Operational status of the backend with request and engine statistics."
)
async def health_check(engine: YouTubeLensEngine = Depends(get_engine)):
    """Endpoint to check system health and retrieve operational statistics."""
    logger.debug("Health check endpoint requested.")
    health_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service_version": app_version,
        "actions": list(engine.actions),
        "requests": request_metrics.get_stats(),
    }
    try:
        health_data["statistics"] = await engine.get_global_stats()
    except Exception as e:
        logger.error(f"Error collecting statistics for /health endpoint: {e}", exc_info=True)
        health_data["statistics"] = {"error": f"Failed to collect detailed stats: {e}"}

    return Response(
        content=json.dumps(health_data, default=str),
        status_code=status.HTTP_200_OK,
        media_type="application/json"
    )
