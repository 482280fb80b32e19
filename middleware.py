#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI middleware for the YouTube Lens backend.

Content-length guard, bare OPTIONS short-circuit, security headers, request
timing logs and the counters reported by ``/health``.
"""

import time
from collections import defaultdict, deque
from typing import Any, Dict

from fastapi import FastAPI, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from config import config
from logging_config import StructuredLogger
from models import ApiResponse

logger = StructuredLogger(__name__)


class RequestMetrics:
    """Process-wide request counters.

    Updated only from the event loop thread between awaits, so no lock.
    """

    # Limit the size of response times deque to prevent unbounded memory growth
    MAX_RESPONSE_TIMES = 1000

    def __init__(self):
        self.reset()

    def reset(self):
        self.total_requests = 0
        self.success_requests = 0
        self.client_error_requests = 0
        self.server_error_requests = 0
        self.status_codes: Dict[int, int] = defaultdict(int)
        self.paths: Dict[str, int] = defaultdict(int)
        self.response_times_ms = deque(maxlen=self.MAX_RESPONSE_TIMES)
        self.start_time = time.monotonic()

    def record(self, path: str, status_code: int, duration_ms: float):
        self.total_requests += 1
        if 200 <= status_code < 400:
            self.success_requests += 1
        elif 400 <= status_code < 500:
            self.client_error_requests += 1
        else:
            self.server_error_requests += 1
        self.status_codes[status_code] += 1
        self.paths[path] += 1
        self.response_times_ms.append(duration_ms)

    def get_stats(self) -> Dict[str, Any]:
        """Get collected metrics statistics."""
        uptime = time.monotonic() - self.start_time
        response_times = sorted(self.response_times_ms)

        metrics = {
            "uptime_seconds": round(uptime, 1),
            "total_requests": self.total_requests,
            "requests_per_second": round(self.total_requests / max(1, uptime), 2),
            "success_requests": self.success_requests,
            "client_error_requests": self.client_error_requests,
            "server_error_requests": self.server_error_requests,
            "status_codes": dict(self.status_codes),
            "top_paths": dict(sorted(self.paths.items(), key=lambda item: item[1], reverse=True)[:10]),
        }

        if response_times:
            count = len(response_times)
            p95 = response_times[int(count * 0.95)] if count > 20 else None
            metrics["response_time_stats_ms"] = {
                "count": count,
                "average": round(sum(response_times) / count, 2),
                "min": round(response_times[0], 2),
                "max": round(response_times[-1], 2),
                "p95": round(p95, 2) if p95 is not None else None,
            }
        else:
            metrics["response_time_stats_ms"] = {"count": 0}
        return metrics


request_metrics = RequestMetrics()


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Security checks, response headers and metrics collection.

    Registered inside ``CORSMiddleware`` so CORS preflights are answered
    there; any other OPTIONS request is answered here with an empty 200.
    """

    def __init__(self, app: FastAPI, max_content_length: int = config.MAX_CONTENT_LENGTH,
                 metrics: RequestMetrics = request_metrics):
        super().__init__(app)
        self.max_content_length = max_content_length
        self.metrics = metrics
        logger.info(f"RequestMetricsMiddleware initialized. Max content length: "
                    f"{max_content_length / (1024 * 1024):.2f} MB")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"

        if method == "OPTIONS":
            return Response(status_code=status.HTTP_200_OK)

        # --- Security Check: Content Length ---
        if method in ("POST", "PUT", "PATCH"):
            content_length_header = request.headers.get("content-length")
            if content_length_header:
                try:
                    content_length = int(content_length_header)
                except ValueError:
                    content_length = 0
                    logger.warning(f"Invalid Content-Length header: {content_length_header}")
                if content_length > self.max_content_length:
                    logger.warning(
                        f"Request body too large: {content_length} bytes > {self.max_content_length} bytes limit.",
                        client_ip=client_ip, path=path, method=method
                    )
                    self.metrics.record(path, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, 0.0)
                    return JSONResponse(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        content=ApiResponse(
                            success=False,
                            message=f"Request body is too large. Maximum allowed size is "
                                    f"{self.max_content_length / (1024 * 1024):.1f} MB."
                        ).model_dump()
                    )

        status_code = 500  # Default if exception occurs
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            return response
        except Exception as exc:
            logger.error("Exception during request processing",
                         path=path, method=method, client_ip=client_ip, error=str(exc))
            raise
        finally:
            process_time_ms = (time.monotonic() - start_time) * 1000
            self.metrics.record(path, status_code, process_time_ms)

            log_msg = {
                "path": path,
                "method": method,
                "status_code": status_code,
                "duration_ms": round(process_time_ms, 2),
                "client_ip": client_ip,
            }
            if status_code >= 500:
                logger.error("Request completed", exc_info=False, **log_msg)
            elif status_code >= 400:
                logger.warning("Request completed", **log_msg)
            else:
                logger.info("Request completed", **log_msg)

            if process_time_ms > 3000:
                logger.warning(f"Slow response: {method} {path}", **log_msg)
