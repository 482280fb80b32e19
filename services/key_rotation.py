#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
API key rotation and the shared YouTube request executor.

Browser clients send a pool of YouTube Data API keys with each request. A
``KeyRotator`` walks that pool; ``ApiRequestExecutor`` runs a single API call
with the active key and moves on to the next key when YouTube answers with a
quota or auth failure (403/429). Both live inside a ``RequestContext`` that is
created per incoming request and dropped afterwards, so no key or cursor is
ever shared between requests.
"""

import asyncio
import functools
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

import httplib2
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from config import config
from exceptions import (KeysExhaustedError, NoApiKeysError, UpstreamAPIError,
                        UpstreamTransportError)
from logging_config import StructuredLogger
from utils import obfuscate_key

logger = StructuredLogger(__name__)

# A callable that receives a youtube Resource bound to one key and returns the
# request to execute, e.g. ``lambda yt: yt.videos().list(part="snippet", id=ids)``
RequestFactory = Callable[[Resource], Any]


class MalformedResponseError(Exception):
    """Raised when the API answered 2xx with something that is not a JSON object."""


# Failures that say nothing about the key itself
TRANSPORT_ERRORS = (
    httplib2.HttpLib2Error,
    OSError,
    asyncio.TimeoutError,
    json.JSONDecodeError,
    MalformedResponseError,
)


class KeyRotator:
    """Ordered pool of API keys with a wrapping cursor.

    ``current()`` returns the active key (None for an empty pool) and
    ``advance()`` moves the cursor forward, returning False when the pool has
    at most one key and rotating therefore cannot help. Never raises.
    """

    def __init__(self, keys: Sequence[str]):
        self._keys = [key for key in keys if key]
        self.active_index = 0
        self.rotations = 0

    def __len__(self) -> int:
        return len(self._keys)

    def current(self) -> Optional[str]:
        if not self._keys:
            return None
        if self.active_index >= len(self._keys):
            self.active_index = 0
        return self._keys[self.active_index]

    def advance(self) -> bool:
        if len(self._keys) <= 1:
            return False
        self.active_index = (self.active_index + 1) % len(self._keys)
        self.rotations += 1
        logger.info(
            f"API key rotated to index {self.active_index}",
            active_index=self.active_index,
            pool_size=len(self._keys)
        )
        return True


class ApiRequestExecutor:
    """Executes YouTube API requests with per-key failover.

    One ``googleapiclient`` Resource is built lazily per key and reused for the
    lifetime of the executor (one incoming request).
    """

    # API quota costs for different endpoint calls (estimates)
    API_COST = {
        "videos.list": 1,
        "search.list": 100,
        "channels.list": 1,
        "playlistItems.list": 1,
    }

    ROTATE_ON_STATUS = frozenset({403, 429})

    def __init__(self, timeout_seconds: float = config.API_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._resources: Dict[str, Resource] = {}
        self.api_calls_count = 0
        self.api_quota_used = 0

    async def _resource_for(self, key: str) -> Resource:
        """Return the cached youtube v3 Resource for ``key``, building it on first use.

        Building parses the discovery document, so it runs in the default executor.
        """
        resource = self._resources.get(key)
        if resource is None:
            loop = asyncio.get_running_loop()
            try:
                # static_discovery uses the discovery document bundled with the library
                resource = await loop.run_in_executor(None, functools.partial(
                    build, "youtube", "v3", developerKey=key, cache_discovery=False, static_discovery=True
                ))
            except Exception as e:
                logger.error(f"Could not build YouTube API client for key {obfuscate_key(key)}: {e}")
                raise UpstreamTransportError(f"Could not initialize YouTube API client: {e}") from e
            self._resources[key] = resource
        return resource

    async def _run(self, request: Any) -> dict:
        """Run a blocking googleapiclient request in the default executor with a timeout."""
        loop = asyncio.get_running_loop()
        response = await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(request.execute, num_retries=0)),
            timeout=self.timeout_seconds
        )
        if not isinstance(response, dict):
            raise MalformedResponseError(f"Unexpected response type {type(response).__name__}")
        return response

    @staticmethod
    def _error_message(error: HttpError) -> str:
        """Extract YouTube's human-readable message from an HttpError."""
        reason = getattr(error, "reason", None)
        if reason:
            return str(reason)
        try:
            payload = json.loads(error.content.decode(config.DEFAULT_ENCODING, errors="replace"))
            return payload.get("error", {}).get("message") or str(error)
        except (ValueError, AttributeError):
            return str(error)

    async def execute(self, request_factory: RequestFactory, rotator: KeyRotator,
                      max_attempts: Optional[int] = None, operation: str = "youtube_api",
                      cost: int = 1) -> dict:
        """Execute one API request, rotating keys on quota/auth failures.

        Args:
            request_factory: Builds the request from a Resource bound to the active key.
            rotator: The request's key pool.
            max_attempts: Attempts before giving up. Defaults to the pool size.
            operation: Name used in logs (e.g. "search.list").
            cost: Estimated quota units, added to the stats on success.

        Returns:
            dict: The parsed JSON response.

        Raises:
            NoApiKeysError: The pool has no key.
            KeysExhaustedError: Every attempt hit 403/429.
            UpstreamAPIError: YouTube answered with any other error status.
            UpstreamTransportError: The last attempt failed at the transport level.
        """
        attempts = max(1, max_attempts if max_attempts is not None else len(rotator))

        for attempt in range(attempts):
            key = rotator.current()
            if key is None:
                raise NoApiKeysError("No API key is available.")
            is_last_attempt = attempt == attempts - 1

            try:
                request = request_factory(await self._resource_for(key))
                response = await self._run(request)

            except HttpError as e:
                status_code = int(getattr(e.resp, "status", 0) or 0)
                if status_code in self.ROTATE_ON_STATUS:
                    logger.warning(
                        f"{operation} rejected key {obfuscate_key(key)} with {status_code}, rotating",
                        operation=operation, status=status_code, attempt=attempt + 1
                    )
                    if not rotator.advance():
                        raise KeysExhaustedError() from e
                    continue
                message = self._error_message(e)
                logger.error(
                    f"{operation} failed with HTTP {status_code}: {message}",
                    operation=operation, status=status_code, exc_info=False
                )
                raise UpstreamAPIError(message, upstream_status=status_code) from e

            except TRANSPORT_ERRORS as e:
                if isinstance(e, asyncio.TimeoutError):
                    # The timed-out call may still be running on this Resource in its worker thread
                    self._resources.pop(key, None)
                if is_last_attempt:
                    logger.error(f"{operation} transport failure on final attempt: {e!r}", operation=operation)
                    raise UpstreamTransportError(f"YouTube API request failed: {e}") from e
                logger.warning(
                    f"{operation} transport failure, trying next key: {e!r}",
                    operation=operation, attempt=attempt + 1
                )
                rotator.advance()
                continue

            self.api_calls_count += 1
            self.api_quota_used += cost
            logger.debug(f"{operation} succeeded", operation=operation, attempt=attempt + 1)
            return response

        logger.error(f"{operation} gave up after {attempts} attempt(s)", operation=operation)
        raise KeysExhaustedError()


@dataclass
class RequestContext:
    """Everything one incoming request needs to talk to YouTube."""

    rotator: KeyRotator
    executor: ApiRequestExecutor = field(default_factory=ApiRequestExecutor)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    @classmethod
    def from_keys(cls, keys: Sequence[str]) -> "RequestContext":
        """Create a context for a client-supplied key list.

        Raises:
            NoApiKeysError: If the list has no usable key.
        """
        rotator = KeyRotator(keys)
        if not len(rotator):
            raise NoApiKeysError()
        return cls(rotator=rotator)

    async def call(self, request_factory: RequestFactory, operation: str) -> dict:
        """Execute a request through the shared executor with this context's keys."""
        return await self.executor.execute(
            request_factory,
            self.rotator,
            operation=operation,
            cost=ApiRequestExecutor.API_COST.get(operation, 1)
        )

    def stats(self) -> Dict[str, int]:
        """API usage of this request."""
        return {
            "api_calls": self.executor.api_calls_count,
            "api_quota_used": self.executor.api_quota_used,
            "key_rotations": self.rotator.rotations,
        }
