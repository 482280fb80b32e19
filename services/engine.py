#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
YouTube Lens engine.

Dispatches client actions to the fetcher, filter/sort layer, translator and
admin check. Each action validates its payload into a pydantic model, does
its work with request-scoped state only, and returns ``(data, message)`` for
the response envelope. Failures are raised as ``AppBaseError`` subclasses
(or pydantic/ValueError, normalized by ``handle_exception``) and turned into
the envelope by the route.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from exceptions import InvalidInputError, VideoUrlError
from logging_config import StructuredLogger
from models import (AdminAuthRequest, AnalyzeRequest, ChannelInfoRequest, ChannelSearchRequest,
                    ChannelVideosRequest, CheckAdminRequest, FilterRequest, SearchCriteria,
                    SortRequest, TranslateRequest, TranslateSubtitleRequest)
from services.admin import AdminAuthenticator
from services.filters import apply_filters, sort_records
from services.key_rotation import RequestContext
from services.translator import Translator
from services.youtube_api import YouTubeResourceFetcher, extract_video_id
from utils import performance_timer

logger = StructuredLogger(__name__)

ActionResult = Tuple[Any, str]


class YouTubeLensEngine:
    """Action dispatcher for the single backend endpoint.

    Long-lived pieces (translator HTTP client, admin table, counters) live
    here; everything that touches API keys is created per call.
    """

    def __init__(self, translator: Translator, admin: Optional[AdminAuthenticator] = None):
        self.translator = translator
        self.admin = admin or AdminAuthenticator()
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[ActionResult]]] = {
            "search": self.search,
            "analyze": self.analyze,
            "filter": self.filter,
            "sort": self.sort,
            "translate": self.translate,
            "translateSubtitle": self.translate_subtitle,
            "channelInfo": self.channel_info,
            "channelVideos": self.channel_videos,
            "channelSearch": self.channel_search,
            "adminAuth": self.admin_auth,
            "checkAdmin": self.check_admin,
        }
        self._global_stats = {
            "requests_processed": 0,
            "requests_failed": 0,
            "videos_returned": 0,
            "api_calls": 0,
            "api_quota_used": 0,
            "key_rotations": 0,
            "total_processing_time_ms": 0.0,
            "engine_start_time": time.monotonic(),
        }
        logger.info("YouTubeLensEngine initialized.")

    @property
    def actions(self):
        return tuple(self._handlers)

    async def dispatch(self, action: Optional[str], payload: Dict[str, Any]) -> ActionResult:
        """Run one action.

        Args:
            action: Action name from the request
            payload: Remaining request parameters

        Returns:
            tuple: (data, message)

        Raises:
            InvalidInputError: Unknown or missing action.
            AppBaseError: Anything the handler raises.
        """
        handler = self._handlers.get(action or "")
        if handler is None:
            raise InvalidInputError(f"Invalid action parameter: {action!r}")

        start = time.monotonic()
        self._global_stats["requests_processed"] += 1
        try:
            with performance_timer(f"action_{action}"):
                return await handler(payload)
        except Exception:
            self._global_stats["requests_failed"] += 1
            raise
        finally:
            self._global_stats["total_processing_time_ms"] += (time.monotonic() - start) * 1000

    def _context(self, api_keys) -> RequestContext:
        return RequestContext.from_keys(api_keys)

    def _record_usage(self, context: RequestContext, videos_returned: int = 0):
        usage = context.stats()
        self._global_stats["api_calls"] += usage["api_calls"]
        self._global_stats["api_quota_used"] += usage["api_quota_used"]
        self._global_stats["key_rotations"] += usage["key_rotations"]
        self._global_stats["videos_returned"] += videos_returned
        logger.debug(f"[REQ-{context.request_id}] API usage: {usage}", request_id=context.request_id, **usage)

    # --- YouTube actions ---

    async def search(self, payload: Dict[str, Any]) -> ActionResult:
        criteria = SearchCriteria.model_validate(payload)
        context = self._context(criteria.api_keys)
        if not criteria.keyword:
            raise InvalidInputError("A search keyword is required.")
        logger.info(
            f"[REQ-{context.request_id}] search '{criteria.keyword}'",
            request_id=context.request_id, keyword=criteria.keyword, max_results=criteria.max_results,
            time_frame=criteria.time_frame, region=criteria.region_code, search_type=criteria.search_type
        )
        try:
            records = await YouTubeResourceFetcher(context).search(criteria)
        finally:
            self._record_usage(context)
        self._global_stats["videos_returned"] += len(records)
        return [record.to_response() for record in records], f"Search complete - {len(records)} result(s)"

    async def analyze(self, payload: Dict[str, Any]) -> ActionResult:
        request = AnalyzeRequest.model_validate(payload)
        context = self._context(request.api_keys)
        if not request.url:
            raise InvalidInputError("A YouTube video URL is required.")
        video_id = extract_video_id(request.url)
        if video_id is None:
            logger.info(f"[REQ-{context.request_id}] No video id in URL '{request.url[:100]}'",
                        request_id=context.request_id)
            raise VideoUrlError()

        try:
            record = await YouTubeResourceFetcher(context).fetch_single_video(video_id)
        finally:
            self._record_usage(context)
        if record is None:
            return [], "Video not found."
        self._global_stats["videos_returned"] += 1
        return [record.to_response()], "URL analysis complete"

    async def channel_info(self, payload: Dict[str, Any]) -> ActionResult:
        request = ChannelInfoRequest.model_validate(payload)
        context = self._context(request.api_keys)
        fetcher = YouTubeResourceFetcher(context)
        try:
            channel_id = await fetcher.resolve_channel_id(request.channel_id, request.url)
            info = await fetcher.get_channel_info(channel_id) if channel_id else None
        finally:
            self._record_usage(context)
        if info is None:
            return None, "Channel not found."
        return info, "Channel info loaded"

    async def channel_videos(self, payload: Dict[str, Any]) -> ActionResult:
        request = ChannelVideosRequest.model_validate(payload)
        context = self._context(request.api_keys)
        fetcher = YouTubeResourceFetcher(context)
        try:
            channel_id = await fetcher.resolve_channel_id(request.channel_id, request.url)
            records = await fetcher.get_channel_videos(channel_id, request.max_results) if channel_id else []
        finally:
            self._record_usage(context)
        self._global_stats["videos_returned"] += len(records)
        return [record.to_response() for record in records], f"Loaded {len(records)} channel video(s)"

    async def channel_search(self, payload: Dict[str, Any]) -> ActionResult:
        request = ChannelSearchRequest.model_validate(payload)
        context = self._context(request.api_keys)
        if not request.keyword:
            raise InvalidInputError("A channel search keyword is required.")
        try:
            buckets = await YouTubeResourceFetcher(context).search_channels(request.keyword, request.max_results)
        finally:
            self._record_usage(context)
        total = sum(len(channels) for channels in buckets.values())
        return buckets, f"Channel search complete - {total} channel(s)"

    # --- Local actions ---

    async def filter(self, payload: Dict[str, Any]) -> ActionResult:
        request = FilterRequest.model_validate(payload)
        filtered = apply_filters(request.results, request.filters)
        return (
            [record.to_response() for record in filtered],
            f"Filters applied - {len(request.results)} -> {len(filtered)} result(s)"
        )

    async def sort(self, payload: Dict[str, Any]) -> ActionResult:
        request = SortRequest.model_validate(payload)
        ordered = sort_records(request.results, request.column, request.order)
        return [record.to_response() for record in ordered], "Sort complete"

    async def translate(self, payload: Dict[str, Any]) -> ActionResult:
        request = TranslateRequest.model_validate(payload)
        result = await self.translator.translate(
            request.text, request.target_lang, request.source_lang, request.deepl_api_key
        )
        return result, f"Translated with {result['provider']}"

    async def translate_subtitle(self, payload: Dict[str, Any]) -> ActionResult:
        request = TranslateSubtitleRequest.model_validate(payload)
        segments = await self.translator.translate_subtitles(
            request.segments, request.target_lang, request.source_lang, request.deepl_api_key
        )
        return segments, f"Translated {len(segments)} subtitle segment(s)"

    async def admin_auth(self, payload: Dict[str, Any]) -> ActionResult:
        request = AdminAuthRequest.model_validate(payload)
        return self.admin.authenticate(request.username, request.password), "Admin authenticated"

    async def check_admin(self, payload: Dict[str, Any]) -> ActionResult:
        request = CheckAdminRequest.model_validate(payload)
        is_admin = self.admin.is_admin(request.username)
        return {"isAdmin": is_admin}, "Admin account" if is_admin else "Not an admin account"

    # --- Stats ---

    async def get_global_stats(self) -> Dict[str, Any]:
        """Operational counters for ``/health``."""
        uptime = time.monotonic() - self._global_stats["engine_start_time"]
        processed = self._global_stats["requests_processed"]
        return {
            "engine_uptime_seconds": round(uptime, 1),
            "requests_processed": processed,
            "requests_failed": self._global_stats["requests_failed"],
            "videos_returned": self._global_stats["videos_returned"],
            "api_calls": self._global_stats["api_calls"],
            "api_quota_used": self._global_stats["api_quota_used"],
            "key_rotations": self._global_stats["key_rotations"],
            "avg_processing_time_ms": round(
                self._global_stats["total_processing_time_ms"] / processed, 2
            ) if processed else 0.0,
            "translator": self.translator.stats(),
        }

    async def shutdown(self):
        logger.info("Shutting down YouTubeLensEngine...")
        await self.translator.aclose()
        logger.info("YouTubeLensEngine shut down complete.")
