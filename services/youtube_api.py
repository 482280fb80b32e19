#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
YouTube Data API v3 resource fetcher for the YouTube Lens backend.

Turns search criteria, a video URL or a channel reference into the batched
sequence of API calls (search -> videos -> channels) and hands the raw items
to the enricher. Every call goes through the request's ``RequestContext`` so
quota failures rotate to the next client-supplied key.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import config
from exceptions import InvalidInputError
from logging_config import StructuredLogger
from models import SearchCriteria, VideoRecord
from services.enricher import enrich_video, pick_thumbnail
from services.key_rotation import RequestContext
from utils import chunked, format_api_datetime, parse_api_datetime, performance_timer, to_int

logger = StructuredLogger(__name__)

# Region code -> relevanceLanguage. Unmapped regions send no language hint.
REGION_LANGUAGE = {
    "KR": "ko", "JP": "ja", "US": "en", "TW": "zh-TW", "GB": "en",
    "CA": "en", "AU": "en", "DE": "de", "FR": "fr", "ES": "es",
    "BR": "pt", "IN": "hi", "RU": "ru",
}

# Named publish windows, measured back from now (UTC)
TIME_WINDOWS = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "3months": timedelta(days=90),
    "6months": timedelta(days=180),
    "year": timedelta(days=365),
}

VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/(?:watch\?(?:[^#\s]*&)?v=|embed/|shorts/|live/|v/)|youtu\.be/)"
    r"(?P<identifier>[a-zA-Z0-9_-]{11})"
)
CHANNEL_URL_PATTERNS = {
    "channel_id": re.compile(r"youtube\.com/channel/(?P<identifier>UC[a-zA-Z0-9_-]{22})"),
    "channel_handle": re.compile(r"youtube\.com/@(?P<identifier>[a-zA-Z0-9_.-]+)"),
}
CHANNEL_ID_PATTERN = re.compile(r"^UC[a-zA-Z0-9_-]{22}$")

VIDEO_PARTS = "snippet,statistics,contentDetails,status"
CHANNEL_PARTS = "snippet,statistics"


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """Extract the 11-character video id from a YouTube URL.

    Handles watch (``v`` anywhere in the query), youtu.be short links, embed,
    shorts and live URLs.

    Args:
        url: URL as typed by the user

    Returns:
        str or None: The video id, None when no pattern matches
    """
    if not url:
        return None
    match = VIDEO_ID_PATTERN.search(url.strip())
    return match.group("identifier") if match else None


def parse_channel_reference(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Classify a channel URL (or bare channel id) as ("channel_id" | "channel_handle", value)."""
    if not url:
        return None
    url = url.strip()
    if CHANNEL_ID_PATTERN.match(url):
        return "channel_id", url
    if url.startswith("@") and len(url) > 1:
        return "channel_handle", url[1:]
    for ref_type, pattern in CHANNEL_URL_PATTERNS.items():
        match = pattern.search(url)
        if match:
            return ref_type, match.group("identifier")
    return None


def relevance_language(region_code: Optional[str]) -> Optional[str]:
    return REGION_LANGUAGE.get((region_code or "").upper())


def resolve_time_window(criteria: SearchCriteria,
                        now: Optional[datetime] = None) -> Tuple[Optional[str], Optional[str]]:
    """Resolve the criteria's time frame to ``publishedAfter``/``publishedBefore``.

    Args:
        criteria: Search criteria
        now: Reference time, defaults to the current UTC time

    Returns:
        tuple: (published_after, published_before), either may be None

    Raises:
        InvalidInputError: For a custom window with a missing or inverted range.
    """
    if criteria.time_frame == "custom":
        if criteria.start_date is None or criteria.end_date is None:
            raise InvalidInputError("Both startDate and endDate are required for a custom time frame.")
        if criteria.start_date > criteria.end_date:
            raise InvalidInputError("startDate must not be after endDate.")
        return _day_start(criteria.start_date), _day_end(criteria.end_date)

    window = TIME_WINDOWS.get(criteria.time_frame or "")
    if window is None:
        return None, None
    reference = now or datetime.now(timezone.utc)
    return format_api_datetime(reference - window), None


def _day_start(day: date) -> str:
    return f"{day.isoformat()}T00:00:00Z"


def _day_end(day: date) -> str:
    return f"{day.isoformat()}T23:59:59Z"


def _in_window(published_raw: Optional[str], published_after: Optional[str],
               published_before: Optional[str]) -> bool:
    published = parse_api_datetime(published_raw)
    if published is None:
        return published_after is None and published_before is None
    if published_after and published < parse_api_datetime(published_after):
        return False
    if published_before and published > parse_api_datetime(published_before):
        return False
    return True


def order_for_search(records: List[VideoRecord], sort_by: str) -> List[VideoRecord]:
    """Apply the search's sort mode locally and number the final order.

    ``viewCount`` and ``date`` sort descending; ``relevance`` keeps the API
    order. Both ``index`` and ``rank`` are set, so a later "reset" sort
    restores exactly this order.
    """
    if sort_by == "viewCount":
        records = sorted(records, key=lambda r: r.view_count, reverse=True)
    elif sort_by == "date":
        records = sorted(
            records,
            key=lambda r: (parse_api_datetime(r.published_at_raw) or datetime.min.replace(tzinfo=timezone.utc)),
            reverse=True
        )
    return [
        record.model_copy(update={"index": position, "rank": position})
        for position, record in enumerate(records, start=1)
    ]


def channel_summary(item: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a ``channels.list`` item for the client."""
    snippet = item.get("snippet") or {}
    statistics = item.get("statistics") or {}
    uploads = ((item.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
    summary = {
        "channelId": item.get("id", ""),
        "title": snippet.get("title", ""),
        "description": snippet.get("description", "") or "",
        "customUrl": snippet.get("customUrl", ""),
        "thumbnail": pick_thumbnail(snippet.get("thumbnails")),
        "publishedAt": snippet.get("publishedAt", ""),
        "country": snippet.get("country", ""),
        "subscriberCount": to_int(statistics.get("subscriberCount")),
        "viewCount": to_int(statistics.get("viewCount")),
        "videoCount": to_int(statistics.get("videoCount")),
        "hiddenSubscriberCount": bool(statistics.get("hiddenSubscriberCount", False)),
    }
    if uploads:
        summary["uploadsPlaylistId"] = uploads
    return summary


def _normalize_title(title: str) -> str:
    return (title or "").strip().casefold()


def bucket_channels(channels: List[Dict[str, Any]], query: str) -> Dict[str, List[Dict[str, Any]]]:
    """Split channel summaries into exact, partial and other title matches, keeping order."""
    needle = _normalize_title(query)
    buckets: Dict[str, List[Dict[str, Any]]] = {"exact": [], "partial": [], "others": []}
    for channel in channels:
        title = _normalize_title(channel.get("title", ""))
        if needle and title == needle:
            buckets["exact"].append(channel)
        elif needle and needle in title:
            buckets["partial"].append(channel)
        else:
            buckets["others"].append(channel)
    return buckets


class YouTubeResourceFetcher:
    """Fetches and enriches YouTube resources for one incoming request.

    Holds no state besides the request context; create one per request.
    """

    def __init__(self, context: RequestContext):
        self.context = context
        self.logger = logger.bind(request_id=context.request_id)

    # --- Raw API calls ---

    async def search_video_ids(self, criteria: SearchCriteria, published_after: Optional[str] = None,
                               published_before: Optional[str] = None) -> List[str]:
        """Page through ``search.list`` until ``max_results`` video ids are collected.

        Args:
            criteria: Search criteria (keyword, region, order, license, duration)
            published_after: RFC 3339 lower bound
            published_before: RFC 3339 upper bound

        Returns:
            list: Unique video ids in API order
        """
        wanted = criteria.max_results
        base_params: Dict[str, Any] = {
            "part": "id",
            "type": "video",
            "q": criteria.keyword,
            "order": criteria.sort_by,
            "regionCode": criteria.region_code,
            "fields": "items(id/videoId),nextPageToken",
        }
        language = relevance_language(criteria.region_code)
        if language:
            base_params["relevanceLanguage"] = language
        if published_after:
            base_params["publishedAfter"] = published_after
        if published_before:
            base_params["publishedBefore"] = published_before
        if criteria.video_license != "any":
            base_params["videoLicense"] = criteria.video_license
        if criteria.video_duration and criteria.video_duration != "any":
            base_params["videoDuration"] = criteria.video_duration

        self.logger.info(
            f"Searching videos for '{criteria.keyword}' (up to {wanted})",
            keyword=criteria.keyword, region=criteria.region_code, order=criteria.sort_by
        )

        video_ids: List[str] = []
        seen = set()
        page_token: Optional[str] = None
        while len(video_ids) < wanted:
            params = {**base_params, "maxResults": min(config.BATCH_SIZE, wanted - len(video_ids)),
                      "pageToken": page_token}
            response = await self.context.call(lambda yt: yt.search().list(**params), "search.list")

            page_ids = [
                item["id"]["videoId"] for item in response.get("items", [])
                if (item.get("id") or {}).get("videoId")
            ]
            for video_id in page_ids:
                if video_id not in seen and len(video_ids) < wanted:
                    seen.add(video_id)
                    video_ids.append(video_id)
            self.logger.debug(f"Search page returned {len(page_ids)} ids, {len(video_ids)}/{wanted} collected.")

            page_token = response.get("nextPageToken")
            if not page_token or not page_ids:
                break

        return video_ids

    async def fetch_videos(self, video_ids: List[str]) -> List[Dict[str, Any]]:
        """``videos.list`` in chunks of at most 50 ids, returned in the requested order."""
        items_by_id: Dict[str, Dict[str, Any]] = {}
        for batch in chunked(video_ids, config.BATCH_SIZE):
            response = await self.context.call(
                lambda yt: yt.videos().list(part=VIDEO_PARTS, id=",".join(batch), maxResults=len(batch)),
                "videos.list"
            )
            for item in response.get("items", []):
                if item.get("id"):
                    items_by_id[item["id"]] = item
        return [items_by_id[video_id] for video_id in video_ids if video_id in items_by_id]

    async def fetch_channels(self, channel_ids: List[str], part: str = CHANNEL_PARTS) -> Dict[str, Dict[str, Any]]:
        """``channels.list`` in chunks of at most 50 ids, keyed by channel id."""
        channels: Dict[str, Dict[str, Any]] = {}
        unique_ids = list(dict.fromkeys(channel_id for channel_id in channel_ids if channel_id))
        for batch in chunked(unique_ids, config.BATCH_SIZE):
            response = await self.context.call(
                lambda yt: yt.channels().list(part=part, id=",".join(batch), maxResults=len(batch)),
                "channels.list"
            )
            for item in response.get("items", []):
                if item.get("id"):
                    channels[item["id"]] = item
        return channels

    async def build_records(self, video_ids: List[str]) -> List[VideoRecord]:
        """Fetch details for ``video_ids`` and join each video with its channel."""
        if not video_ids:
            return []
        videos = await self.fetch_videos(video_ids)
        channel_ids = [(video.get("snippet") or {}).get("channelId", "") for video in videos]
        channels = await self.fetch_channels(channel_ids)
        return [
            enrich_video(video, channels.get((video.get("snippet") or {}).get("channelId", "")), index=position)
            for position, video in enumerate(videos, start=1)
        ]

    # --- Operations ---

    async def search(self, criteria: SearchCriteria) -> List[VideoRecord]:
        """Run a keyword (or channel name) search and return enriched records.

        Raises:
            InvalidInputError: Missing keyword or invalid custom window.
        """
        if not criteria.keyword:
            raise InvalidInputError("A search keyword is required.")
        published_after, published_before = resolve_time_window(criteria)

        with performance_timer("youtube_search"):
            if criteria.search_type == "channel":
                records = await self._search_channel_uploads(criteria, published_after, published_before)
            else:
                video_ids = await self.search_video_ids(criteria, published_after, published_before)
                records = await self.build_records(video_ids)

        if criteria.video_license == "creativeCommon":
            before = len(records)
            records = [record for record in records if record.license == "creativeCommon"]
            if len(records) != before:
                self.logger.debug(f"License post-filter dropped {before - len(records)} record(s).")

        self.logger.info(f"Search for '{criteria.keyword}' produced {len(records)} record(s).",
                         result_count=len(records))
        return order_for_search(records, criteria.sort_by)

    async def _search_channel_uploads(self, criteria: SearchCriteria, published_after: Optional[str],
                                      published_before: Optional[str]) -> List[VideoRecord]:
        """Channel mode: pick the channel best matching the keyword and list its uploads."""
        matches = await self.search_channels(criteria.keyword, max_results=10)
        best = (matches["exact"] or matches["partial"] or [None])[0]
        if best is None:
            self.logger.info(f"No channel matches '{criteria.keyword}'.")
            return []
        self.logger.info(f"Channel mode using '{best['title']}' ({best['channelId']})",
                         channel_id=best["channelId"])
        return await self.get_channel_videos(best["channelId"], criteria.max_results,
                                             published_after=published_after, published_before=published_before)

    async def fetch_single_video(self, video_id: str) -> Optional[VideoRecord]:
        """Fetch and enrich one video; None when the video or its channel is missing."""
        videos = await self.fetch_videos([video_id])
        if not videos:
            self.logger.info(f"Video {video_id} not found.")
            return None
        video = videos[0]
        channel_id = (video.get("snippet") or {}).get("channelId", "")
        channel = (await self.fetch_channels([channel_id])).get(channel_id)
        if channel is None:
            self.logger.info(f"Channel {channel_id} of video {video_id} not found.")
            return None
        return enrich_video(video, channel, index=1)

    async def resolve_channel_id(self, channel_id: Optional[str] = None, url: Optional[str] = None) -> Optional[str]:
        """Resolve a channel id from an explicit id, a channel URL or an @handle.

        Returns:
            str or None: The channel id, None when a handle does not exist

        Raises:
            InvalidInputError: Nothing usable was given.
        """
        if channel_id:
            return channel_id
        reference = parse_channel_reference(url)
        if reference is None:
            raise InvalidInputError("A channelId or a valid YouTube channel URL is required.")
        ref_type, value = reference
        if ref_type == "channel_id":
            return value

        response = await self.context.call(
            lambda yt: yt.channels().list(part="id", forHandle=f"@{value}"),
            "channels.list"
        )
        items = response.get("items", [])
        if not items:
            self.logger.info(f"Handle @{value} did not resolve to a channel.")
            return None
        return items[0].get("id")

    async def get_channel_info(self, channel_id: str) -> Optional[Dict[str, Any]]:
        """Channel summary including its uploads playlist id, None when missing."""
        channels = await self.fetch_channels([channel_id], part="snippet,statistics,contentDetails")
        item = channels.get(channel_id)
        return channel_summary(item) if item else None

    async def get_channel_videos(self, channel_id: str, max_results: int,
                                 published_after: Optional[str] = None,
                                 published_before: Optional[str] = None) -> List[VideoRecord]:
        """Enriched recent uploads of a channel, newest first.

        Walks the uploads playlist page by page. The playlist is newest first,
        so paging stops at the first item older than ``published_after``.
        """
        info = await self.get_channel_info(channel_id)
        playlist_id = (info or {}).get("uploadsPlaylistId")
        if not playlist_id:
            self.logger.info(f"Channel {channel_id} has no uploads playlist.")
            return []

        video_ids: List[str] = []
        page_token: Optional[str] = None
        reached_window_start = False
        while len(video_ids) < max_results and not reached_window_start:
            params = {"part": "contentDetails", "playlistId": playlist_id,
                      "maxResults": config.BATCH_SIZE, "pageToken": page_token}
            response = await self.context.call(lambda yt: yt.playlistItems().list(**params), "playlistItems.list")
            items = response.get("items", [])
            for item in items:
                details = item.get("contentDetails") or {}
                video_id = details.get("videoId")
                published_raw = details.get("videoPublishedAt")
                if not video_id:
                    continue
                if published_after and published_raw and not _in_window(published_raw, published_after, None):
                    reached_window_start = True
                    break
                if _in_window(published_raw, None, published_before) and video_id not in video_ids:
                    video_ids.append(video_id)
                    if len(video_ids) >= max_results:
                        break

            page_token = response.get("nextPageToken")
            if not page_token or not items:
                break

        self.logger.debug(f"Collected {len(video_ids)} upload(s) from {playlist_id}.")
        records = await self.build_records(video_ids)
        return order_for_search(records, "date")

    async def search_channels(self, keyword: str, max_results: int = 10) -> Dict[str, List[Dict[str, Any]]]:
        """Search channels by name and bucket them by title match.

        Returns:
            dict: {"exact": [...], "partial": [...], "others": [...]} of channel summaries
        """
        if not keyword:
            raise InvalidInputError("A channel search keyword is required.")
        response = await self.context.call(
            lambda yt: yt.search().list(part="snippet", type="channel", q=keyword,
                                        maxResults=min(config.BATCH_SIZE, max_results)),
            "search.list"
        )
        channel_ids = [
            (item.get("id") or {}).get("channelId") or (item.get("snippet") or {}).get("channelId")
            for item in response.get("items", [])
        ]
        channel_ids = [channel_id for channel_id in channel_ids if channel_id]
        if not channel_ids:
            return {"exact": [], "partial": [], "others": []}
        channels = await self.fetch_channels(channel_ids)
        summaries = [channel_summary(channels[channel_id]) for channel_id in dict.fromkeys(channel_ids)
                     if channel_id in channels]
        return bucket_channels(summaries, keyword)
