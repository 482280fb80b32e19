#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Result enrichment: joins a raw ``videos.list`` item with its channel's
``channels.list`` item and derives the metrics shown in the result table.

Impact (CII) score:
    contributionValue = views / channel total views * 100
    performanceValue  = views / subscribers
    ciiScore          = contributionValue * 0.7 + performanceValue * 30

Both ratios are 0 when their denominator is 0 (hidden subscriber counts,
brand-new channels).
"""

from typing import Any, Dict, Optional

from config import config
from models import CII_BAD, CII_GOOD, CII_GREAT, CII_NOT_BAD, CII_SOSO, VideoRecord
from utils import format_published_at, format_seconds, parse_duration_seconds, to_int

# Lower score bound for each label, best first
IMPACT_THRESHOLDS = (
    (70.0, CII_GREAT),
    (50.0, CII_GOOD),
    (30.0, CII_SOSO),
    (10.0, CII_NOT_BAD),
)

THUMBNAIL_PREFERENCE = ("default", "medium", "high", "standard", "maxres")


def contribution_value(view_count: int, channel_view_count: int) -> float:
    """Share of the channel's lifetime views this video accounts for, in percent."""
    if channel_view_count <= 0:
        return 0.0
    return max(0.0, view_count / channel_view_count * 100)


def performance_value(view_count: int, subscriber_count: int) -> float:
    """Views per subscriber."""
    if subscriber_count <= 0:
        return 0.0
    return max(0.0, view_count / subscriber_count)


def impact_score(contribution: float, performance: float) -> float:
    return contribution * 0.7 + performance * 30


def impact_label(score: float) -> str:
    """Map an impact score to its label (Great/Good/Soso/Not bad/Bad)."""
    for lower_bound, label in IMPACT_THRESHOLDS:
        if score >= lower_bound:
            return label
    return CII_BAD


def engagement_rate(like_count: int, comment_count: int, view_count: int) -> float:
    """(likes + comments) / views in percent, 0 for unviewed videos."""
    if view_count <= 0:
        return 0.0
    return (like_count + comment_count) / view_count * 100


def pick_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> str:
    for size in THUMBNAIL_PREFERENCE:
        url = (thumbnails or {}).get(size, {}).get("url")
        if url:
            return url
    return ""


def enrich_video(video: Dict[str, Any], channel: Optional[Dict[str, Any]], index: int = 1) -> VideoRecord:
    """Build the flat, UI-ready record for one video.

    Args:
        video: Item from ``videos.list`` (snippet, statistics, contentDetails, status)
        channel: Matching item from ``channels.list``; None if it could not be found
        index: 1-based position, also used as the stable fetch rank

    Returns:
        VideoRecord: The enriched record
    """
    snippet = video.get("snippet") or {}
    statistics = video.get("statistics") or {}
    channel_statistics = (channel or {}).get("statistics") or {}

    view_count = max(0, to_int(statistics.get("viewCount")))
    like_count = max(0, to_int(statistics.get("likeCount")))
    comment_count = max(0, to_int(statistics.get("commentCount")))
    subscriber_count = max(0, to_int(channel_statistics.get("subscriberCount")))
    channel_view_count = max(0, to_int(channel_statistics.get("viewCount")))

    duration_seconds = parse_duration_seconds((video.get("contentDetails") or {}).get("duration"))
    contribution = contribution_value(view_count, channel_view_count)
    performance = performance_value(view_count, subscriber_count)
    # Score from unrounded ratios; rounding is presentation only
    score = impact_score(contribution, performance)

    published_raw = snippet.get("publishedAt", "")

    return VideoRecord(
        index=index,
        rank=index,
        video_id=video.get("id", ""),
        title=snippet.get("title", ""),
        channel_id=snippet.get("channelId", ""),
        channel_title=snippet.get("channelTitle", ""),
        thumbnail=pick_thumbnail(snippet.get("thumbnails")),
        published_at=format_published_at(published_raw),
        published_at_raw=published_raw,
        duration=format_seconds(duration_seconds),
        duration_seconds=duration_seconds,
        view_count=view_count,
        like_count=like_count,
        comment_count=comment_count,
        subscriber_count=subscriber_count,
        total_videos=max(0, to_int(channel_statistics.get("videoCount"))),
        license=(video.get("status") or {}).get("license") or "youtube",
        is_shorts=duration_seconds <= config.SHORTS_MAX_SECONDS,
        contribution_value=round(contribution, 2),
        performance_value=round(performance, 2),
        cii_score=round(score, 1),
        cii=impact_label(score),
        engagement_rate=round(engagement_rate(like_count, comment_count, view_count), 1),
        description=snippet.get("description", "") or "",
    )
