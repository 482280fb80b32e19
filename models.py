#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pydantic models for YouTube Lens API requests, responses and the enriched
video record.

The browser client speaks camelCase; models declare camelCase aliases and
accept snake_case names too. Request models reject unknown fields so a typo
in a filter name fails loudly instead of silently matching everything.
"""

from datetime import date
from typing import Any, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import config
from utils import duration_text_to_seconds

# Impact (CII) labels, best first
CII_GREAT = "Great"
CII_GOOD = "Good"
CII_SOSO = "Soso"
CII_NOT_BAD = "Not bad"
CII_BAD = "Bad"

TimeFrame = Literal["hour", "day", "week", "month", "3months", "6months", "year", "custom"]


def _blank_to_none(value: Any) -> Any:
    """Treat empty strings from query strings and form fields as unset."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RequestModel(BaseModel):
    """Base for every request payload model."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", str_strip_whitespace=True)


class KeyedRequest(RequestModel):
    """Request that calls the YouTube API with client-supplied keys."""

    api_keys: List[str] = Field(
        default_factory=list,
        alias="apiKeys",
        description="YouTube Data API keys, tried in order on quota failures."
    )

    @field_validator("api_keys", mode="before")
    @classmethod
    def normalize_api_keys(cls, v: Any) -> List[str]:
        """Accept a list, a single key, or a comma separated string; drop blanks."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            raise ValueError("apiKeys must be a list of strings")
        return [str(key).strip() for key in v if key is not None and str(key).strip()]


class SearchCriteria(KeyedRequest):
    """Parameters of a keyword search (the ``search`` action)."""

    keyword: Optional[str] = Field(None, description="Search keyword (or channel name in channel mode).")
    max_results: int = Field(
        config.DEFAULT_MAX_RESULTS,
        alias="maxResults",
        ge=1,
        le=config.MAX_RESULTS_LIMIT,
        description="Maximum number of videos to return."
    )
    time_frame: Optional[TimeFrame] = Field(
        None, alias="timeFrame", description="Named publish window, or 'custom' with startDate/endDate."
    )
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    region_code: str = Field(config.DEFAULT_REGION_CODE, alias="regionCode", pattern=r"^[A-Z]{2}$")
    sort_by: Literal["relevance", "date", "viewCount"] = Field("relevance", alias="sortBy")
    video_license: Literal["any", "creativeCommon"] = Field("any", alias="videoLicense")
    search_type: Literal["video", "channel"] = Field("video", alias="searchType")
    video_duration: Optional[Literal["any", "short", "medium", "long"]] = Field(None, alias="videoDuration")

    @field_validator("max_results", mode="before")
    @classmethod
    def default_max_results(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return config.DEFAULT_MAX_RESULTS if v is None else v

    @field_validator("region_code", mode="before")
    @classmethod
    def normalize_region(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return config.DEFAULT_REGION_CODE if v is None else str(v).strip().upper()

    @field_validator("sort_by", "video_license", "search_type", mode="before")
    @classmethod
    def blank_means_default(cls, v: Any, info) -> Any:
        v = _blank_to_none(v)
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("time_frame", "start_date", "end_date", "video_duration", "keyword", mode="before")
    @classmethod
    def blank_means_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)


class AnalyzeRequest(KeyedRequest):
    """Single video URL analysis (the ``analyze`` action)."""

    url: Optional[str] = Field(None, description="YouTube watch, short link, embed or shorts URL.")


class ChannelInfoRequest(KeyedRequest):
    """Channel lookup by id or channel URL (the ``channelInfo`` action)."""

    channel_id: Optional[str] = Field(None, alias="channelId")
    url: Optional[str] = None

    @field_validator("channel_id", "url", mode="before")
    @classmethod
    def blank_means_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ChannelVideosRequest(ChannelInfoRequest):
    """Recent uploads of a channel (the ``channelVideos`` action)."""

    max_results: int = Field(config.DEFAULT_MAX_RESULTS, alias="maxResults", ge=1, le=config.MAX_RESULTS_LIMIT)

    @field_validator("max_results", mode="before")
    @classmethod
    def default_max_results(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return config.DEFAULT_MAX_RESULTS if v is None else v


class ChannelSearchRequest(KeyedRequest):
    """Channel search by name (the ``channelSearch`` action)."""

    keyword: Optional[str] = None
    max_results: int = Field(10, alias="maxResults", ge=1, le=50)

    @field_validator("max_results", mode="before")
    @classmethod
    def default_max_results(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return 10 if v is None else v


class VideoRecord(BaseModel):
    """Enriched, flattened video row as shown in the client's result table.

    ``index`` is positional and rewritten after every filter/sort; ``rank``
    is the position the video was fetched in and never changes.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    index: int = 0
    rank: int = 0
    video_id: str = Field("", alias="videoId")
    title: str = ""
    channel_id: str = Field("", alias="channelId")
    channel_title: str = Field("", alias="channelTitle")
    thumbnail: str = ""
    published_at: str = Field("", alias="publishedAt")
    published_at_raw: str = Field("", alias="publishedAtRaw")
    duration: str = ""
    duration_seconds: int = Field(0, alias="durationSeconds")
    view_count: int = Field(0, alias="viewCount")
    like_count: int = Field(0, alias="likeCount")
    comment_count: int = Field(0, alias="commentCount")
    subscriber_count: int = Field(0, alias="subscriberCount")
    total_videos: int = Field(0, alias="totalVideos")
    license: str = "youtube"
    is_shorts: bool = Field(False, alias="isShorts")
    contribution_value: float = Field(0.0, alias="contributionValue")
    performance_value: float = Field(0.0, alias="performanceValue")
    cii_score: float = Field(0.0, alias="ciiScore")
    cii: str = CII_BAD
    engagement_rate: float = Field(0.0, alias="engagementRate")
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def fill_duration_seconds(cls, data: Any) -> Any:
        """Derive durationSeconds from the formatted duration when a client omits it."""
        if isinstance(data, dict) and "durationSeconds" not in data and "duration_seconds" not in data:
            data = {**data, "durationSeconds": duration_text_to_seconds(data.get("duration"))}
        return data

    def to_response(self) -> dict:
        """Serialize with the client's camelCase field names."""
        return self.model_dump(by_alias=True)


class FilterCriteria(RequestModel):
    """Optional predicates applied to an existing result set.

    Unset predicates are skipped. Both or neither of ``shorts``/``longform``
    means no type filter; no category flag means no category filter.
    """

    shorts: bool = False
    longform: bool = False
    cii_great: bool = Field(False, alias="ciiGreat")
    cii_good: bool = Field(False, alias="ciiGood")
    cii_soso: bool = Field(False, alias="ciiSoso")
    cii_not_bad: bool = Field(False, alias="ciiNotBad")
    cii_bad: bool = Field(False, alias="ciiBad")
    min_view_count: Optional[int] = Field(None, alias="viewCount", ge=0, description="Minimum views.")
    max_subscriber_count: Optional[int] = Field(None, alias="subscriberCount", ge=0,
                                                description="Maximum subscribers.")
    duration_seconds: Optional[int] = Field(None, alias="durationSeconds", ge=0)
    duration_comparison: Literal["over", "under"] = Field("over", alias="durationComparison")

    @field_validator("min_view_count", "max_subscriber_count", "duration_seconds", mode="before")
    @classmethod
    def blank_means_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("shorts", "longform", "cii_great", "cii_good", "cii_soso", "cii_not_bad", "cii_bad",
                     mode="before")
    @classmethod
    def blank_means_false(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return False if v is None else v

    @field_validator("duration_comparison", mode="before")
    @classmethod
    def default_comparison(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return "over" if v is None else v

    @property
    def categories(self) -> Set[str]:
        """Impact labels selected for membership filtering."""
        flags = {
            CII_GREAT: self.cii_great,
            CII_GOOD: self.cii_good,
            CII_SOSO: self.cii_soso,
            CII_NOT_BAD: self.cii_not_bad,
            CII_BAD: self.cii_bad,
        }
        return {label for label, selected in flags.items() if selected}


class FilterRequest(RequestModel):
    """Payload of the ``filter`` action."""

    results: List[VideoRecord] = Field(default_factory=list)
    filters: FilterCriteria = Field(default_factory=FilterCriteria)


class SortRequest(RequestModel):
    """Payload of the ``sort`` action."""

    results: List[VideoRecord] = Field(default_factory=list)
    column: Optional[Union[int, str]] = Field(None, description="Column name (e.g. 'viewCount') or legacy table index.")
    order: Literal["asc", "desc", "reset"] = "desc"


class TranslateRequest(RequestModel):
    """Payload of the ``translate`` action."""

    text: str = Field(..., min_length=1, max_length=5000)
    target_lang: str = Field("ko", alias="targetLang", min_length=2, max_length=8)
    source_lang: Optional[str] = Field(None, alias="sourceLang")
    deepl_api_key: Optional[str] = Field(None, alias="deeplApiKey")

    @field_validator("source_lang", "deepl_api_key", mode="before")
    @classmethod
    def blank_means_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)


class SubtitleSegment(RequestModel):
    """One timed subtitle line."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    start: Optional[float] = None
    end: Optional[float] = None
    text: str = ""


class TranslateSubtitleRequest(RequestModel):
    """Payload of the ``translateSubtitle`` action."""

    segments: List[SubtitleSegment] = Field(..., min_length=1, max_length=2000)
    target_lang: str = Field("ko", alias="targetLang", min_length=2, max_length=8)
    source_lang: Optional[str] = Field(None, alias="sourceLang")
    deepl_api_key: Optional[str] = Field(None, alias="deeplApiKey")

    @field_validator("segments", mode="before")
    @classmethod
    def wrap_plain_lines(cls, v: Any) -> Any:
        """Plain strings are accepted as untimed segments."""
        if isinstance(v, list):
            return [{"text": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator("source_lang", "deepl_api_key", mode="before")
    @classmethod
    def blank_means_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)


class AdminAuthRequest(RequestModel):
    """Payload of the ``adminAuth`` action."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", str_strip_whitespace=False)

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CheckAdminRequest(RequestModel):
    """Payload of the ``checkAdmin`` action."""

    username: str = Field(..., min_length=1)


class ApiResponse(BaseModel):
    """Uniform response envelope returned by every action, success or failure."""

    success: bool
    data: Any = None
    message: str = ""
