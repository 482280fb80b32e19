#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Filter and sort operations over an existing result set.

Nothing here touches the network: the client posts back the records it got
from a search and receives a filtered or reordered copy with fresh 1-based
indices.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pyuca import Collator

from exceptions import InvalidInputError
from models import FilterCriteria, VideoRecord
from utils import parse_api_datetime


def _published_timestamp(record: VideoRecord) -> float:
    published = parse_api_datetime(record.published_at_raw)
    return published.timestamp() if published else 0.0


# Sortable columns. Order matches the legacy client table, whose numeric
# column ids start at 2 (channel title).
SORT_COLUMNS: Dict[str, Callable[[VideoRecord], Any]] = {
    "channelTitle": lambda r: r.channel_title,
    "title": lambda r: r.title,
    "publishedAt": _published_timestamp,
    "subscriberCount": lambda r: r.subscriber_count,
    "viewCount": lambda r: r.view_count,
    "contributionValue": lambda r: r.contribution_value,
    "performanceValue": lambda r: r.performance_value,
    "ciiScore": lambda r: r.cii_score,
    "duration": lambda r: r.duration_seconds,
    "likeCount": lambda r: r.like_count,
    "commentCount": lambda r: r.comment_count,
    "engagementRate": lambda r: r.engagement_rate,
    "totalVideos": lambda r: r.total_videos,
}
LEGACY_COLUMN_IDS = {position + 2: name for position, name in enumerate(SORT_COLUMNS)}


def reindex(records: Iterable[VideoRecord]) -> List[VideoRecord]:
    """Return copies of ``records`` with index reassigned from 1."""
    return [record.model_copy(update={"index": position}) for position, record in enumerate(records, start=1)]


def _matches(record: VideoRecord, criteria: FilterCriteria) -> bool:
    # Video type: exactly one of shorts/longform narrows the set
    if criteria.shorts != criteria.longform:
        if criteria.shorts and not record.is_shorts:
            return False
        if criteria.longform and record.is_shorts:
            return False

    categories = criteria.categories
    if categories and record.cii not in categories:
        return False

    if criteria.min_view_count is not None and record.view_count < criteria.min_view_count:
        return False

    if criteria.max_subscriber_count is not None and record.subscriber_count > criteria.max_subscriber_count:
        return False

    if criteria.duration_seconds is not None:
        if criteria.duration_comparison == "over" and record.duration_seconds < criteria.duration_seconds:
            return False
        if criteria.duration_comparison == "under" and record.duration_seconds > criteria.duration_seconds:
            return False

    return True


def apply_filters(records: Iterable[VideoRecord], criteria: FilterCriteria) -> List[VideoRecord]:
    """Keep the records matching every set predicate, re-indexed from 1.

    Args:
        records: Current result set
        criteria: Predicates; unset ones are skipped

    Returns:
        list: Matching records in their current relative order
    """
    return reindex(record for record in records if _matches(record, criteria))


def resolve_column(column: Optional[Union[int, str]]) -> str:
    """Map a column name or legacy numeric id to a sortable column name.

    Raises:
        InvalidInputError: If the column is not sortable.
    """
    if column is None:
        raise InvalidInputError("A sort column is required.")
    if isinstance(column, int) or (isinstance(column, str) and column.strip().isdigit()):
        name = LEGACY_COLUMN_IDS.get(int(column))
    else:
        name = column.strip() if column.strip() in SORT_COLUMNS else None
    if name is None:
        raise InvalidInputError(f"Unsupported sort column: {column}")
    return name


# Unicode Collation Algorithm with the default table; independent of the process locale
_COLLATOR = Collator()


def _text_key(value: str) -> Tuple[int, ...]:
    return _COLLATOR.sort_key(value.casefold())


def sort_records(records: List[VideoRecord], column: Optional[Union[int, str]], order: str) -> List[VideoRecord]:
    """Sort records by one column.

    ``reset`` ignores the column and restores the fetch order (``rank``).
    Sorting is stable, so ties keep their current relative order.

    Args:
        records: Current result set
        column: Column name or legacy numeric id
        order: "asc", "desc" or "reset"

    Returns:
        list: Sorted copies, re-indexed from 1

    Raises:
        InvalidInputError: For an unknown column or order.
    """
    if order == "reset":
        return reindex(sorted(records, key=lambda r: r.rank))
    if order not in ("asc", "desc"):
        raise InvalidInputError(f"Unsupported sort order: {order}")

    getter = SORT_COLUMNS[resolve_column(column)]

    def sort_key(record: VideoRecord) -> Any:
        value = getter(record)
        return _text_key(value) if isinstance(value, str) else value

    return reindex(sorted(records, key=sort_key, reverse=(order == "desc")))
