"""
Tests for the YouTube resource fetcher: time windows, URL parsing, pagination,
batching, joins and channel lookups.
"""
import unittest
import sys
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exceptions import InvalidInputError
from models import SearchCriteria
from services.youtube_api import (YouTubeResourceFetcher, bucket_channels, extract_video_id,
                                  parse_channel_reference, relevance_language, resolve_time_window)

RESOURCE_BY_OPERATION = {
    "search.list": "search",
    "videos.list": "videos",
    "channels.list": "channels",
    "playlistItems.list": "playlistItems",
}


def make_video(video_id, channel_id="UC1", views=1000, likes=10, comments=5, duration="PT5M",
               published="2024-01-05T10:00:00Z", license="youtube"):
    return {
        "id": video_id,
        "snippet": {
            "title": f"Video {video_id}",
            "channelId": channel_id,
            "channelTitle": f"Channel {channel_id}",
            "publishedAt": published,
            "thumbnails": {"default": {"url": f"https://i.ytimg.com/vi/{video_id}/default.jpg"}},
            "description": "",
        },
        "statistics": {"viewCount": str(views), "likeCount": str(likes), "commentCount": str(comments)},
        "contentDetails": {"duration": duration},
        "status": {"license": license},
    }


def make_channel(channel_id, title=None, subscribers=1000, views=100000, videos=10, uploads=None):
    channel = {
        "id": channel_id,
        "snippet": {"title": title or f"Channel {channel_id}"},
        "statistics": {"subscriberCount": str(subscribers), "viewCount": str(views), "videoCount": str(videos)},
    }
    if uploads:
        channel["contentDetails"] = {"relatedPlaylists": {"uploads": uploads}}
    return channel


class FakeContext:
    """Stands in for RequestContext: records every call and answers from in-memory data."""

    request_id = "test0001"

    def __init__(self, videos=(), channels=(), search_pages=None, channel_search=(), playlist_pages=None):
        self.videos = {video["id"]: video for video in videos}
        self.channels = {channel["id"]: channel for channel in channels}
        self.search_pages = search_pages or {}
        self.channel_search = list(channel_search)
        self.playlist_pages = playlist_pages or {}
        self.calls = []

    async def call(self, request_factory, operation):
        youtube = MagicMock()
        request_factory(youtube)
        resource = getattr(youtube, RESOURCE_BY_OPERATION[operation])
        params = resource.return_value.list.call_args.kwargs
        self.calls.append((operation, params))
        return self._answer(operation, params)

    def _answer(self, operation, params):
        if operation == "search.list" and params.get("type") == "channel":
            return {"items": [{"id": {"kind": "youtube#channel", "channelId": cid}} for cid in self.channel_search]}
        if operation == "search.list":
            ids, next_token = self.search_pages.get(params.get("pageToken"), ([], None))
            response = {"items": [{"id": {"videoId": vid}} for vid in ids]}
            if next_token:
                response["nextPageToken"] = next_token
            return response
        if operation == "videos.list":
            return {"items": [self.videos[vid] for vid in params["id"].split(",") if vid in self.videos]}
        if operation == "channels.list":
            return {"items": [self.channels[cid] for cid in params["id"].split(",") if cid in self.channels]}
        if operation == "playlistItems.list":
            items, next_token = self.playlist_pages.get(params.get("pageToken"), ([], None))
            response = {"items": [{"contentDetails": {"videoId": vid, "videoPublishedAt": published}}
                                  for vid, published in items]}
            if next_token:
                response["nextPageToken"] = next_token
            return response
        raise AssertionError(f"unexpected operation {operation}")

    def calls_for(self, operation):
        return [params for op, params in self.calls if op == operation]


class TestTimeWindows(unittest.TestCase):
    """Test cases for resolve_time_window."""

    NOW = datetime(2024, 1, 8, 12, 0, 0, tzinfo=timezone.utc)

    def test_named_windows(self):
        expected = {
            "hour": "2024-01-08T11:00:00Z",
            "day": "2024-01-07T12:00:00Z",
            "week": "2024-01-01T12:00:00Z",
            "month": "2023-12-09T12:00:00Z",
        }
        for frame, after in expected.items():
            criteria = SearchCriteria(keyword="x", timeFrame=frame)
            self.assertEqual(resolve_time_window(criteria, now=self.NOW), (after, None), frame)

    def test_no_time_frame(self):
        self.assertEqual(resolve_time_window(SearchCriteria(keyword="x"), now=self.NOW), (None, None))

    def test_custom_range_covers_whole_days(self):
        criteria = SearchCriteria(keyword="x", timeFrame="custom", startDate="2024-01-01", endDate="2024-01-31")
        self.assertEqual(
            resolve_time_window(criteria),
            ("2024-01-01T00:00:00Z", "2024-01-31T23:59:59Z")
        )

    def test_custom_range_requires_both_dates(self):
        criteria = SearchCriteria(keyword="x", timeFrame="custom", startDate="2024-01-01")
        with self.assertRaises(InvalidInputError):
            resolve_time_window(criteria)

    def test_custom_range_rejects_inverted_dates(self):
        criteria = SearchCriteria(keyword="x", timeFrame="custom", startDate="2024-02-01", endDate="2024-01-01")
        with self.assertRaises(InvalidInputError):
            resolve_time_window(criteria)


class TestUrlParsing(unittest.TestCase):
    """Test cases for video and channel URL parsing."""

    def test_video_url_forms(self):
        urls = [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ?t=42",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ&list=PL123",
            "  youtu.be/dQw4w9WgXcQ  ",
        ]
        for url in urls:
            self.assertEqual(extract_video_id(url), "dQw4w9WgXcQ", url)

    def test_unparseable_video_urls(self):
        for url in ("", None, "https://example.com/watch?v=dQw4w9WgXcQ", "not a url", "https://youtu.be/short"):
            self.assertIsNone(extract_video_id(url), url)

    def test_channel_references(self):
        channel_id = "UC" + "a" * 22
        self.assertEqual(parse_channel_reference(f"https://www.youtube.com/channel/{channel_id}"),
                         ("channel_id", channel_id))
        self.assertEqual(parse_channel_reference(channel_id), ("channel_id", channel_id))
        self.assertEqual(parse_channel_reference("https://www.youtube.com/@SomeCreator"),
                         ("channel_handle", "SomeCreator"))
        self.assertEqual(parse_channel_reference("@SomeCreator"), ("channel_handle", "SomeCreator"))
        self.assertIsNone(parse_channel_reference("https://example.com"))

    def test_relevance_language(self):
        self.assertEqual(relevance_language("KR"), "ko")
        self.assertEqual(relevance_language("TW"), "zh-TW")
        self.assertIsNone(relevance_language("ZZ"))


class TestSearch(unittest.IsolatedAsyncioTestCase):
    """Test cases for YouTubeResourceFetcher.search."""

    async def test_paginates_in_batches_of_fifty(self):
        page_ids = {token: [f"{token or 'p1'}_{i:02d}" for i in range(50)] for token in (None, "p2", "p3")}
        context = FakeContext(
            videos=[make_video(vid) for ids in page_ids.values() for vid in ids],
            channels=[make_channel("UC1")],
            search_pages={None: (page_ids[None], "p2"), "p2": (page_ids["p2"], "p3"), "p3": (page_ids["p3"], None)},
        )
        criteria = SearchCriteria(keyword="music", maxResults=120)

        records = await YouTubeResourceFetcher(context).search(criteria)

        search_calls = context.calls_for("search.list")
        self.assertEqual([c["maxResults"] for c in search_calls], [50, 50, 20])
        self.assertEqual([c["pageToken"] for c in search_calls], [None, "p2", "p3"])
        self.assertEqual([len(c["id"].split(",")) for c in context.calls_for("videos.list")], [50, 50, 20])
        self.assertEqual(len(context.calls_for("channels.list")), 1)
        self.assertEqual(len(records), 120)
        self.assertEqual([r.index for r in records], list(range(1, 121)))

    async def test_search_parameters(self):
        context = FakeContext(search_pages={None: ([], None)})
        criteria = SearchCriteria(keyword="  k-pop ", maxResults=5, regionCode="jp", sortBy="date",
                                  videoDuration="short", timeFrame="custom",
                                  startDate="2024-01-01", endDate="2024-01-02")

        records = await YouTubeResourceFetcher(context).search(criteria)

        self.assertEqual(records, [])
        params = context.calls_for("search.list")[0]
        self.assertEqual(params["q"], "k-pop")
        self.assertEqual(params["type"], "video")
        self.assertEqual(params["regionCode"], "JP")
        self.assertEqual(params["relevanceLanguage"], "ja")
        self.assertEqual(params["order"], "date")
        self.assertEqual(params["videoDuration"], "short")
        self.assertEqual(params["publishedAfter"], "2024-01-01T00:00:00Z")
        self.assertEqual(params["publishedBefore"], "2024-01-02T23:59:59Z")
        self.assertNotIn("videoLicense", params)
        # Nothing found means no detail calls
        self.assertEqual(context.calls_for("videos.list"), [])

    async def test_unmapped_region_sends_no_language(self):
        context = FakeContext(search_pages={None: ([], None)})
        await YouTubeResourceFetcher(context).search(SearchCriteria(keyword="x", regionCode="ZZ"))
        self.assertNotIn("relevanceLanguage", context.calls_for("search.list")[0])

    async def test_duplicate_ids_across_pages(self):
        context = FakeContext(
            videos=[make_video(v) for v in ("a", "b", "c")],
            channels=[make_channel("UC1")],
            search_pages={None: (["a", "b"], "p2"), "p2": (["b", "c"], None)},
        )
        records = await YouTubeResourceFetcher(context).search(SearchCriteria(keyword="x", maxResults=5))
        self.assertEqual([r.video_id for r in records], ["a", "b", "c"])

    async def test_joins_each_video_with_its_channel(self):
        context = FakeContext(
            videos=[make_video("a", "UC1", views=500), make_video("b", "UC2", views=500),
                    make_video("c", "UC1", views=500)],
            channels=[make_channel("UC1", subscribers=1000), make_channel("UC2", subscribers=50)],
            search_pages={None: (["a", "b", "c"], None)},
        )
        records = await YouTubeResourceFetcher(context).search(SearchCriteria(keyword="x"))

        self.assertEqual([r.subscriber_count for r in records], [1000, 50, 1000])
        channel_calls = context.calls_for("channels.list")
        self.assertEqual(len(channel_calls), 1)
        self.assertEqual(channel_calls[0]["id"], "UC1,UC2")

    async def test_creative_commons_post_filter(self):
        context = FakeContext(
            videos=[make_video("a", license="youtube"), make_video("b", license="creativeCommon")],
            channels=[make_channel("UC1")],
            search_pages={None: (["a", "b"], None)},
        )
        criteria = SearchCriteria(keyword="x", videoLicense="creativeCommon")

        records = await YouTubeResourceFetcher(context).search(criteria)

        self.assertEqual([r.video_id for r in records], ["b"])
        self.assertEqual(records[0].index, 1)
        self.assertEqual(context.calls_for("search.list")[0]["videoLicense"], "creativeCommon")

    async def test_view_count_order_is_applied_locally(self):
        context = FakeContext(
            videos=[make_video("a", views=10), make_video("b", views=300), make_video("c", views=20)],
            channels=[make_channel("UC1")],
            search_pages={None: (["a", "b", "c"], None)},
        )
        records = await YouTubeResourceFetcher(context).search(SearchCriteria(keyword="x", sortBy="viewCount"))

        self.assertEqual([r.video_id for r in records], ["b", "c", "a"])
        self.assertEqual([(r.index, r.rank) for r in records], [(1, 1), (2, 2), (3, 3)])

    async def test_missing_keyword(self):
        with self.assertRaises(InvalidInputError):
            await YouTubeResourceFetcher(FakeContext()).search(SearchCriteria(keyword="   "))

    async def test_channel_mode_lists_uploads_in_window(self):
        context = FakeContext(
            videos=[make_video("v1", published="2024-01-10T00:00:00Z"),
                    make_video("v2", published="2024-01-20T00:00:00Z")],
            channels=[make_channel("UC1", title="Cooking Daily", uploads="UU1"),
                      make_channel("UC9", title="Other")],
            channel_search=["UC9", "UC1"],
            playlist_pages={None: ([("v3", "2024-02-05T00:00:00Z"), ("v2", "2024-01-20T00:00:00Z")], "n2"),
                            "n2": ([("v1", "2024-01-10T00:00:00Z"), ("v0", "2023-12-20T00:00:00Z")], "n3")},
        )
        criteria = SearchCriteria(keyword="cooking daily", searchType="channel", timeFrame="custom",
                                  startDate="2024-01-01", endDate="2024-01-31")

        records = await YouTubeResourceFetcher(context).search(criteria)

        self.assertEqual([r.video_id for r in records], ["v2", "v1"])
        # Paging stops at the first upload older than the window
        self.assertEqual(len(context.calls_for("playlistItems.list")), 2)
        self.assertEqual(context.calls_for("playlistItems.list")[0]["playlistId"], "UU1")

    async def test_channel_mode_without_match(self):
        context = FakeContext(channels=[make_channel("UC9", title="Other")], channel_search=["UC9"])
        criteria = SearchCriteria(keyword="cooking", searchType="channel")
        self.assertEqual(await YouTubeResourceFetcher(context).search(criteria), [])


class TestSingleResources(unittest.IsolatedAsyncioTestCase):
    """Test cases for single video and channel lookups."""

    async def test_fetch_single_video(self):
        context = FakeContext(videos=[make_video("dQw4w9WgXcQ")], channels=[make_channel("UC1")])
        record = await YouTubeResourceFetcher(context).fetch_single_video("dQw4w9WgXcQ")
        self.assertEqual(record.video_id, "dQw4w9WgXcQ")
        self.assertEqual(record.index, 1)
        self.assertEqual(len(context.calls), 2)

    async def test_fetch_single_video_not_found(self):
        context = FakeContext()
        self.assertIsNone(await YouTubeResourceFetcher(context).fetch_single_video("dQw4w9WgXcQ"))
        self.assertEqual([op for op, _ in context.calls], ["videos.list"])

    async def test_channel_info(self):
        context = FakeContext(channels=[make_channel("UC1", title="Cooking", subscribers=42, uploads="UU1")])
        info = await YouTubeResourceFetcher(context).get_channel_info("UC1")
        self.assertEqual(info["title"], "Cooking")
        self.assertEqual(info["subscriberCount"], 42)
        self.assertEqual(info["uploadsPlaylistId"], "UU1")
        self.assertIsNone(await YouTubeResourceFetcher(context).get_channel_info("UCmissing"))

    async def test_resolve_channel_id(self):
        fetcher = YouTubeResourceFetcher(FakeContext())
        self.assertEqual(await fetcher.resolve_channel_id(channel_id="UC1"), "UC1")
        with self.assertRaises(InvalidInputError):
            await fetcher.resolve_channel_id(url="https://example.com/nothing")

    async def test_channel_videos_respects_max_results(self):
        context = FakeContext(
            videos=[make_video(f"v{i}", published=f"2024-01-{10 + i:02d}T00:00:00Z") for i in range(5)],
            channels=[make_channel("UC1", uploads="UU1")],
            playlist_pages={None: ([(f"v{i}", f"2024-01-{10 + i:02d}T00:00:00Z") for i in reversed(range(5))], None)},
        )
        records = await YouTubeResourceFetcher(context).get_channel_videos("UC1", max_results=3)
        self.assertEqual([r.video_id for r in records], ["v4", "v3", "v2"])


class TestChannelSearch(unittest.IsolatedAsyncioTestCase):
    """Test cases for channel search bucketing."""

    def test_bucket_channels(self):
        channels = [{"title": "Baking"}, {"title": "Cooking Daily"}, {"title": " cook "}]
        buckets = bucket_channels(channels, "Cook")
        self.assertEqual(buckets["exact"], [{"title": " cook "}])
        self.assertEqual(buckets["partial"], [{"title": "Cooking Daily"}])
        self.assertEqual(buckets["others"], [{"title": "Baking"}])

    async def test_search_channels(self):
        context = FakeContext(
            channels=[make_channel("UC1", title="Cook"), make_channel("UC2", title="Cooking Daily"),
                      make_channel("UC3", title="Baking")],
            channel_search=["UC3", "UC2", "UC1"],
        )
        buckets = await YouTubeResourceFetcher(context).search_channels("cook", max_results=5)

        self.assertEqual([c["channelId"] for c in buckets["exact"]], ["UC1"])
        self.assertEqual([c["channelId"] for c in buckets["partial"]], ["UC2"])
        self.assertEqual([c["channelId"] for c in buckets["others"]], ["UC3"])
        self.assertEqual(context.calls_for("search.list")[0]["maxResults"], 5)


if __name__ == '__main__':
    unittest.main()
