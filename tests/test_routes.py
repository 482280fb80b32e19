"""
Tests for the HTTP surface: the action endpoint, envelopes and /health.
"""
import json
import unittest
import sys
import os
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from api import dependencies
from main import app
from middleware import RequestMetrics, RequestMetricsMiddleware
from services.admin import AdminAuthenticator

ENDPOINT = "/api/backend"


def results(*views):
    return [
        {"index": i, "rank": i, "videoId": f"v{i}", "title": f"Video {i}", "viewCount": count}
        for i, count in enumerate(views, start=1)
    ]


def youtube_resource():
    """Mock youtube Resource answering one search page, one video and its channel."""
    resource = MagicMock()
    resource.search.return_value.list.return_value.execute.return_value = {
        "items": [{"id": {"videoId": "abc123def45"}}]
    }
    resource.videos.return_value.list.return_value.execute.return_value = {"items": [{
        "id": "abc123def45",
        "snippet": {"title": "Cats", "channelId": "UC1", "channelTitle": "Cat channel",
                    "publishedAt": "2024-01-05T10:00:00Z", "thumbnails": {}},
        "statistics": {"viewCount": "1500", "likeCount": "30", "commentCount": "15"},
        "contentDetails": {"duration": "PT10M"},
    }]}
    resource.channels.return_value.list.return_value.execute.return_value = {"items": [{
        "id": "UC1", "statistics": {"subscriberCount": "1000", "viewCount": "10000", "videoCount": "3"},
    }]}
    return resource


class TestBackendEndpoint(unittest.TestCase):
    """Test cases for the action-dispatched endpoint."""

    def setUp(self):
        self.client_context = TestClient(app)
        self.client = self.client_context.__enter__()

    def tearDown(self):
        self.client_context.__exit__(None, None, None)

    def test_options_is_answered(self):
        response = self.client.options(ENDPOINT)
        self.assertEqual(response.status_code, 200)

    def test_unknown_action(self):
        response = self.client.get(ENDPOINT, params={"action": "dance"})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertIsNone(body["data"])
        self.assertIn("dance", body["message"])

    def test_filter_via_post(self):
        response = self.client.post(ENDPOINT, json={
            "action": "filter", "results": results(500, 1500, 2000), "filters": {"viewCount": 1000},
        })
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual([r["videoId"] for r in body["data"]], ["v2", "v3"])
        self.assertEqual([r["index"] for r in body["data"]], [1, 2])
        self.assertEqual(response.headers["X-Content-Type-Options"], "nosniff")

    def test_filter_via_query_string(self):
        response = self.client.get(ENDPOINT, params={
            "action": "filter", "results": json.dumps(results(500, 1500)), "filters": json.dumps({"viewCount": 1000}),
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual([r["videoId"] for r in response.json()["data"]], ["v2"])

    def test_also_served_under_short_path(self):
        response = self.client.post("/api", json={"action": "filter", "results": results(10)})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["data"]), 1)

    def test_sort_and_reset(self):
        fetched = results(100, 300, 200)
        response = self.client.post(ENDPOINT, json={
            "action": "sort", "results": fetched, "column": "viewCount", "order": "desc",
        })
        self.assertEqual(response.status_code, 200)
        ordered = response.json()["data"]
        self.assertEqual([r["videoId"] for r in ordered], ["v2", "v3", "v1"])

        response = self.client.post(ENDPOINT, json={"action": "sort", "results": ordered, "order": "reset"})
        self.assertEqual([r["videoId"] for r in response.json()["data"]], ["v1", "v2", "v3"])

    def test_sort_unknown_column_echoes_results(self):
        fetched = results(100, 200)
        response = self.client.post(ENDPOINT, json={
            "action": "sort", "results": fetched, "column": "nope", "order": "asc",
        })
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["data"], fetched)

    def test_filter_rejects_unknown_predicate(self):
        response = self.client.post(ENDPOINT, json={
            "action": "filter", "results": results(100), "filters": {"minViews": 10},
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(response.json()["data"]), 1)

    def test_invalid_json_body(self):
        response = self.client.post(ENDPOINT, content=b"{not json",
                                    headers={"Content-Type": "application/json"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

    def test_search_without_api_keys(self):
        response = self.client.post(ENDPOINT, json={"action": "search", "keyword": "cats"})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["data"], [])
        self.assertTrue(body["message"])

    def test_search_success(self):
        with patch("services.key_rotation.build", return_value=youtube_resource()) as build:
            response = self.client.get(ENDPOINT, params={"action": "search", "keyword": "cats", "apiKeys": "k1"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(len(body["data"]), 1)
        record = body["data"][0]
        self.assertEqual(record["videoId"], "abc123def45")
        self.assertEqual(record["ciiScore"], 55.5)
        self.assertFalse(record["isShorts"])
        self.assertEqual(build.call_args.kwargs["developerKey"], "k1")

    def test_analyze_unparseable_url(self):
        with patch("services.key_rotation.build") as build:
            response = self.client.post(ENDPOINT, json={
                "action": "analyze", "url": "https://example.com/not-a-video", "apiKeys": ["k1"],
            })
        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["data"], [])
        self.assertTrue(body["message"])
        build.assert_not_called()

    def test_analyze_missing_url(self):
        response = self.client.post(ENDPOINT, json={"action": "analyze", "apiKeys": ["k1"]})
        self.assertEqual(response.status_code, 400)

    def test_admin_actions(self):
        dependencies.engine.admin = AdminAuthenticator({"admin": "pw"})

        response = self.client.post(ENDPOINT, json={"action": "adminAuth", "username": "admin", "password": "nope"})
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()["success"])

        response = self.client.post(ENDPOINT, json={"action": "adminAuth", "username": "admin", "password": "pw"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["authenticated"])

        response = self.client.post(ENDPOINT, json={"action": "checkAdmin", "username": "admin"})
        self.assertEqual(response.json()["data"], {"isAdmin": True})
        response = self.client.post(ENDPOINT, json={"action": "checkAdmin", "username": "guest"})
        self.assertEqual(response.json()["data"], {"isAdmin": False})

    def test_health(self):
        self.client.post(ENDPOINT, json={"action": "filter", "results": []})
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIn("search", body["actions"])
        self.assertGreaterEqual(body["statistics"]["requests_processed"], 1)
        self.assertIn("total_requests", body["requests"])


class TestRequestMetricsMiddleware(unittest.TestCase):
    """Test cases for the body size guard."""

    def setUp(self):
        self.metrics = RequestMetrics()
        small_app = FastAPI()
        small_app.add_middleware(RequestMetricsMiddleware, max_content_length=10, metrics=self.metrics)

        @small_app.post("/echo")
        async def echo():
            return {"ok": True}

        self.client = TestClient(small_app)

    def test_oversized_body_gets_envelope(self):
        response = self.client.post("/echo", content=b"x" * 11)
        self.assertEqual(response.status_code, 413)
        body = response.json()
        self.assertEqual(set(body), {"success", "data", "message"})
        self.assertFalse(body["success"])
        self.assertIsNone(body["data"])
        self.assertEqual(self.metrics.get_stats()["status_codes"], {413: 1})

    def test_small_body_passes(self):
        response = self.client.post("/echo", content=b"x" * 10)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})
        self.assertEqual(response.headers["X-Frame-Options"], "SAMEORIGIN")


if __name__ == '__main__':
    unittest.main()
