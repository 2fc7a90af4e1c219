"""Tests for external/youtube_client.py module."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from bandhub_worker.config import YouTubeConfig
from bandhub_worker.external import QuotaExceeded, TerminalCallFailure, TransientCallFailure
from bandhub_worker.external.circuit_breaker import CircuitBreaker
from bandhub_worker.external.guard import ExternalCallGuard
from bandhub_worker.external.quota import QuotaTracker
from bandhub_worker.external.youtube_client import YouTubeClient, parse_video_resource

BASE_URL = "https://www.googleapis.com/youtube/v3"
MOMENT = datetime(2026, 10, 19, 19, 0, tzinfo=timezone.utc)


def _resource(video_id: str, title: str = "Human Jukebox halftime", published: str = "2026-10-18T20:00:00Z") -> dict:
    return {
        "id": video_id,
        "snippet": {
            "title": title,
            "description": "Filmed live",
            "channelId": "UC_SU",
            "channelTitle": "Southern University Bands",
            "publishedAt": published,
            "thumbnails": {"default": {"url": "d.jpg"}, "high": {"url": "h.jpg"}},
        },
        "contentDetails": {"duration": "PT8M30S"},
        "statistics": {"viewCount": "50000", "likeCount": "2500"},
    }


def _make_client(handler, limit: int = 10_000) -> YouTubeClient:
    http = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    guard = ExternalCallGuard(
        QuotaTracker(limit, clock=lambda: MOMENT),
        CircuitBreaker("youtube", failure_threshold=10),
    )
    client = YouTubeClient(guard=guard, http_client=http)
    client.config = YouTubeConfig(
        api_key="test-key",
        max_attempts=3,
        retry_wait_min_seconds=0,
        retry_wait_max_seconds=0,
        page_size=2,
    )
    return client


class TestParseVideoResource:
    def test_parses_all_fields(self):
        video = parse_video_resource(_resource("abc"))
        assert video.external_id == "abc"
        assert video.title == "Human Jukebox halftime"
        assert video.channel_id == "UC_SU"
        assert video.thumbnail_url == "h.jpg"
        assert video.duration_seconds == 510
        assert video.view_count == 50000
        assert video.like_count == 2500
        assert video.published_at == datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)

    def test_missing_statistics_default_to_zero(self):
        resource = _resource("abc")
        del resource["statistics"]
        video = parse_video_resource(resource)
        assert video.view_count == 0
        assert video.like_count == 0

    def test_missing_title_raises(self):
        resource = _resource("abc")
        del resource["snippet"]["title"]
        with pytest.raises(KeyError):
            parse_video_resource(resource)


class TestChannelWalk:
    def test_walks_all_pages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            params = request.url.params
            if path.endswith("/channels"):
                return httpx.Response(200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_SU"}}}]})
            if path.endswith("/playlistItems"):
                if params.get("pageToken") == "p2":
                    return httpx.Response(200, json={"items": [{"contentDetails": {"videoId": "v3"}}]})
                return httpx.Response(
                    200,
                    json={
                        "nextPageToken": "p2",
                        "items": [
                            {"contentDetails": {"videoId": "v1"}},
                            {"contentDetails": {"videoId": "v2"}},
                        ],
                    },
                )
            if path.endswith("/videos"):
                ids = params["id"].split(",")
                return httpx.Response(200, json={"items": [_resource(i) for i in ids]})
            return httpx.Response(404)

        client = _make_client(handler)
        pages = list(client.list_channel_videos("UC_SU"))

        assert [[v.external_id for v in p.items] for p in pages] == [["v1", "v2"], ["v3"]]
        # channels + 2 x (playlistItems + videos)
        assert client.units_spent == 5
        assert client.guard.quota.snapshot().used == 5

    def test_incremental_stops_at_cursor(self):
        cursor = datetime(2026, 10, 10, tzinfo=timezone.utc)

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path.endswith("/channels"):
                return httpx.Response(200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_SU"}}}]})
            if path.endswith("/playlistItems"):
                return httpx.Response(
                    200,
                    json={
                        "nextPageToken": "p2",
                        "items": [
                            {"contentDetails": {"videoId": "new", "videoPublishedAt": "2026-10-15T00:00:00Z"}},
                            {"contentDetails": {"videoId": "old", "videoPublishedAt": "2026-10-01T00:00:00Z"}},
                        ],
                    },
                )
            ids = request.url.params["id"].split(",")
            return httpx.Response(200, json={"items": [_resource(i) for i in ids]})

        client = _make_client(handler)
        pages = list(client.list_channel_videos("UC_SU", published_after=cursor))

        assert len(pages) == 1
        assert pages[0].reached_cursor is True
        assert [v.external_id for v in pages[0].items] == ["new"]

    def test_unknown_channel_is_terminal(self):
        client = _make_client(lambda request: httpx.Response(200, json={"items": []}))
        with pytest.raises(TerminalCallFailure):
            list(client.list_channel_videos("UC_MISSING"))


class TestSearch:
    def test_search_passes_cursor_and_charges_100(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/search"):
                seen.update(request.url.params)
                return httpx.Response(200, json={"items": [{"id": {"videoId": "s1"}}]})
            return httpx.Response(200, json={"items": [_resource("s1")]})

        client = _make_client(handler)
        pages = list(
            client.search_videos(
                '"Jackson State Sonic Boom" marching band',
                published_after=datetime(2026, 10, 1, tzinfo=timezone.utc),
            )
        )

        assert seen["publishedAfter"] == "2026-10-01T00:00:00Z"
        assert seen["order"] == "date"
        assert [v.external_id for v in pages[0].items] == ["s1"]
        assert client.units_spent == 101


class TestErrorClassification:
    def test_transient_errors_are_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] < 3:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"items": [_resource("v1")]})

        client = _make_client(handler)
        page = client.get_video_details(["v1"])

        assert calls["n"] == 3
        assert [v.external_id for v in page.items] == ["v1"]
        # Every attempt pays its own quota cost
        assert client.units_spent == 3

    def test_retries_exhausted(self):
        client = _make_client(lambda request: httpx.Response(429))
        with pytest.raises(TransientCallFailure):
            client.get_video_details(["v1"])
        assert client.units_spent == 3

    def test_network_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _make_client(handler)
        with pytest.raises(TransientCallFailure):
            client.get_video_details(["v1"])

    def test_client_error_is_terminal_and_not_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(400, json={"error": {"errors": [{"reason": "badRequest"}]}})

        client = _make_client(handler)
        with pytest.raises(TerminalCallFailure) as exc_info:
            client.get_video_details(["v1"])
        assert exc_info.value.status_code == 400
        assert calls["n"] == 1

    def test_platform_quota_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"errors": [{"reason": "quotaExceeded"}]}})

        client = _make_client(handler)
        with pytest.raises(QuotaExceeded):
            client.get_video_details(["v1"])
        assert client.guard.quota.snapshot().remaining == 0

    def test_local_quota_rejection_skips_network(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(200, json={"items": []})

        client = _make_client(handler, limit=50)
        with pytest.raises(QuotaExceeded):
            list(client.search_videos("band"))
        assert calls["n"] == 0
        assert client.units_spent == 0

    def test_unparseable_item_is_reported_not_raised(self):
        broken = _resource("bad")
        del broken["snippet"]["title"]

        client = _make_client(lambda request: httpx.Response(200, json={"items": [_resource("ok"), broken]}))
        page = client.get_video_details(["ok", "bad"])

        assert [v.external_id for v in page.items] == ["ok"]
        assert page.invalid_items[0]["external_id"] == "bad"
