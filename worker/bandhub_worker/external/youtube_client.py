"""YouTube Data API v3 client.

Every request goes through the shared ``ExternalCallGuard`` so quota is
reserved and the circuit breaker consulted before anything hits the
network. Transient failures are retried with exponential backoff; each
retry is a fresh guarded call and pays its own quota cost.

Docs: https://developers.google.com/youtube/v3/docs
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterator

import httpx
from pydantic import ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import settings
from ..logging import logger
from ..models import VideoMetadata, VideoPage
from ..utils.datetime_utils import parse_iso_duration, parse_rfc3339, to_rfc3339
from .exceptions import QuotaExceeded, TerminalCallFailure, TransientCallFailure
from .guard import ExternalCallGuard, get_youtube_guard
from .quota import ENDPOINT_COSTS

# Error reasons the platform uses when the project's daily budget is spent
QUOTA_ERROR_REASONS = {"quotaExceeded", "dailyLimitExceeded"}

THUMBNAIL_PREFERENCE = ("maxres", "high", "medium", "default")


def _truncate_body(body: str | None, limit: int = 500) -> str | None:
    if not body:
        return None
    if len(body) <= limit:
        return body
    return f"{body[:limit]}..."


def _error_reasons(response: httpx.Response) -> set[str]:
    try:
        payload = response.json()
    except ValueError:
        return set()
    errors = (payload.get("error") or {}).get("errors") or []
    return {e.get("reason") for e in errors if isinstance(e, dict)}


def parse_video_resource(resource: dict[str, Any]) -> VideoMetadata:
    """Convert a ``videos.list`` resource into ``VideoMetadata``."""
    snippet = resource.get("snippet") or {}
    details = resource.get("contentDetails") or {}
    stats = resource.get("statistics") or {}
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail_url = next(
        (thumbnails[k]["url"] for k in THUMBNAIL_PREFERENCE if k in thumbnails),
        None,
    )
    return VideoMetadata(
        external_id=resource["id"],
        title=snippet["title"],
        description=snippet.get("description"),
        channel_id=snippet.get("channelId"),
        channel_title=snippet.get("channelTitle"),
        thumbnail_url=thumbnail_url,
        duration_seconds=parse_iso_duration(details.get("duration")),
        published_at=parse_rfc3339(snippet.get("publishedAt")),
        view_count=int(stats.get("viewCount", 0)),
        like_count=int(stats.get("likeCount", 0)),
    )


class YouTubeClient:
    def __init__(
        self,
        guard: ExternalCallGuard | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.config = settings.youtube_config
        if not self.config.api_key:
            logger.warning("youtube_api_key_missing", message="YOUTUBE_API_KEY not configured; sync calls will fail.")
        self.guard = guard or get_youtube_guard()
        self.units_spent = 0
        self.client = http_client or httpx.Client(
            base_url=self.config.base_url,
            headers={"User-Agent": "bandhub-video-sync/1.0"},
            timeout=self.config.request_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    def _request(self, endpoint: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        # Only reached once the guard has reserved quota for this call
        self.units_spent += ENDPOINT_COSTS.get(endpoint, 1)
        query = {**params, "key": self.config.api_key}
        try:
            response = self.client.get(path, params=query)
        except httpx.TimeoutException as exc:
            raise TransientCallFailure(f"Timeout calling {path}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientCallFailure(f"Network error calling {path}: {exc}") from exc

        status = response.status_code
        if status >= 400:
            body = _truncate_body(response.text)
            if status == 403 and _error_reasons(response) & QUOTA_ERROR_REASONS:
                logger.error("youtube_remote_quota_exceeded", path=path)
                raise QuotaExceeded(f"Platform reported quota exhaustion on {path}")
            if status == 429 or status >= 500:
                logger.warning("youtube_transient_error", path=path, status=status, body=body)
                raise TransientCallFailure(f"{path} returned {status}", status_code=status)
            logger.warning("youtube_terminal_error", path=path, status=status, body=body)
            raise TerminalCallFailure(f"{path} returned {status}", status_code=status)

        try:
            return response.json()
        except ValueError as exc:
            raise TerminalCallFailure(f"{path} returned malformed JSON") from exc

    def _call(self, endpoint: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(max(self.config.max_attempts, 1)),
            wait=wait_exponential(
                multiplier=1,
                min=self.config.retry_wait_min_seconds,
                max=self.config.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(TransientCallFailure),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self.guard.call(endpoint, self._request, endpoint, path, params)
        raise AssertionError("unreachable")  # pragma: no cover

    # -------------------------------------------------------------------------
    # API methods
    # -------------------------------------------------------------------------
    def get_uploads_playlist_id(self, channel_id: str) -> str:
        data = self._call(
            "channels.list",
            "/channels",
            {"part": "contentDetails", "id": channel_id},
        )
        items = data.get("items") or []
        if not items:
            raise TerminalCallFailure(f"Channel {channel_id} not found", status_code=404)
        uploads = ((items[0].get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        if not uploads:
            raise TerminalCallFailure(f"Channel {channel_id} has no uploads playlist")
        return uploads

    def get_video_details(self, video_ids: list[str]) -> VideoPage:
        """Hydrate up to one page of ids with duration and statistics."""
        if not video_ids:
            return VideoPage()
        data = self._call(
            "videos.list",
            "/videos",
            {
                "part": "snippet,contentDetails,statistics",
                "id": ",".join(video_ids),
            },
        )
        page = VideoPage()
        for resource in data.get("items") or []:
            try:
                page.items.append(parse_video_resource(resource))
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                logger.warning("youtube_video_parse_failed", video_id=resource.get("id"), error=str(exc))
                page.invalid_items.append({"external_id": resource.get("id"), "error": str(exc)})
        return page

    def list_channel_videos(
        self,
        channel_id: str,
        published_after: datetime | None = None,
        max_pages: int | None = None,
    ) -> Iterator[VideoPage]:
        """Walk a channel's uploads playlist, newest first.

        With ``published_after`` the walk stops at the first page that
        reaches items at or before the cursor.
        """
        playlist_id = self.get_uploads_playlist_id(channel_id)
        page_token: str | None = None
        pages = 0
        while True:
            params: dict[str, Any] = {
                "part": "contentDetails",
                "playlistId": playlist_id,
                "maxResults": self.config.page_size,
            }
            if page_token:
                params["pageToken"] = page_token
            data = self._call("playlistItems.list", "/playlistItems", params)
            pages += 1

            video_ids: list[str] = []
            reached_cursor = False
            for item in data.get("items") or []:
                details = item.get("contentDetails") or {}
                video_id = details.get("videoId")
                if not video_id:
                    continue
                published = parse_rfc3339(details.get("videoPublishedAt"))
                if published_after and published and published <= published_after:
                    reached_cursor = True
                    continue
                video_ids.append(video_id)

            page = self.get_video_details(video_ids)
            page.next_page_token = data.get("nextPageToken")
            page.reached_cursor = reached_cursor
            yield page

            page_token = page.next_page_token
            if reached_cursor or not page_token:
                break
            if max_pages and pages >= max_pages:
                logger.info("youtube_channel_walk_page_cap", channel_id=channel_id, pages=pages)
                break

    def search_videos(
        self,
        query: str,
        published_after: datetime | None = None,
        max_pages: int | None = None,
    ) -> Iterator[VideoPage]:
        """Run a video search ordered by date. Each page costs 100 units."""
        page_token: str | None = None
        pages = 0
        while True:
            params: dict[str, Any] = {
                "part": "snippet",
                "type": "video",
                "q": query,
                "order": "date",
                "maxResults": self.config.page_size,
            }
            if published_after:
                params["publishedAfter"] = to_rfc3339(published_after)
            if page_token:
                params["pageToken"] = page_token
            data = self._call("search.list", "/search", params)
            pages += 1

            video_ids = [
                (item.get("id") or {}).get("videoId")
                for item in data.get("items") or []
            ]
            page = self.get_video_details([v for v in video_ids if v])
            page.next_page_token = data.get("nextPageToken")
            yield page

            page_token = page.next_page_token
            if not page_token:
                break
            if max_pages and pages >= max_pages:
                break

    def close(self) -> None:
        self.client.close()
