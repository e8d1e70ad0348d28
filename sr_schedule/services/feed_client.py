"""
Feed Client

Handles downloading and parsing channel and schedule data from the radio feed.
Failures are returned as FetchResult errors instead of being raised.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import httpx

from sr_schedule.models import Channel, Program
from sr_schedule.services.feed_parser_service import (
    parse_channels_document,
    parse_programs_document,
)
from sr_schedule.services.fetch_types import FetchResult, ParseError, TransportError
from sr_schedule.utils.http import fetch_document
from sr_schedule.utils.timezone import (
    format_feed_query_time,
    get_time_from,
    get_time_to,
    is_in_time_window,
)


logger = logging.getLogger(__name__)


class FeedClient:
    """Typed access to the channels and scheduledepisodes endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        window_hours: int = 12,
        utc_correction_hours: int = 1,
        max_retries: int = 1,
        backoff_factor: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.window_hours = window_hours
        self.utc_correction_hours = utc_correction_hours
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> FeedClient:
        return cls(
            settings.feed_base_url,
            timeout=settings.feed_timeout_sec,
            window_hours=settings.schedule_window_hours,
            utc_correction_hours=settings.feed_utc_correction_hours,
            max_retries=settings.feed_max_retries,
            backoff_factor=settings.feed_retry_backoff,
            **kwargs,
        )

    async def list_channels(self) -> FetchResult[Channel]:
        """
        Fetch the full channel list.

        Returns:
            FetchResult with channels in feed order, or the error that aborted the call
        """
        logger.info("Fetching channel list from %s", self.base_url)
        try:
            content = await self._get("channels", {"pagination": "false"})
        except httpx.HTTPError as exc:
            return FetchResult.failure(_transport_error("Radio channels could not be loaded", exc))

        try:
            channels = await self._parse(parse_channels_document, content)
        except ParseError as exc:
            logger.error("Channel list parse failed: %s", exc.message)
            return FetchResult.failure(exc)

        return FetchResult.success(channels)

    async def list_programs(self, channel_id: int, now: datetime) -> FetchResult[Program]:
        """
        Fetch programs for a channel around `now`.

        The server-side window comes from get_time_from/get_time_to, the
        result is then narrowed client-side to programs starting strictly
        inside (now - window, now + window).

        Args:
            channel_id: Channel to fetch
            now: Reference wall-clock time (local, naive)

        Returns:
            FetchResult with programs in feed order, or the error that aborted the call
        """
        time_from = get_time_from(now, self.window_hours)
        time_to = get_time_to(now, self.window_hours)
        params = {
            "pagination": "false",
            "channelid": str(channel_id),
            "fromdate": format_feed_query_time(time_from),
            "todate": format_feed_query_time(time_to),
        }
        logger.info(
            "Fetching programs for channel %s (window: %s -> %s)",
            channel_id,
            params["fromdate"],
            params["todate"],
        )

        try:
            content = await self._get("scheduledepisodes", params)
        except httpx.HTTPError as exc:
            return FetchResult.failure(_transport_error("Programs could not be loaded", exc))

        try:
            programs = await self._parse(
                parse_programs_document, content, self.utc_correction_hours
            )
        except ParseError as exc:
            logger.error("Schedule parse failed for channel %s: %s", channel_id, exc.message)
            return FetchResult.failure(exc)

        in_window = [
            program for program in programs
            if is_in_time_window(program.start_time, now, self.window_hours)
        ]
        logger.info(
            "Channel %s: %s programs received, %s inside the time window",
            channel_id,
            len(programs),
            len(in_window),
        )
        return FetchResult.success(in_window)

    async def fetch_image(self, url: str | None) -> bytes | None:
        """Download an image; failures are logged and yield None."""
        if not url:
            return None
        try:
            return await fetch_document(
                self._client,
                url,
                max_retries=self._max_retries,
                backoff_factor=self._backoff_factor,
            )
        except httpx.HTTPError as exc:
            logger.warning("Image download failed for %s: %s", url, type(exc).__name__)
            return None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict) -> bytes:
        return await fetch_document(
            self._client,
            path,
            params=params,
            max_retries=self._max_retries,
            backoff_factor=self._backoff_factor,
        )

    async def _parse(self, parse_func, *args):
        # lxml parsing is CPU bound, keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, parse_func, *args)


def _transport_error(prefix: str, exc: httpx.HTTPError) -> TransportError:
    logger.error("%s: %s: %s", prefix, type(exc).__name__, exc)
    return TransportError(f"{prefix}. Caused by: {type(exc).__name__}")
