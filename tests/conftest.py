"""Shared fixtures and fakes for the schedule service tests."""

import asyncio
from datetime import datetime, timedelta

import pytest

from sr_schedule.models import Channel, Program
from sr_schedule.services.fetch_types import FetchError, FetchResult
from sr_schedule.services.presentation import StateGateway
from sr_schedule.services.refresh_coordinator import RefreshCoordinator


NOW = datetime(2024, 3, 10, 14, 0, 0)


def make_program(program_id, start, end, title=None, description="", image_ref=None):
    return Program(
        id=program_id,
        title=title or f"Program {program_id}",
        description=description,
        image_ref=image_ref,
        start_time=start,
        end_time=end,
    )


def feed_time(local: datetime) -> str:
    """Feed timestamp that parses back to `local` after the +1h correction."""
    return (local - timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ")


def episode_xml(program_id, title, start: datetime, end: datetime, description="", image=None):
    image_elem = f"<imageurl>{image}</imageurl>" if image else ""
    return (
        "<scheduledepisode>"
        f"<episodeid>{program_id * 10}</episodeid>"
        f"<title>{title}</title>"
        f"<description>{description}</description>"
        f"<starttimeutc>{feed_time(start)}</starttimeutc>"
        f"<endtimeutc>{feed_time(end)}</endtimeutc>"
        f'<program id="{program_id}" name="{title}" />'
        '<channel id="132" name="P1" />'
        f"{image_elem}"
        "</scheduledepisode>"
    )


def schedule_document(*episodes: str) -> bytes:
    body = "".join(episodes)
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f"<sr><copyright>Sveriges Radio</copyright><schedule>{body}</schedule></sr>"
    ).encode("utf-8")


CHANNELS_DOCUMENT = b"""<?xml version="1.0" encoding="utf-8"?>
<sr>
  <copyright>Sveriges Radio</copyright>
  <channels>
    <channel id="132" name="P1">
      <image>https://static-cdn.sr.se/images/132/p1.png</image>
      <tagline>Talk</tagline>
    </channel>
    <channel id="163" name="P2">
      <image>https://static-cdn.sr.se/images/163/p2.png</image>
    </channel>
    <channel id="164" name="P3" />
  </channels>
</sr>
"""


class FakeFeed:
    """In-memory feed; `gate` holds list_programs open until set."""

    def __init__(self, programs=(), channels=()):
        self.programs = list(programs)
        self.channels = list(channels)
        self.images: dict[str, bytes] = {}
        self.error: FetchError | None = None
        self.channels_error: FetchError | None = None
        self.raise_exc: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.program_calls: list[tuple[int, datetime]] = []
        self.image_calls: list[str | None] = []

    async def list_channels(self):
        if self.channels_error is not None:
            return FetchResult.failure(self.channels_error)
        return FetchResult.success(self.channels)

    async def list_programs(self, channel_id, now):
        self.program_calls.append((channel_id, now))
        if self.gate is not None:
            await self.gate.wait()
        if self.raise_exc is not None:
            raise self.raise_exc
        if self.error is not None:
            return FetchResult.failure(self.error)
        return FetchResult.success(self.programs)

    async def fetch_image(self, url):
        self.image_calls.append(url)
        return self.images.get(url)

    @property
    def fetched_channels(self):
        return [channel_id for channel_id, _ in self.program_calls]


class FakeTimer:
    """Records arm/disarm calls; `fire` invokes the currently armed callback."""

    def __init__(self):
        self.armed: list[int] = []
        self.disarm_count = 0
        self.current = None

    def arm(self, generation, callback):
        self.armed.append(generation)
        self.current = (generation, callback)

    def disarm(self):
        self.disarm_count += 1
        self.current = None

    def fire(self, generation=None):
        armed_generation, callback = self.current
        return callback(armed_generation if generation is None else generation)


class RecordingGateway(StateGateway):
    """StateGateway that also keeps every call it received."""

    def __init__(self):
        super().__init__()
        self.snapshots = []
        self.errors = []
        self.images = []
        self.updates = []
        self.channel_lists = []

    def render_snapshot(self, snapshot):
        self.snapshots.append(snapshot)
        super().render_snapshot(snapshot)

    def render_error(self, message):
        self.errors.append(message)
        super().render_error(message)

    def render_image(self, description, image):
        self.images.append((description, image))
        super().render_image(description, image)

    def render_last_updated(self, timestamp):
        self.updates.append(timestamp)
        super().render_last_updated(timestamp)

    def render_channels(self, channels):
        self.channel_lists.append(tuple(channels))
        super().render_channels(channels)


@pytest.fixture
def channels():
    return [
        Channel(id=132, name="P1", image_ref="https://static-cdn.sr.se/images/132/p1.png"),
        Channel(id=164, name="P3"),
    ]


@pytest.fixture
def programs():
    return [
        make_program(1, NOW - timedelta(hours=2), NOW - timedelta(hours=1), description="Morning news"),
        make_program(2, NOW - timedelta(minutes=30), NOW + timedelta(minutes=30),
                     image_ref="https://static-cdn.sr.se/images/2.jpg", description="Live music"),
        make_program(3, NOW + timedelta(hours=2), NOW + timedelta(hours=3)),
    ]


@pytest.fixture
def feed(programs, channels):
    return FakeFeed(programs=programs, channels=channels)


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def make_coordinator(feed, gateway, timer):
    def factory(channel_id=None, clock=lambda: NOW):
        return RefreshCoordinator(feed, gateway, timer, channel_id=channel_id, clock=clock)
    return factory
