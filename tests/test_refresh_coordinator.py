"""Tests for the refresh coordinator state machine.

Covers the single-flight gate, timer generations, channel switching while a
fetch is running, failure handling and the per-row detail flow.
"""

import asyncio
from datetime import timedelta

import httpx
import pytest

from conftest import NOW, RecordingGateway, FakeTimer, episode_xml, schedule_document
from sr_schedule.models import Channel, ProgramStatus
from sr_schedule.services.feed_client import FeedClient
from sr_schedule.services.fetch_types import TransportError
from sr_schedule.services.refresh_coordinator import RefreshCoordinator


# =============================================================================
# SINGLE FLIGHT
# =============================================================================


class TestSingleFlight:

    async def test_back_to_back_manual_refreshes_fetch_once(self, make_coordinator, feed):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator(channel_id=132)

        assert coordinator.request_refresh() is True
        assert coordinator.request_refresh() is False
        assert coordinator.state.in_flight is True

        feed.gate.set()
        await coordinator.wait_for_fetch()

        assert feed.fetched_channels == [132]
        assert coordinator.state.in_flight is False

    async def test_refresh_after_completion_fetches_again(self, make_coordinator, feed):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert feed.fetched_channels == [132, 132]

    async def test_concurrent_triggers_from_threads_start_one_fetch(self, make_coordinator, feed):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator(channel_id=132)

        results = await asyncio.gather(
            *(asyncio.to_thread(coordinator.request_refresh) for _ in range(16))
        )
        feed.gate.set()
        await coordinator.wait_for_fetch()

        assert results.count(True) == 1
        assert feed.fetched_channels == [132]

    async def test_refresh_without_channel_is_dropped(self, make_coordinator, feed, timer):
        coordinator = make_coordinator()

        assert coordinator.request_refresh() is False
        assert feed.program_calls == []
        assert timer.armed == []

    async def test_invalid_channel_selection_is_ignored(self, make_coordinator, feed):
        coordinator = make_coordinator()

        assert coordinator.select_channel(0) is False
        assert coordinator.select_channel(-5) is False
        assert coordinator.state.current_channel_id is None
        assert feed.program_calls == []


# =============================================================================
# TIMER GENERATIONS
# =============================================================================


class TestTimerGenerations:

    async def test_fetch_disarms_then_arms_new_generation(self, make_coordinator, timer):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        assert timer.disarm_count == 1
        assert timer.armed == [1]

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        assert timer.disarm_count == 2
        assert timer.armed == [1, 2]
        assert coordinator.state.timer_generation == 2

    async def test_completion_does_not_rearm(self, make_coordinator, feed, timer):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        armed_before = list(timer.armed)
        feed.gate.set()
        await coordinator.wait_for_fetch()

        assert timer.armed == armed_before

    async def test_stale_generation_produces_no_fetch(self, make_coordinator, feed):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        stale_generation = coordinator.state.timer_generation
        await coordinator.wait_for_fetch()
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.on_timer_fired(stale_generation) is False
        assert len(feed.program_calls) == 2

    async def test_current_generation_refreshes(self, make_coordinator, feed, timer):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert timer.fire() is True
        await coordinator.wait_for_fetch()

        assert len(feed.program_calls) == 2
        assert coordinator.state.timer_generation == 2

    async def test_timer_while_fetching_is_dropped(self, make_coordinator, feed):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        assert coordinator.on_timer_fired(coordinator.state.timer_generation) is False

        feed.gate.set()
        await coordinator.wait_for_fetch()
        assert len(feed.program_calls) == 1

    async def test_timer_callback_from_worker_thread(self, make_coordinator, feed, gateway):
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        generation = coordinator.state.timer_generation
        assert await asyncio.to_thread(coordinator.on_timer_fired, generation) is True
        await coordinator.wait_for_fetch()

        assert len(feed.program_calls) == 2
        assert coordinator.state.in_flight is False
        assert len(gateway.snapshots) == 2


# =============================================================================
# CHANNEL SELECTION
# =============================================================================


class TestChannelSelection:

    async def test_selection_while_fetching_updates_current_channel(self, make_coordinator, feed, timer):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator()

        assert coordinator.select_channel(132) is True
        assert coordinator.select_channel(164) is False
        assert coordinator.state.current_channel_id == 164

        feed.gate.set()
        await coordinator.wait_for_fetch()
        assert timer.fire() is True
        await coordinator.wait_for_fetch()

        assert feed.fetched_channels == [132, 164]

    async def test_select_by_name_uses_loaded_channels(self, make_coordinator, feed):
        coordinator = make_coordinator()
        await coordinator.load_channels()

        assert coordinator.select_channel_by_name("P3") is True
        assert coordinator.select_channel_by_name("Unknown") is False
        await coordinator.wait_for_fetch()

        assert feed.fetched_channels == [164]

    async def test_snapshot_uses_channel_from_list(self, make_coordinator, gateway):
        coordinator = make_coordinator()
        await coordinator.load_channels()

        coordinator.select_channel(132)
        await coordinator.wait_for_fetch()

        assert gateway.snapshot.channel.name == "P1"
        assert gateway.snapshot.channel.image_ref is not None

    async def test_unknown_channel_gets_fallback_entry(self, make_coordinator, gateway):
        coordinator = make_coordinator()

        coordinator.select_channel(999)
        await coordinator.wait_for_fetch()

        assert gateway.snapshot.channel == Channel(id=999, name="999")


# =============================================================================
# COMPLETION AND FAILURES
# =============================================================================


class TestCompletion:

    async def test_success_renders_snapshot_and_last_updated(self, make_coordinator, gateway):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert len(gateway.snapshots) == 1
        snapshot = gateway.snapshots[0]
        assert coordinator.last_snapshot is snapshot
        assert gateway.updates == [snapshot.taken_at]
        assert [row.status for row in snapshot.rows] == [
            ProgramStatus.FINISHED,
            ProgramStatus.RUNNING,
            ProgramStatus.UPCOMING,
        ]

    async def test_each_refresh_builds_new_snapshot(self, make_coordinator, gateway):
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        first, second = gateway.snapshots
        assert first is not second

    async def test_transport_error_keeps_previous_snapshot(self, make_coordinator, feed, gateway):
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        good = gateway.snapshot

        feed.error = TransportError("Programs could not be loaded. Caused by: ConnectError")
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.state.in_flight is False
        assert gateway.errors == ["Programs could not be loaded. Caused by: ConnectError"]
        assert gateway.snapshot is good
        assert coordinator.last_snapshot is good
        assert len(gateway.snapshots) == 1

    async def test_unexpected_exception_clears_in_flight(self, make_coordinator, feed, gateway):
        feed.raise_exc = RuntimeError("boom")
        coordinator = make_coordinator(channel_id=132)

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.state.in_flight is False
        assert gateway.errors == ["Programs could not be loaded. Caused by: RuntimeError"]
        assert coordinator.request_refresh() is True
        await coordinator.wait_for_fetch()

    async def test_gateway_failure_does_not_break_state(self, feed):
        class BrokenGateway(RecordingGateway):
            def render_snapshot(self, snapshot):
                raise RuntimeError("widget gone")

        coordinator = RefreshCoordinator(
            feed, BrokenGateway(), FakeTimer(), channel_id=132, clock=lambda: NOW
        )

        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.state.in_flight is False
        assert coordinator.last_snapshot is not None

    async def test_closed_loop_does_not_lock_out_later_triggers(self, feed, gateway, timer):
        dead_loop = asyncio.new_event_loop()
        dead_loop.close()
        coordinator = RefreshCoordinator(
            feed, gateway, timer, channel_id=132, clock=lambda: NOW, loop=dead_loop
        )

        assert coordinator.on_timer_fired(0) is False

        assert coordinator.state.in_flight is False
        assert timer.current is not None
        assert timer.current[0] == coordinator.state.timer_generation
        await coordinator.wait_for_fetch()
        assert feed.program_calls == []
        assert coordinator.request_refresh() is False
        assert coordinator.state.in_flight is False

    def test_construction_requires_event_loop(self, feed, gateway, timer):
        with pytest.raises(RuntimeError):
            RefreshCoordinator(feed, gateway, timer, channel_id=132)

    async def test_channel_list_failure_is_notified(self, make_coordinator, feed, gateway):
        feed.channels_error = TransportError("Radio channels could not be loaded. Caused by: ConnectTimeout")
        coordinator = make_coordinator()

        result = await coordinator.load_channels()

        assert not result.ok
        assert gateway.errors == ["Radio channels could not be loaded. Caused by: ConnectTimeout"]
        assert coordinator.channels == ()

    async def test_channel_list_replaced_wholesale(self, make_coordinator, feed, gateway):
        coordinator = make_coordinator()
        await coordinator.load_channels()
        feed.channels = [Channel(id=0, name="Invalid"), Channel(id=200, name="P4")]

        await coordinator.load_channels()

        assert coordinator.channels == (Channel(id=200, name="P4"),)
        assert gateway.channel_lists[-1] == coordinator.channels


# =============================================================================
# ROW DETAIL
# =============================================================================


class TestRowDetail:

    async def test_rows_not_interactive_before_first_snapshot(self, make_coordinator):
        coordinator = make_coordinator(channel_id=132)

        assert coordinator.rows_interactive is False
        assert coordinator.select_row(0) is False

    async def test_rows_not_interactive_while_fetching(self, make_coordinator, feed):
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        feed.gate = asyncio.Event()
        coordinator.request_refresh()
        assert coordinator.rows_interactive is False
        assert coordinator.select_row(0) is False

        feed.gate.set()
        await coordinator.wait_for_fetch()
        assert coordinator.rows_interactive is True

    async def test_rows_not_interactive_for_empty_snapshot(self, make_coordinator, feed):
        feed.programs = []
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.rows_interactive is False

    async def test_selected_row_renders_description_and_image(self, make_coordinator, feed, gateway):
        feed.images["https://static-cdn.sr.se/images/2.jpg"] = b"jpeg-bytes"
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()
        state_before = coordinator.state

        assert coordinator.select_row(1) is True
        assert coordinator.select_row(0) is True
        await coordinator.wait_for_details()

        assert sorted(gateway.images) == sorted([
            ("Live music", b"jpeg-bytes"),
            ("Morning news", None),
        ])
        assert coordinator.state == state_before

    async def test_out_of_range_row(self, make_coordinator, feed):
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()
        await coordinator.wait_for_fetch()

        assert coordinator.select_row(3) is False
        assert coordinator.select_row(-1) is False
        assert feed.image_calls == []


# =============================================================================
# SHUTDOWN
# =============================================================================


class TestShutdown:

    async def test_shutdown_disarms_and_rejects_triggers(self, make_coordinator, feed, timer):
        coordinator = make_coordinator(channel_id=132)

        coordinator.shutdown()

        assert timer.disarm_count == 1
        assert coordinator.request_refresh() is False
        assert coordinator.select_channel(164) is False
        assert feed.program_calls == []

    async def test_in_flight_result_discarded_after_shutdown(self, make_coordinator, feed, gateway):
        feed.gate = asyncio.Event()
        coordinator = make_coordinator(channel_id=132)
        coordinator.request_refresh()

        coordinator.shutdown()
        feed.gate.set()
        await coordinator.wait_for_fetch()

        assert gateway.snapshots == []
        assert gateway.errors == []
        assert coordinator.state.in_flight is False


# =============================================================================
# END TO END
# =============================================================================


async def test_refresh_end_to_end_through_feed_client():
    """Three programs from the feed come out classified in feed order."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            content=schedule_document(
                episode_xml(10, "Running show", NOW - timedelta(minutes=30), NOW + timedelta(minutes=30)),
                episode_xml(11, "Finished show", NOW - timedelta(hours=2), NOW - timedelta(hours=1)),
                episode_xml(12, "Upcoming show", NOW + timedelta(hours=2), NOW + timedelta(hours=3)),
            ),
        )

    feed_client = FeedClient("http://api.sr.se/api/v2", transport=httpx.MockTransport(handler))
    gateway = RecordingGateway()
    coordinator = RefreshCoordinator(
        feed_client, gateway, FakeTimer(), channel_id=132, clock=lambda: NOW
    )
    try:
        assert coordinator.request_refresh() is True
        await coordinator.wait_for_fetch()
    finally:
        await feed_client.aclose()

    [snapshot] = gateway.snapshots
    assert [(row.program.title, row.status) for row in snapshot.rows] == [
        ("Running show", ProgramStatus.RUNNING),
        ("Finished show", ProgramStatus.FINISHED),
        ("Upcoming show", ProgramStatus.UPCOMING),
    ]
    assert requests[0].url.params["channelid"] == "132"
    assert gateway.errors == []


@pytest.mark.parametrize("trigger", ["manual", "timer"])
async def test_failed_fetch_leaves_timer_armed(make_coordinator, feed, timer, trigger):
    feed.error = TransportError("Programs could not be loaded. Caused by: ReadTimeout")
    coordinator = make_coordinator(channel_id=132)

    coordinator.request_refresh()
    await coordinator.wait_for_fetch()
    if trigger == "timer":
        timer.fire()
        await coordinator.wait_for_fetch()

    assert timer.current is not None
    assert timer.current[0] == coordinator.state.timer_generation
