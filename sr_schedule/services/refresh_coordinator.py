"""
Refresh Coordination

Decides when schedule fetches happen for the current channel, guarantees that
at most one fetch is in flight, and reschedules the periodic timer around
on-demand refreshes. Every state transition happens inside one lock region so
events may arrive from the event loop or from scheduler worker threads.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Protocol

from sr_schedule.models import Channel, Program, Snapshot
from sr_schedule.services.fetch_types import FetchError, FetchResult
from sr_schedule.services.presentation import PresentationGateway
from sr_schedule.services.status_service import build_snapshot
from sr_schedule.utils.logging_helpers import (
    log_dropped_trigger,
    log_fetch_end,
    log_fetch_start,
)


logger = logging.getLogger(__name__)


class RefreshTimer(Protocol):
    """Periodic timer whose callback receives the generation it was armed with."""

    def arm(self, generation: int, callback: Callable[[int], Any]) -> None: ...

    def disarm(self) -> None: ...


class ScheduleFeed(Protocol):
    async def list_channels(self) -> FetchResult[Channel]: ...

    async def list_programs(self, channel_id: int, now: datetime) -> FetchResult[Program]: ...

    async def fetch_image(self, url: str | None) -> bytes | None: ...


@dataclass(slots=True)
class RefreshState:
    current_channel_id: int | None = None
    in_flight: bool = False
    timer_generation: int = 0


class RefreshCoordinator:
    """
    Single-flight refresh state machine.

    ChannelSelected, ManualRefreshRequested and TimerFired share one gate:
    a trigger that finds a fetch in flight is dropped, not queued. Starting a
    fetch disarms the timer, bumps the generation and re-arms the timer with
    the new generation, so timers armed earlier become no-ops.
    """

    def __init__(
        self,
        feed: ScheduleFeed,
        gateway: PresentationGateway,
        timer: RefreshTimer,
        *,
        channel_id: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._feed = feed
        self._gateway = gateway
        self._timer = timer
        self._clock = clock
        # Fetch tasks always run here, also when triggered from worker threads
        self._loop = loop or _running_loop()
        if self._loop is None:
            raise RuntimeError("RefreshCoordinator needs an event loop; create it inside one or pass loop")

        self._lock = threading.Lock()
        self._state = RefreshState(current_channel_id=channel_id)
        self._channels: tuple[Channel, ...] = ()
        self._last_snapshot: Snapshot | None = None
        self._closed = False

        self._fetch_task: asyncio.Task | None = None
        # Resolved when the current fetch has finished; set under the lock
        self._fetch_done: Future | None = None
        self._detail_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> RefreshState:
        """Copy of the current refresh state"""
        with self._lock:
            return replace(self._state)

    @property
    def channels(self) -> tuple[Channel, ...]:
        with self._lock:
            return self._channels

    @property
    def last_snapshot(self) -> Snapshot | None:
        with self._lock:
            return self._last_snapshot

    @property
    def rows_interactive(self) -> bool:
        """Rows accept selection only between fetches and when there is data."""
        with self._lock:
            return self._rows_interactive_locked()

    @property
    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    async def load_channels(self) -> FetchResult[Channel]:
        """Fetch the channel list and replace the known channels wholesale."""
        result = await self._feed.list_channels()
        if not result.ok:
            self._deliver(self._gateway.render_error, result.error.message)
            return result

        channels = tuple(channel for channel in result.items if channel.is_valid)
        with self._lock:
            if self._closed:
                return result
            self._channels = channels
        logger.info("Channel list replaced: %s channels", len(channels))
        self._deliver(self._gateway.render_channels, channels)
        return result

    def select_channel(self, channel_id: int) -> bool:
        """
        ChannelSelected event.

        The channel becomes current even when the fetch itself is dropped, so
        the next timer tick fetches it.

        Returns:
            True if a fetch was started
        """
        if channel_id is None or channel_id <= 0:
            logger.warning("Ignoring selection of invalid channel id %s", channel_id)
            return False

        with self._lock:
            self._state.current_channel_id = channel_id
        logger.info("Channel %s selected", channel_id)
        return self._begin_fetch("channel")

    def select_channel_by_name(self, name: str) -> bool:
        """ChannelSelected event addressed by channel name"""
        for channel in self.channels:
            if channel.name == name:
                return self.select_channel(channel.id)
        logger.warning("Unknown channel name '%s'", name)
        return False

    def request_refresh(self) -> bool:
        """ManualRefreshRequested event; returns True if a fetch was started"""
        return self._begin_fetch("manual")

    def on_timer_fired(self, generation: int) -> bool:
        """TimerFired event; ignored for stale generations or while fetching"""
        return self._begin_fetch("timer", expected_generation=generation)

    def select_row(self, index: int) -> bool:
        """
        Start an independent detail fetch (description and image) for a row.

        Returns:
            True if the detail fetch was started
        """
        with self._lock:
            interactive = self._rows_interactive_locked()
            snapshot = self._last_snapshot

        if not interactive:
            log_dropped_trigger(logger, "row", "rows are not interactive")
            return False

        row = snapshot.row(index)
        if row is None:
            logger.warning("Row %s out of range (%s rows)", index, snapshot.row_count)
            return False

        self._call_on_loop(self._spawn_detail, row.program)
        return True

    async def wait_for_fetch(self) -> None:
        """Wait until the current fetch (if any) has completed"""
        with self._lock:
            done = self._fetch_done
        if done is not None and not done.done():
            await asyncio.shield(asyncio.wrap_future(done, loop=self._loop))

    async def wait_for_details(self) -> None:
        """Wait for all running row detail fetches"""
        if self._detail_tasks:
            await asyncio.gather(*list(self._detail_tasks), return_exceptions=True)

    def shutdown(self) -> None:
        """Stop the periodic timer; later fetch results are discarded"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._timer.disarm()
            in_flight = self._state.in_flight
        logger.info(
            "Refresh coordinator stopped%s",
            " (abandoning in-flight fetch)" if in_flight else "",
        )

    def _begin_fetch(self, trigger: str, *, expected_generation: int | None = None) -> bool:
        with self._lock:
            state = self._state
            if self._closed:
                reason = "coordinator is shut down"
            elif expected_generation is not None and expected_generation != state.timer_generation:
                reason = f"stale timer generation {expected_generation} (current {state.timer_generation})"
            elif state.in_flight:
                reason = "fetch already in progress"
            elif state.current_channel_id is None or state.current_channel_id <= 0:
                reason = "no channel selected"
            else:
                reason = None
                state.in_flight = True
                self._timer.disarm()
                state.timer_generation += 1
                generation = state.timer_generation
                channel_id = state.current_channel_id
                done = self._fetch_done = Future()
                try:
                    self._call_on_loop(self._spawn_fetch, channel_id, trigger, generation, done)
                except RuntimeError as exc:
                    # Loop closed: give the gate back so later triggers are not locked out
                    state.in_flight = False
                    done.set_result(None)
                    reason = f"fetch could not be scheduled ({exc})"
                self._arm_timer(generation)

        if reason is not None:
            log_dropped_trigger(logger, trigger, reason)
            return False
        return True

    def _arm_timer(self, generation: int) -> None:
        try:
            self._timer.arm(generation, self.on_timer_fired)
        except RuntimeError as exc:
            logger.error("Could not arm refresh timer (generation %s): %s", generation, exc)

    def _spawn_fetch(self, channel_id: int, trigger: str, generation: int, done: Future) -> None:
        self._fetch_task = self._loop.create_task(
            self._run_fetch(channel_id, trigger, generation, done),
            name=f"schedule-fetch-{generation}",
        )

    async def _run_fetch(self, channel_id: int, trigger: str, generation: int, done: Future) -> None:
        started_at = datetime.now()
        log_fetch_start(logger, channel_id, trigger, generation)
        try:
            try:
                result = await self._feed.list_programs(channel_id, self._clock())
            except asyncio.CancelledError:
                with self._lock:
                    self._state.in_flight = False
                raise
            except Exception as exc:
                logger.error(
                    "Unexpected error fetching channel %s: %s", channel_id, exc, exc_info=True
                )
                result = FetchResult.failure(
                    FetchError(f"Programs could not be loaded. Caused by: {type(exc).__name__}")
                )

            log_fetch_end(logger, channel_id, started_at, "success" if result.ok else "failed")
            self._complete_fetch(channel_id, result)
        finally:
            if not done.done():
                done.set_result(None)

    def _complete_fetch(self, channel_id: int, result: FetchResult[Program]) -> None:
        snapshot = None
        if result.ok:
            snapshot = build_snapshot(self._resolve_channel(channel_id), result.items, self._clock())

        with self._lock:
            self._state.in_flight = False
            closed = self._closed
            if snapshot is not None and not closed:
                self._last_snapshot = snapshot

        if closed:
            logger.debug("Discarding fetch result for channel %s after shutdown", channel_id)
            return

        if snapshot is None:
            self._deliver(self._gateway.render_error, result.error.message)
            return

        self._deliver(self._gateway.render_snapshot, snapshot)
        self._deliver(self._gateway.render_last_updated, snapshot.taken_at)

    def _spawn_detail(self, program: Program) -> None:
        task = self._loop.create_task(
            self._run_detail(program), name=f"program-detail-{program.id}"
        )
        self._detail_tasks.add(task)
        task.add_done_callback(self._detail_tasks.discard)

    async def _run_detail(self, program: Program) -> None:
        try:
            image = await self._feed.fetch_image(program.image_ref)
        except Exception as exc:
            logger.error(
                "Unexpected error loading image for program %s: %s", program.id, exc, exc_info=True
            )
            image = None

        if self.is_closed:
            return
        self._deliver(self._gateway.render_image, program.description, image)

    def _resolve_channel(self, channel_id: int) -> Channel:
        with self._lock:
            for channel in self._channels:
                if channel.id == channel_id:
                    return channel
        logger.warning("Channel %s not in channel list; using fallback entry", channel_id)
        return Channel(id=channel_id, name=str(channel_id))

    def _rows_interactive_locked(self) -> bool:
        snapshot = self._last_snapshot
        return (
            not self._closed
            and not self._state.in_flight
            and snapshot is not None
            and snapshot.row_count > 0
        )

    def _call_on_loop(self, callback: Callable[..., None], *args) -> None:
        if _running_loop() is self._loop:
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)

    def _deliver(self, render: Callable[..., None], *args) -> None:
        try:
            render(*args)
        except Exception as exc:
            logger.error(
                "Presentation gateway %s failed: %s",
                getattr(render, "__name__", render),
                exc,
                exc_info=True,
            )


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
