"""
Presentation Gateway

Boundary between the refresh coordinator and whatever displays the schedule.
StateGateway keeps the latest rendered state in memory for the HTTP layer.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

from sr_schedule.models import Channel, Snapshot


logger = logging.getLogger(__name__)


class PresentationGateway(Protocol):
    """Consumer of snapshots and notifications produced by the coordinator."""

    def render_snapshot(self, snapshot: Snapshot) -> None: ...

    def render_error(self, message: str) -> None: ...

    def render_image(self, description: str, image: bytes | None) -> None: ...

    def render_last_updated(self, timestamp: datetime) -> None: ...

    def render_channels(self, channels: Sequence[Channel]) -> None: ...


@dataclass(frozen=True, slots=True)
class ErrorNotice:
    message: str
    raised_at: datetime


@dataclass(frozen=True, slots=True)
class ProgramDetail:
    description: str
    image: bytes | None
    rendered_at: datetime


class StateGateway:
    """Keeps the most recently rendered state; readers get immutable values."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: tuple[Channel, ...] = ()
        self._snapshot: Snapshot | None = None
        self._last_error: ErrorNotice | None = None
        self._detail: ProgramDetail | None = None
        self._last_updated: datetime | None = None

    def render_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._last_error = None
        logger.debug(
            "Rendered snapshot for %s (%s rows)",
            snapshot.channel.name,
            snapshot.row_count,
        )

    def render_error(self, message: str) -> None:
        # Previous snapshot stays visible alongside the notice
        with self._lock:
            self._last_error = ErrorNotice(message=message, raised_at=datetime.now())
        logger.warning("Notification: %s", message)

    def render_image(self, description: str, image: bytes | None) -> None:
        with self._lock:
            self._detail = ProgramDetail(
                description=description,
                image=image,
                rendered_at=datetime.now(),
            )

    def render_last_updated(self, timestamp: datetime) -> None:
        with self._lock:
            self._last_updated = timestamp

    def render_channels(self, channels: Sequence[Channel]) -> None:
        with self._lock:
            self._channels = tuple(channels)

    @property
    def channels(self) -> tuple[Channel, ...]:
        with self._lock:
            return self._channels

    @property
    def snapshot(self) -> Snapshot | None:
        with self._lock:
            return self._snapshot

    @property
    def last_error(self) -> ErrorNotice | None:
        with self._lock:
            return self._last_error

    @property
    def detail(self) -> ProgramDetail | None:
        with self._lock:
            return self._detail

    @property
    def last_updated(self) -> datetime | None:
        with self._lock:
            return self._last_updated
