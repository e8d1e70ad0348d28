"""
Entity model for the schedule service

Channels and programs are immutable values produced by the feed client.
A Snapshot bundles one channel's classified programs at a point in time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ProgramStatus(str, Enum):
    """Lifecycle status of a program relative to wall-clock time"""
    UPCOMING = "Upcoming"
    RUNNING = "Running"
    FINISHED = "Finished"


@dataclass(frozen=True, slots=True, eq=False)
class Channel:
    """Radio channel from the channel list feed"""
    id: int
    name: str
    image_ref: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.id > 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Channel):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("channel", self.id))


@dataclass(frozen=True, slots=True, eq=False)
class Program:
    """Scheduled program, times are local and already corrected"""
    id: int
    title: str
    description: str
    image_ref: str | None
    start_time: datetime
    end_time: datetime

    # Identity only; a re-fetched program may carry refreshed text.
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Program):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("program", self.id))


@dataclass(frozen=True, slots=True)
class RowView:
    """One classified schedule row"""
    program: Program
    status: ProgramStatus


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Classified programs of one channel captured at `taken_at`."""
    channel: Channel
    rows: tuple[RowView, ...]
    taken_at: datetime

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def programs(self) -> tuple[Program, ...]:
        return tuple(row.program for row in self.rows)

    def row(self, index: int) -> RowView | None:
        """Return the row at `index`, or None when out of range."""
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return None


__all__ = ["Channel", "Program", "ProgramStatus", "RowView", "Snapshot"]
