"""Program status classification.

Single source of truth for deciding whether a program is upcoming,
running or finished.
"""
from collections.abc import Iterable
from datetime import datetime

from sr_schedule.models import Channel, Program, ProgramStatus, RowView, Snapshot


def classify(program: Program, now: datetime) -> ProgramStatus:
    """Classify a program against wall-clock time.

    Finished is checked first so a program ending exactly at `now` (even a
    zero-length one starting at `now`) is Finished. A program starting
    exactly at `now` is still Upcoming.
    """
    if program.end_time <= now:
        return ProgramStatus.FINISHED
    if program.start_time < now:
        return ProgramStatus.RUNNING
    return ProgramStatus.UPCOMING


def build_snapshot(channel: Channel, programs: Iterable[Program], now: datetime) -> Snapshot:
    """Classify programs in feed order and bundle them into a new Snapshot."""
    rows = tuple(
        RowView(program=program, status=classify(program, now))
        for program in programs
        if program.start_time is not None and program.end_time is not None
    )
    return Snapshot(channel=channel, rows=rows, taken_at=now)
