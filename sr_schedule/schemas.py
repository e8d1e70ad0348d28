from datetime import datetime

from pydantic import BaseModel, Field

from sr_schedule.models import Channel, RowView, Snapshot
from sr_schedule.services.presentation import ErrorNotice, ProgramDetail
from sr_schedule.utils.timezone import format_display_time


class ChannelResponse(BaseModel):
    """Channel data model"""
    id: int = Field(..., description="Channel ID")
    name: str = Field(..., description="Display name of the channel")
    image_url: str | None = Field(None, description="URL to channel image")

    @classmethod
    def from_channel(cls, channel: Channel) -> "ChannelResponse":
        return cls(id=channel.id, name=channel.name, image_url=channel.image_ref)


class ProgramRowResponse(BaseModel):
    """Single schedule row"""
    id: int
    title: str
    start_time: str = Field(..., description="Local start time (YYYY-MM-DD HH:MM:SS)")
    end_time: str = Field(..., description="Local end time (YYYY-MM-DD HH:MM:SS)")
    status: str = Field(..., description="Upcoming, Running or Finished")

    @classmethod
    def from_row(cls, row: RowView) -> "ProgramRowResponse":
        program = row.program
        return cls(
            id=program.id,
            title=program.title,
            start_time=format_display_time(program.start_time),
            end_time=format_display_time(program.end_time),
            status=row.status.value,
        )


class ErrorDetail(BaseModel):
    """Notification shown next to the (possibly stale) schedule"""
    message: str = Field(..., description="Human-readable error message")
    raised_at: str = Field(..., description="Local time the error was reported")

    @classmethod
    def from_notice(cls, notice: ErrorNotice) -> "ErrorDetail":
        return cls(message=notice.message, raised_at=format_display_time(notice.raised_at))


class ScheduleResponse(BaseModel):
    """Latest snapshot of the current channel"""
    channel: ChannelResponse | None = None
    taken_at: str | None = None
    last_updated: str | None = None
    rows_interactive: bool = False
    rows: list[ProgramRowResponse] = Field(default_factory=list)
    error: ErrorDetail | None = None

    @classmethod
    def build(
        cls,
        snapshot: Snapshot | None,
        last_updated: datetime | None,
        notice: ErrorNotice | None,
        rows_interactive: bool,
    ) -> "ScheduleResponse":
        return cls(
            channel=ChannelResponse.from_channel(snapshot.channel) if snapshot else None,
            taken_at=format_display_time(snapshot.taken_at) if snapshot else None,
            last_updated=format_display_time(last_updated) if last_updated else None,
            rows_interactive=rows_interactive,
            rows=[ProgramRowResponse.from_row(row) for row in snapshot.rows] if snapshot else [],
            error=ErrorDetail.from_notice(notice) if notice else None,
        )


class TriggerResponse(BaseModel):
    """Outcome of a refresh trigger"""
    status: str = Field(..., description="'started' or 'skipped'")
    channel_id: int | None = None
    timer_generation: int


class ProgramDetailResponse(BaseModel):
    """Description of the last selected row"""
    description: str
    has_image: bool
    rendered_at: str

    @classmethod
    def from_detail(cls, detail: ProgramDetail) -> "ProgramDetailResponse":
        return cls(
            description=detail.description,
            has_image=detail.image is not None,
            rendered_at=format_display_time(detail.rendered_at),
        )
