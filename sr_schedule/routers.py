from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from sr_schedule.dependencies import (
    get_refresh_coordinator,
    get_refresh_scheduler,
    get_state_gateway,
)
from sr_schedule.schemas import (
    ChannelResponse,
    ProgramDetailResponse,
    ScheduleResponse,
    TriggerResponse,
)
from sr_schedule.services.presentation import StateGateway
from sr_schedule.services.refresh_coordinator import RefreshCoordinator
from sr_schedule.services.scheduler_service import RefreshScheduler


logger = logging.getLogger(__name__)

main_router = APIRouter()

CoordinatorDep = Annotated[RefreshCoordinator, Depends(get_refresh_coordinator)]
GatewayDep = Annotated[StateGateway, Depends(get_state_gateway)]
SchedulerDep = Annotated[RefreshScheduler | None, Depends(get_refresh_scheduler)]


@main_router.get("/")
async def root(scheduler: SchedulerDep) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time() if scheduler else None

    return {
        "service": "Radio Schedule Service",
        "version": "0.1.0",
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "channels": "/channels - Channel list",
            "channel": "/channel/{id} - Select current channel (PUT)",
            "channel_by_name": "/channel/by-name/{name} - Select current channel by name (PUT)",
            "refresh": "/refresh - Manually refresh the schedule (POST)",
            "schedule": "/schedule - Latest classified schedule",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(scheduler: SchedulerDep) -> dict:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time() if scheduler else None
    return {
        "status": "ok",
        "scheduler_running": scheduler.running if scheduler else False,
        "next_refresh": next_run.isoformat() if next_run else None
    }


@main_router.get("/channels", response_model=list[ChannelResponse])
async def list_channels(gateway: GatewayDep) -> list[ChannelResponse]:
    """Channel list as last loaded from the feed"""
    return [ChannelResponse.from_channel(channel) for channel in gateway.channels]


@main_router.put("/channel/{channel_id}", response_model=TriggerResponse)
async def select_channel(channel_id: int, coordinator: CoordinatorDep) -> TriggerResponse:
    """
    Make a channel current and fetch its schedule

    The selection sticks even when the fetch is skipped because another one
    is running; the next periodic refresh then picks it up.
    """
    if channel_id <= 0:
        raise HTTPException(status_code=422, detail=f"Invalid channel id: {channel_id}")

    logger.info(f"Channel {channel_id} selected via API")
    started = coordinator.select_channel(channel_id)
    return _trigger_response(coordinator, started)


@main_router.put("/channel/by-name/{name}", response_model=TriggerResponse)
async def select_channel_by_name(name: str, coordinator: CoordinatorDep) -> TriggerResponse:
    """Make a channel current by its name in the loaded channel list"""
    if not any(channel.name == name for channel in coordinator.channels):
        raise HTTPException(status_code=404, detail=f"Unknown channel: {name}")

    logger.info(f"Channel '{name}' selected via API")
    started = coordinator.select_channel_by_name(name)
    return _trigger_response(coordinator, started)


@main_router.post("/refresh", response_model=TriggerResponse)
async def trigger_refresh(coordinator: CoordinatorDep) -> TriggerResponse:
    """Manually refresh the schedule of the current channel"""
    logger.info("Manual refresh triggered via API")
    started = coordinator.request_refresh()
    return _trigger_response(coordinator, started)


@main_router.get("/schedule", response_model=ScheduleResponse)
async def get_schedule(coordinator: CoordinatorDep, gateway: GatewayDep) -> ScheduleResponse:
    """Latest snapshot, last update time and any pending notification"""
    return ScheduleResponse.build(
        gateway.snapshot,
        gateway.last_updated,
        gateway.last_error,
        coordinator.rows_interactive,
    )


@main_router.post("/schedule/rows/{index}/detail", status_code=202)
async def request_row_detail(index: int, coordinator: CoordinatorDep) -> dict:
    """Load description and image for one schedule row"""
    snapshot = coordinator.last_snapshot
    if snapshot is None or snapshot.row(index) is None:
        raise HTTPException(status_code=404, detail=f"No schedule row {index}")

    if not coordinator.select_row(index):
        raise HTTPException(status_code=409, detail="Schedule rows are not selectable right now")

    return {"status": "accepted", "row": index}


@main_router.get("/schedule/detail", response_model=ProgramDetailResponse)
async def get_row_detail(gateway: GatewayDep) -> ProgramDetailResponse:
    """Description of the most recently loaded row detail"""
    detail = gateway.detail
    if detail is None:
        raise HTTPException(status_code=404, detail="No row detail loaded")
    return ProgramDetailResponse.from_detail(detail)


@main_router.get("/schedule/detail/image")
async def get_row_detail_image(gateway: GatewayDep) -> Response:
    """Image of the most recently loaded row detail"""
    detail = gateway.detail
    if detail is None or detail.image is None:
        raise HTTPException(status_code=404, detail="No image loaded")
    return Response(content=detail.image, media_type=_guess_image_type(detail.image))


def _trigger_response(coordinator: RefreshCoordinator, started: bool) -> TriggerResponse:
    state = coordinator.state
    return TriggerResponse(
        status="started" if started else "skipped",
        channel_id=state.current_channel_id,
        timer_generation=state.timer_generation,
    )


def _guess_image_type(content: bytes) -> str:
    if content.startswith(b"\x89PNG"):
        return "image/png"
    if content.startswith(b"GIF8"):
        return "image/gif"
    return "image/jpeg"
