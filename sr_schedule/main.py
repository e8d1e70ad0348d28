from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sr_schedule.config import settings, setup_logging
from sr_schedule.dependencies import init_services, reset_services
from sr_schedule.services.feed_client import FeedClient
from sr_schedule.services.presentation import StateGateway
from sr_schedule.services.refresh_coordinator import RefreshCoordinator
from sr_schedule.services.scheduler_service import RefreshScheduler

from sr_schedule.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting Radio Schedule Service...")

    feed_client = FeedClient.from_settings(settings)
    gateway = StateGateway()
    scheduler = RefreshScheduler(
        settings.refresh_interval_sec,
        misfire_grace_sec=settings.scheduler_misfire_grace_sec,
    )
    coordinator = RefreshCoordinator(feed_client, gateway, scheduler)
    init_services(coordinator, gateway, scheduler)

    try:
        logger.info("Starting scheduler...")
        scheduler.start()

        logger.info("Loading channel list...")
        result = await coordinator.load_channels()
        if not result.ok:
            logger.warning("Channel list unavailable at startup: %s", result.error.message)

        if settings.channels_refresh_cron:
            scheduler.schedule_channel_refresh(coordinator.load_channels, settings.channels_refresh_cron)

        if settings.default_channel_id:
            coordinator.select_channel(settings.default_channel_id)

        logger.info("Radio Schedule Service started successfully")
    except Exception as e:
        logger.error(f"Failed to start Radio Schedule Service: {e}", exc_info=True)
        scheduler.shutdown()
        await feed_client.aclose()
        reset_services()
        raise

    yield

    logger.info("Shutting down Radio Schedule Service...")

    try:
        coordinator.shutdown()
        scheduler.shutdown()
        await feed_client.aclose()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)
    finally:
        reset_services()

    logger.info("Radio Schedule Service stopped")


app = FastAPI(
    title="Radio Schedule Service",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
