"""
Dependency providers

Holds the service instances created during application startup and exposes
them to FastAPI routes. Routes depend on these getters so tests can swap in
their own instances via dependency overrides.
"""
import logging

from sr_schedule.services.presentation import StateGateway
from sr_schedule.services.refresh_coordinator import RefreshCoordinator
from sr_schedule.services.scheduler_service import RefreshScheduler


logger = logging.getLogger(__name__)

# Initialized in the application lifespan
_coordinator: RefreshCoordinator | None = None
_gateway: StateGateway | None = None
_scheduler: RefreshScheduler | None = None


def init_services(
    coordinator: RefreshCoordinator,
    gateway: StateGateway,
    scheduler: RefreshScheduler,
) -> None:
    """Register the running service instances."""
    global _coordinator, _gateway, _scheduler
    _coordinator = coordinator
    _gateway = gateway
    _scheduler = scheduler
    logger.debug("Services registered")


def get_refresh_coordinator() -> RefreshCoordinator:
    """Get the refresh coordinator (initialized during startup)"""
    if _coordinator is None:
        raise RuntimeError("Refresh coordinator not initialized. Start the application first.")
    return _coordinator


def get_state_gateway() -> StateGateway:
    """Get the presentation state (initialized during startup)"""
    if _gateway is None:
        raise RuntimeError("Presentation gateway not initialized. Start the application first.")
    return _gateway


def get_refresh_scheduler() -> RefreshScheduler | None:
    """Get the scheduler, None before startup"""
    return _scheduler


def reset_services() -> None:
    """
    Drop registered services (shutdown and tests).
    """
    global _coordinator, _gateway, _scheduler
    _coordinator = None
    _gateway = None
    _scheduler = None
