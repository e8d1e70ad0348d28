"""
Services package for the schedule service

This package contains the feed client, status classification and refresh coordination.
"""
from sr_schedule.services.feed_client import FeedClient
from sr_schedule.services.presentation import PresentationGateway, StateGateway
from sr_schedule.services.refresh_coordinator import RefreshCoordinator
from sr_schedule.services.scheduler_service import RefreshScheduler
from sr_schedule.services.status_service import build_snapshot, classify

__all__ = [
    'FeedClient',
    'PresentationGateway',
    'StateGateway',
    'RefreshCoordinator',
    'RefreshScheduler',
    'build_snapshot',
    'classify',
]
