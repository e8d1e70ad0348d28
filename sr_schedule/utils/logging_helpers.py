"""
Structured logging helpers for consistent log formatting.
"""
import logging
from datetime import datetime


def log_fetch_start(logger: logging.Logger, channel_id: int, trigger: str, generation: int) -> None:
    """
    Log the start of a schedule fetch.

    Args:
        logger: Logger instance
        channel_id: Channel being fetched
        trigger: What started the fetch (channel, manual, timer)
        generation: Timer generation armed for this fetch
    """
    logger.info(f"Schedule fetch started: channel={channel_id} trigger={trigger} generation={generation}")


def log_fetch_end(logger: logging.Logger, channel_id: int, started_at: datetime, outcome: str) -> None:
    """Log schedule fetch completion with its duration."""
    elapsed = max(0.0, (datetime.now() - started_at).total_seconds())
    logger.info(f"Schedule fetch completed: channel={channel_id} outcome={outcome} ({elapsed:.2f}s)")


def log_dropped_trigger(logger: logging.Logger, trigger: str, reason: str) -> None:
    """Log a refresh trigger that did not start a fetch."""
    logger.info(f"Refresh trigger '{trigger}' dropped: {reason}")
