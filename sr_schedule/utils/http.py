"""
HTTP utilities

This module handles document downloads from the feed with retry logic.
"""
import asyncio
import logging

import httpx


logger = logging.getLogger(__name__)


async def fetch_document(
    client: httpx.AsyncClient,
    url: str,
    params: dict | None = None,
    max_retries: int = 1,
    backoff_factor: float = 2.0
) -> bytes:
    """
    Download a document with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        client: Shared HTTP client (carries base URL and timeout)
        url: URL or path relative to the client base URL
        params: Query parameters
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)

    Returns:
        Raw response body

    Raises:
        httpx.HTTPError: If download fails after all retries
    """
    attempts = max(1, max_retries)
    last_error: httpx.HTTPError | None = None

    for attempt in range(attempts):
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            logger.debug(f"Downloaded {len(response.content)} bytes from {response.url}")
            return response.content

        except (httpx.TimeoutException, httpx.ConnectError) as e:
            # Transient network errors - retry
            last_error = e
            if attempt < attempts - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{attempts} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download of {url} failed after {attempts} attempt(s) (transient error)")

        except httpx.HTTPStatusError as e:
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= e.response.status_code < 500:
                logger.error(f"HTTP {e.response.status_code} (client error): {e}")
                raise

            last_error = e
            if attempt < attempts - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{attempts} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download of {url} failed after {attempts} attempt(s) (HTTP {e.response.status_code})")

    if last_error:
        raise last_error

    raise RuntimeError(f"Failed to download {url} after {attempts} attempts")
