"""Shared async HTTP helper for network-backed registries.

Provides a thin wrapper around ``httpx.AsyncClient`` with standardised
timeouts, user-agent headers, bounded retries with exponential backoff, and
error handling.

Raises ``RegistryUnavailableError`` (a subclass of ``ConnectorLockError``)
once retries are exhausted or the failure is not retryable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from connectorlock import __version__
from connectorlock.config import (
    DEFAULT_REGISTRY_BACKOFF,
    DEFAULT_REGISTRY_RETRIES,
    DEFAULT_REGISTRY_TIMEOUT,
)
from connectorlock.exceptions import RegistryUnavailableError

logger = logging.getLogger(__name__)

# User-Agent sent with every request.
USER_AGENT: str = f"connectorlock/{__version__}"

# Responses worth retrying: rate limiting and server-side failures.
RETRYABLE_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})


async def fetch_json(
    url: str,
    *,
    context: str,
    params: dict[str, str] | None = None,
    timeout: float = DEFAULT_REGISTRY_TIMEOUT,
    retries: int = DEFAULT_REGISTRY_RETRIES,
    backoff: float = DEFAULT_REGISTRY_BACKOFF,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """Fetch a URL and parse the response as JSON.

    Timeouts, transport errors and retryable status codes are retried up to
    *retries* attempts, sleeping ``backoff * 2**n`` seconds between attempts.

    Args:
        url: The URL to fetch.
        context: What is being fetched (e.g. a connector id); used in logs
            and carried by the raised error.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        retries: Maximum number of attempts.
        backoff: Base delay between attempts in seconds.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).

    Returns:
        Parsed JSON (dict or list), or None if the server answered 404.

    Raises:
        RegistryUnavailableError: After the last failed attempt, or
            immediately for non-retryable HTTP errors and invalid JSON.
    """
    last_error = ""
    for attempt in range(1, retries + 1):
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                follow_redirects=True,
                transport=transport,
            ) as client:
                resp = await client.get(url, params=params)
            if resp.status_code == 404:
                return None
            if resp.status_code in RETRYABLE_STATUS:
                last_error = f"HTTP {resp.status_code}"
                logger.warning(
                    "HTTP %d from %s (attempt %d/%d)",
                    resp.status_code, url, attempt, retries,
                )
            else:
                resp.raise_for_status()
                return resp.json()
        except httpx.TimeoutException:
            last_error = "timeout"
            logger.warning("Timeout fetching %s (attempt %d/%d)", url, attempt, retries)
        except httpx.HTTPStatusError as exc:
            raise RegistryUnavailableError(
                context, f"HTTP {exc.response.status_code} from {url}"
            ) from exc
        except httpx.RequestError as exc:
            last_error = str(exc) or type(exc).__name__
            logger.warning(
                "Request error for %s: %s (attempt %d/%d)", url, exc, attempt, retries
            )
        except ValueError as exc:
            raise RegistryUnavailableError(context, f"invalid JSON from {url}") from exc

        if attempt < retries:
            await asyncio.sleep(backoff * 2 ** (attempt - 1))

    raise RegistryUnavailableError(
        context, f"request failed after {retries} attempts: {last_error}"
    )
