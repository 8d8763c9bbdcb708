"""NexTrip API client for fetching Metro Transit departures."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from .config import settings
from .models import Departure, StopMetadata
from .transit_feed import TransitFeedError

logger = logging.getLogger(__name__)

# "/Date(1518123600000-0600)/": epoch milliseconds plus an informational offset
JSON_DATE_RE = re.compile(r"^/?Date\((-?\d+)([+-]\d{4})?\)/?$")


def _from_epoch_ms(ms: float) -> datetime:
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Departure time out of range: {ms!r}") from e


def parse_json_date(raw: Any) -> datetime:
    """Normalize a feed timestamp into an aware UTC datetime.

    Accepts Microsoft JSON dates, epoch milliseconds and ISO-8601 strings.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, bool):
        raise ValueError(f"Unrecognized departure time: {raw!r}")
    if isinstance(raw, (int, float)):
        return _from_epoch_ms(raw)
    if not isinstance(raw, str):
        raise ValueError(f"Unrecognized departure time: {raw!r}")

    text = raw.strip().replace("\\/", "/")
    match = JSON_DATE_RE.match(text)
    if match:
        return _from_epoch_ms(int(match.group(1)))
    if text.lstrip("-").isdigit():
        return _from_epoch_ms(int(text))

    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_departure(raw: dict) -> Departure:
    """Convert one NexTrip departure record into a Departure."""
    return Departure(
        route=str(raw["Route"]),
        direction=str(raw["RouteDirection"]),
        departure_time=parse_json_date(raw["DepartureTime"]),
        description=raw.get("Description"),
        departure_text=raw.get("DepartureText"),
        actual=raw.get("Actual"),
        gate=raw.get("Gate") or None,
    )


class RateLimiter:
    """Simple rate limiter to respect NexTrip API limits."""

    def __init__(self, requests_per_second: float):
        self.delay = 1.0 / requests_per_second
        self.last_request = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Wait if necessary to respect rate limit.

        Concurrent callers are spaced out one delay apart.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_request
            if elapsed < self.delay:
                await asyncio.sleep(self.delay - elapsed)
            self.last_request = time.monotonic()


class NexTripClient:
    """Client for the NexTrip departures API.

    Implements the ``TransitFeed`` protocol.
    """

    def __init__(
        self,
        base_url: str | None = None,
        stops_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.stops_url = (stops_url or settings.stops_url).rstrip("/")
        self.client: httpx.AsyncClient | None = None
        self.rate_limiter = RateLimiter(settings.rate_limit)
        self._transport = transport

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            timeout=settings.request_timeout,
            headers={"User-Agent": settings.user_agent},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """Make a rate-limited request and decode the JSON body."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        await self.rate_limiter.wait()

        params = kwargs.pop("params", {})
        params.setdefault("format", "json")

        try:
            response = await self.client.request(method, url, params=params, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise TransitFeedError("Rate limit exceeded. Slow down NexTrip requests.") from e
            elif e.response.status_code == 404:
                raise TransitFeedError("Stop or resource not found.") from e
            elif e.response.status_code >= 500:
                raise TransitFeedError(
                    f"NexTrip server error ({e.response.status_code}). Please try again later."
                ) from e
            raise TransitFeedError(f"NexTrip request failed ({e.response.status_code})") from e
        except httpx.HTTPError as e:
            raise TransitFeedError(f"NexTrip request failed: {e}") from e
        except ValueError as e:
            raise TransitFeedError(f"Malformed NexTrip response: {e}") from e

    async def get_departures(self, stop_number: int) -> list[Departure]:
        """Get upcoming departures for a stop.

        Args:
            stop_number: Metro Transit stop number (e.g., 17940)

        Returns:
            Departures in feed order (ascending departure time).

        Raises:
            TransitFeedError: If the request fails or any record is malformed.
        """
        data = await self._request("GET", f"{self.base_url}/{stop_number}")
        if not isinstance(data, list):
            raise TransitFeedError(f"Unexpected departures payload for stop {stop_number}")

        try:
            departures = [parse_departure(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise TransitFeedError(f"Malformed departure for stop {stop_number}: {e}") from e

        logger.debug(f"Fetched {len(departures)} departures for stop {stop_number}")
        return departures

    async def get_stop_metadata(self, stop_number: int) -> StopMetadata:
        """Get the name and location of a stop.

        Raises:
            TransitFeedError: If the stop is unknown or the request fails.
        """
        data = await self._request("GET", f"{self.stops_url}/{stop_number}")
        if not isinstance(data, dict) or not data.get("stop_name"):
            raise TransitFeedError(f"Invalid stop number: {stop_number}")

        return StopMetadata(
            stop_number=stop_number,
            stop_name=data["stop_name"],
            latitude=data.get("stop_lat"),
            longitude=data.get("stop_lon"),
        )
