"""Interface the stop tracking core consumes to get live data."""

from typing import Protocol

from .models import Departure, StopMetadata


class TransitFeedError(ValueError):
    """Raised when the feed cannot deliver departures or stop data."""


class TransitFeed(Protocol):
    """Source of live departures and stop metadata.

    Implementations raise ``TransitFeedError`` when a call fails.
    """

    async def get_departures(self, stop_number: int) -> list[Departure]:
        """Return upcoming departures for a stop, ordered by departure time."""
        ...

    async def get_stop_metadata(self, stop_number: int) -> StopMetadata:
        """Return descriptive data for a stop."""
        ...
