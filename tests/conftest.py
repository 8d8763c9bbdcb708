"""Shared fixtures: a fixed clock and an in-memory transit feed."""

from datetime import datetime, timedelta, timezone

import pytest

from nextrip_mcp.models import Departure, StopMetadata
from nextrip_mcp.transit_feed import TransitFeedError

NOW = datetime(2024, 2, 7, 14, 30, tzinfo=timezone.utc)


def make_departure(route: str, direction: str, minutes: float = 0, seconds: float = 0) -> Departure:
    """Build a departure the given time after NOW."""
    return Departure(
        route=route,
        direction=direction,
        departure_time=NOW + timedelta(minutes=minutes, seconds=seconds),
    )


class FakeFeed:
    """In-memory TransitFeed."""

    def __init__(self):
        self.departures: dict[int, list[Departure]] = {}
        self.names: dict[int, str] = {}
        self.failing: set[int] = set()
        self.broken: set[int] = set()  # raise an unexpected error
        self.departure_calls: list[int] = []

    async def get_departures(self, stop_number: int) -> list[Departure]:
        self.departure_calls.append(stop_number)
        if stop_number in self.failing:
            raise TransitFeedError(f"Stop {stop_number} unavailable")
        if stop_number in self.broken:
            raise RuntimeError(f"Feed crashed on stop {stop_number}")
        return list(self.departures.get(stop_number, []))

    async def get_stop_metadata(self, stop_number: int) -> StopMetadata:
        if stop_number not in self.names:
            raise TransitFeedError(f"Invalid stop number: {stop_number}")
        return StopMetadata(stop_number=stop_number, stop_name=self.names[stop_number])


@pytest.fixture
def feed():
    feed = FakeFeed()
    feed.departures[100] = [
        make_departure("R1", "North", minutes=3),
        make_departure("R2", "South", minutes=8),
        make_departure("R1", "North", minutes=15),
    ]
    feed.names[100] = "Washington Ave & Harvard St"
    return feed
