"""Data models for transit stops, departures and notifications."""

from datetime import datetime
from functools import total_ordering

from pydantic import BaseModel, ConfigDict


@total_ordering
class RouteDirection(BaseModel):
    """A transit line together with its direction of travel.

    Compared, hashed and sorted by value so instances rebuilt on every
    refresh still match the ones a user picked earlier.
    """

    model_config = ConfigDict(frozen=True)

    route: str
    direction: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.route, self.direction)

    @property
    def display_key(self) -> str:
        return f"{self.route} {self.direction}"

    def __str__(self) -> str:
        return self.display_key

    def __lt__(self, other: "RouteDirection") -> bool:
        if not isinstance(other, RouteDirection):
            return NotImplemented
        return self.display_key < other.display_key


class Departure(BaseModel):
    """Represents one scheduled departure from a stop."""

    model_config = ConfigDict(frozen=True)

    route: str
    direction: str
    departure_time: datetime  # Normalized, timezone-aware
    description: str | None = None
    departure_text: str | None = None  # e.g. "Due", "5 Min", "14:32"
    actual: bool | None = None  # True when backed by live vehicle data
    gate: str | None = None

    @property
    def route_direction(self) -> RouteDirection:
        return RouteDirection(route=self.route, direction=self.direction)

    def time_formatted(self) -> str:
        """Return formatted local departure time."""
        return self.departure_time.astimezone().strftime("%H:%M")


class NextNotification(BaseModel):
    """The tracked departure a lead-time notification should fire for."""

    minutes_until: int
    fire_time: datetime
    departure: Departure
    route_direction: RouteDirection


class NotificationRequest(BaseModel):
    """A recurring notification for a stop, updated in place on every refresh."""

    stop_number: int
    lead_minutes: int
    fire_time: datetime | None = None
    content: str | None = None


class StopMetadata(BaseModel):
    """Descriptive data about a stop."""

    stop_number: int
    stop_name: str
    latitude: float | None = None
    longitude: float | None = None


class StopData(BaseModel):
    """A bookmarked stop as saved by the user."""

    stop_id: int
    stop_name: str
    stop_lat: float | None = None
    stop_lon: float | None = None
