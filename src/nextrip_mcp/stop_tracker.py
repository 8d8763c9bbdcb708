"""Per-stop departure tracking and notification timing."""

import logging
import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from .models import Departure, NextNotification, RouteDirection
from .transit_feed import TransitFeed, TransitFeedError

logger = logging.getLogger(__name__)

LOADING_NAME = "Loading..."
INVALID_STOP_NAME = "Invalid Stop"


def _now() -> datetime:
    """Current UTC time. Extracted for test patching."""
    return datetime.now(timezone.utc)


def minutes_until(departure_time: datetime, now: datetime | None = None) -> int:
    """Whole minutes until a departure, rounded up.

    A departure 61 seconds away is 2 minutes away; one already
    gone yields zero or a negative number.
    """
    if now is None:
        now = _now()
    return math.ceil((departure_time - now).total_seconds() / 60)


class StopTracker:
    """
    Tracks the live departures of a single stop.

    Every refresh rebuilds the observed route-directions and their
    schedules from scratch. The user's untracked selection is kept as
    (route, direction) keys so it survives those rebuilds.
    """

    def __init__(self, stop_number: int):
        self.stop_number = stop_number
        self.stop_name: str | None = None
        self.all_route_directions: list[RouteDirection] | None = None
        self.departures_by_route_direction: dict[tuple[str, str], list[Departure]] = {}
        self.latest_departures: list[Departure] = []
        self.last_update_time: datetime | None = None
        self.notification_enabled = False
        self.notification_lead_minutes = 0
        self.next_notification_time: datetime | None = None
        self.next_notification_departure: Departure | None = None
        self._untracked: set[tuple[str, str]] = set()

    def __repr__(self) -> str:
        return f"StopTracker(stop_number={self.stop_number!r}, stop_name={self.stop_name!r})"

    @property
    def is_loaded(self) -> bool:
        return self.last_update_time is not None

    @property
    def update_time_string(self) -> str | None:
        if self.last_update_time is None:
            return None
        return self.last_update_time.astimezone().strftime("%H:%M:%S")

    @property
    def untracked_route_directions(self) -> list[RouteDirection]:
        return sorted(RouteDirection(route=r, direction=d) for r, d in self._untracked)

    async def update(self, feed: TransitFeed, now: datetime | None = None) -> None:
        """Fetch the latest departures and apply them.

        Raises:
            TransitFeedError: If the fetch fails. Existing state is kept.
        """
        try:
            departures = await feed.get_departures(self.stop_number)
        except TransitFeedError as e:
            logger.warning(f"Failed to refresh stop {self.stop_number}: {e}")
            raise
        self.refresh(departures, now=now)

    async def resolve_name(self, feed: TransitFeed) -> str:
        """Look up the stop name; failures leave the invalid-stop sentinel."""
        self.stop_name = LOADING_NAME
        try:
            metadata = await feed.get_stop_metadata(self.stop_number)
        except TransitFeedError as e:
            logger.info(f"Stop {self.stop_number} name lookup failed: {e}")
            self.stop_name = INVALID_STOP_NAME
        else:
            self.stop_name = metadata.stop_name
        return self.stop_name

    def refresh(self, departures: Iterable[Departure], now: datetime | None = None) -> None:
        """Replace the stop's departures with a freshly fetched list.

        Args:
            departures: Departures in feed order (ascending departure time).
            now: Time of the update (default: current time).
        """
        departures = list(departures)
        grouped: dict[tuple[str, str], list[Departure]] = {}
        seen: dict[tuple[str, str], RouteDirection] = {}

        for dep in departures:
            rd = dep.route_direction
            if rd.key not in grouped:
                grouped[rd.key] = []
                seen[rd.key] = rd
            grouped[rd.key].append(dep)

        self.all_route_directions = sorted(seen.values())
        self.departures_by_route_direction = grouped
        self.latest_departures = departures
        self.last_update_time = now or _now()

        logger.debug(
            f"Stop {self.stop_number}: {len(departures)} departures "
            f"on {len(self.all_route_directions)} route-directions"
        )
        self.recompute_next_notification()

    def departures_for(self, rd: RouteDirection) -> list[Departure]:
        return list(self.departures_by_route_direction.get(rd.key, []))

    def find_route_direction(self, route: str, direction: str) -> RouteDirection | None:
        for rd in self.all_route_directions or []:
            if rd.route == route and rd.direction == direction:
                return rd
        return None

    def is_tracked(self, rd: RouteDirection) -> bool:
        return rd.key not in self._untracked

    def tracked_route_directions(self) -> list[RouteDirection]:
        """Observed route-directions minus the untracked ones, in display order."""
        if self.all_route_directions is None:
            return []
        return [rd for rd in self.all_route_directions if self.is_tracked(rd)]

    def track(self, rd: RouteDirection) -> None:
        self._untracked.discard(rd.key)

    def untrack(self, rd: RouteDirection) -> None:
        self._untracked.add(rd.key)

    def set_untracked(self, route_directions: Iterable[RouteDirection]) -> None:
        self._untracked = {rd.key for rd in route_directions}

    def filter_tracked(self, departures: Iterable[Departure]) -> list[Departure]:
        """Keep departures on tracked route-directions.

        Before the first refresh nothing is known about the stop, so
        every departure is kept.
        """
        if self.all_route_directions is None:
            return list(departures)
        return [dep for dep in departures if self.is_tracked(dep.route_direction)]

    def set_notification(self, lead_minutes: int) -> None:
        """Enable the recurring notification, firing lead_minutes before departure."""
        self.notification_enabled = True
        self.notification_lead_minutes = lead_minutes
        self.recompute_next_notification()

    def clear_notification(self) -> None:
        self.notification_enabled = False

    def recompute_next_notification(self) -> None:
        # No departures: keep whatever was computed last time
        if not self.latest_departures:
            return
        self.next_notification_departure = self.latest_departures[0]
        self.next_notification_time = self.next_notification_departure.departure_time - timedelta(
            minutes=self.notification_lead_minutes
        )

    def next_tracked_departure_at_or_after_lead(
        self, lead_minutes: int, now: datetime | None = None
    ) -> NextNotification | None:
        """
        Find the first tracked departure at least lead_minutes away.

        This is the next departure a lead-time notification can still be
        delivered for, not necessarily the next one chronologically.

        Args:
            lead_minutes: Minutes before departure the notification fires.
            now: Reference time (default: current time).

        Returns:
            NextNotification, or None if no tracked departure qualifies.
        """
        if now is None:
            now = _now()

        for dep in self.latest_departures:
            rd = dep.route_direction
            if not self.is_tracked(rd):
                continue
            minutes = minutes_until(dep.departure_time, now)
            if minutes >= lead_minutes:
                return NextNotification(
                    minutes_until=minutes,
                    fire_time=dep.departure_time - timedelta(minutes=lead_minutes),
                    departure=dep,
                    route_direction=rd,
                )
        return None
