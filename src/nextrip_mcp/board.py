"""The set of stops currently on display and their refresh cycle."""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime

from .config import settings
from .models import NotificationRequest, RouteDirection
from .notification_scheduler import NotificationScheduler
from .stop_tracker import StopTracker
from .transit_feed import TransitFeed, TransitFeedError

logger = logging.getLogger(__name__)


class Board:
    """
    Owns the displayed StopTrackers and the NotificationScheduler for them.

    Closing a stop removes its notification requests as well.
    """

    def __init__(self, feed: TransitFeed, scheduler: NotificationScheduler | None = None):
        self.feed = feed
        self.scheduler = scheduler or NotificationScheduler()
        self.stops: list[StopTracker] = []

    def get_stop(self, stop_number: int) -> StopTracker:
        """
        Get a displayed stop by number.

        Raises:
            ValueError: If the stop is not on the board.
        """
        for stop in self.stops:
            if stop.stop_number == stop_number:
                return stop
        raise ValueError(f"Stop {stop_number} is not on the board")

    def has_stop(self, stop_number: int) -> bool:
        return any(stop.stop_number == stop_number for stop in self.stops)

    async def add_stop(self, stop_number: int) -> StopTracker:
        """Start tracking a stop. Adding one that is already shown does nothing."""
        if self.has_stop(stop_number):
            return self.get_stop(stop_number)

        stop = StopTracker(stop_number)
        self.stops.append(stop)
        logger.info(f"Added stop {stop_number}")
        await asyncio.gather(self.refresh_stop(stop), stop.resolve_name(self.feed))
        return stop

    def close_stop(self, stop_number: int) -> None:
        stop = self.get_stop(stop_number)
        self.scheduler.remove_all(stop)
        self.stops.remove(stop)
        logger.info(f"Closed stop {stop_number}")

    async def refresh_stop(self, stop: StopTracker, now: datetime | None = None) -> bool:
        """Refresh one stop and resync its notifications.

        Returns:
            False if the feed failed and the stop kept its previous data.
        """
        try:
            await stop.update(self.feed, now=now)
        except TransitFeedError:
            return False
        self.scheduler.resync(stop, now=now)
        return True

    async def refresh_all(self, now: datetime | None = None) -> list[bool]:
        """Refresh every stop; an error on one stop does not affect the others."""
        stops = list(self.stops)
        results = await asyncio.gather(
            *(self.refresh_stop(stop, now=now) for stop in stops), return_exceptions=True
        )
        outcomes = []
        for stop, result in zip(stops, results):
            if isinstance(result, Exception):
                logger.error(f"Refresh of stop {stop.stop_number} failed: {result}", exc_info=result)
                outcomes.append(False)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        return outcomes

    async def run_periodic(self, interval: float | None = None) -> None:
        """Refresh every stop on a fixed interval until cancelled."""
        interval = interval or settings.refresh_interval_seconds
        logger.info(f"Refreshing board every {interval:g}s")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_all()
            except Exception:
                logger.exception("Periodic board refresh failed")

    def _loaded_stop(self, stop_number: int) -> StopTracker:
        stop = self.get_stop(stop_number)
        if not stop.is_loaded:
            raise ValueError(f"Departures for stop {stop_number} have not loaded yet")
        return stop

    def set_notification(
        self, stop_number: int, lead_minutes: int, now: datetime | None = None
    ) -> NotificationRequest:
        """
        Enable a recurring notification lead_minutes before departures.

        Raises:
            ValueError: If the stop is unknown, not loaded, or lead_minutes is negative.
        """
        if lead_minutes < 0:
            raise ValueError("lead_minutes must not be negative")
        stop = self._loaded_stop(stop_number)
        stop.set_notification(lead_minutes)
        return self.scheduler.enable(stop, lead_minutes, now=now)

    def clear_notification(self, stop_number: int) -> None:
        stop = self.get_stop(stop_number)
        stop.clear_notification()
        self.scheduler.disable(stop)

    def set_untracked(
        self,
        stop_number: int,
        route_directions: Iterable[RouteDirection],
        now: datetime | None = None,
    ) -> None:
        """Replace the stop's untracked route-directions and resync its notifications."""
        stop = self._loaded_stop(stop_number)
        stop.set_untracked(route_directions)
        self.scheduler.resync(stop, now=now)
