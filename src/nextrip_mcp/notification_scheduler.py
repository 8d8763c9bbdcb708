"""Keeps per-stop notification requests in step with live departures."""

import logging
from datetime import datetime

from .models import NotificationRequest
from .stop_tracker import StopTracker

logger = logging.getLogger(__name__)


def format_notification(route: str, direction: str, minutes: int) -> str:
    """Return the text shown when a notification fires."""
    return f"{route} {direction} is departing in {minutes} minute(s)"


class NotificationScheduler:
    """Owns the active notification requests of every stop on a board.

    Requests are mutated in place on resync, so a delivery handle tied
    to a request stays valid across refreshes.
    """

    def __init__(self):
        self._requests: dict[int, list[NotificationRequest]] = {}

    def enable(
        self, stop: StopTracker, lead_minutes: int, now: datetime | None = None
    ) -> NotificationRequest:
        """Create the request for this stop and lead time, or reuse an existing one."""
        requests = self._requests.setdefault(stop.stop_number, [])
        request = next((r for r in requests if r.lead_minutes == lead_minutes), None)
        if request is None:
            request = NotificationRequest(stop_number=stop.stop_number, lead_minutes=lead_minutes)
            requests.append(request)
            logger.info(f"Enabled {lead_minutes} minute notification for stop {stop.stop_number}")
        self.resync(stop, now=now)
        return request

    def resync(self, stop: StopTracker, now: datetime | None = None) -> None:
        """Recompute fire time and content of every request for a stop.

        A request with no qualifying departure keeps its previous values.
        """
        for request in self._requests.get(stop.stop_number, []):
            upcoming = stop.next_tracked_departure_at_or_after_lead(request.lead_minutes, now=now)
            if upcoming is None:
                logger.debug(
                    f"No departure {request.lead_minutes}+ minutes out for stop {stop.stop_number}"
                )
                continue
            request.fire_time = upcoming.fire_time
            request.content = format_notification(
                upcoming.route_direction.route,
                upcoming.route_direction.direction,
                upcoming.minutes_until,
            )

    def status_for(self, stop: StopTracker) -> NotificationRequest | None:
        requests = self._requests.get(stop.stop_number)
        return requests[0] if requests else None

    def requests_for(self, stop: StopTracker) -> list[NotificationRequest]:
        return list(self._requests.get(stop.stop_number, []))

    def disable(self, stop: StopTracker, lead_minutes: int | None = None) -> None:
        """Remove one request by lead time, or all of them when lead_minutes is None."""
        if lead_minutes is None:
            self.remove_all(stop)
            return
        requests = self._requests.get(stop.stop_number)
        if not requests:
            return
        requests[:] = [r for r in requests if r.lead_minutes != lead_minutes]
        if not requests:
            del self._requests[stop.stop_number]

    def remove_all(self, stop: StopTracker) -> None:
        if self._requests.pop(stop.stop_number, None) is not None:
            logger.info(f"Removed notifications for stop {stop.stop_number}")
