"""Tests for notification scheduling."""

from datetime import timedelta

from nextrip_mcp.models import RouteDirection
from nextrip_mcp.notification_scheduler import NotificationScheduler, format_notification
from nextrip_mcp.stop_tracker import StopTracker

from conftest import NOW, make_departure


def loaded_stop(*departures) -> StopTracker:
    stop = StopTracker(100)
    stop.refresh(departures, now=NOW)
    return stop


class TestFormatting:
    def test_format_notification(self):
        assert format_notification("21", "EASTBOUND", 12) == "21 EASTBOUND is departing in 12 minute(s)"


class TestEnable:
    """Test request creation."""

    def test_enable_computes_fields(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(
            make_departure("R1", "North", minutes=3),
            make_departure("R2", "South", minutes=8),
            make_departure("R1", "North", minutes=15),
        )
        stop.untrack(RouteDirection(route="R2", direction="South"))

        request = scheduler.enable(stop, 10, now=NOW)

        assert request.stop_number == 100
        assert request.lead_minutes == 10
        assert request.fire_time == NOW + timedelta(minutes=5)
        assert request.content == "R1 North is departing in 15 minute(s)"

    def test_enable_twice_reuses_request(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=20))
        first = scheduler.enable(stop, 10, now=NOW)
        second = scheduler.enable(stop, 10, now=NOW)
        assert first is second
        assert len(scheduler.requests_for(stop)) == 1

    def test_different_leads_are_separate(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=20))
        scheduler.enable(stop, 5, now=NOW)
        scheduler.enable(stop, 10, now=NOW)
        assert [r.lead_minutes for r in scheduler.requests_for(stop)] == [5, 10]

    def test_enable_without_departure_leaves_fields_empty(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=2))
        request = scheduler.enable(stop, 10, now=NOW)
        assert request.fire_time is None
        assert request.content is None


class TestResync:
    """Test in-place updates on refresh."""

    def test_resync_mutates_in_place(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        request = scheduler.enable(stop, 10, now=NOW)

        stop.refresh([make_departure("R1", "North", minutes=25)], now=NOW)
        scheduler.resync(stop, now=NOW)

        assert scheduler.status_for(stop) is request
        assert request.fire_time == NOW + timedelta(minutes=15)
        assert request.content == "R1 North is departing in 25 minute(s)"

    def test_resync_keeps_stale_values_when_nothing_qualifies(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        request = scheduler.enable(stop, 10, now=NOW)
        stale = (request.fire_time, request.content)

        stop.refresh([make_departure("R1", "North", minutes=4)], now=NOW)
        scheduler.resync(stop, now=NOW)

        assert (request.fire_time, request.content) == stale

    def test_resync_unknown_stop_is_noop(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        scheduler.resync(stop, now=NOW)
        assert scheduler.requests_for(stop) == []
        assert scheduler.status_for(stop) is None


class TestRemoval:
    """Test request removal."""

    def test_status_for(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        assert scheduler.status_for(stop) is None
        scheduler.enable(stop, 10, now=NOW)
        assert scheduler.status_for(stop) is not None

    def test_remove_all_is_idempotent(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        scheduler.enable(stop, 5, now=NOW)
        scheduler.enable(stop, 10, now=NOW)

        scheduler.remove_all(stop)
        assert scheduler.status_for(stop) is None
        scheduler.remove_all(stop)
        assert scheduler.requests_for(stop) == []

    def test_disable_single_lead(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        scheduler.enable(stop, 5, now=NOW)
        scheduler.enable(stop, 10, now=NOW)

        scheduler.disable(stop, 5)
        assert [r.lead_minutes for r in scheduler.requests_for(stop)] == [10]
        scheduler.disable(stop, 10)
        assert scheduler.status_for(stop) is None
        scheduler.disable(stop, 10)

    def test_disable_all(self):
        scheduler = NotificationScheduler()
        stop = loaded_stop(make_departure("R1", "North", minutes=15))
        scheduler.enable(stop, 5, now=NOW)
        scheduler.disable(stop)
        assert scheduler.requests_for(stop) == []
