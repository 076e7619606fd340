from collections import Counter
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from models.common import DeliveryStatus, EventType, StopType
from models.simulation import Route
from services.route_builder import build_route
from services.schedule_generator import TEMPLATES, business_window, generate_schedule, status_for_position

CODE = "CF123456789BR"
SAO_PAULO_TZ = ZoneInfo("America/Sao_Paulo")


@pytest.fixture
def long_route(sao_paulo, manaus):
    return build_route(sao_paulo, manaus, 15, 19)


def _statuses(updates):
    return [u.new_status for u in updates]


def test_schedule_is_deterministic(long_route, monday_morning):
    first = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    second = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    assert first == second


def test_other_tracking_code_changes_minutes_not_shape(long_route, monday_morning):
    a = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    b = generate_schedule(long_route, "CF987654321BR", 8, 18, monday_morning)
    assert _statuses(a) == _statuses(b)
    assert [u.scheduled_for for u in a] != [u.scheduled_for for u in b]


def test_long_route_status_chain(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    statuses = _statuses(updates)

    assert len(updates) == 2 * long_route.total_days
    assert statuses[0] == DeliveryStatus.COLLECTED
    assert statuses[1] == DeliveryStatus.IN_TRANSIT
    assert statuses[-2] == DeliveryStatus.OUT_FOR_DELIVERY
    assert statuses[-1] == DeliveryStatus.DELIVERED
    counts = Counter(statuses)
    assert counts[DeliveryStatus.OUT_FOR_DELIVERY] == 1
    assert counts[DeliveryStatus.IN_TRANSIT] == 1
    assert all(s is None for s in statuses[2:-2])


def test_event_type_follows_status(long_route, monday_morning):
    for u in generate_schedule(long_route, CODE, 8, 18, monday_morning):
        expected = EventType.STATUS_CHANGE if u.new_status else EventType.LOCATION_UPDATE
        assert u.event_type == expected


def test_every_stop_gets_an_arrival_event(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    visited = {u.waypoint.location.city for u in updates}
    for stop in long_route.stops:
        assert stop.location.city in visited
        arrival = [u for u in updates if u.waypoint == stop and u.progress_percent == round(stop.cumulative_progress, 1)]
        assert arrival


@pytest.mark.parametrize("start_hour, end_hour", [(8, 18), (9, 12), (0, 23), (14, 15)])
def test_business_hours_and_weekdays(long_route, monday_morning, start_hour, end_hour):
    updates = generate_schedule(long_route, CODE, start_hour, end_hour, monday_morning)
    for u in updates:
        assert u.scheduled_for.weekday() < 5
        assert start_hour <= u.scheduled_for.hour < end_hour


def test_timestamps_strictly_increase_after_start(long_route):
    start = datetime(2026, 10, 21, 15, 42, tzinfo=SAO_PAULO_TZ)
    updates = generate_schedule(long_route, CODE, 8, 18, start)
    times = [u.scheduled_for for u in updates]
    assert times == sorted(set(times))
    assert times[0] > start


def test_two_events_per_business_day(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    per_day = Counter(u.scheduled_for.date() for u in updates)
    assert len(per_day) == long_route.total_days
    assert set(per_day.values()) == {2}
    for day_updates in _by_day(updates).values():
        morning, afternoon = day_updates
        assert morning.scheduled_for < afternoon.scheduled_for
        assert morning.scheduled_for.hour < 13 <= afternoon.scheduled_for.hour


def _by_day(updates):
    days = {}
    for u in updates:
        days.setdefault(u.scheduled_for.date(), []).append(u)
    return days


def test_progress_is_monotonic_and_ends_at_100(long_route, monday_morning):
    progress = [u.progress_percent for u in generate_schedule(long_route, CODE, 8, 18, monday_morning)]
    assert progress == sorted(progress)
    assert progress[0] == 0.0
    assert progress[-1] == 100.0


def test_sequences_are_contiguous(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    assert [u.sequence for u in updates] == list(range(len(updates)))


def test_start_before_opening_uses_same_day(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    assert updates[0].scheduled_for.date() == monday_morning.date()


def test_start_on_friday_evening_waits_for_monday(long_route):
    friday_evening = datetime(2026, 10, 23, 19, 0, tzinfo=SAO_PAULO_TZ)
    updates = generate_schedule(long_route, CODE, 8, 18, friday_evening)
    assert updates[0].scheduled_for.date() == (friday_evening + timedelta(days=3)).date()


def test_short_route_schedule(sao_paulo, campinas, monday_morning):
    route = build_route(sao_paulo, campinas, 1, 2)
    updates = generate_schedule(route, CODE, 8, 18, monday_morning)
    assert 2 <= len(updates) <= 4
    assert updates[0].new_status == DeliveryStatus.COLLECTED
    assert updates[-1].new_status == DeliveryStatus.DELIVERED


def test_zero_distance_schedule(sao_paulo, monday_morning):
    route = build_route(sao_paulo, sao_paulo, 2, 4)
    updates = generate_schedule(route, CODE, 8, 18, monday_morning)
    assert _statuses(updates) == [DeliveryStatus.COLLECTED, DeliveryStatus.DELIVERED]
    assert updates[-1].scheduled_for.date() == (monday_morning + timedelta(days=1)).date()


def test_degenerate_route_yields_single_delivery(sao_paulo, campinas, monday_morning):
    route = build_route(sao_paulo, campinas, 1, 2)
    broken = Route(**{**route.model_dump(), "total_days": 0})
    updates = generate_schedule(broken, CODE, 8, 18, monday_morning)
    assert _statuses(updates) == [DeliveryStatus.DELIVERED]
    assert updates[0].progress_percent == 100.0


@pytest.mark.parametrize("status", [DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.RETURNED])
def test_no_schedule_for_terminal_delivery(long_route, monday_morning, status):
    assert generate_schedule(long_route, CODE, 8, 18, monday_morning, current_status=status) == []


def test_invalid_window_falls_back_to_default(long_route, monday_morning):
    start_hour, end_hour, warnings = business_window(18, 8)
    assert (start_hour, end_hour) == (8, 18)
    assert warnings
    assert business_window(9, 17) == (9, 17, [])
    updates = generate_schedule(long_route, CODE, 18, 8, monday_morning)
    assert all(8 <= u.scheduled_for.hour < 18 for u in updates)


@pytest.mark.parametrize("total, expected", [
    (2, [DeliveryStatus.COLLECTED, DeliveryStatus.DELIVERED]),
    (4, [DeliveryStatus.COLLECTED, DeliveryStatus.IN_TRANSIT, DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED]),
    (5, [DeliveryStatus.COLLECTED, DeliveryStatus.IN_TRANSIT, None, DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED]),
])
def test_status_for_position(total, expected):
    assert [status_for_position(i, total) for i in range(total)] == expected


def _rendered(category, waypoint, destination):
    values = {
        "city": waypoint.location.city,
        "state": waypoint.location.state,
        "destination": destination.location.city,
        "destination_state": destination.location.state,
    }
    return {t.format(**values) for t in TEMPLATES[category]}


def test_transit_stop_in_new_state_announces_the_crossing(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    at_stop = {}
    for u in updates:
        at_stop.setdefault(u.waypoint, u)
    chain = [long_route.origin, *long_route.stops]

    crossings = 0
    for prev, stop in zip(chain, chain[1:]):
        if stop.stop_type != StopType.TRANSIT:
            continue
        description = at_stop[stop].description
        if stop.location.state != prev.location.state:
            assert description in _rendered("state_crossing", stop, long_route.destination)
            crossings += 1
        else:
            assert description in _rendered("transit_stop", stop, long_route.destination)
    assert crossings >= 1


def test_slot_after_hub_announces_departure(long_route, monday_morning):
    updates = generate_schedule(long_route, CODE, 8, 18, monday_morning)
    departures = 0
    for arrival, following in zip(updates, updates[1:]):
        hub = arrival.waypoint
        if hub.stop_type != StopType.HUB or arrival.progress_percent != round(hub.cumulative_progress, 1):
            continue
        if following.waypoint == hub:
            assert following.new_status is None
            assert following.description in _rendered("hub_departure", hub, long_route.destination)
            departures += 1
    assert departures >= 1
