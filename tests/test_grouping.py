from datetime import timedelta

from conftest import BASE_TIME, make_processed
from travel_wrapped.grouping import group_trips
from travel_wrapped.models import TripType


def _move(idx, meters, start):
    return make_processed(
        idx,
        start=start,
        minutes=30,
        activity_type="IN_PASSENGER_VEHICLE",
        confidence=0.9,
        place_name=None,
        distance_meters=meters,
        end=None,
    )


def test_consecutive_stays_collapse_into_one_trip():
    segs = [
        make_processed(0, start=BASE_TIME, minutes=6, confidence=0.5, place_name="A"),
        make_processed(1, start=BASE_TIME + timedelta(minutes=6), minutes=6, confidence=0.9, place_name="B"),
    ]
    trips = group_trips(segs)
    assert len(trips) == 1
    stay = trips[0]
    assert stay.type is TripType.STAY
    assert stay.id == "stay-0"
    assert stay.place_name == "B"  # most confident member supplies the location
    assert stay.confidence == 0.9
    assert stay.duration_minutes == 12
    assert [s.id for s in stay.segments] == ["seg-0", "seg-1"]


def test_short_stay_runs_are_dropped():
    segs = [make_processed(0, start=BASE_TIME, minutes=5)]
    assert group_trips(segs) == []


def test_journey_threshold_is_exclusive():
    segs = [
        _move(0, 1000, BASE_TIME),
        _move(1, 1000.5, BASE_TIME + timedelta(hours=1)),
    ]
    trips = group_trips(segs)
    assert len(trips) == 1
    assert trips[0].type is TripType.JOURNEY
    assert trips[0].distance_km == 1.0005


def test_movement_splits_stay_runs_and_ids_follow_output_order():
    segs = [
        make_processed(0, start=BASE_TIME, minutes=30),
        _move(1, 5000, BASE_TIME + timedelta(minutes=30)),
        make_processed(2, start=BASE_TIME + timedelta(hours=1), minutes=30),
    ]
    trips = group_trips(segs)
    assert [t.id for t in trips] == ["stay-0", "journey-1", "stay-2"]
    assert [t.type for t in trips] == [TripType.STAY, TripType.JOURNEY, TripType.STAY]


def test_input_order_does_not_matter_and_input_is_untouched():
    segs = [
        make_processed(1, start=BASE_TIME + timedelta(hours=2), minutes=30),
        _move(0, 5000, BASE_TIME),
    ]
    original = list(segs)
    trips = group_trips(segs)
    assert segs == original
    assert [t.type for t in trips] == [TripType.JOURNEY, TripType.STAY]
    assert trips[0].start_time <= trips[1].start_time


def test_thresholds_can_be_overridden():
    segs = [make_processed(0, start=BASE_TIME, minutes=5), _move(1, 500, BASE_TIME + timedelta(hours=1))]
    trips = group_trips(segs, min_stay_minutes=1, min_journey_meters=100)
    assert len(trips) == 2


def test_empty_input():
    assert group_trips([]) == []
