"""Tests for per-stop matching and delay propagation."""

from __future__ import annotations

from zoneinfo import ZoneInfo

from transit_rt.services.feeds.entities import StopTimeEvent, StopTimeUpdate
from transit_rt.services.reconciliation.trip_updates import (
    build_stop_time_updates,
    compute_delay,
    fill_missing_stop_refs,
    parse_gtfs_time,
)
from transit_rt.services.timetable import StopTime, TripStop

HELSINKI = ZoneInfo("Europe/Helsinki")

# 2023-11-15 10:05:00 Europe/Helsinki
SCHEDULED_1005 = 1700035500


def _stops(*stop_ids: str) -> list[StopTime]:
    return [
        StopTime(
            stop_id=stop_id,
            stop_sequence=i + 1,
            arrival_time=f"10:{5 * i:02d}:00",
            departure_time=f"10:{5 * i:02d}:00",
        )
        for i, stop_id in enumerate(stop_ids)
    ]


def _delays(rows: list[dict]) -> list[tuple]:
    return [(r["stop_id"], r["arrival_delay"], r["departure_delay"]) for r in rows]


class TestParseGtfsTime:
    def test_parse(self) -> None:
        assert parse_gtfs_time("08:05:30") == 8 * 3600 + 5 * 60 + 30
        assert parse_gtfs_time("25:10:00") == 25 * 3600 + 600
        assert parse_gtfs_time("8:05:00") == 8 * 3600 + 300

    def test_invalid(self) -> None:
        assert parse_gtfs_time(None) is None
        assert parse_gtfs_time("") is None
        assert parse_gtfs_time("08:05") is None
        assert parse_gtfs_time("aa:bb:cc") is None


class TestComputeDelay:
    def test_late(self) -> None:
        assert compute_delay(SCHEDULED_1005 + 60, "10:05:00", HELSINKI) == 60

    def test_early(self) -> None:
        assert compute_delay(SCHEDULED_1005 - 30, "10:05:00", HELSINKI) == -30

    def test_uses_local_date_of_event(self) -> None:
        # 00:10 local on 2023-11-16 against a 00:05 schedule
        event = 1700086200
        assert compute_delay(event, "00:05:00", HELSINKI) == 300

    def test_past_midnight_schedule_lands_a_day_late(self) -> None:
        # Known limitation: 24:10:00 of service day 2023-11-15 is placed on the
        # event's date (2023-11-16), so an event at 00:12 local reads as a day early
        event = 1700086320
        assert compute_delay(event, "24:10:00", HELSINKI) == 120 - 86400

    def test_unparseable_schedule(self) -> None:
        assert compute_delay(SCHEDULED_1005, None, HELSINKI) is None


class TestBuildStopTimeUpdates:
    """Matching realtime updates to the static stop sequence."""

    def test_one_row_per_static_stop(self) -> None:
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), [], HELSINKI)

        assert [r["stop_sequence"] for r in rows] == [1, 2, 3]
        assert all(r["trip_update_id"] == "tu1" for r in rows)
        assert all(r["schedule_relationship"] == "SCHEDULED" for r in rows)
        assert _delays(rows) == [("A", None, None), ("B", None, None), ("C", None, None)]

    def test_delay_propagates_both_ways(self) -> None:
        updates = [StopTimeUpdate(stop_id="C", arrival=StopTimeEvent(delay=120))]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C", "D"), updates, HELSINKI)

        assert _delays(rows) == [
            ("A", 120, 120),
            ("B", 120, 120),
            ("C", 120, 120),
            ("D", 120, 120),
        ]

    def test_single_match_on_middle_stop(self) -> None:
        updates = [StopTimeUpdate(stop_id="S2", arrival=StopTimeEvent(delay=30))]
        rows = build_stop_time_updates("T1", _stops("S1", "S2", "S3"), updates, HELSINKI)

        assert _delays(rows) == [("S1", 30, 30), ("S2", 30, 30), ("S3", 30, 30)]

    def test_running_delay_changes_at_each_observation(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="A", arrival=StopTimeEvent(delay=10)),
            StopTimeUpdate(stop_id="C", departure=StopTimeEvent(delay=50)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C", "D"), updates, HELSINKI)

        assert _delays(rows) == [("A", 10, 10), ("B", 10, 10), ("C", 50, 50), ("D", 50, 50)]

    def test_absolute_time_computes_delay(self) -> None:
        # B is scheduled 10:05:00
        updates = [
            StopTimeUpdate(
                stop_id="B",
                arrival=StopTimeEvent(time=SCHEDULED_1005 + 90, uncertainty=30),
            )
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)

        b = rows[1]
        assert b["arrival_time"] == SCHEDULED_1005 + 90
        assert b["arrival_delay"] == 90
        assert b["arrival_uncertainty"] == 30
        assert b["departure_time"] == SCHEDULED_1005 + 90
        assert b["departure_delay"] == 90
        assert rows[2]["arrival_delay"] == 90
        assert rows[0]["arrival_delay"] == 90

    def test_explicit_delay_used_verbatim_with_time(self) -> None:
        updates = [
            StopTimeUpdate(
                stop_id="B",
                arrival=StopTimeEvent(delay=45, time=SCHEDULED_1005 + 999),
            )
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B"), updates, HELSINKI)
        assert rows[1]["arrival_delay"] == 45
        assert rows[1]["arrival_time"] == SCHEDULED_1005 + 999

    def test_match_by_stop_id_before_sequence(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="X", stop_sequence=2, arrival=StopTimeEvent(delay=10)),
            StopTimeUpdate(stop_id="B", stop_sequence=9, arrival=StopTimeEvent(delay=20)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B"), updates, HELSINKI)
        assert rows[1]["arrival_delay"] == 20

    def test_match_by_sequence(self) -> None:
        updates = [StopTimeUpdate(stop_sequence=3, arrival=StopTimeEvent(delay=15))]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)
        assert rows[2]["arrival_delay"] == 15

    def test_no_data_stop_has_no_timing(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="A", arrival=StopTimeEvent(delay=10)),
            StopTimeUpdate(stop_id="B", schedule_relationship=2, arrival=StopTimeEvent(delay=99)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)

        assert rows[1]["schedule_relationship"] == "NO_DATA"
        assert rows[1]["arrival_delay"] is None
        assert rows[1]["departure_delay"] is None
        # Running delay is unchanged by the NO_DATA stop
        assert rows[2]["arrival_delay"] == 10

    def test_no_data_stop_not_backfilled(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="B", schedule_relationship=2),
            StopTimeUpdate(stop_id="C", arrival=StopTimeEvent(delay=40)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)

        assert _delays(rows) == [("A", 40, 40), ("B", None, None), ("C", 40, 40)]

    def test_stop_relationship_one_is_scheduled(self) -> None:
        updates = [StopTimeUpdate(stop_id="A", schedule_relationship=1, arrival=StopTimeEvent(delay=5))]
        rows = build_stop_time_updates("tu1", _stops("A"), updates, HELSINKI)
        assert rows[0]["schedule_relationship"] == "SCHEDULED"
        assert rows[0]["arrival_delay"] == 5

    def test_event_without_time_or_delay_carries_running_delay(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="A", arrival=StopTimeEvent(delay=25)),
            StopTimeUpdate(stop_id="B", arrival=StopTimeEvent(uncertainty=60)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)

        assert len(rows) == 3
        assert rows[1]["arrival_delay"] == 25
        assert rows[1]["arrival_uncertainty"] is None
        assert rows[2]["arrival_delay"] == 25

    def test_backfill_stops_at_first_timed_stop(self) -> None:
        updates = [
            StopTimeUpdate(stop_id="B", arrival=StopTimeEvent(delay=30)),
            StopTimeUpdate(stop_id="C", arrival=StopTimeEvent(delay=70)),
        ]
        rows = build_stop_time_updates("tu1", _stops("A", "B", "C"), updates, HELSINKI)
        assert _delays(rows) == [("A", 30, 30), ("B", 30, 30), ("C", 70, 70)]

    def test_rows_are_independent_per_call(self) -> None:
        updates = [StopTimeUpdate(stop_id="A", arrival=StopTimeEvent(delay=100))]
        build_stop_time_updates("tu1", _stops("A", "B"), updates, HELSINKI)

        rows = build_stop_time_updates("tu2", _stops("A", "B"), [], HELSINKI)
        assert _delays(rows) == [("A", None, None), ("B", None, None)]


class TestFillMissingStopRefs:
    def test_fill_sequence_from_stop_id(self) -> None:
        trip_stops = [TripStop("T12", 4), TripStop("T13", 5)]
        updates = [StopTimeUpdate(stop_id="T12"), StopTimeUpdate(stop_sequence=5)]

        filled = fill_missing_stop_refs(updates, trip_stops)

        assert filled[0].stop_sequence == 4
        assert filled[1].stop_id == "T13"
        # Inputs are not mutated
        assert updates[0].stop_sequence is None

    def test_unknown_refs_left_alone(self) -> None:
        filled = fill_missing_stop_refs([StopTimeUpdate(stop_id="Z")], [TripStop("T12", 4)])
        assert filled[0].stop_sequence is None
