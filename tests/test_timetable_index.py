"""Tests for timetable index queries (mocked sessions)."""

from __future__ import annotations

from datetime import date

import pytest

from transit_rt.models import InvalidRegionError
from transit_rt.services.timetable import StopTime, TimetableIndex, Trip, TripStop
from transit_rt.services.timetable.index import hour_minute

from .fixtures.db_fixture import executed_sql, make_result, make_session


class TestHourMinute:
    def test_parse(self) -> None:
        assert hour_minute("08:05:59") == (8, 5)
        assert hour_minute("8:05:00") == (8, 5)
        assert hour_minute("25:10:00") == (25, 10)
        assert hour_minute("0805") is None
        assert hour_minute(None) is None
        assert hour_minute("xx:yy") is None


class TestActiveServiceIds:
    @pytest.mark.asyncio
    async def test_weekday_window_and_exceptions(self) -> None:
        session = make_session(
            make_result([("WD",), ("WD_WINTER",)]),
            make_result([("WD_WINTER", 2), ("HOLIDAY", 1)]),
        )
        # 2023-11-15 is a Wednesday
        services = await TimetableIndex().active_service_ids(session, "tampere", date(2023, 11, 15))

        assert services == {"WD", "HOLIDAY"}
        calendar_sql, dates_sql = executed_sql(session)
        assert "FROM tampere_calendar" in calendar_sql
        assert "wednesday = 1" in calendar_sql
        assert "FROM tampere_calendar_dates" in dates_sql
        assert session.execute.call_args_list[0].args[1] == {"day": "20231115"}

    @pytest.mark.asyncio
    async def test_no_services(self) -> None:
        session = make_session(make_result([]), make_result([]))
        services = await TimetableIndex().active_service_ids(session, "oulu", date(2023, 11, 19))
        assert services == set()
        assert "sunday = 1" in executed_sql(session)[0]

    @pytest.mark.asyncio
    async def test_invalid_region(self) -> None:
        session = make_session()
        with pytest.raises(InvalidRegionError):
            await TimetableIndex().active_service_ids(session, "x; DROP TABLE", date(2023, 11, 15))
        session.execute.assert_not_called()


class TestTripId:
    @pytest.mark.asyncio
    async def test_minute_granularity_match(self) -> None:
        session = make_session(
            make_result([("T_0759", "07:59:00"), ("T_0805", "08:05:40"), ("T_0810", "08:10:00")])
        )
        trip_id = await TimetableIndex().trip_id(
            session, "tampere", "3", "08:05:00", 0, {"WD"}
        )

        assert trip_id == "T_0805"
        sql = executed_sql(session)[0]
        assert "tampere_trips" in sql
        assert "tampere_stop_times" in sql
        assert "MIN(first_stop.stop_sequence)" in sql
        params = session.execute.call_args.args[1]
        assert params == {"route_id": "3", "direction_id": 0, "service_ids": ["WD"]}

    @pytest.mark.asyncio
    async def test_first_candidate_wins_on_tie(self) -> None:
        # Rows arrive ordered by first stop_sequence, then trip_id
        session = make_session(make_result([("T_A", "08:05:10"), ("T_B", "08:05:50")]))
        trip_id = await TimetableIndex().trip_id(session, "tampere", "3", "08:05", 1, {"WD"})
        assert trip_id == "T_A"

    @pytest.mark.asyncio
    async def test_single_digit_hour(self) -> None:
        session = make_session(make_result([("T1", "8:05:00")]))
        trip_id = await TimetableIndex().trip_id(session, "tampere", "3", "08:05:00", 0, {"WD"})
        assert trip_id == "T1"

    @pytest.mark.asyncio
    async def test_no_match(self) -> None:
        session = make_session(make_result([("T1", "09:00:00")]))
        assert await TimetableIndex().trip_id(session, "tampere", "3", "08:05:00", 0, {"WD"}) is None

    @pytest.mark.asyncio
    async def test_no_active_services_skips_query(self) -> None:
        session = make_session()
        assert await TimetableIndex().trip_id(session, "tampere", "3", "08:05:00", 0, set()) is None
        session.execute.assert_not_called()


class TestTripLookups:
    @pytest.mark.asyncio
    async def test_trip_by_id(self) -> None:
        session = make_session(make_result([("T1", "3", 1)]))
        trip = await TimetableIndex().trip_by_id(session, "tampere", "T1")
        assert trip == Trip(trip_id="T1", route_id="3", direction_id=1)

    @pytest.mark.asyncio
    async def test_trip_by_id_not_found(self) -> None:
        session = make_session(make_result([]))
        assert await TimetableIndex().trip_by_id(session, "tampere", "nope") is None

    @pytest.mark.asyncio
    async def test_stop_times_for_trip(self) -> None:
        session = make_session(
            make_result([("S1", 1, "08:00:00", "08:00:30"), ("S2", 2, "08:05:00", "08:05:00")])
        )
        stop_times = await TimetableIndex().stop_times_for_trip(session, "tampere", "T1")

        assert stop_times == [
            StopTime("S1", 1, "08:00:00", "08:00:30"),
            StopTime("S2", 2, "08:05:00", "08:05:00"),
        ]
        assert "ORDER BY stop_sequence ASC" in executed_sql(session)[0]

    @pytest.mark.asyncio
    async def test_all_stops_for_trip(self) -> None:
        session = make_session(make_result([("S2", 2), ("S1", 1)]))
        stops = await TimetableIndex().all_stops_for_trip(session, "turku", "T1")
        assert stops == [TripStop("S2", 2), TripStop("S1", 1)]
        assert "turku_stop_times" in executed_sql(session)[0]

    @pytest.mark.asyncio
    async def test_route_ids_by_short_name(self) -> None:
        session = make_session(make_result([("1", "FOLI_1"), ("2A", "FOLI_2A")]))
        routes = await TimetableIndex().route_ids_by_short_name(session, "turku")
        assert routes == {"1": "FOLI_1", "2A": "FOLI_2A"}
        assert "turku_routes" in executed_sql(session)[0]
