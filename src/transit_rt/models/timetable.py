"""Static GTFS timetable tables (externally owned, read by the Timetable Index)."""

from __future__ import annotations

from sqlalchemy import Column, Index, Integer, MetaData, SmallInteger, String, Table

from transit_rt.models import naming

WEEKDAY_COLUMNS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def build_timetable_tables(metadata: MetaData, region: str) -> dict[str, Table]:
    """Define the static GTFS tables of one region on ``metadata``.

    Dates are stored as GTFS ``YYYYMMDD`` strings and times as ``HH:MM:SS``
    strings (hours may exceed 23), exactly as loaded from the GTFS files.
    """
    trips_name = naming.table_name(region, naming.TRIPS)
    stop_times_name = naming.table_name(region, naming.STOP_TIMES)

    routes = Table(
        naming.table_name(region, naming.ROUTES),
        metadata,
        Column("route_id", String(64), primary_key=True),
        Column("route_short_name", String(64), nullable=True),
        Column("route_long_name", String(255), nullable=True),
        Column("route_type", Integer, nullable=True),
    )

    trips = Table(
        trips_name,
        metadata,
        Column("trip_id", String(128), primary_key=True),
        Column("route_id", String(64), nullable=False),
        Column("service_id", String(64), nullable=False),
        Column("direction_id", Integer, nullable=True),
        Index(f"ix_{trips_name}_route_direction", "route_id", "direction_id"),
    )

    stop_times = Table(
        stop_times_name,
        metadata,
        Column("trip_id", String(128), primary_key=True),
        Column("stop_sequence", Integer, primary_key=True),
        Column("stop_id", String(64), nullable=False),
        Column("arrival_time", String(8), nullable=True),
        Column("departure_time", String(8), nullable=True),
        Index(f"ix_{stop_times_name}_trip_id", "trip_id"),
    )

    calendar = Table(
        naming.table_name(region, naming.CALENDAR),
        metadata,
        Column("service_id", String(64), primary_key=True),
        *(Column(day, SmallInteger, nullable=False, server_default="0") for day in WEEKDAY_COLUMNS),
        Column("start_date", String(8), nullable=False),
        Column("end_date", String(8), nullable=False),
    )

    calendar_dates = Table(
        naming.table_name(region, naming.CALENDAR_DATES),
        metadata,
        Column("service_id", String(64), primary_key=True),
        Column("date", String(8), primary_key=True),
        Column("exception_type", SmallInteger, nullable=False),
    )

    return {
        naming.ROUTES: routes,
        naming.TRIPS: trips,
        naming.STOP_TIMES: stop_times,
        naming.CALENDAR: calendar,
        naming.CALENDAR_DATES: calendar_dates,
    }
