"""Read-only lookups over a region's static GTFS timetable tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from transit_rt.logging import get_logger
from transit_rt.models import naming
from transit_rt.models.timetable import WEEKDAY_COLUMNS

logger = get_logger(__name__)

# calendar_dates.exception_type
SERVICE_ADDED = 1
SERVICE_REMOVED = 2


@dataclass(frozen=True)
class Trip:
    trip_id: str
    route_id: str
    direction_id: Optional[int]


@dataclass(frozen=True)
class StopTime:
    stop_id: str
    stop_sequence: int
    arrival_time: Optional[str]
    departure_time: Optional[str]


@dataclass(frozen=True)
class TripStop:
    stop_id: str
    stop_sequence: int


def hour_minute(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse ``H:MM[:SS]`` / ``HH:MM[:SS]`` into ``(hour, minute)``.

    GTFS hours may exceed 23. Returns None for empty or unparseable values.
    """
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


class TimetableIndex:
    """Query contract over the externally-owned static tables of a region.

    Every lookup returns an empty result or None when nothing matches;
    absence is an expected outcome, never an error.
    """

    async def active_service_ids(
        self,
        session: AsyncSession,
        region: str,
        day: date,
    ) -> Set[str]:
        """Service ids running on ``day``.

        Calendar services whose window covers ``day`` and that run on its
        weekday, minus ``calendar_dates`` removals, plus additions.
        """
        calendar = naming.table_name(region, naming.CALENDAR)
        calendar_dates = naming.table_name(region, naming.CALENDAR_DATES)
        weekday = WEEKDAY_COLUMNS[day.weekday()]
        day_str = day.strftime("%Y%m%d")

        result = await session.execute(
            text(f"""
                SELECT service_id
                FROM {calendar}
                WHERE {weekday} = 1
                  AND start_date <= :day
                  AND end_date >= :day
            """),
            {"day": day_str},
        )
        services = {row[0] for row in result.fetchall()}

        result = await session.execute(
            text(f"""
                SELECT service_id, exception_type
                FROM {calendar_dates}
                WHERE date = :day
            """),
            {"day": day_str},
        )
        for service_id, exception_type in result.fetchall():
            if exception_type == SERVICE_REMOVED:
                services.discard(service_id)
            elif exception_type == SERVICE_ADDED:
                services.add(service_id)

        logger.debug(
            "Active services resolved",
            region=region,
            day=day_str,
            service_count=len(services),
        )
        return services

    async def trip_id(
        self,
        session: AsyncSession,
        region: str,
        route_id: str,
        origin_departure: str,
        direction_id: int,
        active_services: Set[str],
    ) -> Optional[str]:
        """Find the trip whose first stop departs at ``origin_departure``.

        Departure times are compared at minute granularity. Candidates are
        ordered by first stop_sequence, then trip_id; the first match wins.
        """
        wanted = hour_minute(origin_departure)
        if wanted is None or not active_services:
            return None

        trips = naming.table_name(region, naming.TRIPS)
        stop_times = naming.table_name(region, naming.STOP_TIMES)

        result = await session.execute(
            text(f"""
                SELECT t.trip_id, st.departure_time
                FROM {trips} t
                JOIN {stop_times} st ON st.trip_id = t.trip_id
                WHERE t.route_id = :route_id
                  AND t.direction_id = :direction_id
                  AND t.service_id = ANY(:service_ids)
                  AND st.stop_sequence = (
                      SELECT MIN(first_stop.stop_sequence)
                      FROM {stop_times} first_stop
                      WHERE first_stop.trip_id = t.trip_id
                  )
                ORDER BY st.stop_sequence, t.trip_id
            """),
            {
                "route_id": route_id,
                "direction_id": direction_id,
                "service_ids": sorted(active_services),
            },
        )
        for trip_id, departure_time in result.fetchall():
            if hour_minute(departure_time) == wanted:
                return trip_id
        return None

    async def trip_by_id(
        self,
        session: AsyncSession,
        region: str,
        trip_id: str,
    ) -> Optional[Trip]:
        trips = naming.table_name(region, naming.TRIPS)
        result = await session.execute(
            text(f"""
                SELECT trip_id, route_id, direction_id
                FROM {trips}
                WHERE trip_id = :trip_id
            """),
            {"trip_id": trip_id},
        )
        row = result.fetchone()
        if row is None:
            return None
        return Trip(trip_id=row[0], route_id=row[1], direction_id=row[2])

    async def stop_times_for_trip(
        self,
        session: AsyncSession,
        region: str,
        trip_id: str,
    ) -> List[StopTime]:
        """Scheduled stop times of a trip ordered by stop_sequence."""
        stop_times = naming.table_name(region, naming.STOP_TIMES)
        result = await session.execute(
            text(f"""
                SELECT stop_id, stop_sequence, arrival_time, departure_time
                FROM {stop_times}
                WHERE trip_id = :trip_id
                ORDER BY stop_sequence ASC
            """),
            {"trip_id": trip_id},
        )
        return [
            StopTime(
                stop_id=row[0],
                stop_sequence=row[1],
                arrival_time=row[2],
                departure_time=row[3],
            )
            for row in result.fetchall()
        ]

    async def all_stops_for_trip(
        self,
        session: AsyncSession,
        region: str,
        trip_id: str,
    ) -> List[TripStop]:
        stop_times = naming.table_name(region, naming.STOP_TIMES)
        result = await session.execute(
            text(f"""
                SELECT stop_id, stop_sequence
                FROM {stop_times}
                WHERE trip_id = :trip_id
            """),
            {"trip_id": trip_id},
        )
        return [TripStop(stop_id=row[0], stop_sequence=row[1]) for row in result.fetchall()]

    async def route_ids_by_short_name(
        self,
        session: AsyncSession,
        region: str,
    ) -> Dict[str, str]:
        """Map route_short_name to route_id. Later rows win on duplicates."""
        routes = naming.table_name(region, naming.ROUTES)
        result = await session.execute(
            text(f"""
                SELECT route_short_name, route_id
                FROM {routes}
                WHERE route_short_name IS NOT NULL
                ORDER BY route_id
            """),
        )
        return {row[0]: row[1] for row in result.fetchall()}
