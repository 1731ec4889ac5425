"""Trip update reconciliation: feed entities to trip and stop time update rows."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from transit_rt.config import FeedSourceSettings
from transit_rt.logging import get_logger
from transit_rt.services.feeds.entities import (
    DecodedFeed,
    StopTimeEvent,
    StopTimeUpdate,
    TripUpdateEntity,
)
from transit_rt.services.reconciliation.context import ReconciliationContext
from transit_rt.services.reconciliation.enums import (
    StopScheduleRelationship,
    TripScheduleRelationship,
    stop_schedule_relationship,
    trip_schedule_relationship,
)
from transit_rt.services.timetable import StopTime, TimetableIndex, TripStop

logger = get_logger(__name__)

Row = Dict[str, Any]

TIMING_FIELDS = (
    "arrival_delay",
    "arrival_time",
    "departure_delay",
    "departure_time",
)


@dataclass
class TripUpdateBatch:
    """Rows produced by one reconciliation pass."""

    trip_updates: List[Row] = field(default_factory=list)
    stop_time_updates: List[Row] = field(default_factory=list)
    full_dataset: bool = False


def parse_gtfs_time(value: Optional[str]) -> Optional[int]:
    """Parse ``HH:MM:SS`` (hours may exceed 23) into seconds after midnight."""
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = (int(p) for p in parts)
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def compute_delay(event_epoch: int, scheduled: Optional[str], tz: tzinfo) -> Optional[int]:
    """Delay of an absolute event time against a scheduled wall-clock time.

    The scheduled ``HH:MM:SS`` is placed on the event's local date in ``tz``.

    Args:
        event_epoch: Predicted event time, unix epoch seconds.
        scheduled: Static scheduled time string.
        tz: Region timezone.

    Returns:
        Delay in seconds (positive = late), or None if ``scheduled`` is unparseable.
    """
    seconds = parse_gtfs_time(scheduled)
    if seconds is None:
        return None
    event_local = datetime.fromtimestamp(event_epoch, tz)
    scheduled_local = datetime.combine(event_local.date(), time()) + timedelta(seconds=seconds)
    return event_epoch - int(scheduled_local.replace(tzinfo=tz).timestamp())


def fill_missing_stop_refs(
    updates: Sequence[StopTimeUpdate],
    trip_stops: Sequence[TripStop],
) -> List[StopTimeUpdate]:
    """Fill an absent stop_id or stop_sequence from the trip's static stops."""
    by_stop_id = {stop.stop_id: stop.stop_sequence for stop in trip_stops}
    by_sequence = {stop.stop_sequence: stop.stop_id for stop in trip_stops}

    filled = []
    for update in updates:
        if update.stop_sequence is None and update.stop_id in by_stop_id:
            update = dataclasses.replace(update, stop_sequence=by_stop_id[update.stop_id])
        elif update.stop_id is None and update.stop_sequence in by_sequence:
            update = dataclasses.replace(update, stop_id=by_sequence[update.stop_sequence])
        filled.append(update)
    return filled


def _find_update(
    updates: Sequence[StopTimeUpdate],
    stop_time: StopTime,
) -> Optional[StopTimeUpdate]:
    for update in updates:
        if update.stop_id is not None and update.stop_id == stop_time.stop_id:
            return update
    for update in updates:
        if update.stop_sequence is not None and update.stop_sequence == stop_time.stop_sequence:
            return update
    return None


def _timed(event: Optional[StopTimeEvent]) -> Optional[StopTimeEvent]:
    return event if event is not None and event.has_timing else None


def _has_timing(row: Row) -> bool:
    return any(row[name] is not None for name in TIMING_FIELDS)


def build_stop_time_updates(
    trip_update_id: str,
    stop_times: Sequence[StopTime],
    updates: Sequence[StopTimeUpdate],
    tz: tzinfo,
) -> List[Row]:
    """Walk the static stop sequence and emit one row per scheduled stop.

    Each static stop is matched to a realtime update by stop_id, then by
    stop_sequence. The running delay is carried forward to unmatched stops;
    the first observed delay is copied backward onto leading stops that have
    no timing at all.
    """
    rows: List[Row] = []
    current_delay: Optional[int] = None
    first_delay: Optional[int] = None

    for stop_time in stop_times:
        row: Row = {
            "trip_update_id": trip_update_id,
            "stop_id": stop_time.stop_id,
            "stop_sequence": stop_time.stop_sequence,
            "arrival_delay": None,
            "arrival_time": None,
            "arrival_uncertainty": None,
            "departure_delay": None,
            "departure_time": None,
            "departure_uncertainty": None,
            "schedule_relationship": StopScheduleRelationship.SCHEDULED.value,
        }
        rows.append(row)

        update = _find_update(updates, stop_time)
        if update is None:
            row["arrival_delay"] = current_delay
            row["departure_delay"] = current_delay
            continue

        relationship = stop_schedule_relationship(update.schedule_relationship)
        row["schedule_relationship"] = relationship.value
        if relationship is not StopScheduleRelationship.SCHEDULED:
            continue

        arrival = _timed(update.arrival)
        departure = _timed(update.departure)
        arrival = arrival or departure
        departure = departure or arrival

        if arrival is None or departure is None:
            logger.error(
                "Stop time update has neither time nor delay",
                trip_update_id=trip_update_id,
                stop_id=stop_time.stop_id,
                stop_sequence=stop_time.stop_sequence,
            )
            row["arrival_delay"] = current_delay
            row["departure_delay"] = current_delay
            continue

        for prefix, event, scheduled in (
            ("arrival", arrival, stop_time.arrival_time or stop_time.departure_time),
            ("departure", departure, stop_time.departure_time or stop_time.arrival_time),
        ):
            delay = event.delay
            if delay is None and event.time is not None:
                delay = compute_delay(event.time, scheduled, tz)
            row[f"{prefix}_delay"] = delay
            row[f"{prefix}_time"] = event.time
            row[f"{prefix}_uncertainty"] = event.uncertainty
            if delay is not None:
                current_delay = delay
                if first_delay is None:
                    first_delay = delay

    if first_delay is not None:
        for row in rows:
            if _has_timing(row):
                break
            if row["schedule_relationship"] != StopScheduleRelationship.SCHEDULED.value:
                continue
            row["arrival_delay"] = first_delay
            row["departure_delay"] = first_delay

    return rows


def _recorded(entity: TripUpdateEntity, feed: DecodedFeed, ctx: ReconciliationContext) -> datetime:
    epoch = entity.timestamp or feed.timestamp
    if epoch:
        recorded = datetime.fromtimestamp(epoch, tz=timezone.utc)
    else:
        recorded = ctx.now.astimezone(timezone.utc)
    return recorded.replace(microsecond=0)


class TripUpdateReconciler:
    """Turns decoded trip update entities into rows for one region."""

    def __init__(
        self,
        source: FeedSourceSettings,
        index: Optional[TimetableIndex] = None,
    ) -> None:
        self.source = source
        self.region = source.region
        self.index = index if index is not None else TimetableIndex()

    async def reconcile(
        self,
        session: AsyncSession,
        feed: DecodedFeed,
        ctx: ReconciliationContext,
    ) -> TripUpdateBatch:
        """Reconcile every trip update of ``feed``, in feed order.

        Unresolvable entities are skipped and counted in ``ctx.report``.
        Datastore errors propagate.
        """
        batch = TripUpdateBatch(full_dataset=feed.full_dataset)
        report = ctx.report
        report.full_dataset = feed.full_dataset

        for entity in feed.trip_updates:
            report.seen_count += 1
            result = await self._reconcile_entity(session, entity, feed, ctx)
            if result is None:
                report.skipped_count += 1
                continue
            trip_update, stop_time_updates = result
            batch.trip_updates.append(trip_update)
            batch.stop_time_updates.extend(stop_time_updates)

        report.written_count = len(batch.trip_updates)
        report.stop_time_update_count = len(batch.stop_time_updates)
        return batch

    async def _resolve_route_id(
        self,
        session: AsyncSession,
        route_ref: Optional[str],
        ctx: ReconciliationContext,
    ) -> Optional[str]:
        if not route_ref or not self.source.route_ref_is_short_name:
            return route_ref
        route_ids = await ctx.route_ids_by_short_name(session, self.index)
        return route_ids.get(route_ref)

    async def _resolve_trip_id(
        self,
        session: AsyncSession,
        entity: TripUpdateEntity,
        route_id: Optional[str],
        ctx: ReconciliationContext,
    ) -> Optional[str]:
        trip = entity.trip
        if trip.trip_id:
            return trip.trip_id
        if route_id is None or trip.direction_id is None or not trip.start_date or not trip.start_time:
            return None

        try:
            day = datetime.strptime(trip.start_date, "%Y%m%d").date()
        except ValueError:
            logger.info(
                "Invalid trip start date",
                region=self.region,
                entity_id=entity.entity_id,
                start_date=trip.start_date,
            )
            return None

        active_services = await ctx.active_services(session, self.index, day)
        return await self.index.trip_id(
            session,
            self.region,
            route_id,
            trip.start_time,
            trip.direction_id,
            active_services,
        )

    async def _reconcile_entity(
        self,
        session: AsyncSession,
        entity: TripUpdateEntity,
        feed: DecodedFeed,
        ctx: ReconciliationContext,
    ) -> Optional[Tuple[Row, List[Row]]]:
        descriptor = entity.trip
        route_id = await self._resolve_route_id(session, descriptor.route_id, ctx)

        trip_id = await self._resolve_trip_id(session, entity, route_id, ctx)
        if not trip_id:
            logger.info(
                "No trip id and failed to resolve it from timetable",
                region=self.region,
                poll_id=ctx.poll_id,
                entity_id=entity.entity_id,
                route_id=descriptor.route_id,
                direction_id=descriptor.direction_id,
                start_date=descriptor.start_date,
                start_time=descriptor.start_time,
            )
            return None

        stop_times = await self.index.stop_times_for_trip(session, self.region, trip_id)
        if not stop_times:
            logger.info(
                "No stop times found for trip",
                region=self.region,
                poll_id=ctx.poll_id,
                trip_id=trip_id,
            )
            return None

        # Known limitation: trips that started before midnight get the wrong date
        start_date = descriptor.start_date or ctx.today().strftime("%Y%m%d")
        start_time = (
            descriptor.start_time or stop_times[0].departure_time or stop_times[0].arrival_time
        )

        direction_id = descriptor.direction_id
        if self.source.update_trip_info_from_timetable or route_id is None or direction_id is None:
            trip = await self.index.trip_by_id(session, self.region, trip_id)
            if trip is None:
                logger.info(
                    "Trip not found from timetable",
                    region=self.region,
                    poll_id=ctx.poll_id,
                    trip_id=trip_id,
                )
                return None
            route_id = trip.route_id
            direction_id = trip.direction_id

        relationship = trip_schedule_relationship(descriptor.schedule_relationship)
        trip_update_id = f"{trip_id}-{start_date}-{start_time}"
        vehicle = entity.vehicle

        trip_update: Row = {
            "id": trip_update_id,
            "trip_id": trip_id,
            "route_id": route_id,
            "direction_id": direction_id,
            "trip_start_time": start_time,
            "trip_start_date": start_date,
            "schedule_relationship": relationship.value,
            "vehicle_id": vehicle.id if vehicle else None,
            "vehicle_label": vehicle.label if vehicle else None,
            "vehicle_license_plate": vehicle.license_plate if vehicle else None,
            "recorded": _recorded(entity, feed, ctx),
        }

        if relationship is not TripScheduleRelationship.SCHEDULED:
            return trip_update, []

        updates = entity.stop_time_updates
        if self.source.fill_missing_stop_refs:
            trip_stops = await self.index.all_stops_for_trip(session, self.region, trip_id)
            updates = fill_missing_stop_refs(updates, trip_stops)

        return trip_update, build_stop_time_updates(trip_update_id, stop_times, updates, ctx.tz)
