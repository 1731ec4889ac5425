"""Decoders for the city-specific SIRI-like JSON vehicle monitoring feeds.

Both feeds describe monitored vehicles rather than trips. Each vehicle is
turned into a trip update whose trip id is left for the reconciliation engine
to resolve from route, direction and origin departure time.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from transit_rt.logging import get_logger
from transit_rt.services.feeds.entities import (
    DecodedFeed,
    FeedDecodeError,
    MalformedFeedError,
    StopTimeEvent,
    StopTimeUpdate,
    TripDescriptor,
    TripUpdateEntity,
    VehicleDescriptor,
)

logger = get_logger(__name__)


# Turku (Föli) vehicle monitoring


class TurkuCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stoppointref: Optional[str] = None
    visitnumber: Optional[int] = None
    expectedarrivaltime: Optional[int] = None
    expecteddeparturetime: Optional[int] = None


class TurkuVehicle(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recordedattime: Optional[int] = None
    lineref: Optional[str] = None
    directionref: Optional[str] = None
    originaimeddeparturetime: Optional[int] = None
    monitored: bool = False
    vehicleref: Optional[str] = None
    next_stoppointref: Optional[str] = None
    next_expectedarrivaltime: Optional[int] = None
    next_expecteddeparturetime: Optional[int] = None
    onwardcalls: Optional[List[TurkuCall]] = None


class TurkuResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    responsetimestamp: Optional[int] = None
    vehicles: Optional[Dict[str, TurkuVehicle]] = None


class TurkuPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    servertime: Optional[int] = None
    result: Optional[TurkuResult] = None


# Tampere (Nysse) vehicle monitoring


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TampereOnwardCall(_CamelModel):
    expected_arrival_time: Optional[datetime] = None
    expected_departure_time: Optional[datetime] = None
    stop_point_ref: Optional[str] = None
    order: Optional[int] = None


class TampereFramedVehicleJourneyRef(_CamelModel):
    date_frame_ref: str
    dated_vehicle_journey_ref: Optional[str] = None


class TampereMonitoredVehicleJourney(_CamelModel):
    line_ref: Optional[str] = None
    direction_ref: Optional[str] = None
    framed_vehicle_journey_ref: TampereFramedVehicleJourneyRef
    vehicle_ref: Optional[str] = None
    journey_pattern_ref: Optional[str] = None
    origin_aimed_departure_time: str
    onward_calls: Optional[List[TampereOnwardCall]] = None


class TampereServiceDelivery(_CamelModel):
    recorded_at_time: Optional[datetime] = None
    monitored_vehicle_journey: TampereMonitoredVehicleJourney


class TamperePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    body: Optional[List[TampereServiceDelivery]] = Field(default=None)


def _epoch(value: Optional[datetime], tz: tzinfo) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return int(value.timestamp())


def _absolute_event(epoch: Optional[int]) -> Optional[StopTimeEvent]:
    return StopTimeEvent(time=epoch) if epoch else None


def decode_turku_siri(data: bytes, tz: tzinfo) -> DecodedFeed:
    """Decode a Turku vehicle monitoring payload.

    Only monitored vehicles with an origin aimed departure time become trip
    updates. ``lineref`` is the route short name and direction ref ``2`` is
    GTFS direction 0.

    Raises:
        FeedDecodeError: If the payload is not valid JSON of the expected shape.
        MalformedFeedError: If the payload status is not ``OK``.
    """
    try:
        payload = TurkuPayload.model_validate_json(data)
    except ValidationError as exc:
        msg = "Failed to decode Turku SIRI payload"
        logger.error(msg, error=str(exc))
        raise FeedDecodeError(msg) from exc

    if payload.status != "OK":
        msg = f"Invalid data status: {payload.status}"
        raise MalformedFeedError(msg)

    decoded = DecodedFeed(timestamp=payload.servertime)
    if payload.result is None or not payload.result.vehicles:
        logger.info("Turku SIRI feed has no vehicles")
        return decoded

    for key, vehicle in payload.result.vehicles.items():
        if not vehicle.monitored or not vehicle.originaimeddeparturetime:
            continue

        trip_start = datetime.fromtimestamp(vehicle.originaimeddeparturetime, tz)
        direction = 0 if vehicle.directionref == "2" else 1

        stop_time_updates = []
        if vehicle.next_stoppointref:
            stop_time_updates.append(
                StopTimeUpdate(
                    stop_id=vehicle.next_stoppointref,
                    arrival=_absolute_event(vehicle.next_expectedarrivaltime),
                    departure=_absolute_event(vehicle.next_expecteddeparturetime),
                )
            )
        for call in vehicle.onwardcalls or []:
            stop_time_updates.append(
                StopTimeUpdate(
                    stop_id=call.stoppointref or None,
                    stop_sequence=call.visitnumber,
                    arrival=_absolute_event(call.expectedarrivaltime),
                    departure=_absolute_event(call.expecteddeparturetime),
                )
            )

        decoded.trip_updates.append(
            TripUpdateEntity(
                entity_id=key,
                trip=TripDescriptor(
                    route_id=vehicle.lineref or None,
                    direction_id=direction,
                    start_date=trip_start.strftime("%Y%m%d"),
                    start_time=trip_start.strftime("%H:%M:%S"),
                ),
                vehicle=VehicleDescriptor(id=vehicle.vehicleref),
                stop_time_updates=stop_time_updates,
                timestamp=vehicle.recordedattime,
            )
        )

    logger.info(
        "Turku SIRI feed decoded",
        vehicles=len(payload.result.vehicles),
        trip_updates=len(decoded.trip_updates),
    )
    return decoded


def _stop_id_from_ref(ref: Optional[str]) -> Optional[str]:
    """Stop point refs are URLs whose last path segment is the GTFS stop id."""
    if not ref:
        return None
    return ref.rstrip("/").rsplit("/", 1)[-1] or None


def decode_tampere_siri(data: bytes, tz: tzinfo) -> DecodedFeed:
    """Decode a Tampere journeys API vehicle activity payload.

    Raises:
        FeedDecodeError: If the payload is not valid JSON of the expected shape.
        MalformedFeedError: If the payload status is not ``success`` or has no body.
    """
    try:
        payload = TamperePayload.model_validate_json(data)
    except ValidationError as exc:
        msg = "Failed to decode Tampere SIRI payload"
        logger.error(msg, error=str(exc))
        raise FeedDecodeError(msg) from exc

    if payload.status != "success":
        msg = f"Invalid data status: {payload.status}"
        raise MalformedFeedError(msg)
    if payload.body is None:
        msg = "Tampere SIRI payload has no body"
        raise MalformedFeedError(msg)

    decoded = DecodedFeed()
    for index, delivery in enumerate(payload.body):
        journey = delivery.monitored_vehicle_journey
        if not journey.onward_calls:
            continue

        start_date = journey.framed_vehicle_journey_ref.date_frame_ref.replace("-", "")
        hhmm = journey.origin_aimed_departure_time
        if len(start_date) != 8 or len(hhmm) < 4 or not hhmm[:4].isdigit():
            logger.info(
                "Skipping vehicle journey with unparseable start",
                date_frame_ref=journey.framed_vehicle_journey_ref.date_frame_ref,
                origin_aimed_departure_time=hhmm,
            )
            continue

        direction_ref = journey.direction_ref
        direction = int(direction_ref) if direction_ref and direction_ref.isdigit() else 0

        stop_time_updates = [
            StopTimeUpdate(
                stop_id=_stop_id_from_ref(call.stop_point_ref),
                stop_sequence=call.order,
                arrival=_absolute_event(_epoch(call.expected_arrival_time, tz)),
                departure=_absolute_event(_epoch(call.expected_departure_time, tz)),
            )
            for call in journey.onward_calls
        ]

        decoded.trip_updates.append(
            TripUpdateEntity(
                entity_id=journey.framed_vehicle_journey_ref.dated_vehicle_journey_ref
                or journey.vehicle_ref
                or str(index),
                trip=TripDescriptor(
                    route_id=journey.journey_pattern_ref or None,
                    direction_id=direction,
                    start_date=start_date,
                    start_time=f"{hhmm[:2]}:{hhmm[2:4]}:00",
                ),
                vehicle=VehicleDescriptor(id=journey.vehicle_ref),
                stop_time_updates=stop_time_updates,
                timestamp=_epoch(delivery.recorded_at_time, tz),
            )
        )

    logger.info(
        "Tampere SIRI feed decoded",
        deliveries=len(payload.body),
        trip_updates=len(decoded.trip_updates),
    )
    return decoded
