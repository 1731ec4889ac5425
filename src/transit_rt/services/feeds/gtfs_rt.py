"""GTFS-RT protobuf decode layer."""

from __future__ import annotations

from datetime import tzinfo
from typing import Any, List, Optional

from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from transit_rt.logging import get_logger
from transit_rt.services.feeds.entities import (
    AlertEntity,
    DecodedFeed,
    FeedDecodeError,
    InformedEntity,
    MalformedFeedError,
    StopTimeEvent,
    StopTimeUpdate,
    Translation,
    TripDescriptor,
    TripUpdateEntity,
    VehicleDescriptor,
)

logger = get_logger(__name__)

FULL_DATASET = gtfs_realtime_pb2.FeedHeader.FULL_DATASET


def _optional(message: Any, field_name: str) -> Any:
    """Return a proto2 optional field value, or None when unset."""
    return getattr(message, field_name) if message.HasField(field_name) else None


def _event(stu: Any, field_name: str) -> Optional[StopTimeEvent]:
    if not stu.HasField(field_name):
        return None
    event = getattr(stu, field_name)
    return StopTimeEvent(
        delay=_optional(event, "delay"),
        time=_optional(event, "time"),
        uncertainty=_optional(event, "uncertainty"),
    )


def _translations(translated_string: Any) -> List[Translation]:
    return [
        Translation(text=t.text, language=t.language or None)
        for t in translated_string.translation
    ]


class GtfsRtDecoder:
    """Decodes raw protobuf bytes into normalized feed entities."""

    @staticmethod
    def parse(data: bytes) -> gtfs_realtime_pb2.FeedMessage:
        """Parse protobuf bytes into a FeedMessage.

        Raises:
            FeedDecodeError: If protobuf parsing fails.
        """
        try:
            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(data)
        except DecodeError as exc:
            msg = "Failed to decode GTFS-RT protobuf"
            logger.error(msg, error=str(exc))
            raise FeedDecodeError(msg) from exc
        return feed

    @staticmethod
    def decode(data: bytes, tz: tzinfo | None = None) -> DecodedFeed:  # noqa: ARG004
        """Decode a GTFS-RT payload into a DecodedFeed.

        Args:
            data: Raw protobuf bytes.
            tz: Unused; GTFS-RT carries epoch times and GTFS wall-clock strings.

        Returns:
            DecodedFeed with trip updates and alerts.

        Raises:
            FeedDecodeError: If protobuf parsing fails.
            MalformedFeedError: If the message carries no entities.
        """
        feed = GtfsRtDecoder.parse(data)

        if not feed.entity:
            msg = "GTFS-RT feed has no entities"
            raise MalformedFeedError(msg)

        decoded = DecodedFeed(
            timestamp=feed.header.timestamp or None,
            full_dataset=feed.header.incrementality == FULL_DATASET,
        )

        for entity in feed.entity:
            if entity.HasField("trip_update"):
                decoded.trip_updates.append(GtfsRtDecoder._trip_update(entity))
            if entity.HasField("alert"):
                decoded.alerts.append(GtfsRtDecoder._alert(entity))

        logger.info(
            "GTFS-RT feed decoded",
            entity_count=len(feed.entity),
            trip_updates=len(decoded.trip_updates),
            alerts=len(decoded.alerts),
            feed_timestamp=decoded.timestamp,
            full_dataset=decoded.full_dataset,
            gtfs_rt_version=feed.header.gtfs_realtime_version,
        )
        return decoded

    @staticmethod
    def _trip_update(entity: Any) -> TripUpdateEntity:
        tu = entity.trip_update
        trip = TripDescriptor(
            trip_id=_optional(tu.trip, "trip_id") or None,
            route_id=_optional(tu.trip, "route_id") or None,
            direction_id=_optional(tu.trip, "direction_id"),
            start_date=_optional(tu.trip, "start_date") or None,
            start_time=_optional(tu.trip, "start_time") or None,
            schedule_relationship=_optional(tu.trip, "schedule_relationship"),
        )

        vehicle = None
        if tu.HasField("vehicle"):
            vehicle = VehicleDescriptor(
                id=tu.vehicle.id or None,
                label=tu.vehicle.label or None,
                license_plate=tu.vehicle.license_plate or None,
            )

        stop_time_updates = [
            StopTimeUpdate(
                stop_id=stu.stop_id or None,
                stop_sequence=_optional(stu, "stop_sequence"),
                arrival=_event(stu, "arrival"),
                departure=_event(stu, "departure"),
                schedule_relationship=_optional(stu, "schedule_relationship"),
            )
            for stu in tu.stop_time_update
        ]

        return TripUpdateEntity(
            entity_id=entity.id,
            trip=trip,
            vehicle=vehicle,
            stop_time_updates=stop_time_updates,
            timestamp=tu.timestamp or None,
        )

    @staticmethod
    def _alert(entity: Any) -> AlertEntity:
        alert = entity.alert

        period_start = None
        period_end = None
        if alert.active_period:
            period_start = alert.active_period[0].start or None
            period_end = alert.active_period[0].end or None

        informed = []
        for ie in alert.informed_entity:
            trip_id = None
            if ie.HasField("trip"):
                trip_id = ie.trip.trip_id or None
            informed.append(
                InformedEntity(
                    agency_id=ie.agency_id or None,
                    route_id=ie.route_id or None,
                    route_type=_optional(ie, "route_type"),
                    stop_id=ie.stop_id or None,
                    trip_id=trip_id,
                )
            )

        return AlertEntity(
            entity_id=entity.id,
            cause=_optional(alert, "cause"),
            effect=_optional(alert, "effect"),
            active_period_start=period_start,
            active_period_end=period_end,
            informed_entities=informed,
            header_text=_translations(alert.header_text),
            description_text=_translations(alert.description_text),
            url=_translations(alert.url),
        )


def decode_gtfs_rt(data: bytes, tz: tzinfo | None = None) -> DecodedFeed:
    """Decoder registry entry point for GTFS-RT payloads."""
    return GtfsRtDecoder.decode(data, tz)
