"""Normalized in-memory feed entities produced by every decoder.

Numeric enum codes are kept exactly as the upstream feed reported them; the
reconciliation layer maps them to enum values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class FeedDecodeError(Exception):
    """Raised when a raw payload cannot be decoded."""


class MalformedFeedError(FeedDecodeError):
    """Raised when a payload decodes but is not a usable feed snapshot."""


@dataclass
class StopTimeEvent:
    """Arrival or departure prediction at a stop."""

    delay: Optional[int] = None
    time: Optional[int] = None  # unix epoch seconds
    uncertainty: Optional[int] = None

    @property
    def has_timing(self) -> bool:
        return self.delay is not None or self.time is not None


@dataclass
class StopTimeUpdate:
    """Realtime update for one stop of a trip."""

    stop_id: Optional[str] = None
    stop_sequence: Optional[int] = None
    arrival: Optional[StopTimeEvent] = None
    departure: Optional[StopTimeEvent] = None
    schedule_relationship: Optional[int] = None


@dataclass
class TripDescriptor:
    trip_id: Optional[str] = None
    route_id: Optional[str] = None
    direction_id: Optional[int] = None
    start_date: Optional[str] = None  # YYYYMMDD
    start_time: Optional[str] = None  # HH:MM:SS
    schedule_relationship: Optional[int] = None


@dataclass
class VehicleDescriptor:
    id: Optional[str] = None
    label: Optional[str] = None
    license_plate: Optional[str] = None


@dataclass
class TripUpdateEntity:
    """One trip update: descriptor, optional vehicle and per-stop updates."""

    entity_id: str
    trip: TripDescriptor
    vehicle: Optional[VehicleDescriptor] = None
    stop_time_updates: List[StopTimeUpdate] = field(default_factory=list)
    timestamp: Optional[int] = None


@dataclass
class Translation:
    text: str
    language: Optional[str] = None


@dataclass
class InformedEntity:
    agency_id: Optional[str] = None
    route_id: Optional[str] = None
    route_type: Optional[int] = None
    stop_id: Optional[str] = None
    trip_id: Optional[str] = None


@dataclass
class AlertEntity:
    """One service alert as reported by the feed."""

    entity_id: str
    cause: Optional[int] = None
    effect: Optional[int] = None
    active_period_start: Optional[int] = None
    active_period_end: Optional[int] = None
    informed_entities: List[InformedEntity] = field(default_factory=list)
    header_text: List[Translation] = field(default_factory=list)
    description_text: List[Translation] = field(default_factory=list)
    url: List[Translation] = field(default_factory=list)


@dataclass
class DecodedFeed:
    """A decoded payload: header information plus normalized entities."""

    timestamp: Optional[int] = None
    full_dataset: bool = False
    trip_updates: List[TripUpdateEntity] = field(default_factory=list)
    alerts: List[AlertEntity] = field(default_factory=list)

    @property
    def entity_count(self) -> int:
        return len(self.trip_updates) + len(self.alerts)
