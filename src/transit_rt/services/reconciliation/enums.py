"""Mapping of upstream numeric codes to stored enum values.

Every mapping is total: unknown or absent codes fall back to a fixed default.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class TripScheduleRelationship(str, Enum):
    SCHEDULED = "SCHEDULED"
    ADDED = "ADDED"
    UNSCHEDULED = "UNSCHEDULED"
    CANCELED = "CANCELED"
    REPLACEMENT = "REPLACEMENT"


class StopScheduleRelationship(str, Enum):
    SCHEDULED = "SCHEDULED"
    SKIPPED = "SKIPPED"
    NO_DATA = "NO_DATA"


class Cause(str, Enum):
    UNKNOWN_CAUSE = "UNKNOWN_CAUSE"
    OTHER_CAUSE = "OTHER_CAUSE"
    TECHNICAL_PROBLEM = "TECHNICAL_PROBLEM"
    STRIKE = "STRIKE"
    DEMONSTRATION = "DEMONSTRATION"
    ACCIDENT = "ACCIDENT"
    HOLIDAY = "HOLIDAY"
    WEATHER = "WEATHER"
    MAINTENANCE = "MAINTENANCE"
    CONSTRUCTION = "CONSTRUCTION"
    POLICE_ACTIVITY = "POLICE_ACTIVITY"
    MEDICAL_EMERGENCY = "MEDICAL_EMERGENCY"


class Effect(str, Enum):
    NO_SERVICE = "NO_SERVICE"
    REDUCED_SERVICE = "REDUCED_SERVICE"
    SIGNIFICANT_DELAYS = "SIGNIFICANT_DELAYS"
    DETOUR = "DETOUR"
    ADDITIONAL_SERVICE = "ADDITIONAL_SERVICE"
    MODIFIED_SERVICE = "MODIFIED_SERVICE"
    OTHER_EFFECT = "OTHER_EFFECT"
    UNKNOWN_EFFECT = "UNKNOWN_EFFECT"
    STOP_MOVED = "STOP_MOVED"
    NO_EFFECT = "NO_EFFECT"
    ACCESSIBILITY_ISSUE = "ACCESSIBILITY_ISSUE"


# GTFS-RT TripDescriptor.ScheduleRelationship (4 is unused upstream)
TRIP_SCHEDULE_RELATIONSHIP_MAP: Dict[int, TripScheduleRelationship] = {
    0: TripScheduleRelationship.SCHEDULED,
    1: TripScheduleRelationship.ADDED,
    2: TripScheduleRelationship.UNSCHEDULED,
    3: TripScheduleRelationship.CANCELED,
    5: TripScheduleRelationship.REPLACEMENT,
}

# GTFS-RT StopTimeUpdate.ScheduleRelationship; code 1 is stored as SCHEDULED
STOP_SCHEDULE_RELATIONSHIP_MAP: Dict[int, StopScheduleRelationship] = {
    0: StopScheduleRelationship.SCHEDULED,
    1: StopScheduleRelationship.SCHEDULED,
    2: StopScheduleRelationship.NO_DATA,
}

CAUSE_MAP: Dict[int, Cause] = {
    1: Cause.UNKNOWN_CAUSE,
    2: Cause.OTHER_CAUSE,
    3: Cause.TECHNICAL_PROBLEM,
    4: Cause.STRIKE,
    5: Cause.DEMONSTRATION,
    6: Cause.ACCIDENT,
    7: Cause.HOLIDAY,
    8: Cause.WEATHER,
    9: Cause.MAINTENANCE,
    10: Cause.CONSTRUCTION,
    11: Cause.POLICE_ACTIVITY,
    12: Cause.MEDICAL_EMERGENCY,
}

EFFECT_MAP: Dict[int, Effect] = {
    1: Effect.NO_SERVICE,
    2: Effect.REDUCED_SERVICE,
    3: Effect.SIGNIFICANT_DELAYS,
    4: Effect.DETOUR,
    5: Effect.ADDITIONAL_SERVICE,
    6: Effect.MODIFIED_SERVICE,
    7: Effect.OTHER_EFFECT,
    8: Effect.UNKNOWN_EFFECT,
    9: Effect.STOP_MOVED,
    10: Effect.NO_EFFECT,
    11: Effect.ACCESSIBILITY_ISSUE,
}


def trip_schedule_relationship(code: Optional[int]) -> TripScheduleRelationship:
    if code is None:
        return TripScheduleRelationship.SCHEDULED
    return TRIP_SCHEDULE_RELATIONSHIP_MAP.get(code, TripScheduleRelationship.SCHEDULED)


def stop_schedule_relationship(code: Optional[int]) -> StopScheduleRelationship:
    if code is None:
        return StopScheduleRelationship.SCHEDULED
    return STOP_SCHEDULE_RELATIONSHIP_MAP.get(code, StopScheduleRelationship.SCHEDULED)


def cause(code: Optional[int]) -> Cause:
    if code is None:
        return Cause.UNKNOWN_CAUSE
    return CAUSE_MAP.get(code, Cause.UNKNOWN_CAUSE)


def effect(code: Optional[int]) -> Effect:
    if code is None:
        return Effect.UNKNOWN_EFFECT
    return EFFECT_MAP.get(code, Effect.UNKNOWN_EFFECT)
