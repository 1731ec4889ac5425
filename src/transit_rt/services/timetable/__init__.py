"""Static timetable lookups."""

from transit_rt.services.timetable.index import StopTime, TimetableIndex, Trip, TripStop

__all__ = ["StopTime", "TimetableIndex", "Trip", "TripStop"]
