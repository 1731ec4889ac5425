"""SQLAlchemy table definitions for the per-region realtime and timetable schemas."""

from transit_rt.models.naming import InvalidRegionError, table_name
from transit_rt.models.realtime import build_realtime_tables
from transit_rt.models.timetable import build_timetable_tables

__all__ = [
    "InvalidRegionError",
    "build_realtime_tables",
    "build_timetable_tables",
    "table_name",
]
