"""Region-prefixed table naming."""

from __future__ import annotations

from transit_rt.config import REGION_KEY_PATTERN

# Realtime tables owned by this service
TRIP_UPDATES = "trip_updates"
STOP_TIME_UPDATES = "stop_time_updates"
ALERTS = "alerts"
ALERT_INFORMED_ENTITIES = "alert_informed_entities"
ALERT_HEADER_TEXTS = "alert_header_texts"
ALERT_DESCRIPTION_TEXTS = "alert_description_texts"
ALERT_URLS = "alert_urls"

# Static timetable tables (externally owned, read-only)
TRIPS = "trips"
ROUTES = "routes"
STOP_TIMES = "stop_times"
CALENDAR = "calendar"
CALENDAR_DATES = "calendar_dates"


class InvalidRegionError(ValueError):
    """Raised when a region key cannot be used as a table prefix."""


def table_name(region: str, table: str) -> str:
    """Return the physical table name ``{region}_{table}``.

    Region keys are interpolated into SQL, so only ``[a-z][a-z0-9_]*`` is accepted.

    Raises:
        InvalidRegionError: If the region key is not a safe identifier.
    """
    if not REGION_KEY_PATTERN.match(region):
        msg = f"Invalid region key: {region!r}"
        raise InvalidRegionError(msg)
    return f"{region}_{table}"
