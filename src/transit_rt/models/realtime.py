"""Per-region realtime tables written by the reconciliation engine."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from transit_rt.models import naming


def build_realtime_tables(metadata: MetaData, region: str) -> dict[str, Table]:
    """Define the realtime tables of one region on ``metadata``.

    Returns:
        Mapping of logical table name (e.g. ``"trip_updates"``) to Table.
    """
    trip_updates_name = naming.table_name(region, naming.TRIP_UPDATES)
    alerts_name = naming.table_name(region, naming.ALERTS)

    trip_updates = Table(
        trip_updates_name,
        metadata,
        Column("id", String(255), primary_key=True),
        Column("trip_id", String(128), nullable=False),
        Column("route_id", String(64), nullable=True),
        Column("direction_id", Integer, nullable=True),
        Column("trip_start_time", String(8), nullable=True),
        Column("trip_start_date", String(8), nullable=True),
        Column("schedule_relationship", String(32), nullable=False, server_default="SCHEDULED"),
        Column("vehicle_id", String(64), nullable=True),
        Column("vehicle_label", String(64), nullable=True),
        Column("vehicle_license_plate", String(32), nullable=True),
        Column("recorded", DateTime(timezone=True), nullable=False),
        Index(f"ix_{trip_updates_name}_recorded", "recorded"),
        Index(f"ix_{trip_updates_name}_trip_id", "trip_id"),
    )

    stop_time_updates = Table(
        naming.table_name(region, naming.STOP_TIME_UPDATES),
        metadata,
        Column(
            "trip_update_id",
            String(255),
            ForeignKey(f"{trip_updates_name}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        Column("stop_sequence", Integer, primary_key=True),
        Column("stop_id", String(64), nullable=True),
        Column("arrival_delay", Integer, nullable=True),
        Column("arrival_time", BigInteger, nullable=True),
        Column("arrival_uncertainty", Integer, nullable=True),
        Column("departure_delay", Integer, nullable=True),
        Column("departure_time", BigInteger, nullable=True),
        Column("departure_uncertainty", Integer, nullable=True),
        Column("schedule_relationship", String(32), nullable=False, server_default="SCHEDULED"),
    )

    alerts = Table(
        alerts_name,
        metadata,
        Column("id", String(255), primary_key=True),
        Column("start_time", BigInteger, nullable=True),
        Column("end_time", BigInteger, nullable=True),
        Column("cause", String(32), nullable=False, server_default="UNKNOWN_CAUSE"),
        Column("effect", String(32), nullable=False, server_default="UNKNOWN_EFFECT"),
    )

    informed_entities = Table(
        naming.table_name(region, naming.ALERT_INFORMED_ENTITIES),
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column(
            "alert_id",
            String(255),
            ForeignKey(f"{alerts_name}.id", ondelete="CASCADE"),
            nullable=False,
        ),
        Column("agency_id", String(64), nullable=True),
        Column("route_id", String(64), nullable=True),
        Column("route_type", Integer, nullable=True),
        Column("stop_id", String(64), nullable=True),
        Column("trip_id", String(128), nullable=True),
    )

    tables = {
        naming.TRIP_UPDATES: trip_updates,
        naming.STOP_TIME_UPDATES: stop_time_updates,
        naming.ALERTS: alerts,
        naming.ALERT_INFORMED_ENTITIES: informed_entities,
    }

    for logical in (
        naming.ALERT_HEADER_TEXTS,
        naming.ALERT_DESCRIPTION_TEXTS,
        naming.ALERT_URLS,
    ):
        tables[logical] = Table(
            naming.table_name(region, logical),
            metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "alert_id",
                String(255),
                ForeignKey(f"{alerts_name}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            Column("translated_text", Text, nullable=False),
            Column("language_code", String(16), nullable=True),
        )

    return tables
