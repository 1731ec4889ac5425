"""Region-prefixed batch writer: upsert, replace-all and plain inserts.

The store never commits. Callers wrap one reconciliation pass in
``async with session.begin()`` so every table of the pass is written
atomically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import text

from transit_rt.logging import get_logger
from transit_rt.models import naming

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 500

_TEXT_TABLE_DEF: dict[str, Any] = {
    "columns": ("alert_id", "translated_text", "language_code"),
    "conflict_cols": None,
}

# Table definitions for batch writes; tables without conflict columns are plain inserts
_TABLE_DEFS: dict[str, dict[str, Any]] = {
    naming.TRIP_UPDATES: {
        "columns": (
            "id",
            "trip_id",
            "route_id",
            "direction_id",
            "trip_start_time",
            "trip_start_date",
            "schedule_relationship",
            "vehicle_id",
            "vehicle_label",
            "vehicle_license_plate",
            "recorded",
        ),
        "conflict_cols": ("id",),
    },
    naming.STOP_TIME_UPDATES: {
        "columns": (
            "trip_update_id",
            "stop_id",
            "stop_sequence",
            "arrival_delay",
            "arrival_time",
            "arrival_uncertainty",
            "departure_delay",
            "departure_time",
            "departure_uncertainty",
            "schedule_relationship",
        ),
        "conflict_cols": ("trip_update_id", "stop_sequence"),
    },
    naming.ALERTS: {
        "columns": ("id", "start_time", "end_time", "cause", "effect"),
        "conflict_cols": ("id",),
    },
    naming.ALERT_INFORMED_ENTITIES: {
        "columns": ("alert_id", "agency_id", "route_id", "route_type", "stop_id", "trip_id"),
        "conflict_cols": None,
    },
    naming.ALERT_HEADER_TEXTS: _TEXT_TABLE_DEF,
    naming.ALERT_DESCRIPTION_TEXTS: _TEXT_TABLE_DEF,
    naming.ALERT_URLS: _TEXT_TABLE_DEF,
}


def dedup_rows(
    rows: list[dict[str, Any]],
    conflict_cols: tuple[str, ...],
) -> list[dict[str, Any]]:
    """Keep the last row per conflict key, in first-seen key order.

    PostgreSQL rejects ``ON CONFLICT DO UPDATE`` statements that touch the
    same row twice.
    """
    latest: dict[tuple[Any, ...], dict[str, Any]] = {}
    for row in rows:
        latest[tuple(row.get(col) for col in conflict_cols)] = row
    return list(latest.values())


class UpsertStore:
    """Batch writer for the per-region realtime tables."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.batch_size = batch_size

    async def upsert(
        self,
        session: AsyncSession,
        region: str,
        table: str,
        rows: list[dict[str, Any]],
        poll_id: str = "",
    ) -> int:
        """INSERT ... ON CONFLICT DO UPDATE every column. No-op on empty rows.

        Returns the number of rows written after de-duplication.
        """
        if not rows:
            return 0

        conflict_cols: Optional[tuple[str, ...]] = _TABLE_DEFS[table]["conflict_cols"]
        if conflict_cols:
            deduped = dedup_rows(rows, conflict_cols)
            if len(deduped) != len(rows):
                logger.debug(
                    "Duplicate keys collapsed",
                    region=region,
                    table=table,
                    poll_id=poll_id,
                    duplicates=len(rows) - len(deduped),
                )
            rows = deduped

        return await self._batch_write(session, region, table, rows, poll_id)

    async def delete_all(
        self,
        session: AsyncSession,
        region: str,
        table: str,
        poll_id: str = "",
    ) -> int:
        physical = naming.table_name(region, table)
        result = await session.execute(text(f"DELETE FROM {physical}"))
        deleted = result.rowcount or 0
        logger.info("Table emptied", table=physical, poll_id=poll_id, deleted=deleted)
        return deleted

    async def delete_stop_time_updates(
        self,
        session: AsyncSession,
        region: str,
        trip_update_ids: list[str],
        poll_id: str = "",
    ) -> int:
        """Delete the per-stop rows of the given trip updates. No-op on empty ids."""
        if not trip_update_ids:
            return 0
        physical = naming.table_name(region, naming.STOP_TIME_UPDATES)
        result = await session.execute(
            text(f"DELETE FROM {physical} WHERE trip_update_id = ANY(:ids)"),
            {"ids": trip_update_ids},
        )
        deleted = result.rowcount or 0
        logger.info("Stop rows cleared", table=physical, poll_id=poll_id, deleted=deleted)
        return deleted

    async def replace_all(
        self,
        session: AsyncSession,
        region: str,
        table: str,
        rows: list[dict[str, Any]],
        poll_id: str = "",
    ) -> int:
        """Delete every row of the table, then write ``rows``."""
        await self.delete_all(session, region, table, poll_id)
        return await self.upsert(session, region, table, rows, poll_id)

    async def _batch_write(
        self,
        session: AsyncSession,
        region: str,
        table: str,
        rows: list[dict[str, Any]],
        poll_id: str,
    ) -> int:
        physical = naming.table_name(region, table)
        table_def = _TABLE_DEFS[table]
        columns = table_def["columns"]
        conflict_cols = table_def["conflict_cols"]

        column_list = ", ".join(columns)
        on_conflict = ""
        if conflict_cols:
            updates = ", ".join(
                f"{col} = EXCLUDED.{col}" for col in columns if col not in conflict_cols
            )
            on_conflict = f"ON CONFLICT ({', '.join(conflict_cols)}) DO UPDATE SET {updates}"

        total_written = 0

        for batch_start in range(0, len(rows), self.batch_size):
            batch = rows[batch_start : batch_start + self.batch_size]

            values_sql = ", ".join(
                "(" + ", ".join(f":{col}_{i}" for col in columns) + ")"
                for i in range(len(batch))
            )
            params: dict[str, Any] = {}
            for i, row in enumerate(batch):
                for col in columns:
                    params[f"{col}_{i}"] = row.get(col)

            stmt = text(f"""
                INSERT INTO {physical} ({column_list})
                VALUES {values_sql}
                {on_conflict}
            """)

            try:
                await session.execute(stmt, params)
            except Exception as exc:
                logger.error(
                    "Batch write failed",
                    table=physical,
                    poll_id=poll_id,
                    batch_start=batch_start,
                    batch_size=len(batch),
                    error=str(exc),
                )
                raise
            total_written += len(batch)

        logger.info(
            "Batch write complete",
            table=physical,
            poll_id=poll_id,
            total_rows=total_written,
        )
        return total_written
