"""Age-based removal of trip updates and their stop time updates."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import text

from transit_rt.logging import get_logger
from transit_rt.models import naming

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class RetentionSweeper:
    """Deletes trip updates whose ``recorded`` is older than the keep window."""

    async def delete_older_than(
        self,
        session: AsyncSession,
        region: str,
        cutoff: datetime,
        poll_id: str = "",
    ) -> int:
        """Delete trip updates recorded before ``cutoff`` and the stop rows they own.

        Returns the number of trip updates deleted.
        """
        trip_updates = naming.table_name(region, naming.TRIP_UPDATES)
        stop_time_updates = naming.table_name(region, naming.STOP_TIME_UPDATES)

        await session.execute(
            text(f"""
                DELETE FROM {stop_time_updates}
                WHERE trip_update_id IN (
                    SELECT id FROM {trip_updates} WHERE recorded < :cutoff
                )
            """),
            {"cutoff": cutoff},
        )
        result = await session.execute(
            text(f"DELETE FROM {trip_updates} WHERE recorded < :cutoff"),
            {"cutoff": cutoff},
        )
        deleted = result.rowcount or 0

        if deleted:
            logger.info(
                "Expired trip updates deleted",
                region=region,
                poll_id=poll_id,
                cutoff=cutoff.isoformat(),
                deleted=deleted,
            )
        return deleted

    async def sweep(
        self,
        session: AsyncSession,
        region: str,
        keep_seconds: int,
        now: Optional[datetime] = None,
        poll_id: str = "",
    ) -> int:
        """Delete trip updates older than ``keep_seconds`` before ``now``."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(seconds=keep_seconds)).replace(microsecond=0)
        return await self.delete_older_than(session, region, cutoff, poll_id)
