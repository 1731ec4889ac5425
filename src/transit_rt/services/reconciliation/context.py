"""Per-cycle reconciliation state.

A fresh context is created for every fetch-and-reconcile cycle of a source,
so lookups cached here never leak between cycles or sources.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from transit_rt.services.timetable import TimetableIndex


@dataclass
class ReconciliationReport:
    """Summary of one reconciliation pass."""

    poll_id: str
    region: str
    kind: str
    seen_count: int = 0
    written_count: int = 0
    skipped_count: int = 0
    stop_time_update_count: int = 0
    full_dataset: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_id": self.poll_id,
            "region": self.region,
            "kind": self.kind,
            "seen_count": self.seen_count,
            "written_count": self.written_count,
            "skipped_count": self.skipped_count,
            "stop_time_update_count": self.stop_time_update_count,
            "full_dataset": self.full_dataset,
        }


@dataclass
class ReconciliationContext:
    region: str
    tz: tzinfo
    kind: str = "trip_updates"
    poll_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    report: ReconciliationReport = field(init=False)
    _active_services: Dict[date, Set[str]] = field(default_factory=dict, init=False, repr=False)
    _route_ids: Optional[Dict[str, str]] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.report = ReconciliationReport(
            poll_id=self.poll_id, region=self.region, kind=self.kind
        )

    def today(self) -> date:
        """Current local date in the region's timezone."""
        return self.now.astimezone(self.tz).date()

    async def active_services(
        self,
        session: AsyncSession,
        index: TimetableIndex,
        day: date,
    ) -> Set[str]:
        """Active service ids for ``day``, memoized for the rest of the cycle."""
        if day not in self._active_services:
            self._active_services[day] = await index.active_service_ids(session, self.region, day)
        return self._active_services[day]

    async def route_ids_by_short_name(
        self,
        session: AsyncSession,
        index: TimetableIndex,
    ) -> Dict[str, str]:
        if self._route_ids is None:
            self._route_ids = await index.route_ids_by_short_name(session, self.region)
        return self._route_ids
