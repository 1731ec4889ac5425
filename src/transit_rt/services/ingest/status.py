"""Last-run outcome of every polled source."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class SourceStatus:
    updated: Optional[datetime] = None
    new_item_count: int = 0
    last_attempt: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated.isoformat() if self.updated else None,
            "newItemCount": self.new_item_count,
        }


class StatusRegistry:
    """Records per-region run outcomes for trip update and alert sources.

    ``updated`` only advances on success; a failed cycle keeps the previous
    success time and records the error.
    """

    def __init__(self) -> None:
        self._statuses: Dict[str, Dict[str, SourceStatus]] = {
            "trip_updates": {},
            "alerts": {},
        }

    def _get(self, kind: str, region: str) -> SourceStatus:
        return self._statuses.setdefault(kind, {}).setdefault(region, SourceStatus())

    def register(self, kind: str, region: str) -> None:
        self._get(kind, region)

    def record_success(
        self,
        kind: str,
        region: str,
        new_item_count: int,
        at: Optional[datetime] = None,
    ) -> None:
        at = at or datetime.now(timezone.utc)
        status = self._get(kind, region)
        status.updated = at
        status.last_attempt = at
        status.new_item_count = new_item_count
        status.error = None

    def record_failure(
        self,
        kind: str,
        region: str,
        error: str,
        at: Optional[datetime] = None,
    ) -> None:
        status = self._get(kind, region)
        status.last_attempt = at or datetime.now(timezone.utc)
        status.error = error

    def get(self, kind: str, region: str) -> Optional[SourceStatus]:
        return self._statuses.get(kind, {}).get(region)

    def snapshot(self) -> Dict[str, List[Dict[str, Dict[str, Any]]]]:
        """Status in the ``GET /v1/status`` shape."""
        return {
            "tripUpdates": [
                {region: status.to_dict()}
                for region, status in sorted(self._statuses["trip_updates"].items())
            ],
            "alerts": [
                {region: status.to_dict()}
                for region, status in sorted(self._statuses["alerts"].items())
            ],
        }
