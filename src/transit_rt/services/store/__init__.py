"""Persistence of reconciled rows."""

from transit_rt.services.store.retention import RetentionSweeper
from transit_rt.services.store.writer import UpsertStore, dedup_rows

__all__ = ["RetentionSweeper", "UpsertStore", "dedup_rows"]
