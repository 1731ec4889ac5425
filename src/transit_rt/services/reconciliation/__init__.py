"""Feed-to-row reconciliation engine."""

from transit_rt.services.reconciliation.alerts import AlertBatch, AlertReconciler
from transit_rt.services.reconciliation.context import (
    ReconciliationContext,
    ReconciliationReport,
)
from transit_rt.services.reconciliation.trip_updates import (
    TripUpdateBatch,
    TripUpdateReconciler,
    build_stop_time_updates,
    compute_delay,
)

__all__ = [
    "AlertBatch",
    "AlertReconciler",
    "ReconciliationContext",
    "ReconciliationReport",
    "TripUpdateBatch",
    "TripUpdateReconciler",
    "build_stop_time_updates",
    "compute_delay",
]
