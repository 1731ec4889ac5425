"""Feed polling: fetch, reconcile, persist and report."""

from transit_rt.services.ingest.fetcher import FeedFetcher, FeedFetchError
from transit_rt.services.ingest.provider import FeedProvider
from transit_rt.services.ingest.status import StatusRegistry
from transit_rt.services.ingest.worker import (
    ProviderOrchestrator,
    get_orchestrator,
    reset_orchestrator,
)

__all__ = [
    "FeedFetchError",
    "FeedFetcher",
    "FeedProvider",
    "ProviderOrchestrator",
    "StatusRegistry",
    "get_orchestrator",
    "reset_orchestrator",
]
