"""One feed source: fetch, decode, reconcile and persist in a single cycle."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Callable, Optional
from zoneinfo import ZoneInfo

from transit_rt.config import FeedSourceSettings, Settings
from transit_rt.database import get_session_context
from transit_rt.logging import get_logger
from transit_rt.models import naming
from transit_rt.services.feeds import DecodedFeed, get_decoder
from transit_rt.services.ingest.fetcher import FeedFetcher
from transit_rt.services.reconciliation import (
    AlertReconciler,
    ReconciliationContext,
    ReconciliationReport,
    TripUpdateReconciler,
)
from transit_rt.services.reconciliation.enums import TripScheduleRelationship
from transit_rt.services.store import RetentionSweeper, UpsertStore
from transit_rt.services.timetable import TimetableIndex

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

SessionContext = Callable[[], AbstractAsyncContextManager["AsyncSession"]]


class FeedProvider:
    """Runs reconciliation cycles for one configured source.

    All writes of a cycle happen inside one transaction: either every table
    reflects the new feed or, on any error, none does.
    """

    def __init__(
        self,
        source: FeedSourceSettings,
        settings: Settings,
        *,
        fetcher: Optional[FeedFetcher] = None,
        index: Optional[TimetableIndex] = None,
        store: Optional[UpsertStore] = None,
        sweeper: Optional[RetentionSweeper] = None,
        session_context: SessionContext = get_session_context,
    ) -> None:
        self.source = source
        self.region = source.region
        self.kind = source.kind
        self.interval_sec = source.interval_sec
        self.tz = ZoneInfo(settings.timezone_for(source))
        self.keep_records_sec = settings.keep_records_for(source)

        self._decoder = get_decoder(source.decoder)
        self._fetcher = fetcher or FeedFetcher(
            timeout_sec=settings.fetch_timeout_sec,
            user_agent=settings.user_agent,
        )
        self._store = store or UpsertStore(batch_size=settings.store_batch_size)
        self._sweeper = sweeper or RetentionSweeper()
        self._session_context = session_context
        self._trip_updates = TripUpdateReconciler(source, index)
        self._alerts = AlertReconciler(self.region)

    @property
    def name(self) -> str:
        return self.source.name

    def new_context(self) -> ReconciliationContext:
        return ReconciliationContext(region=self.region, tz=self.tz, kind=self.kind)

    async def run_cycle(self, ctx: Optional[ReconciliationContext] = None) -> ReconciliationReport:
        """Fetch the feed once and persist the reconciled rows.

        Raises:
            FeedFetchError: If the download fails.
            FeedDecodeError: If the payload cannot be decoded or is malformed.
            SQLAlchemyError: If the datastore rejects the writes.
        """
        ctx = ctx or self.new_context()
        data, feed_hash = await self._fetcher.fetch(
            self.source.url, self.name, ctx.poll_id, headers=self.source.headers
        )
        feed = self._decoder(data, self.tz)
        await self.process_feed(feed, ctx)

        logger.info(
            "Feed cycle complete", source=self.name, feed_hash=feed_hash, **ctx.report.to_dict()
        )
        return ctx.report

    async def process_feed(self, feed: DecodedFeed, ctx: ReconciliationContext) -> None:
        async with self._session_context() as session, session.begin():
            if self.kind == "alerts":
                await self._write_alerts(session, feed, ctx)
            else:
                await self._write_trip_updates(session, feed, ctx)

    async def _write_trip_updates(
        self,
        session: AsyncSession,
        feed: DecodedFeed,
        ctx: ReconciliationContext,
    ) -> None:
        batch = await self._trip_updates.reconcile(session, feed, ctx)

        if batch.full_dataset:
            await self._store.delete_all(session, self.region, naming.STOP_TIME_UPDATES, ctx.poll_id)
            await self._store.replace_all(
                session, self.region, naming.TRIP_UPDATES, batch.trip_updates, ctx.poll_id
            )
        else:
            await self._store.upsert(
                session, self.region, naming.TRIP_UPDATES, batch.trip_updates, ctx.poll_id
            )
            # Trips that stopped being SCHEDULED keep no per-stop rows
            unscheduled = [
                row["id"]
                for row in batch.trip_updates
                if row["schedule_relationship"] != TripScheduleRelationship.SCHEDULED.value
            ]
            await self._store.delete_stop_time_updates(
                session, self.region, unscheduled, ctx.poll_id
            )
        await self._store.upsert(
            session, self.region, naming.STOP_TIME_UPDATES, batch.stop_time_updates, ctx.poll_id
        )

        await self._sweeper.sweep(
            session, self.region, self.keep_records_sec, now=ctx.now, poll_id=ctx.poll_id
        )

    async def _write_alerts(
        self,
        session: AsyncSession,
        feed: DecodedFeed,
        ctx: ReconciliationContext,
    ) -> None:
        batch = self._alerts.reconcile(feed, ctx)
        tables = batch.tables()

        # Children first, then parents
        for table in reversed(list(tables)):
            await self._store.delete_all(session, self.region, table, ctx.poll_id)
        for table, rows in tables.items():
            await self._store.upsert(session, self.region, table, rows, ctx.poll_id)
