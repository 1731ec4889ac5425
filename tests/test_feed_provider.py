"""Tests for FeedProvider cycles (mocked fetcher and session)."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from transit_rt.config import FeedSourceSettings, Settings
from transit_rt.services.feeds import FeedDecodeError
from transit_rt.services.ingest import FeedFetchError, FeedProvider
from transit_rt.services.ingest import provider as provider_module
from transit_rt.services.reconciliation import ReconciliationContext

from .fixtures.db_fixture import executed_sql, make_session, session_context_for
from .fixtures.gtfs_rt_fixture import build_alert_feed, build_trip_update_feed
from .fixtures.siri_fixture import build_turku_payload, turku_vehicle
from .fixtures.timetable_fixture import FakeTimetableIndex

HELSINKI = ZoneInfo("Europe/Helsinki")
NOW = datetime(2023, 11, 15, 8, 0, tzinfo=timezone.utc)


def _index() -> FakeTimetableIndex:
    return FakeTimetableIndex(
        trips=[{"trip_id": "T1", "route_id": "3", "service_id": "WD", "direction_id": 0}],
        stop_times={
            "T1": [
                ("S1", 1, "10:00:00", "10:00:00"),
                ("S2", 2, "10:05:00", "10:05:00"),
            ],
        },
        services={date(2023, 11, 15): {"WD"}},
        routes={"3": "3"},
    )


def _fetcher(payload: bytes) -> AsyncMock:
    fetcher = AsyncMock()
    fetcher.fetch.return_value = (payload, "0" * 64)
    return fetcher


def _provider(source: FeedSourceSettings, payload: bytes, session: Any) -> FeedProvider:
    return FeedProvider(
        source,
        Settings(keep_records_sec=1800),
        fetcher=_fetcher(payload),
        index=_index(),
        session_context=session_context_for(session),
    )


def _ctx(kind: str = "trip_updates") -> ReconciliationContext:
    return ReconciliationContext(region="tampere", tz=HELSINKI, kind=kind, now=NOW)


def _trip_feed(full_dataset: bool) -> bytes:
    return build_trip_update_feed(
        trip_id="T1",
        route_id="3",
        direction_id=0,
        start_date="20231115",
        start_time="10:00:00",
        stop_updates=[{"stop_id": "S1", "departure_delay": 45}],
        feed_timestamp=1700035200,
        full_dataset=full_dataset,
    )


class TestTripUpdateCycle:
    """Trip update sources: upsert or replace, then sweep."""

    @pytest.mark.asyncio
    async def test_differential_feed_upserts(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(trip_update_source, _trip_feed(full_dataset=False), session)

        report = await provider.run_cycle(_ctx())

        statements = executed_sql(session)
        assert len(statements) == 4
        assert "INSERT INTO tampere_trip_updates" in statements[0]
        assert "ON CONFLICT (id) DO UPDATE" in statements[0]
        assert "INSERT INTO tampere_stop_time_updates" in statements[1]
        assert "DELETE FROM tampere_stop_time_updates" in statements[2]
        assert "DELETE FROM tampere_trip_updates WHERE recorded < :cutoff" in statements[3]
        session.begin.assert_called_once()

        assert report.written_count == 1
        assert report.stop_time_update_count == 2
        assert report.full_dataset is False

    @pytest.mark.asyncio
    async def test_full_dataset_replaces_tables(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(trip_update_source, _trip_feed(full_dataset=True), session)

        report = await provider.run_cycle(_ctx())

        statements = [" ".join(sql.split()) for sql in executed_sql(session)]
        assert statements[0] == "DELETE FROM tampere_stop_time_updates"
        assert statements[1] == "DELETE FROM tampere_trip_updates"
        assert statements[2].startswith("INSERT INTO tampere_trip_updates")
        assert statements[3].startswith("INSERT INTO tampere_stop_time_updates")
        assert statements[4].startswith("DELETE FROM tampere_stop_time_updates WHERE")
        assert report.full_dataset is True

    @pytest.mark.asyncio
    async def test_stop_rows_carry_reconciled_delay(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(trip_update_source, _trip_feed(full_dataset=False), session)

        await provider.run_cycle(_ctx())

        params = session.execute.call_args_list[1].args[1]
        assert params["trip_update_id_0"] == "T1-20231115-10:00:00"
        assert params["departure_delay_0"] == 45
        assert params["arrival_delay_1"] == 45

    @pytest.mark.asyncio
    async def test_canceled_trip_clears_its_stop_rows(self, trip_update_source: FeedSourceSettings) -> None:
        payload = build_trip_update_feed(
            trip_id="T1",
            route_id="3",
            direction_id=0,
            start_date="20231115",
            start_time="10:00:00",
            schedule_relationship=3,
            stop_updates=[{"stop_id": "S1", "departure_delay": 45}],
            feed_timestamp=1700035200,
        )
        session = make_session()
        provider = _provider(trip_update_source, payload, session)

        report = await provider.run_cycle(_ctx())

        statements = [" ".join(sql.split()) for sql in executed_sql(session)]
        assert statements[0].startswith("INSERT INTO tampere_trip_updates")
        assert statements[1] == "DELETE FROM tampere_stop_time_updates WHERE trip_update_id = ANY(:ids)"
        assert session.execute.call_args_list[1].args[1] == {"ids": ["T1-20231115-10:00:00"]}
        # No stop upsert follows, only the retention sweep
        assert not any(sql.startswith("INSERT INTO tampere_stop_time_updates") for sql in statements)
        assert report.stop_time_update_count == 0

    @pytest.mark.asyncio
    async def test_cycle_log_carries_feed_hash(
        self, trip_update_source: FeedSourceSettings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        logger = MagicMock()
        monkeypatch.setattr(provider_module, "logger", logger)
        provider = _provider(trip_update_source, _trip_feed(full_dataset=False), make_session())

        await provider.run_cycle(_ctx())

        logger.info.assert_called_once()
        assert logger.info.call_args.args == ("Feed cycle complete",)
        assert logger.info.call_args.kwargs["feed_hash"] == "0" * 64
        assert logger.info.call_args.kwargs["source"] == "tampere:trip_updates"

    @pytest.mark.asyncio
    async def test_retention_uses_source_window(self) -> None:
        source = FeedSourceSettings(
            region="tampere", url="http://feeds.test/tu", keep_records_sec=600
        )
        session = make_session()
        provider = _provider(source, _trip_feed(full_dataset=False), session)

        await provider.run_cycle(_ctx())

        cutoff = session.execute.call_args_list[-1].args[1]["cutoff"]
        assert cutoff == datetime(2023, 11, 15, 7, 50, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_fetch_passes_source_headers(self) -> None:
        source = FeedSourceSettings(
            region="tampere",
            url="http://feeds.test/tu",
            headers={"Authorization": "Basic dXNlcjpwYXNz"},
        )
        session = make_session()
        provider = _provider(source, _trip_feed(full_dataset=False), session)

        ctx = _ctx()
        await provider.run_cycle(ctx)

        provider._fetcher.fetch.assert_awaited_once_with(
            "http://feeds.test/tu",
            "tampere:trip_updates",
            ctx.poll_id,
            headers={"Authorization": "Basic dXNlcjpwYXNz"},
        )

    @pytest.mark.asyncio
    async def test_siri_source_uses_its_decoder(self) -> None:
        source = FeedSourceSettings(
            region="turku",
            url="http://feeds.test/siri",
            decoder="turku_siri",
            route_ref_is_short_name=True,
        )
        payload = build_turku_payload({"foli_1": turku_vehicle(lineref="3")})
        session = make_session()
        provider = FeedProvider(
            source,
            Settings(),
            fetcher=_fetcher(payload),
            index=FakeTimetableIndex(),
            session_context=session_context_for(session),
        )

        report = await provider.run_cycle(
            ReconciliationContext(region="turku", tz=HELSINKI, now=NOW)
        )

        assert report.seen_count == 1
        # No timetable data: nothing matches, only the retention sweep runs
        assert report.written_count == 0
        assert all("DELETE FROM turku_" in sql for sql in executed_sql(session))


class TestAlertCycle:
    @pytest.mark.asyncio
    async def test_alerts_replace_every_table(self, alert_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(alert_source, build_alert_feed(), session)

        report = await provider.run_cycle(_ctx("alerts"))

        statements = [" ".join(sql.split()) for sql in executed_sql(session)]
        assert statements[:5] == [
            "DELETE FROM tampere_alert_urls",
            "DELETE FROM tampere_alert_description_texts",
            "DELETE FROM tampere_alert_header_texts",
            "DELETE FROM tampere_alert_informed_entities",
            "DELETE FROM tampere_alerts",
        ]
        assert statements[5].startswith("INSERT INTO tampere_alerts ")
        assert statements[6].startswith("INSERT INTO tampere_alert_informed_entities")
        assert statements[7].startswith("INSERT INTO tampere_alert_header_texts")
        assert statements[8].startswith("INSERT INTO tampere_alert_description_texts")
        # No URL rows in the default alert
        assert len(statements) == 9
        assert report.written_count == 1
        assert report.full_dataset is True


class TestCycleErrors:
    @pytest.mark.asyncio
    async def test_fetch_error_writes_nothing(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(trip_update_source, b"", session)
        provider._fetcher.fetch.side_effect = FeedFetchError("Failed to fetch tampere:trip_updates")

        with pytest.raises(FeedFetchError):
            await provider.run_cycle(_ctx())
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_decode_error_writes_nothing(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        provider = _provider(trip_update_source, b"\xff\xfe not protobuf", session)

        with pytest.raises(FeedDecodeError):
            await provider.run_cycle(_ctx())
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_error_propagates(self, trip_update_source: FeedSourceSettings) -> None:
        session = make_session()
        session.execute.side_effect = RuntimeError("deadlock detected")
        provider = _provider(trip_update_source, _trip_feed(full_dataset=False), session)

        with pytest.raises(RuntimeError, match="deadlock"):
            await provider.run_cycle(_ctx())
