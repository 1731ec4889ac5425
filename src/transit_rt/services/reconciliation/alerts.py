"""Alert reconciliation: a full alert snapshot to replacement row-sets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from transit_rt.logging import get_logger
from transit_rt.models import naming
from transit_rt.services.feeds.entities import AlertEntity, DecodedFeed, InformedEntity, Translation
from transit_rt.services.reconciliation.context import ReconciliationContext
from transit_rt.services.reconciliation.enums import cause, effect

logger = get_logger(__name__)

Row = Dict[str, Any]


@dataclass
class AlertBatch:
    """Rows for every alert table of a region, keyed by logical table name."""

    alerts: List[Row] = field(default_factory=list)
    informed_entities: List[Row] = field(default_factory=list)
    header_texts: List[Row] = field(default_factory=list)
    description_texts: List[Row] = field(default_factory=list)
    urls: List[Row] = field(default_factory=list)

    def tables(self) -> Dict[str, List[Row]]:
        """Row-sets in insert order (parents before children)."""
        return {
            naming.ALERTS: self.alerts,
            naming.ALERT_INFORMED_ENTITIES: self.informed_entities,
            naming.ALERT_HEADER_TEXTS: self.header_texts,
            naming.ALERT_DESCRIPTION_TEXTS: self.description_texts,
            naming.ALERT_URLS: self.urls,
        }


def is_informative(entity: InformedEntity) -> bool:
    """An informed entity is kept only if it names an agency, route or stop."""
    return bool(entity.agency_id or entity.route_id or entity.stop_id)


def _text_rows(alert_id: str, translations: Sequence[Translation]) -> List[Row]:
    return [
        {
            "alert_id": alert_id,
            "translated_text": translation.text,
            "language_code": translation.language,
        }
        for translation in translations
        if translation.text
    ]


class AlertReconciler:
    """Turns a decoded alert snapshot into rows for one region."""

    def __init__(self, region: str) -> None:
        self.region = region

    def reconcile(self, feed: DecodedFeed, ctx: ReconciliationContext) -> AlertBatch:
        batch = AlertBatch()
        report = ctx.report
        report.full_dataset = True

        for alert in feed.alerts:
            report.seen_count += 1
            if not self._is_complete(alert):
                logger.info(
                    "Alert without header or description, skipping",
                    region=self.region,
                    poll_id=ctx.poll_id,
                    alert_id=alert.entity_id,
                )
                report.skipped_count += 1
                continue
            self._add_alert(batch, alert)

        report.written_count = len(batch.alerts)
        return batch

    @staticmethod
    def _is_complete(alert: AlertEntity) -> bool:
        return bool(
            alert.entity_id
            and any(t.text for t in alert.header_text)
            and any(t.text for t in alert.description_text)
        )

    def _add_alert(self, batch: AlertBatch, alert: AlertEntity) -> None:
        alert_id = alert.entity_id
        batch.alerts.append(
            {
                "id": alert_id,
                "start_time": alert.active_period_start,
                "end_time": alert.active_period_end,
                "cause": cause(alert.cause).value,
                "effect": effect(alert.effect).value,
            }
        )

        for entity in alert.informed_entities:
            if not is_informative(entity):
                continue
            batch.informed_entities.append(
                {
                    "alert_id": alert_id,
                    "agency_id": entity.agency_id,
                    "route_id": entity.route_id,
                    "route_type": entity.route_type,
                    "stop_id": entity.stop_id,
                    "trip_id": entity.trip_id,
                }
            )

        batch.header_texts.extend(_text_rows(alert_id, alert.header_text))
        batch.description_texts.extend(_text_rows(alert_id, alert.description_text))
        batch.urls.extend(_text_rows(alert_id, alert.url))
