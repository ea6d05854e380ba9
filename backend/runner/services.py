"""Wiring for one collector process: database, client, ingestion, aggregation, frontier, alerts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from core.config import Settings
from core.database import DatabaseManager
from ingestion.frontier import FrontierManager
from ingestion.ingestion_service import MatchIngestionService
from ingestion.riot_client import RiotClient
from matchups.aggregator import MatchupAggregator
from matchups.feed import AggregationFeed
from ops.alerts import AlertDispatcher, AlertSink
from ops.control import ControlChannel, FileControlChannel


@dataclass
class CollectorServices:
    settings: Settings
    db: DatabaseManager
    client: RiotClient
    aggregator: MatchupAggregator
    feed: AggregationFeed
    ingestion: MatchIngestionService
    frontier: FrontierManager
    alerts: AlertDispatcher
    control: ControlChannel

    async def aclose(self) -> None:
        await self.feed.close()
        await self.alerts.flush()
        await self.client.aclose()


def build_services(
    settings: Settings,
    db: DatabaseManager,
    *,
    control: Optional[ControlChannel] = None,
    alert_sink: Optional[AlertSink] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **client_kwargs: Any,
) -> CollectorServices:
    """Assemble the collector; a decrypt failure seen by the client files a migration request."""
    control = control or FileControlChannel(settings.control_dir)
    client_kwargs.setdefault("on_identifier_rotation", control.request_migration)
    client = RiotClient.from_settings(settings, transport=transport, **client_kwargs)
    aggregator = MatchupAggregator(db)
    feed = AggregationFeed(aggregator)
    ingestion = MatchIngestionService(db, feed=feed)
    return CollectorServices(
        settings=settings,
        db=db,
        client=client,
        aggregator=aggregator,
        feed=feed,
        ingestion=ingestion,
        frontier=FrontierManager(client, db, ingestion, settings),
        alerts=AlertDispatcher(alert_sink),
        control=control,
    )
