"""
Data client registry keyed by sync source.

One client (and so one pooled HTTP connection set) is created per source on
first use and shared by every sync pass in the process.
"""
from typing import Dict, List

from app.core.config import settings
from app.core.logging import get_logger
from app.models import DataSource
from app.services.clients.base import DataClient
from app.services.clients.frc_events import FrcEventsDataClient
from app.services.clients.ftc_events import FtcEventsDataClient

logger = get_logger(__name__)

_clients: Dict[DataSource, DataClient] = {}


def _build_client(source: DataSource) -> DataClient:
    if source == DataSource.FRC_EVENTS:
        return FrcEventsDataClient(settings.FRC_EVENTS_API_KEY, settings.FRC_EVENTS_BASE_URL)
    if source == DataSource.FTC_EVENTS:
        return FtcEventsDataClient(settings.FTC_EVENTS_API_KEY, settings.FTC_EVENTS_BASE_URL)
    raise ValueError(f"No data client available for source {source}")


def get_data_client(source: DataSource) -> DataClient:
    """Get the shared client for a sync source, creating it on first use."""
    source = DataSource(source)
    client = _clients.get(source)
    if client is None:
        logger.info(f"Creating data client for {source.value}")
        client = _build_client(source)
        _clients[source] = client
    return client


def configured_sources() -> List[DataSource]:
    """Sources that have an API key configured."""
    sources = []
    if settings.FRC_EVENTS_API_KEY:
        sources.append(DataSource.FRC_EVENTS)
    if settings.FTC_EVENTS_API_KEY:
        sources.append(DataSource.FTC_EVENTS)
    return sources


async def close_data_clients() -> None:
    """Close every cached client (application shutdown)."""
    for client in list(_clients.values()):
        await client.aclose()
    _clients.clear()
