"""
Event data source clients.

Usage:
    from app.services.clients import get_data_client
    from app.models import DataSource

    client = get_data_client(DataSource.FRC_EVENTS)
    schedule = await client.get_qual_schedule(event)
"""
from app.services.clients.base import DataClient, RestDataClient
from app.services.clients.exceptions import DataClientError, MissingDataError, TiebreakError
from app.services.clients.frc_events import FrcEventsDataClient
from app.services.clients.ftc_events import FtcEventsDataClient
from app.services.clients.registry import close_data_clients, configured_sources, get_data_client
from app.services.clients.tiebreaks import FrcEvents2025Tiebreak, NoopPlayoffTiebreak, PlayoffTiebreak

__all__ = [
    "DataClient",
    "RestDataClient",
    "DataClientError",
    "MissingDataError",
    "TiebreakError",
    "FrcEventsDataClient",
    "FtcEventsDataClient",
    "get_data_client",
    "configured_sources",
    "close_data_clients",
    "PlayoffTiebreak",
    "FrcEvents2025Tiebreak",
    "NoopPlayoffTiebreak",
]
