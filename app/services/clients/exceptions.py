"""
Exceptions raised by event data source clients.

Transport failures surface as ``httpx.HTTPError`` subclasses; these types
describe responses that arrived but could not be used.
"""
from typing import Optional


class DataClientError(Exception):
    """Base class for data source failures that are not transport errors."""


class MissingDataError(DataClientError):
    """
    An expected field was absent or malformed in a source response.

    ``data_path`` names the offending field, e.g. ``Schedule[3].startTime``.
    """

    def __init__(self, message: str, data_path: Optional[str] = None):
        self.data_path = data_path
        if data_path:
            message = f"{message} (at {data_path})"
        super().__init__(message)


class TiebreakError(DataClientError):
    """A tied playoff match could not be resolved to a winner."""
