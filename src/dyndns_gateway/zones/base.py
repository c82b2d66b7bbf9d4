"""
Base class for zone views.

This module defines the abstract zone view that all DNS backends must
inherit from, and the errors raised when the backend fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Final, Self

    from dyndns_gateway.models import RecordSnapshot, RecordSpec, RecordType


# HTTP timeout in seconds
HTTP_TIMEOUT: Final[float] = 30.0


class ZoneError(Exception):
    """
    Base exception for zone backend failures.

    Attributes
    ----------
    name : str
        The record name the operation was about.
    record_type : RecordType
        The record type the operation was about.
    """

    def __init__(self, message: str, name: str, record_type: RecordType) -> None:
        """
        Initialize ZoneError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        name : str
            The record name.
        record_type : RecordType
            The record type.
        """
        self.name = name
        self.record_type = record_type
        super().__init__(message)


class ZoneReadError(ZoneError):
    """Raised when existing records cannot be read."""


class ZoneWriteError(ZoneError):
    """Raised when a change set is rejected or cannot be submitted."""


class BaseZoneView(ABC):
    """
    Abstract read/write view of one DNS zone.

    A zone view is used as an async context manager that owns the HTTP
    client for the duration of a single request::

        async with CloudFlareZone(config) as zone:
            snapshot = await zone.lookup("home.example.com.", RecordType.A)
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """
        Initialize the zone view.

        Parameters
        ----------
        transport : httpx.AsyncBaseTransport | None, optional
            Transport for the HTTP client (used by tests).
        """
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Get the backend name.

        Returns
        -------
        str
            Backend name identifier.
        """
        ...

    @property
    def client(self) -> httpx.AsyncClient:
        """The HTTP client, available inside the context manager."""
        if self._client is None:
            msg = "Zone view is not open"
            raise RuntimeError(msg)
        return self._client

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            timeout=HTTP_TIMEOUT,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    async def lookup(self, name: str, record_type: RecordType) -> RecordSnapshot:
        """
        Look up the existing record for a name and type.

        Only the first matching record and its first value are used.

        Parameters
        ----------
        name : str
            The fully qualified record name, with trailing dot.
        record_type : RecordType
            The record type (A or AAAA).

        Returns
        -------
        RecordSnapshot
            A present or absent snapshot.

        Raises
        ------
        ZoneReadError
            If the records cannot be read.
        """
        ...

    @abstractmethod
    async def apply_change(
        self,
        existing: RecordSnapshot | None,
        spec: RecordSpec,
    ) -> None:
        """
        Replace a record with a single atomic change set.

        Parameters
        ----------
        existing : RecordSnapshot | None
            The record to delete, or None to only add.
        spec : RecordSpec
            The record to add.

        Raises
        ------
        ZoneWriteError
            If the change set is rejected or cannot be submitted.
        """
        ...


def strip_root(name: str) -> str:
    """
    Remove the trailing root dot from a record name.

    Parameters
    ----------
    name : str
        A record name, with or without trailing dot.

    Returns
    -------
    str
        The name without trailing dot.
    """
    return name.removesuffix(".")
