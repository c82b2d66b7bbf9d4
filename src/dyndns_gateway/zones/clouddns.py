"""
Google Cloud DNS zone view.

This module implements record lookup and atomic record replacement
against the Cloud DNS REST API v1. Record names are always fully
qualified with a trailing dot, as Cloud DNS expects.

Credentials come from Google Application Default Credentials
(`GOOGLE_APPLICATION_CREDENTIALS`, gcloud user credentials or the
metadata server of the runtime) and are refreshed when they expire. A
configured access token is used as is instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import google.auth
import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as AuthRequest
from starlette import status as st_status

from dyndns_gateway.models import RecordSnapshot
from dyndns_gateway.zones.base import BaseZoneView, ZoneReadError, ZoneWriteError

if TYPE_CHECKING:
    from typing import Any, Final

    from google.auth.credentials import Credentials

    from dyndns_gateway.config import ZoneConfig
    from dyndns_gateway.models import RecordSpec, RecordType


# Cloud DNS API base URL
CLOUDDNS_API_BASE: Final[str] = "https://dns.googleapis.com/dns/v1"

# OAuth scope for reading and changing records
CLOUDDNS_SCOPES: Final[list[str]] = [
    "https://www.googleapis.com/auth/ndev.clouddns.readwrite",
]


logger = logging.getLogger(__name__)


def _api_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown error"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", "Unknown error"))
    return "Unknown error"


class CloudDNSZone(BaseZoneView):
    """
    Google Cloud DNS managed zone view.

    The record handle of a present snapshot is the resource record set
    exactly as returned by the API, since Cloud DNS only accepts a
    deletion that matches the existing set.
    """

    def __init__(
        self,
        config: ZoneConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        credentials: Credentials | None = None,
    ) -> None:
        """
        Initialize the Cloud DNS zone view.

        Parameters
        ----------
        config : ZoneConfig
            Zone configuration; `name` is the managed zone name.
        transport : httpx.AsyncBaseTransport | None, optional
            Transport for the HTTP client (used by tests).
        credentials : Credentials | None, optional
            Google credentials to use instead of Application Default
            Credentials.
        """
        super().__init__(transport)
        self._managed_zone = config.name
        self._project = config.project
        self._token = config.api_token
        self._credentials = credentials

    @property
    def name(self) -> str:
        """Get the backend name."""
        return "clouddns"

    def _refresh_credentials(self) -> Credentials:
        """
        Load Application Default Credentials and refresh them if needed.

        Blocking; run it in a worker thread.

        Raises
        ------
        google.auth.exceptions.GoogleAuthError
            If no credentials are found or the refresh fails.
        """
        if self._credentials is None:
            self._credentials, project = google.auth.default(scopes=CLOUDDNS_SCOPES)
            if self._project is None:
                self._project = project
        if not self._credentials.valid:
            logger.debug("[clouddns] Refreshing access token")
            self._credentials.refresh(AuthRequest())
        return self._credentials

    async def _prepare(self) -> tuple[str, dict[str, str]]:
        """
        Get the managed zone URL and the request headers.

        Raises
        ------
        google.auth.exceptions.GoogleAuthError
            If credentials cannot be obtained.
        ValueError
            If no project is configured or known to the credentials.
        """
        if self._token is not None:
            token = self._token
        else:
            credentials = await asyncio.to_thread(self._refresh_credentials)
            token = credentials.token
        if not self._project:
            msg = "No Google Cloud project configured or found in the credentials"
            raise ValueError(msg)

        url = f"{CLOUDDNS_API_BASE}/projects/{self._project}/managedZones/{self._managed_zone}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        return url, headers

    async def lookup(self, name: str, record_type: RecordType) -> RecordSnapshot:
        """
        Look up the existing resource record set in Cloud DNS.

        Parameters
        ----------
        name : str
            The fully qualified record name, with trailing dot.
        record_type : RecordType
            The record type (A or AAAA).

        Returns
        -------
        RecordSnapshot
            A present or absent snapshot; the handle is the record set.

        Raises
        ------
        ZoneReadError
            If the records cannot be read or the response is malformed.
        """
        try:
            zone_url, headers = await self._prepare()
            url = f"{zone_url}/rrsets"
            response = await self.client.get(
                url,
                headers=headers,
                params={"name": name, "type": record_type.value},
            )
            logger.debug(
                "[clouddns] GET %s?name=%s&type=%s -> %d",
                url,
                name,
                record_type,
                response.status_code,
            )
            if response.status_code != st_status.HTTP_200_OK:
                msg = f"Failed to query records: {_api_error(response)}"
                raise ZoneReadError(msg, name, record_type)

            rrsets = response.json().get("rrsets") or []
            if not rrsets or not rrsets[0].get("rrdatas"):
                return RecordSnapshot.absent(record_type)
            rrset = rrsets[0]
            return RecordSnapshot.present(record_type, str(rrset["rrdatas"][0]), rrset)
        except (httpx.HTTPError, GoogleAuthError, ValueError) as e:
            msg = f"Request error: {e}"
            raise ZoneReadError(msg, name, record_type) from e
        except (KeyError, TypeError, AttributeError, IndexError) as e:
            msg = f"Unexpected response: {e!r}"
            raise ZoneReadError(msg, name, record_type) from e

    async def apply_change(
        self,
        existing: RecordSnapshot | None,
        spec: RecordSpec,
    ) -> None:
        """
        Replace a record set with a single Cloud DNS change.

        Parameters
        ----------
        existing : RecordSnapshot | None
            The record set to delete, or None to only add.
        spec : RecordSpec
            The record set to add.

        Raises
        ------
        ZoneWriteError
            If the change is rejected or cannot be submitted.
        """
        change: dict[str, list[dict[str, Any]]] = {
            "additions": [
                {
                    "name": spec.name,
                    "type": spec.record_type.value,
                    "ttl": spec.ttl,
                    "rrdatas": [spec.value],
                },
            ],
        }
        if existing is not None and existing.is_present:
            change["deletions"] = [existing.handle]

        try:
            zone_url, headers = await self._prepare()
            url = f"{zone_url}/changes"
            response = await self.client.post(url, headers=headers, json=change)
            logger.debug("[clouddns] POST %s -> %d", url, response.status_code)
            logger.debug("[clouddns] Response: %s", response.text)
        except (httpx.HTTPError, GoogleAuthError, ValueError) as e:
            msg = f"Request error: {e}"
            raise ZoneWriteError(msg, spec.name, spec.record_type) from e

        if response.status_code != st_status.HTTP_200_OK:
            msg = f"Failed to replace record: {_api_error(response)}"
            raise ZoneWriteError(msg, spec.name, spec.record_type)
