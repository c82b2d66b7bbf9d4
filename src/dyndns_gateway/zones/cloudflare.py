"""
CloudFlare zone view.

This module implements record lookup and atomic record replacement
against the CloudFlare DNS API v4. Only API Token authentication is
supported (not Global API Key).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from starlette import status as st_status

from dyndns_gateway.models import RecordSnapshot
from dyndns_gateway.zones.base import (
    BaseZoneView,
    ZoneReadError,
    ZoneWriteError,
    strip_root,
)

if TYPE_CHECKING:
    from typing import Any, Final

    from dyndns_gateway.config import ZoneConfig
    from dyndns_gateway.models import RecordSpec, RecordType


# CloudFlare API base URL
CF_API_BASE: Final[str] = "https://api.cloudflare.com/client/v4"


logger = logging.getLogger(__name__)


def _first_error(data: dict[str, Any]) -> str:
    errors = data.get("errors") or []
    return errors[0].get("message", "Unknown error") if errors else "Unknown error"


class CloudFlareZone(BaseZoneView):
    """
    CloudFlare zone view.

    The zone ID is resolved from the zone name on first use and cached
    for the lifetime of the view. Replacements are submitted through the
    batch endpoint so the delete and the create are applied atomically.
    """

    def __init__(
        self,
        config: ZoneConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the CloudFlare zone view.

        Parameters
        ----------
        config : ZoneConfig
            Zone configuration; `api_token` must hold a CloudFlare API Token.
        transport : httpx.AsyncBaseTransport | None, optional
            Transport for the HTTP client (used by tests).
        """
        super().__init__(transport)
        self._zone = strip_root(config.name)
        self._token = config.api_token or ""
        self._zone_id: str | None = None

    @property
    def name(self) -> str:
        """Get the backend name."""
        return "cloudflare"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    async def _get_zone_id(self) -> str | None:
        """
        Get the Zone ID for the configured zone name.

        Returns
        -------
        str | None
            Zone ID or None if not found.

        Raises
        ------
        httpx.HTTPError
            If the request fails.
        KeyError
            If a zone in the response carries no ID.
        """
        if self._zone_id is not None:
            return self._zone_id

        url = f"{CF_API_BASE}/zones"
        response = await self.client.get(
            url,
            headers=self._headers,
            params={"name": self._zone},
        )
        logger.debug(
            "[cloudflare] GET %s?name=%s -> %d",
            url,
            self._zone,
            response.status_code,
        )

        if response.status_code != st_status.HTTP_200_OK:
            logger.error("[cloudflare] Failed to get zones: '%s'", response.text)
            return None

        data = response.json()
        if not data.get("success"):
            return None

        zones = data.get("result") or []
        if zones:
            self._zone_id = str(zones[0]["id"])
        return self._zone_id

    async def lookup(self, name: str, record_type: RecordType) -> RecordSnapshot:
        """
        Look up the existing record in CloudFlare.

        Parameters
        ----------
        name : str
            The fully qualified record name, with trailing dot.
        record_type : RecordType
            The record type (A or AAAA).

        Returns
        -------
        RecordSnapshot
            A present or absent snapshot; the handle is the record ID.

        Raises
        ------
        ZoneReadError
            If the zone or its records cannot be read or the response is
            malformed.
        """
        fqdn = strip_root(name)
        try:
            zone_id = await self._get_zone_id()
            if zone_id is None:
                msg = f"Zone not found: {self._zone}"
                raise ZoneReadError(msg, name, record_type)

            url = f"{CF_API_BASE}/zones/{zone_id}/dns_records"
            response = await self.client.get(
                url,
                headers=self._headers,
                params={"name": fqdn, "type": record_type.value},
            )
            logger.debug(
                "[cloudflare] GET %s?name=%s&type=%s -> %d",
                url,
                fqdn,
                record_type,
                response.status_code,
            )
            data = response.json()

            if response.status_code != st_status.HTTP_200_OK or not data.get("success"):
                msg = f"Failed to query records: {_first_error(data)}"
                raise ZoneReadError(msg, name, record_type)

            records = data.get("result") or []
            if not records:
                return RecordSnapshot.absent(record_type)
            existing = records[0]
            return RecordSnapshot.present(
                record_type,
                str(existing["content"]),
                str(existing["id"]),
            )
        except (httpx.HTTPError, ValueError) as e:
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
        Replace a record through the CloudFlare batch endpoint.

        Parameters
        ----------
        existing : RecordSnapshot | None
            The record to delete, or None to only add.
        spec : RecordSpec
            The record to add.

        Raises
        ------
        ZoneWriteError
            If the batch is rejected or cannot be submitted.
        """
        payload: dict[str, list[dict[str, Any]]] = {
            "posts": [
                {
                    "type": spec.record_type.value,
                    "name": strip_root(spec.name),
                    "content": spec.value,
                    "ttl": spec.ttl,
                    "proxied": False,
                },
            ],
        }
        if existing is not None and existing.is_present:
            payload["deletes"] = [{"id": existing.handle}]

        try:
            zone_id = await self._get_zone_id()
            if zone_id is None:
                msg = f"Zone not found: {self._zone}"
                raise ZoneWriteError(msg, spec.name, spec.record_type)

            url = f"{CF_API_BASE}/zones/{zone_id}/dns_records/batch"
            response = await self.client.post(url, headers=self._headers, json=payload)
            logger.debug("[cloudflare] POST %s -> %d", url, response.status_code)
            logger.debug("[cloudflare] Response: %s", response.text)
            data = response.json()

            if response.status_code != st_status.HTTP_200_OK or not data.get("success"):
                msg = f"Failed to replace record: {_first_error(data)}"
                raise ZoneWriteError(msg, spec.name, spec.record_type)
        except (httpx.HTTPError, ValueError) as e:
            msg = f"Request error: {e}"
            raise ZoneWriteError(msg, spec.name, spec.record_type) from e
        except (KeyError, TypeError, AttributeError, IndexError) as e:
            msg = f"Unexpected response: {e!r}"
            raise ZoneWriteError(msg, spec.name, spec.record_type) from e
