"""
Reconciliation of reported addresses against a DNS zone.

This module decides, for one update request, whether the A and AAAA
records of a hostname have to change, and applies the changes through a
zone view. Each call is independent: nothing is cached between requests
and nothing is retried.

Changes to the two address families are separate change sets. Each one
is atomic on its own, but the pair is not: if the AAAA write fails after
the A write succeeded, the A change stays in place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dyndns_gateway.models import (
    ReadErrorPolicy,
    ReconciliationOutcome,
    RecordChange,
    RecordSnapshot,
    RecordSpec,
    RecordType,
    SnapshotState,
)
from dyndns_gateway.zones.base import ZoneError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Final

    from dyndns_gateway.config import ReconcileConfig
    from dyndns_gateway.zones.base import BaseZoneView


# TTL of every record written by the gateway
RECORD_TTL: Final[int] = 60


logger = logging.getLogger(__name__)


def split_addresses(reported: Sequence[str]) -> tuple[str | None, str | None]:
    """
    Pick the IPv4 and IPv6 candidates from reported address tokens.

    The first token containing "." is the IPv4 candidate and the first
    token containing ":" is the IPv6 candidate. Tokens are not validated.

    Parameters
    ----------
    reported : Sequence[str]
        Address tokens in the order they were reported.

    Returns
    -------
    tuple[str | None, str | None]
        A tuple of `(ipv4, ipv6)`.
    """
    ipv4 = next((token for token in reported if "." in token), None)
    ipv6 = next((token for token in reported if ":" in token), None)
    return (ipv4, ipv6)


def record_name(hostname: str) -> str:
    """Get the fully qualified record name for a hostname."""
    return f"{hostname}."


class Reconciler:
    """
    Reconciles the A / AAAA records of a hostname with reported addresses.

    Attributes
    ----------
    read_errors : ReadErrorPolicy
        How a failed record lookup is treated.
    """

    def __init__(self, config: ReconcileConfig) -> None:
        """
        Initialize the reconciler.

        Parameters
        ----------
        config : ReconcileConfig
            Reconciliation settings.
        """
        self.read_errors = config.read_errors

    async def reconcile(
        self,
        hostname: str,
        reported: Sequence[str],
        zone: BaseZoneView,
    ) -> ReconciliationOutcome:
        """
        Reconcile a hostname's records with the reported addresses.

        Parameters
        ----------
        hostname : str
            The hostname, without trailing dot.
        reported : Sequence[str]
            Reported address tokens.
        zone : BaseZoneView
            An open view of the zone holding the hostname's records.

        Returns
        -------
        ReconciliationOutcome
            The terminal outcome of the request.
        """
        name = record_name(hostname)
        new_ipv4, new_ipv6 = split_addresses(reported)

        existing_a = await self._lookup(zone, name, RecordType.A)
        existing_aaaa = await self._lookup(zone, name, RecordType.AAAA)

        if self.read_errors == ReadErrorPolicy.FAIL:
            unreadable = [
                snapshot.record_type
                for snapshot in (existing_a, existing_aaaa)
                if snapshot.state == SnapshotState.READ_ERROR
            ]
            if unreadable:
                logger.error("%s: Existing records could not be read", hostname)
                return ReconciliationOutcome.upstream_error(hostname, unreadable)

        if not existing_a.is_present and not existing_aaaa.is_present:
            logger.error("%s: The hostname does not exist", hostname)
            return ReconciliationOutcome.host_unknown(hostname)

        if new_ipv4 == existing_a.value and new_ipv6 == existing_aaaa.value:
            logger.info("%s: No change", hostname)
            return ReconciliationOutcome.no_change(hostname, new_ipv4, new_ipv6)

        changes: list[RecordChange] = []
        failed: list[RecordType] = []
        for new_value, existing in ((new_ipv4, existing_a), (new_ipv6, existing_aaaa)):
            if not new_value or not existing.is_present or new_value == existing.value:
                continue
            change = await self._replace(zone, hostname, existing, new_value)
            if change is None:
                failed.append(existing.record_type)
            else:
                changes.append(change)

        if failed:
            return ReconciliationOutcome.upstream_error(hostname, failed, changes)
        if not changes:
            # Unreported families and families without a record stay as they are
            logger.info("%s: No change", hostname)
            return ReconciliationOutcome.no_change(hostname, new_ipv4, new_ipv6)
        return ReconciliationOutcome.applied(hostname, new_ipv4, new_ipv6, changes)

    async def _lookup(
        self,
        zone: BaseZoneView,
        name: str,
        record_type: RecordType,
    ) -> RecordSnapshot:
        try:
            return await zone.lookup(name, record_type)
        except ZoneError as e:
            if self.read_errors == ReadErrorPolicy.ABSENT:
                logger.warning(
                    "%s: Failed to read %s record, treating it as absent: %s",
                    name,
                    record_type,
                    e,
                )
            return RecordSnapshot.read_error(record_type, str(e))

    async def _replace(
        self,
        zone: BaseZoneView,
        hostname: str,
        existing: RecordSnapshot,
        new_value: str,
    ) -> RecordChange | None:
        """
        Replace an existing record with a new value.

        Parameters
        ----------
        zone : BaseZoneView
            The open zone view.
        hostname : str
            The hostname, without trailing dot.
        existing : RecordSnapshot
            The present record to replace.
        new_value : str
            The reported value.

        Returns
        -------
        RecordChange | None
            The applied change, or None if the zone rejected it.
        """
        old_value = existing.value or ""
        logger.info(
            "%s: Changing %s record from %s to %s",
            hostname,
            existing.record_type,
            old_value,
            new_value,
        )
        spec = RecordSpec(
            record_type=existing.record_type,
            name=record_name(hostname),
            value=new_value,
            ttl=RECORD_TTL,
        )
        try:
            await zone.apply_change(existing, spec)
        except ZoneError as e:
            logger.error(  # noqa: TRY400
                "%s: Failed to change %s record: %s",
                hostname,
                existing.record_type,
                e,
            )
            return None
        return RecordChange(
            record_type=existing.record_type,
            old=old_value,
            new=new_value,
        )
