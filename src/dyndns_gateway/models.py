"""
Data models for DynDNS Gateway.

This module defines the core data structures shared by the reconciler,
the zone views and the HTTP layer: record types, record snapshots read
from a zone, record specifications written to a zone, and the outcome of
a reconciliation.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ZoneProvider(StrEnum):
    """
    Supported zone backends.

    Attributes
    ----------
    CLOUDDNS : str
        Google Cloud DNS managed zone.
    CLOUDFLARE : str
        CloudFlare DNS zone.
    """

    CLOUDDNS = "clouddns"
    CLOUDFLARE = "cloudflare"


class RecordType(StrEnum):
    """
    DNS record types managed by the gateway.

    Attributes
    ----------
    A : str
        IPv4 address record.
    AAAA : str
        IPv6 address record.
    """

    A = "A"
    AAAA = "AAAA"


class ReadErrorPolicy(StrEnum):
    """
    How the reconciler treats a failed record lookup.

    Attributes
    ----------
    ABSENT : str
        Treat the family as if no record existed.
    FAIL : str
        Abort the request with an upstream error.
    """

    ABSENT = "absent"
    FAIL = "fail"


class SnapshotState(StrEnum):
    """State of a record lookup for one address family."""

    PRESENT = "present"
    ABSENT = "absent"
    READ_ERROR = "read_error"


class RecordSnapshot(BaseModel):
    """
    The existing record of one address family in a zone.

    Attributes
    ----------
    record_type : RecordType
        The record type that was looked up.
    state : SnapshotState
        Whether the record exists, is absent, or could not be read.
    value : str | None
        The first value of the first matching record.
    handle : Any
        Opaque, zone-specific reference used to delete the record.
    error : str | None
        Description of the read failure.
    """

    record_type: RecordType
    state: SnapshotState
    value: str | None = None
    handle: Any = None
    error: str | None = None

    @classmethod
    def present(
        cls,
        record_type: RecordType,
        value: str,
        handle: Any,
    ) -> RecordSnapshot:
        """Create a snapshot of an existing record."""
        return cls(
            record_type=record_type,
            state=SnapshotState.PRESENT,
            value=value,
            handle=handle,
        )

    @classmethod
    def absent(cls, record_type: RecordType) -> RecordSnapshot:
        """Create a snapshot for a family without a record."""
        return cls(record_type=record_type, state=SnapshotState.ABSENT)

    @classmethod
    def read_error(cls, record_type: RecordType, error: str) -> RecordSnapshot:
        """Create a snapshot for a family whose lookup failed."""
        return cls(
            record_type=record_type,
            state=SnapshotState.READ_ERROR,
            error=error,
        )

    @property
    def is_present(self) -> bool:
        """Whether a record exists for this family."""
        return self.state == SnapshotState.PRESENT


class RecordSpec(BaseModel):
    """
    A record to be written to a zone.

    Attributes
    ----------
    record_type : RecordType
        The record type.
    name : str
        The fully qualified record name, with trailing dot.
    value : str
        The record value.
    ttl : int
        Time to live in seconds.
    """

    record_type: RecordType
    name: str
    value: str
    ttl: int = 60


class RecordChange(BaseModel):
    """A record value replaced during a reconciliation."""

    record_type: RecordType
    old: str
    new: str


class OutcomeKind(StrEnum):
    """
    Terminal outcomes of a reconciliation.

    The values are the dyndns2 status words sent to clients.
    """

    HOST_UNKNOWN = "nohost"
    NO_CHANGE = "nochg"
    APPLIED = "good"
    UPSTREAM_ERROR = "dnserr"


class ReconciliationOutcome(BaseModel):
    """
    Result of reconciling reported addresses against a zone.

    Attributes
    ----------
    kind : OutcomeKind
        The terminal outcome.
    hostname : str
        The hostname that was reconciled.
    new_ipv4 : str | None
        The reported IPv4 address, if any.
    new_ipv6 : str | None
        The reported IPv6 address, if any.
    changes : list[RecordChange]
        Record values that were replaced.
    failed : list[RecordType]
        Families whose lookup or write failed.
    """

    kind: OutcomeKind
    hostname: str
    new_ipv4: str | None = None
    new_ipv6: str | None = None
    changes: list[RecordChange] = Field(default_factory=list)
    failed: list[RecordType] = Field(default_factory=list)

    @classmethod
    def host_unknown(cls, hostname: str) -> ReconciliationOutcome:
        """Create an outcome for a hostname without any A or AAAA record."""
        return cls(kind=OutcomeKind.HOST_UNKNOWN, hostname=hostname)

    @classmethod
    def no_change(
        cls,
        hostname: str,
        new_ipv4: str | None,
        new_ipv6: str | None,
    ) -> ReconciliationOutcome:
        """Create an outcome for reported addresses that are already set."""
        return cls(
            kind=OutcomeKind.NO_CHANGE,
            hostname=hostname,
            new_ipv4=new_ipv4,
            new_ipv6=new_ipv6,
        )

    @classmethod
    def applied(
        cls,
        hostname: str,
        new_ipv4: str | None,
        new_ipv6: str | None,
        changes: list[RecordChange],
    ) -> ReconciliationOutcome:
        """Create an outcome for successfully applied changes."""
        return cls(
            kind=OutcomeKind.APPLIED,
            hostname=hostname,
            new_ipv4=new_ipv4,
            new_ipv6=new_ipv6,
            changes=changes,
        )

    @classmethod
    def upstream_error(
        cls,
        hostname: str,
        failed: list[RecordType],
        changes: list[RecordChange] | None = None,
    ) -> ReconciliationOutcome:
        """
        Create an outcome for a zone that rejected or failed a request.

        Parameters
        ----------
        hostname : str
            The hostname that was reconciled.
        failed : list[RecordType]
            The families that failed, in the order they were attempted.
        changes : list[RecordChange] | None, optional
            Changes of other families that were applied before or after
            the failure. They are not rolled back.

        Returns
        -------
        ReconciliationOutcome
            An upstream error outcome.
        """
        return cls(
            kind=OutcomeKind.UPSTREAM_ERROR,
            hostname=hostname,
            changes=changes or [],
            failed=failed,
        )

    @property
    def family(self) -> RecordType | None:
        """The first family that failed, for upstream errors."""
        return self.failed[0] if self.failed else None

    @property
    def ipv4_change(self) -> RecordChange | None:
        """The A record change, if one was applied."""
        return self._change_for(RecordType.A)

    @property
    def ipv6_change(self) -> RecordChange | None:
        """The AAAA record change, if one was applied."""
        return self._change_for(RecordType.AAAA)

    def _change_for(self, record_type: RecordType) -> RecordChange | None:
        for change in self.changes:
            if change.record_type == record_type:
                return change
        return None
