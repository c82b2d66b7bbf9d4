"""Shared fixtures: an in-memory zone view with failure injection."""

from __future__ import annotations

import pytest

from dyndns_gateway.models import RecordSnapshot, RecordSpec, RecordType
from dyndns_gateway.zones.base import BaseZoneView, ZoneReadError, ZoneWriteError


class MemoryZone(BaseZoneView):
    """Zone view backed by a dict, recording every submitted change set."""

    def __init__(
        self,
        records: dict[tuple[str, RecordType], str] | None = None,
        fail_reads: set[RecordType] | None = None,
        fail_writes: set[RecordType] | None = None,
    ) -> None:
        super().__init__()
        self.records: dict[tuple[str, RecordType], str] = dict(records or {})
        self.fail_reads = fail_reads or set()
        self.fail_writes = fail_writes or set()
        self.lookups: list[tuple[str, RecordType]] = []
        self.changes: list[tuple[RecordSnapshot | None, RecordSpec]] = []

    @property
    def name(self) -> str:
        return "memory"

    async def lookup(self, name: str, record_type: RecordType) -> RecordSnapshot:
        self.lookups.append((name, record_type))
        if record_type in self.fail_reads:
            msg = "store unreachable"
            raise ZoneReadError(msg, name, record_type)
        value = self.records.get((name, record_type))
        if value is None:
            return RecordSnapshot.absent(record_type)
        return RecordSnapshot.present(record_type, value, (name, record_type))

    async def apply_change(
        self,
        existing: RecordSnapshot | None,
        spec: RecordSpec,
    ) -> None:
        self.changes.append((existing, spec))
        if spec.record_type in self.fail_writes:
            msg = "change rejected"
            raise ZoneWriteError(msg, spec.name, spec.record_type)
        self.records[(spec.name, spec.record_type)] = spec.value


@pytest.fixture
def make_zone():
    """Create a factory for in-memory zones holding records of one host."""

    def _make_zone(
        a: str | None = None,
        aaaa: str | None = None,
        hostname: str = "home.example.com",
        **kwargs,
    ) -> MemoryZone:
        records: dict[tuple[str, RecordType], str] = {}
        if a is not None:
            records[(f"{hostname}.", RecordType.A)] = a
        if aaaa is not None:
            records[(f"{hostname}.", RecordType.AAAA)] = aaaa
        return MemoryZone(records, **kwargs)

    return _make_zone
