"""Zone views for the DNS backends supported by the gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dyndns_gateway.models import ZoneProvider
from dyndns_gateway.zones.base import (
    BaseZoneView,
    ZoneError,
    ZoneReadError,
    ZoneWriteError,
)
from dyndns_gateway.zones.clouddns import CloudDNSZone
from dyndns_gateway.zones.cloudflare import CloudFlareZone

if TYPE_CHECKING:
    from dyndns_gateway.config import ZoneConfig

__all__ = [
    "BaseZoneView",
    "CloudDNSZone",
    "CloudFlareZone",
    "ZoneError",
    "ZoneReadError",
    "ZoneWriteError",
    "open_zone",
]

_zone_views: dict[ZoneProvider, type[CloudDNSZone | CloudFlareZone]] = {
    ZoneProvider.CLOUDDNS: CloudDNSZone,
    ZoneProvider.CLOUDFLARE: CloudFlareZone,
}


def open_zone(config: ZoneConfig) -> BaseZoneView:
    """
    Create the zone view for the configured backend.

    Parameters
    ----------
    config : ZoneConfig
        Zone configuration.

    Returns
    -------
    BaseZoneView
        An unopened zone view; use it as an async context manager.
    """
    return _zone_views[config.provider](config)
