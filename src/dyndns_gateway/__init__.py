"""
DynDNS Gateway - A dyndns2 compatible update service.

This package provides a gateway service that accepts dyndns2 update
requests and reconciles the A / AAAA records of a managed zone
(Google Cloud DNS or CloudFlare) with the reported addresses.
"""

__version__ = "0.1.0"
__author__ = "DynDNS Gateway Contributors"
