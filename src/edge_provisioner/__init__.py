"""Provision a static-content edge (object store + CDN) and publish content to it."""

__version__ = "0.1.0"
