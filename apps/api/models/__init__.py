"""Models package."""

from .portal_snapshot import PortalSnapshot
