"""
Kiosk records read from the Monday.com kiosks board.
"""

from typing import Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class LookupEntry:
    """Enrichment data for one kiosk, keyed by short kiosk ID in the lookup index."""
    county: Optional[str] = None
    location: Optional[str] = None
    full_id: Optional[str] = None


@dataclass
class DeviceRecord:
    """A kiosk as listed on the kiosks board. The name holds the full kiosk ID."""
    name: str
    county: Optional[str] = None
    location: Optional[str] = None


@dataclass
class DeviceHealthRecord:
    """A kiosk's health column state, used by the health status update."""
    item_id: str
    name: str
    short_device_id: Optional[str]
    current_health_label: str = ""
