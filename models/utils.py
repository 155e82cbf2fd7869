"""
Shared utility functions for NinjaRMM to Monday.com integration.

Vocabulary mapping between the two systems and the kiosk lookup index.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger

import constants
from .device import DeviceRecord, LookupEntry

TRUTHY_TOKENS = {"true", "1", "yes", "checked"}
FALSY_TOKENS = {"false", "0", "no", "unchecked"}


def to_short_device_id(full_id: Optional[str]) -> Optional[str]:
    """
    Convert a full kiosk ID to its short form.

    Args:
        full_id (str): Full ID like "IBF-0136058"

    Returns:
        str: Short ID like "6058", or None for empty input
    """
    if not full_id:
        return None
    return full_id[-constants.SHORT_DEVICE_ID_LENGTH:]


def to_full_device_id(short_id: Optional[str], prefix: str = constants.DEVICE_ID_PREFIX) -> Optional[str]:
    """
    Convert a short kiosk ID to the full form by prepending the fixed prefix.

    This is not an inverse of to_short_device_id: anything before the last
    four characters of a full ID is lost and replaced with the prefix.

    Args:
        short_id (str): Short ID like "6058"
        prefix (str): Fixed kiosk ID prefix

    Returns:
        str: Full ID like "IBF-0136058", or None for empty input
    """
    if not short_id:
        return None
    return f"{prefix}{short_id}"


def unix_to_calendar_date(unix_seconds: Optional[float]) -> Optional[str]:
    """
    Convert a Unix timestamp in seconds to a UTC YYYY-MM-DD string.

    Args:
        unix_seconds: Seconds since the epoch

    Returns:
        str: Calendar date, or None for falsy input
    """
    if not unix_seconds:
        return None
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).strftime("%Y-%m-%d")


def get_attribute_value(attribute_values: Iterable[Any], attribute_id: Optional[int]) -> Any:
    """
    Get a NinjaRMM custom attribute value by attribute ID.

    Accepts TicketAttributeValue objects or raw {"attributeId", "value"} dicts.

    Returns:
        The attribute value, or None if the attribute is not set.
    """
    if attribute_id is None or not attribute_values:
        return None

    for attribute in attribute_values:
        if isinstance(attribute, dict):
            current_id, value = attribute.get("attributeId"), attribute.get("value")
        else:
            current_id, value = attribute.attribute_id, attribute.value
        if current_id == attribute_id:
            if value is None or value == "":
                return None
            return value

    return None


def map_ticket_status(ninja_status: Optional[str], status_mapping: Mapping[str, str],
                      default: str = constants.DEFAULT_STATUS) -> str:
    """
    Map a NinjaRMM status to a Monday.com status label.

    Args:
        ninja_status (str): NinjaRMM status display name
        status_mapping (Mapping): NinjaRMM status -> Monday.com label
        default (str): Label used when the status is not mapped

    Returns:
        str: Monday.com status label
    """
    mapped = status_mapping.get(ninja_status) if ninja_status is not None else None
    if mapped:
        return mapped

    logger.debug("NinjaRMM status '{}' not in status mapping. Using '{}'.", ninja_status, default)
    return default


def map_boolean_attribute_to_label(attribute_values: Iterable[Any], attribute_id: Optional[int]) -> Optional[str]:
    """
    Map a checkbox-style attribute to a Monday.com dropdown label.

    Returns:
        "Yes" or "No", or None if the attribute is not configured, not set, or
        holds a value that is neither truthy nor falsy.
    """
    if not attribute_id:
        return None

    value = get_attribute_value(attribute_values, attribute_id)
    if value is None:
        return None

    normalized_value = str(value).lower().strip()
    if normalized_value in TRUTHY_TOKENS:
        return "Yes"
    if normalized_value in FALSY_TOKENS:
        return "No"

    return None


def map_health_status(ticket_status: str, health_mapping: Mapping[str, str],
                      default: str = constants.DEFAULT_HEALTH) -> str:
    """
    Map a Monday.com ticket status label to a kiosk health label.

    Args:
        ticket_status (str): Status text from the tickets board
        health_mapping (Mapping): Ticket status -> health label
        default (str): Label used for unknown statuses

    Returns:
        str: Health label
    """
    mapped = health_mapping.get(ticket_status)
    if not mapped:
        logger.warning("Unknown ticket status: '{}' - using {}", ticket_status, default)
        return default
    return mapped


def device_record_from_item(item: Any, county_title: str = "County", location_title: str = "Location") -> DeviceRecord:
    """
    Build a DeviceRecord from a kiosks board MondayItem.

    County and location are found by column title, not column ID, so renaming
    either column on the board breaks enrichment. The titles are configurable.
    """
    return DeviceRecord(
        name=item.name,
        county=item.get_text_by_title(county_title) or None,
        location=item.get_text_by_title(location_title) or None,
    )


def device_records_from_items(items: Iterable[Any], column_titles: Any) -> List[DeviceRecord]:
    """Convert kiosks board items to DeviceRecords using the configured column titles."""
    return [
        device_record_from_item(item, column_titles.county, column_titles.location)
        for item in items
    ]


def build_device_lookup(devices: Iterable[DeviceRecord]) -> Dict[str, LookupEntry]:
    """
    Build a lookup map from kiosk records.

    Args:
        devices: DeviceRecord instances from the kiosks board

    Returns:
        dict: Short kiosk ID -> LookupEntry(county, location, full_id).
              A later kiosk with the same short ID replaces an earlier one.
    """
    lookup = {}

    for device in devices:
        short_id = to_short_device_id(device.name)
        if not short_id:
            logger.debug("Skipping kiosk with empty name")
            continue

        lookup[short_id] = LookupEntry(
            county=device.county,
            location=device.location,
            full_id=device.name,
        )

    logger.debug("Built kiosk lookup with {} entries", len(lookup))
    return lookup
