"""
Models package for NinjaRMM to Monday.com integration.

This package contains data model classes for NinjaRMM tickets, Monday.com
items and kiosks, the run configuration, and the vocabulary mappers shared by
the sync, matching and health status components.
"""

from .device import DeviceRecord, DeviceHealthRecord, LookupEntry
from .ninja_ticket import NinjaTicket, TicketStatus, TicketAttributeValue
from .monday_item import MondayItem, ColumnValue
from .config import (
    ConfigError,
    SyncConfig,
    TicketBoardColumns,
    TicketAttributeIds,
    KioskColumnTitles,
    build_sync_config,
    load_sync_config,
)
from .utils import (
    to_short_device_id,
    to_full_device_id,
    unix_to_calendar_date,
    get_attribute_value,
    map_ticket_status,
    map_boolean_attribute_to_label,
    map_health_status,
    device_record_from_item,
    device_records_from_items,
    build_device_lookup,
)


__all__ = [
    'DeviceRecord',
    'DeviceHealthRecord',
    'LookupEntry',
    'NinjaTicket',
    'TicketStatus',
    'TicketAttributeValue',
    'MondayItem',
    'ColumnValue',
    'ConfigError',
    'SyncConfig',
    'TicketBoardColumns',
    'TicketAttributeIds',
    'KioskColumnTitles',
    'build_sync_config',
    'load_sync_config',
    'to_short_device_id',
    'to_full_device_id',
    'unix_to_calendar_date',
    'get_attribute_value',
    'map_ticket_status',
    'map_boolean_attribute_to_label',
    'map_health_status',
    'device_record_from_item',
    'device_records_from_items',
    'build_device_lookup',
]
