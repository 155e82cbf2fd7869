"""
Sync configuration.

The configuration is built once at start-up from constants.py defaults,
config/field-mappings.json overrides and environment variables, and is then
passed explicitly to every component. It is immutable for the duration of a
run.
"""

import json
import os
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional, Tuple

from loguru import logger

import constants


class ConfigError(Exception):
    """Raised when the configuration is unusable for the requested operation."""


@dataclass(frozen=True)
class TicketBoardColumns:
    """Column IDs on the Monday.com tickets board."""
    kiosk: str
    date: str
    county: str
    location: str
    core_issue: str
    status: str
    ninja_ticket_id: str
    service_call: Optional[str] = None


@dataclass(frozen=True)
class TicketAttributeIds:
    """NinjaRMM custom attribute IDs."""
    kiosk_id: Optional[int]
    county: Optional[int]
    service_checkbox: Optional[int] = None


@dataclass(frozen=True)
class KioskColumnTitles:
    """Column titles resolved on the kiosks board for enrichment."""
    county: str = "County"
    location: str = "Location"


@dataclass(frozen=True)
class SyncConfig:
    """Immutable configuration for one sync run."""

    columns: TicketBoardColumns
    attributes: TicketAttributeIds
    kiosk_column_titles: KioskColumnTitles = field(default_factory=KioskColumnTitles)
    status_mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    default_status: str = constants.DEFAULT_STATUS
    health_mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    default_health: str = constants.DEFAULT_HEALTH
    no_ticket_health: str = constants.NO_TICKET_HEALTH
    kiosk_health_column: str = constants.KIOSK_HEALTH_COLUMN
    min_create_date: str = constants.MIN_CREATE_DATE
    ninja_board_ids: Tuple[int, ...] = tuple(constants.NINJA_BOARD_IDS)
    delay_between_items_ms: int = constants.DELAY_BETWEEN_ITEMS_MS
    delay_between_updates_ms: int = constants.DELAY_BETWEEN_UPDATES_MS
    delay_between_health_updates_ms: int = constants.DELAY_BETWEEN_HEALTH_UPDATES_MS
    retry_attempts: int = constants.RETRY_ATTEMPTS
    retry_backoff_ms: int = constants.RETRY_BACKOFF_MS
    test_limit: int = constants.TEST_LIMIT
    attribute_match_threshold: int = constants.ATTRIBUTE_MATCH_THRESHOLD
    summary_review_threshold: int = constants.SUMMARY_MATCH_REVIEW_THRESHOLD
    device_id_prefix: str = constants.DEVICE_ID_PREFIX
    kiosks_board_id: Optional[str] = None
    tickets_board_id: Optional[str] = None

    @property
    def min_create_timestamp(self) -> int:
        """Minimum create date as Unix seconds (UTC midnight)."""
        return parse_min_create_date(self.min_create_date)

    def require_boards(self, tickets: bool = True, kiosks: bool = True) -> None:
        """Raise ConfigError if a board ID needed by the caller is missing."""
        missing = []
        if tickets and not self.tickets_board_id:
            missing.append("MONDAY_TICKETS_BOARD_ID")
        if kiosks and not self.kiosks_board_id:
            missing.append("MONDAY_KIOSKS_BOARD_ID")
        if missing:
            raise ConfigError(f"Missing required board configuration: {', '.join(missing)}")

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary view, suitable for logging or JSON output."""
        data = {}
        for config_field in fields(self):
            value = getattr(self, config_field.name)
            if is_dataclass(value):
                value = asdict(value)
            elif isinstance(value, Mapping):
                value = dict(value)
            elif isinstance(value, tuple):
                value = list(value)
            data[config_field.name] = value
        return data


def parse_min_create_date(date_str: str) -> int:
    """
    Convert a YYYY-MM-DD date to Unix seconds at UTC midnight.

    Args:
        date_str (str): Date string such as "2025-07-01"

    Returns:
        int: Unix timestamp in seconds

    Raises:
        ConfigError: If the date is not in YYYY-MM-DD format
    """
    try:
        parsed = datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid min_create_date '{date_str}': expected YYYY-MM-DD") from e
    return int(parsed.timestamp())


def _column_id(section: Dict[str, Any], key: str, default: Optional[str]) -> Optional[str]:
    """Column entries may be {"id": ..., "title": ...} objects or plain IDs."""
    entry = section.get(key)
    if isinstance(entry, dict):
        return entry.get("id") or default
    return entry or default


def _attribute_id(section: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    entry = section.get(key, default)
    if isinstance(entry, dict):
        entry = entry.get("id")
    if entry is None or entry == "":
        return None
    try:
        return int(entry)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid NinjaRMM attribute ID for '{key}': {entry}") from e


def read_field_mappings(filepath: str) -> Dict[str, Any]:
    """
    Read the field mappings file.

    Args:
        filepath (str): Path to field-mappings.json

    Returns:
        dict: Parsed file contents, or an empty dict if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not valid JSON.
    """
    if not filepath or not os.path.exists(filepath):
        logger.warning("Field mappings file not found at {}. Using built-in defaults.", filepath)
        return {}

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read field mappings file {filepath}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Field mappings file {filepath} must contain a JSON object")

    logger.debug("Loaded field mappings from {}", filepath)
    return data


def build_sync_config(field_mappings: Dict[str, Any], env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """
    Build an immutable SyncConfig from field mappings and environment variables.

    Missing entries fall back to constants.py.

    Args:
        field_mappings (dict): Parsed field-mappings.json contents
        env (Mapping): Environment variables (defaults to os.environ)

    Returns:
        SyncConfig: The run configuration
    """
    if env is None:
        env = os.environ

    columns_section = field_mappings.get("monday_columns", {})
    defaults = constants.MONDAY_COLUMNS
    columns = TicketBoardColumns(
        kiosk=_column_id(columns_section, "kiosk", defaults["kiosk"]),
        date=_column_id(columns_section, "date", defaults["date"]),
        county=_column_id(columns_section, "county", defaults["county"]),
        location=_column_id(columns_section, "location", defaults["location"]),
        core_issue=_column_id(columns_section, "core_issue", defaults["core_issue"]),
        status=_column_id(columns_section, "status", defaults["status"]),
        ninja_ticket_id=_column_id(columns_section, "ninja_ticket_id", defaults["ninja_ticket_id"]),
        service_call=_column_id(columns_section, "service_call", defaults.get("service_call")),
    )

    attributes_section = field_mappings.get("ninja_attributes", {})
    attribute_defaults = constants.NINJA_ATTRIBUTES
    attributes = TicketAttributeIds(
        kiosk_id=_attribute_id(attributes_section, "kiosk_id", attribute_defaults["kiosk_id"]),
        county=_attribute_id(attributes_section, "county", attribute_defaults["county"]),
        service_checkbox=_attribute_id(
            attributes_section, "service_checkbox", attribute_defaults.get("service_checkbox")
        ),
    )

    titles_section = field_mappings.get("kiosk_column_titles", {})
    kiosk_column_titles = KioskColumnTitles(
        county=titles_section.get("county", constants.KIOSK_COLUMN_TITLES["county"]),
        location=titles_section.get("location", constants.KIOSK_COLUMN_TITLES["location"]),
    )

    settings = field_mappings.get("sync_settings", {})
    status_mapping = field_mappings.get("status_mapping", constants.STATUS_MAPPING)
    health_mapping = field_mappings.get("health_status_mapping", constants.HEALTH_STATUS_MAPPING)

    config = SyncConfig(
        columns=columns,
        attributes=attributes,
        kiosk_column_titles=kiosk_column_titles,
        status_mapping=MappingProxyType(dict(status_mapping)),
        default_status=field_mappings.get("default_status", constants.DEFAULT_STATUS),
        health_mapping=MappingProxyType(dict(health_mapping)),
        default_health=field_mappings.get("default_health", constants.DEFAULT_HEALTH),
        no_ticket_health=field_mappings.get("no_ticket_health", constants.NO_TICKET_HEALTH),
        kiosk_health_column=_column_id(field_mappings, "kiosk_health_column", constants.KIOSK_HEALTH_COLUMN),
        min_create_date=settings.get("min_create_date", constants.MIN_CREATE_DATE),
        ninja_board_ids=tuple(int(b) for b in settings.get("ninja_board_ids", constants.NINJA_BOARD_IDS)),
        delay_between_items_ms=int(settings.get("delay_between_items_ms", constants.DELAY_BETWEEN_ITEMS_MS)),
        delay_between_updates_ms=int(settings.get("delay_between_updates_ms", constants.DELAY_BETWEEN_UPDATES_MS)),
        delay_between_health_updates_ms=int(
            settings.get("delay_between_health_updates_ms", constants.DELAY_BETWEEN_HEALTH_UPDATES_MS)
        ),
        retry_attempts=max(1, int(settings.get("retry_attempts", constants.RETRY_ATTEMPTS))),
        retry_backoff_ms=int(settings.get("retry_backoff_ms", constants.RETRY_BACKOFF_MS)),
        test_limit=int(settings.get("test_limit", constants.TEST_LIMIT)),
        device_id_prefix=settings.get("device_id_prefix", constants.DEVICE_ID_PREFIX),
        kiosks_board_id=env.get("MONDAY_KIOSKS_BOARD_ID") or None,
        tickets_board_id=env.get("MONDAY_TICKETS_BOARD_ID") or None,
    )

    # Fail fast on a malformed cutoff rather than mid-run
    parse_min_create_date(config.min_create_date)
    return config


def load_sync_config(filepath: str = constants.FIELD_MAPPINGS_FILE,
                     env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """
    Load the sync configuration from a field mappings file and the environment.

    Args:
        filepath (str): Path to field-mappings.json
        env (Mapping): Environment variables (defaults to os.environ)

    Returns:
        SyncConfig: The run configuration
    """
    return build_sync_config(read_field_mappings(filepath), env)
