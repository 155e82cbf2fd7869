"""
Tests for building the sync configuration.
"""

import json

import pytest

from models import ConfigError, build_sync_config, load_sync_config
from models.config import parse_min_create_date


def test_defaults_without_field_mappings():
    config = build_sync_config({}, env={})

    assert config.columns.ninja_ticket_id == "text_mkxn628j"
    assert config.columns.kiosk == "text_mkx0wqmq"
    assert config.attributes.county == 10
    assert config.status_mapping["Closed"] == "Done"
    assert config.default_status == "Working on it"
    assert config.default_health == "UNKNOWN"
    assert config.no_ticket_health == "HEALTHY"
    assert config.min_create_date == "2025-07-01"
    assert config.ninja_board_ids == (2,)
    assert config.retry_attempts == 3
    assert config.kiosks_board_id is None
    assert config.tickets_board_id is None


def test_field_mappings_override_defaults():
    config = build_sync_config({
        "monday_columns": {
            "ninja_ticket_id": {"id": "text_linkage", "title": "Ninja Ticket ID"},
            "status": "status_2",
        },
        "ninja_attributes": {"county": {"id": "12"}, "service_checkbox": None},
        "status_mapping": {"Open": "Stuck"},
        "health_status_mapping": {"Stuck": "DOWN"},
        "kiosk_column_titles": {"county": "Region"},
        "sync_settings": {
            "min_create_date": "2025-08-01",
            "ninja_board_ids": ["2", 5],
            "delay_between_items_ms": 0,
        },
    }, env={"MONDAY_TICKETS_BOARD_ID": "222", "MONDAY_KIOSKS_BOARD_ID": "111"})

    assert config.columns.ninja_ticket_id == "text_linkage"
    assert config.columns.status == "status_2"
    assert config.columns.date == "date4"
    assert config.attributes.county == 12
    assert config.attributes.service_checkbox is None
    assert dict(config.status_mapping) == {"Open": "Stuck"}
    assert dict(config.health_mapping) == {"Stuck": "DOWN"}
    assert config.kiosk_column_titles.county == "Region"
    assert config.kiosk_column_titles.location == "Location"
    assert config.min_create_timestamp == 1754006400
    assert config.ninja_board_ids == (2, 5)
    assert config.delay_between_items_ms == 0
    assert config.tickets_board_id == "222"
    assert config.kiosks_board_id == "111"


def test_config_is_immutable(config):
    with pytest.raises(AttributeError):
        config.min_create_date = "2020-01-01"
    with pytest.raises(TypeError):
        config.status_mapping["Closed"] = "Stuck"


def test_invalid_min_create_date_fails_fast():
    with pytest.raises(ConfigError):
        build_sync_config({"sync_settings": {"min_create_date": "07/01/2025"}}, env={})


def test_parse_min_create_date_is_utc_midnight():
    assert parse_min_create_date("2025-07-01") == 1751328000


def test_require_boards_reports_missing_ids():
    config = build_sync_config({}, env={"MONDAY_TICKETS_BOARD_ID": "222"})

    config.require_boards(tickets=True, kiosks=False)
    with pytest.raises(ConfigError, match="MONDAY_KIOSKS_BOARD_ID"):
        config.require_boards()


def test_load_sync_config_reads_file(tmp_path):
    path = tmp_path / "field-mappings.json"
    path.write_text(json.dumps({"sync_settings": {"test_limit": 7}}))

    config = load_sync_config(str(path), env={})
    assert config.test_limit == 7


def test_load_sync_config_missing_file_uses_defaults(tmp_path):
    config = load_sync_config(str(tmp_path / "missing.json"), env={})
    assert config.test_limit == 3


def test_load_sync_config_rejects_bad_json(tmp_path):
    path = tmp_path / "field-mappings.json"
    path.write_text("{not json")

    with pytest.raises(ConfigError):
        load_sync_config(str(path), env={})


def test_to_dict_is_json_serializable(config):
    data = json.loads(json.dumps(config.to_dict()))
    assert data["columns"]["status"] == "status"
    assert data["status_mapping"]["Closed"] == "Done"
    assert data["ninja_board_ids"] == [2]
