"""
Tests for the vocabulary mappers and the kiosk lookup index.
"""

import pytest

from models import (
    DeviceRecord,
    LookupEntry,
    build_device_lookup,
    device_records_from_items,
    get_attribute_value,
    map_boolean_attribute_to_label,
    map_health_status,
    map_ticket_status,
    to_full_device_id,
    to_short_device_id,
    unix_to_calendar_date,
)
from models.config import KioskColumnTitles
import constants


def test_short_device_id_is_last_four_characters():
    assert to_short_device_id("IBF-0136058") == "6058"
    assert to_short_device_id("58") == "58"
    assert to_short_device_id("") is None
    assert to_short_device_id(None) is None


def test_full_device_id_prepends_prefix():
    assert to_full_device_id("6058") == "IBF-0136058"
    assert to_full_device_id("") is None
    assert to_full_device_id(None) is None


@pytest.mark.parametrize("short_id", ["6058", "0001", "ABCD", "9 9x"])
def test_short_id_survives_full_id_round_trip(short_id):
    assert to_short_device_id(to_full_device_id(short_id)) == short_id


def test_full_id_is_not_recovered_from_short_id():
    full_id = "XYZ-9996058"
    assert to_full_device_id(to_short_device_id(full_id)) == "IBF-0136058"
    assert to_full_device_id(to_short_device_id(full_id)) != full_id


def test_unix_to_calendar_date_uses_utc():
    assert unix_to_calendar_date(1751414400) == "2025-07-02"
    # 23:59:59 UTC stays on the same day regardless of local timezone
    assert unix_to_calendar_date(1751414400 + 86399) == "2025-07-02"
    assert unix_to_calendar_date(0) is None
    assert unix_to_calendar_date(None) is None


def test_map_ticket_status():
    mapping = constants.STATUS_MAPPING
    assert map_ticket_status("Closed", mapping) == "Done"
    assert map_ticket_status("Waiting", mapping) == "Stuck"
    assert map_ticket_status("Paused", mapping) == "Working BUT"
    assert map_ticket_status("Brand New Status", mapping) == "Working on it"
    assert map_ticket_status(None, mapping) == "Working on it"


def test_get_attribute_value_treats_missing_and_empty_as_unset():
    attributes = [
        {"attributeId": 10, "value": "Dade"},
        {"attributeId": 80, "value": ""},
        {"attributeId": 81, "value": False},
    ]
    assert get_attribute_value(attributes, 10) == "Dade"
    assert get_attribute_value(attributes, 80) is None
    assert get_attribute_value(attributes, 81) is False
    assert get_attribute_value(attributes, 99) is None
    assert get_attribute_value(attributes, None) is None
    assert get_attribute_value([], 10) is None


@pytest.mark.parametrize("value,expected", [
    (True, "Yes"),
    ("true", "Yes"),
    (" Checked ", "Yes"),
    ("1", "Yes"),
    (1, "Yes"),
    ("YES", "Yes"),
    (False, "No"),
    ("false", "No"),
    (0, "No"),
    ("unchecked", "No"),
    ("no", "No"),
    ("maybe", None),
    ("2", None),
])
def test_map_boolean_attribute_to_label(value, expected):
    attributes = [{"attributeId": 80, "value": value}]
    assert map_boolean_attribute_to_label(attributes, 80) == expected


def test_map_boolean_attribute_without_attribute_or_id():
    assert map_boolean_attribute_to_label([{"attributeId": 80, "value": "true"}], None) is None
    assert map_boolean_attribute_to_label([], 80) is None


def test_map_health_status_defaults_to_unknown():
    mapping = constants.HEALTH_STATUS_MAPPING
    assert map_health_status("Done", mapping) == "HEALTHY"
    assert map_health_status("Stuck", mapping) == "DOWN"
    assert map_health_status("Something else", mapping) == "UNKNOWN"
    assert map_health_status("", mapping) == "UNKNOWN"


def test_build_device_lookup_last_record_wins():
    lookup = build_device_lookup([
        DeviceRecord(name="IBF-0136058", county="Dade", location="HQ"),
        DeviceRecord(name="IBF-0131234", county="Polk", location=None),
        DeviceRecord(name="OTHER-996058", county="Leon", location="Annex"),
        DeviceRecord(name="", county="Nowhere", location="Void"),
    ])

    assert len(lookup) == 2
    assert lookup["6058"] == LookupEntry(county="Leon", location="Annex", full_id="OTHER-996058")
    assert lookup["1234"].county == "Polk"
    assert lookup["1234"].location is None


def test_device_records_resolve_columns_by_title(make_item):
    kiosk = make_item(
        "1", "IBF-0136058",
        {"text_a": "Dade", "text_b": "HQ"},
        titles={"text_a": "County", "text_b": "Location"},
    )
    renamed = make_item(
        "2", "IBF-0131234",
        {"text_a": "Polk", "text_b": "Annex"},
        titles={"text_a": "Region", "text_b": "Site"},
    )

    records = device_records_from_items([kiosk, renamed], KioskColumnTitles())
    assert records[0] == DeviceRecord(name="IBF-0136058", county="Dade", location="HQ")
    assert records[1] == DeviceRecord(name="IBF-0131234", county=None, location=None)

    custom = device_records_from_items([renamed], KioskColumnTitles(county="Region", location="Site"))
    assert custom[0].county == "Polk"
    assert custom[0].location == "Annex"
