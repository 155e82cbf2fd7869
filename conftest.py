"""
Pytest configuration and shared fixtures.

Provides an in-memory Monday.com client, a sync configuration with board IDs
set, and factories for tickets board items, kiosks and NinjaRMM tickets.
"""

from typing import Any, Dict, List, Optional

import pytest

from models import MondayItem, NinjaTicket, build_sync_config

# 2025-07-01 00:00:00 UTC, the default minimum create date
MIN_CREATE_TIMESTAMP = 1751328000
ONE_DAY = 86400

TICKETS_BOARD_ID = "222"
KIOSKS_BOARD_ID = "111"


class FakeMondayClient:
    """Records Monday.com writes instead of sending them."""

    def __init__(self, existing_tags: Optional[Dict[str, int]] = None):
        self.existing_tags = dict(existing_tags or {})
        self.created_items: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.tag_requests: List[str] = []
        self.existing_tag_calls = 0
        self.create_failures: Dict[str, int] = {}
        self.failing_item_ids = set()
        self._next_tag_id = 900

    def get_existing_tags(self, board_id: str, column_id: str) -> Dict[str, int]:
        self.existing_tag_calls += 1
        return dict(self.existing_tags)

    def create_or_get_tag(self, board_id: str, tag_name: str) -> int:
        self.tag_requests.append(tag_name)
        self._next_tag_id += 1
        return self._next_tag_id

    def create_item(self, board_id: str, item_name: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        remaining = self.create_failures.get(item_name, 0)
        if remaining:
            self.create_failures[item_name] = remaining - 1
            raise RuntimeError("Monday.com is unavailable")

        item_id = str(5000 + len(self.created_items))
        self.created_items.append({
            "board_id": board_id,
            "id": item_id,
            "name": item_name,
            "column_values": dict(column_values),
        })
        return {"id": item_id, "name": item_name}

    def update_item_columns(self, board_id: str, item_id: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        if item_id in self.failing_item_ids:
            raise RuntimeError(f"Could not update item {item_id}")
        self.updates.append({"board_id": board_id, "item_id": item_id, "column_values": dict(column_values)})
        return {"id": item_id}


class SleepRecorder(list):
    """Callable list standing in for time.sleep."""

    def __call__(self, seconds: float) -> None:
        self.append(seconds)


@pytest.fixture
def config():
    """Default configuration with both board IDs set."""
    return build_sync_config({}, env={
        "MONDAY_KIOSKS_BOARD_ID": KIOSKS_BOARD_ID,
        "MONDAY_TICKETS_BOARD_ID": TICKETS_BOARD_ID,
    })


@pytest.fixture
def monday_client():
    return FakeMondayClient()


@pytest.fixture
def sleeps():
    """A sleep replacement that records the requested delays."""
    return SleepRecorder()


@pytest.fixture
def make_item():
    """Factory for Monday.com items: make_item(id, name, {column_id: text}, titles={column_id: title})."""
    def _make_item(item_id: str, name: str, texts: Optional[Dict[str, str]] = None,
                   titles: Optional[Dict[str, str]] = None) -> MondayItem:
        titles = titles or {}
        return MondayItem.from_monday_data({
            "id": item_id,
            "name": name,
            "column_values": [
                {"id": column_id, "text": text, "value": None,
                 "column": {"id": column_id, "title": titles.get(column_id, column_id)}}
                for column_id, text in (texts or {}).items()
            ],
        })
    return _make_item


@pytest.fixture
def make_kiosk(make_item):
    """Factory for kiosks board items with County, Location and health columns."""
    def _make_kiosk(item_id: str, name: str, county: Optional[str] = None,
                    location: Optional[str] = None, health: str = "") -> MondayItem:
        return make_item(
            item_id, name,
            {"text_county": county or "", "text_location": location or "", "status": health},
            titles={"text_county": "County", "text_location": "Location", "status": "Health"},
        )
    return _make_kiosk


@pytest.fixture
def make_ticket():
    """Factory for NinjaRMM tickets built from raw API payloads."""
    def _make_ticket(ticket_id: int, device: Optional[str] = None, create_time: int = MIN_CREATE_TIMESTAMP + ONE_DAY,
                     status: Optional[str] = "Closed", tags: Optional[List[str]] = None,
                     attribute_values: Optional[List[Dict[str, Any]]] = None, summary: str = "",
                     location: Optional[str] = None) -> NinjaTicket:
        return NinjaTicket.from_ninja_data({
            "id": ticket_id,
            "summary": summary,
            "device": device,
            "location": location,
            "createTime": create_time,
            "status": {"name": (status or "").upper(), "displayName": status} if status else None,
            "tags": tags or [],
            "attributeValues": attribute_values or [],
        })
    return _make_ticket
