"""
Kiosk Health Status

Sets the health column of every kiosk on the Monday.com kiosks board from the
status of its most recent ticket on the tickets board. Kiosks without any
ticket are marked healthy. Only kiosks whose health would change are written.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from models import DeviceHealthRecord, MondayItem, SyncConfig, map_health_status, to_short_device_id


@dataclass
class LatestTicket:
    """Most recent tickets board item seen for a kiosk."""
    item_name: str
    status: str
    date: Optional[str]


@dataclass
class HealthChange:
    """A health column change for one kiosk."""
    item_id: str
    kiosk_id: str
    current_health: str
    new_health: str
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "kiosk_id": self.kiosk_id,
            "current_health": self.current_health,
            "new_health": self.new_health,
            "source": self.source,
        }


@dataclass
class HealthSummary:
    """Counts and changes for one health status run."""
    dry_run: bool = False
    kiosks: int = 0
    kiosks_with_tickets: int = 0
    updated: int = 0
    skipped: int = 0
    planned: int = 0
    error_count: int = 0
    changes: List[HealthChange] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "kiosks": self.kiosks,
            "kiosks_with_tickets": self.kiosks_with_tickets,
            "updated": self.updated,
            "skipped": self.skipped,
            "planned": self.planned,
            "error_count": self.error_count,
            "changes": [change.to_dict() for change in self.changes],
            "errors": list(self.errors),
        }


def build_device_health_index(kiosk_items: Iterable[MondayItem], health_column_id: str) -> Dict[str, DeviceHealthRecord]:
    """
    Index kiosks board items by short kiosk ID with their current health label.

    Args:
        kiosk_items: Kiosks board items
        health_column_id (str): Health status column ID

    Returns:
        dict: Short kiosk ID -> DeviceHealthRecord
    """
    index = {}
    for item in kiosk_items:
        short_id = to_short_device_id(item.name)
        if not short_id:
            continue
        index[short_id] = DeviceHealthRecord(
            item_id=item.id,
            name=item.name,
            short_device_id=short_id,
            current_health_label=item.get_text(health_column_id).strip(),
        )
    return index


def select_most_recent_by_device(ticket_items: Iterable[MondayItem], device_column_id: str,
                                 status_column_id: str, date_column_id: str) -> Dict[str, LatestTicket]:
    """
    Pick the most recent tickets board item per kiosk.

    Dates are YYYY-MM-DD strings, so string comparison is chronological. An
    item without a date never replaces an entry, but the first item seen for
    a kiosk is kept whether or not it has a date. Items without a kiosk ID are
    skipped.

    Returns:
        dict: Short kiosk ID -> LatestTicket, in order of first appearance
    """
    latest = {}
    for item in ticket_items:
        kiosk_id = item.get_text(device_column_id).strip()
        if not kiosk_id:
            logger.warning("Ticket {} has no kiosk ID - skipping", item.name)
            continue

        ticket_date = item.get_text(date_column_id) or None
        existing = latest.get(kiosk_id)

        if existing is None or (ticket_date and (not existing.date or ticket_date > existing.date)):
            latest[kiosk_id] = LatestTicket(
                item_name=item.name,
                status=item.get_text(status_column_id),
                date=ticket_date,
            )

    return latest


def plan_health_changes(kiosk_index: Dict[str, DeviceHealthRecord], latest_tickets: Dict[str, LatestTicket],
                        config: SyncConfig, summary: HealthSummary) -> List[HealthChange]:
    """
    Work out which kiosks need a new health label.

    Kiosks with tickets come first, in ticket order, then kiosks without
    tickets in board order. A kiosk that has tickets but is not on the kiosks
    board is counted as an error.
    """
    changes = []

    for kiosk_id, latest in latest_tickets.items():
        record = kiosk_index.get(kiosk_id)
        if record is None:
            logger.warning("Kiosk {} not found in kiosks board", kiosk_id)
            summary.error_count += 1
            summary.errors.append({"kiosk_id": kiosk_id, "error": "Kiosk not found in kiosks board"})
            continue

        new_health = map_health_status(latest.status, config.health_mapping, config.default_health)
        if record.current_health_label == new_health:
            logger.debug("Kiosk {}: already {} - skipping", kiosk_id, new_health)
            summary.skipped += 1
            continue

        changes.append(HealthChange(
            item_id=record.item_id,
            kiosk_id=kiosk_id,
            current_health=record.current_health_label,
            new_health=new_health,
            source=f"ticket {latest.item_name}, status: {latest.status}",
        ))

    for kiosk_id, record in kiosk_index.items():
        if kiosk_id in latest_tickets:
            continue

        new_health = config.no_ticket_health
        if record.current_health_label == new_health:
            summary.skipped += 1
            continue

        changes.append(HealthChange(
            item_id=record.item_id,
            kiosk_id=kiosk_id,
            current_health=record.current_health_label,
            new_health=new_health,
            source="no tickets",
        ))

    return changes


def update_health_status(monday_client: Any, kiosk_items: List[MondayItem], ticket_items: List[MondayItem],
                         config: SyncConfig, dry_run: bool = False,
                         sleep: Callable[[float], None] = time.sleep) -> HealthSummary:
    """
    Update the health column of every kiosk whose health label changed.

    Args:
        monday_client: MondayClient used to write health labels
        kiosk_items: Kiosks board items
        ticket_items: Tickets board items
        config (SyncConfig): Run configuration
        dry_run (bool): Plan only, no writes
        sleep: Callable used for the delay between updates

    Returns:
        HealthSummary: Counts and the changes made or planned
    """
    summary = HealthSummary(dry_run=dry_run)
    columns = config.columns

    kiosk_index = build_device_health_index(kiosk_items, config.kiosk_health_column)
    summary.kiosks = len(kiosk_index)
    logger.info("Indexed {} kiosks", len(kiosk_index))

    latest_tickets = select_most_recent_by_device(ticket_items, columns.kiosk, columns.status, columns.date)
    summary.kiosks_with_tickets = len(latest_tickets)
    logger.info("Found tickets for {} kiosks", len(latest_tickets))

    for change in plan_health_changes(kiosk_index, latest_tickets, config, summary):
        if dry_run:
            logger.info("[DRY RUN] Would update {}: {} -> {} ({})", change.kiosk_id,
                        change.current_health or "(blank)", change.new_health, change.source)
            summary.changes.append(change)
            summary.planned += 1
            continue

        logger.info("Updating {}: {} -> {} ({})", change.kiosk_id,
                    change.current_health or "(blank)", change.new_health, change.source)
        try:
            monday_client.update_item_columns(
                config.kiosks_board_id, change.item_id,
                {config.kiosk_health_column: {"label": change.new_health}},
            )
        except Exception as e:
            logger.error("Failed to update {}: {}", change.kiosk_id, e)
            summary.error_count += 1
            summary.errors.append({"kiosk_id": change.kiosk_id, "error": str(e)})
            continue

        summary.changes.append(change)
        summary.updated += 1
        sleep(config.delay_between_health_updates_ms / 1000)

    logger.info("Health status update completed. Updated: {}, Skipped: {}, Errors: {}, Planned: {}",
                summary.updated, summary.skipped, summary.error_count, summary.planned)
    return summary
