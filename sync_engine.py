"""
Reconciliation Engine

Decides, for each NinjaRMM ticket, whether the Monday.com tickets board needs
a new item, an update to the linked item, or nothing at all, and issues the
corresponding Monday.com calls. A dry run produces the same decisions as a
list of planned operations without writing anything.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from models import (
    LookupEntry,
    MondayItem,
    NinjaTicket,
    SyncConfig,
    map_boolean_attribute_to_label,
    map_ticket_status,
    to_short_device_id,
    unix_to_calendar_date,
)


class SyncMode(Enum):
    """Which pass a sync run performs."""
    CREATE = "create"
    UPDATE = "update"
    TEST = "test"


class TicketOutcome(Enum):
    """Per-ticket result of a pass."""
    SKIPPED_DUPLICATE = "skipped_duplicate"
    CREATED = "created"
    CREATE_FAILED = "create_failed"
    NOT_FOUND = "not_found"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    UPDATE_FAILED = "update_failed"
    PLANNED = "planned"


def filter_by_min_date(tickets: Iterable[NinjaTicket], min_timestamp: int) -> List[NinjaTicket]:
    """Tickets created on or after min_timestamp (Unix seconds). Tickets without a create time are dropped."""
    return [
        ticket for ticket in tickets
        if ticket.create_time is not None and ticket.create_time >= min_timestamp
    ]


def build_linkage_index(items: Iterable[MondayItem], linkage_column_id: str) -> Dict[str, MondayItem]:
    """
    Map NinjaRMM ticket ID -> linked Monday.com item.

    Items with an empty ticket ID column are unlinked and left out. The key
    set doubles as the duplicate index for the create pass.
    """
    index = {}
    for item in items:
        ticket_id = item.get_linkage_key(linkage_column_id)
        if ticket_id:
            index[ticket_id] = item
    return index


def next_item_number(items: Iterable[MondayItem]) -> int:
    """One more than the highest numeric item name on the board (1 for an empty board)."""
    max_number = 0
    for item in items:
        number = item.item_number
        if number is not None and number > max_number:
            max_number = number
    return max_number + 1


@dataclass
class DerivedFields:
    """Monday.com field values derived from one NinjaRMM ticket."""
    short_device_id: Optional[str]
    date: Optional[str]
    status: str
    county: Optional[str]
    location: Optional[str]
    tags: List[str] = field(default_factory=list)
    service_call: Optional[str] = None


def derive_ticket_fields(ticket: NinjaTicket, lookup: Dict[str, LookupEntry], config: SyncConfig) -> DerivedFields:
    """
    Derive the tickets board field values for a NinjaRMM ticket.

    County starts from the ticket's county attribute and location from the
    ticket's location field. When the kiosk is on the kiosks board, its county
    and location replace them wherever the kiosk has a value.

    Args:
        ticket (NinjaTicket): Source ticket
        lookup (dict): Kiosk lookup index keyed by short kiosk ID
        config (SyncConfig): Run configuration

    Returns:
        DerivedFields: Values to write to the tickets board
    """
    short_device_id = to_short_device_id(ticket.device)
    county = ticket.get_attribute_value(config.attributes.county)
    location = ticket.location or None

    if short_device_id:
        kiosk_data = lookup.get(short_device_id)
        if kiosk_data:
            if kiosk_data.county:
                county = kiosk_data.county
            if kiosk_data.location:
                location = kiosk_data.location
        else:
            logger.warning("Kiosk {} not found in kiosks board for ticket #{}", short_device_id, ticket.id)

    return DerivedFields(
        short_device_id=short_device_id,
        date=unix_to_calendar_date(ticket.create_time),
        status=map_ticket_status(ticket.get_status_name(), config.status_mapping, config.default_status),
        county=str(county) if county is not None else None,
        location=location,
        tags=list(ticket.tags or []),
        service_call=map_boolean_attribute_to_label(ticket.attribute_values, config.attributes.service_checkbox),
    )


class TagResolver:
    """
    Resolves tag names to Monday.com tag IDs for one run.

    The name -> ID cache is seeded from the tags already defined on the core
    issue column; unknown names go through create_or_get_tag once each.
    """

    def __init__(self, monday_client: Any, board_id: str, column_id: str):
        self.monday_client = monday_client
        self.board_id = board_id
        self.column_id = column_id
        self._cache: Optional[Dict[str, int]] = None

    def load(self) -> Dict[str, int]:
        if self._cache is None:
            self._cache = dict(self.monday_client.get_existing_tags(self.board_id, self.column_id))
            logger.info("Found {} existing tags on the core issue column", len(self._cache))
        return self._cache

    def resolve(self, tag_names: Iterable[str]) -> List[int]:
        """Return tag IDs for the given names, creating missing tags."""
        cache = self.load()
        tag_ids = []
        for tag_name in tag_names:
            if tag_name not in cache:
                cache[tag_name] = self.monday_client.create_or_get_tag(self.board_id, tag_name)
                logger.debug("Resolved tag '{}' to ID {}", tag_name, cache[tag_name])
            tag_ids.append(cache[tag_name])
        return tag_ids


@dataclass
class PlannedOperation:
    """One Monday.com write, either issued or (in a dry run) only planned."""
    action: str
    ticket_id: int
    item_name: str
    column_values: Dict[str, Any]
    item_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "ticket_id": self.ticket_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "column_values": self.column_values,
            "tags": list(self.tags),
        }


@dataclass
class SyncSummary:
    """Counts and per-ticket errors for one pass."""
    mode: SyncMode
    dry_run: bool = False
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped_duplicate: int = 0
    not_found: int = 0
    failed: int = 0
    unchanged: int = 0
    planned: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    operations: List[PlannedOperation] = field(default_factory=list)
    outcomes: Dict[int, TicketOutcome] = field(default_factory=dict)

    def record(self, ticket_id: int, outcome: TicketOutcome) -> None:
        self.outcomes[ticket_id] = outcome
        if outcome is TicketOutcome.CREATED:
            self.created += 1
        elif outcome is TicketOutcome.UPDATED:
            self.updated += 1
        elif outcome is TicketOutcome.SKIPPED_DUPLICATE:
            self.skipped_duplicate += 1
        elif outcome is TicketOutcome.NOT_FOUND:
            self.not_found += 1
        elif outcome is TicketOutcome.UNCHANGED:
            self.unchanged += 1
        elif outcome is TicketOutcome.PLANNED:
            self.planned += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "skipped_duplicate": self.skipped_duplicate,
            "not_found": self.not_found,
            "failed": self.failed,
            "unchanged": self.unchanged,
            "planned": self.planned,
            "errors": list(self.errors),
            "operations": [operation.to_dict() for operation in self.operations],
        }


class TicketReconciler:
    """
    Runs the create, update and test passes against the tickets board.

    Args:
        monday_client: MondayClient (or compatible) used for reads and writes
        config (SyncConfig): Run configuration
        lookup (dict): Kiosk lookup index
        sleep: Callable used for rate-limit delays and retry backoff
        tag_resolver (TagResolver): Optional pre-built tag resolver
    """

    def __init__(self, monday_client: Any, config: SyncConfig, lookup: Dict[str, LookupEntry],
                 sleep: Callable[[float], None] = time.sleep, tag_resolver: Optional[TagResolver] = None):
        self.monday_client = monday_client
        self.config = config
        self.lookup = lookup
        self.sleep = sleep
        self.board_id = config.tickets_board_id
        self.tag_resolver = tag_resolver or TagResolver(monday_client, self.board_id, config.columns.core_issue)

    def run(self, tickets: Iterable[NinjaTicket], items: List[MondayItem], mode: SyncMode,
            dry_run: bool = False, limit: Optional[int] = None) -> SyncSummary:
        """
        Run one pass over the tickets created on or after the minimum create date.

        Args:
            tickets: NinjaRMM tickets in fetch order
            items: Current tickets board items
            mode (SyncMode): CREATE, UPDATE or TEST (CREATE limited to a few tickets)
            dry_run (bool): Plan only, no writes
            limit (int): Ticket limit for TEST mode (defaults to config.test_limit)

        Returns:
            SyncSummary: Counts, errors and the operations issued or planned
        """
        eligible = filter_by_min_date(tickets, self.config.min_create_timestamp)
        logger.info("{} tickets created on or after {}", len(eligible), self.config.min_create_date)

        if mode is SyncMode.UPDATE:
            return self.update_pass(eligible, items, dry_run=dry_run)

        if mode is SyncMode.TEST:
            return self.create_pass(eligible, items, dry_run=dry_run,
                                    limit=limit if limit is not None else self.config.test_limit)

        return self.create_pass(eligible, items, dry_run=dry_run)

    def _create_column_values(self, ticket: NinjaTicket, derived: DerivedFields) -> Dict[str, Any]:
        columns = self.config.columns
        column_values = {
            columns.ninja_ticket_id: str(ticket.id),
            columns.kiosk: derived.short_device_id or "",
            columns.date: derived.date or "",
            columns.county: derived.county or "",
            columns.location: derived.location or "",
            columns.status: derived.status,
        }
        if columns.service_call and derived.service_call is not None:
            column_values[columns.service_call] = {"labels": [derived.service_call]}
        return column_values

    def _create_with_retry(self, item_name: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        """Create an item, retrying with linear backoff. Raises the last error when attempts run out."""
        attempts = self.config.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self.monday_client.create_item(self.board_id, item_name, column_values)
            except Exception as e:
                if attempt == attempts:
                    raise
                logger.warning("Retry {}/{} for item {}: {}", attempt, attempts, item_name, e)
                self.sleep(attempt * self.config.retry_backoff_ms / 1000)

    def create_pass(self, tickets: List[NinjaTicket], items: List[MondayItem],
                    dry_run: bool = False, limit: Optional[int] = None) -> SyncSummary:
        """
        Create tickets board items for tickets that are not linked yet.

        Tickets whose ID is already on the board are skipped. New items get
        sequential names starting after the highest existing item number, and
        the number only advances after a successful create. A ticket that
        still fails after all retries is recorded and the pass moves on.
        """
        summary = SyncSummary(mode=SyncMode.TEST if limit is not None else SyncMode.CREATE, dry_run=dry_run)
        summary.total = len(tickets)

        existing_ticket_ids = set(build_linkage_index(items, self.config.columns.ninja_ticket_id))
        logger.info("Found {} items already linked to NinjaRMM tickets", len(existing_ticket_ids))

        item_number = next_item_number(items)
        logger.info("Starting from item number: {}", item_number)

        to_create = []
        for ticket in tickets:
            if str(ticket.id) in existing_ticket_ids:
                logger.debug("Ticket #{} already exists in Monday.com - skipping", ticket.id)
                summary.record(ticket.id, TicketOutcome.SKIPPED_DUPLICATE)
                continue
            to_create.append(ticket)

        if limit is not None and len(to_create) > limit:
            logger.info("Test mode: limiting to the first {} of {} new tickets", limit, len(to_create))
            to_create = to_create[:limit]

        logger.info("Prepared {} items to create", len(to_create))

        for position, ticket in enumerate(to_create, start=1):
            item_name = str(item_number)
            try:
                derived = derive_ticket_fields(ticket, self.lookup, self.config)
                column_values = self._create_column_values(ticket, derived)

                if dry_run:
                    summary.operations.append(PlannedOperation(
                        action="create", ticket_id=ticket.id, item_name=item_name,
                        column_values=column_values, tags=derived.tags,
                    ))
                    summary.record(ticket.id, TicketOutcome.PLANNED)
                    logger.info("[DRY RUN] Would create item #{} for ticket #{}", item_name, ticket.id)
                    item_number += 1
                    continue

                if derived.tags:
                    column_values[self.config.columns.core_issue] = {
                        "tag_ids": self.tag_resolver.resolve(derived.tags)
                    }

                logger.info("Creating {}/{}: item #{} (NinjaRMM ticket #{})",
                            position, len(to_create), item_name, ticket.id)
                result = self._create_with_retry(item_name, column_values)
            except Exception as e:
                logger.error("Failed to create ticket #{}: {}", ticket.id, e)
                summary.record(ticket.id, TicketOutcome.CREATE_FAILED)
                summary.errors.append({"ticket_id": ticket.id, "action": "create", "error": str(e)})
                continue

            logger.info("Created Monday.com item '{}' (ID: {})", item_name, result.get("id"))
            summary.operations.append(PlannedOperation(
                action="create", ticket_id=ticket.id, item_name=item_name,
                column_values=column_values, item_id=str(result.get("id")), tags=derived.tags,
            ))
            summary.record(ticket.id, TicketOutcome.CREATED)
            item_number += 1
            self.sleep(self.config.delay_between_items_ms / 1000)

        logger.info("Create pass completed. Created: {}, Skipped (duplicate): {}, Failed: {}, Planned: {}",
                    summary.created, summary.skipped_duplicate, summary.failed, summary.planned)
        return summary

    def build_update_payload(self, derived: DerivedFields, item: MondayItem) -> Dict[str, Any]:
        """
        Compare derived values with the item's current text and return the changed columns.

        Tags are not part of the comparison.
        """
        columns = self.config.columns
        updates = {}

        text_fields = (
            (columns.kiosk, derived.short_device_id),
            (columns.date, derived.date),
            (columns.county, derived.county),
            (columns.location, derived.location),
        )
        for column_id, value in text_fields:
            if (value or "") != item.get_text(column_id):
                updates[column_id] = value or ""

        if derived.status != item.get_text(columns.status):
            updates[columns.status] = derived.status

        if columns.service_call and derived.service_call is not None:
            if derived.service_call != item.get_text(columns.service_call):
                updates[columns.service_call] = {"labels": [derived.service_call]}

        return updates

    def update_pass(self, tickets: List[NinjaTicket], items: List[MondayItem],
                    dry_run: bool = False) -> SyncSummary:
        """
        Bring linked tickets board items in line with their NinjaRMM tickets.

        Only changed columns are sent, in one call per item. Tickets with tags
        always get their tags written, even when nothing else changed. Update
        failures are recorded and not retried.
        """
        summary = SyncSummary(mode=SyncMode.UPDATE, dry_run=dry_run)
        summary.total = len(tickets)

        linked_items = build_linkage_index(items, self.config.columns.ninja_ticket_id)
        logger.info("Mapped {} Monday.com items by NinjaRMM ticket ID", len(linked_items))

        for ticket in tickets:
            item = linked_items.get(str(ticket.id))
            if item is None:
                logger.warning("Ticket #{} not found in Monday.com (use sync to create it)", ticket.id)
                summary.record(ticket.id, TicketOutcome.NOT_FOUND)
                continue

            try:
                derived = derive_ticket_fields(ticket, self.lookup, self.config)
                updates = self.build_update_payload(derived, item)

                if not updates and not derived.tags:
                    summary.record(ticket.id, TicketOutcome.UNCHANGED)
                    continue

                if dry_run:
                    summary.operations.append(PlannedOperation(
                        action="update", ticket_id=ticket.id, item_name=item.name,
                        column_values=updates, item_id=item.id, tags=derived.tags,
                    ))
                    summary.record(ticket.id, TicketOutcome.PLANNED)
                    logger.info("[DRY RUN] Would update item '{}' (ticket #{}): {}",
                                item.name, ticket.id, ", ".join(updates) or "tags")
                    continue

                if derived.tags:
                    updates[self.config.columns.core_issue] = {"tag_ids": self.tag_resolver.resolve(derived.tags)}

                logger.info("Updating Monday.com item '{}' (ticket #{})", item.name, ticket.id)
                self.monday_client.update_item_columns(self.board_id, item.id, updates)
            except Exception as e:
                logger.error("Failed to update ticket #{}: {}", ticket.id, e)
                summary.record(ticket.id, TicketOutcome.UPDATE_FAILED)
                summary.errors.append({"ticket_id": ticket.id, "action": "update", "error": str(e)})
                continue

            summary.operations.append(PlannedOperation(
                action="update", ticket_id=ticket.id, item_name=item.name,
                column_values=updates, item_id=item.id, tags=derived.tags,
            ))
            summary.record(ticket.id, TicketOutcome.UPDATED)
            self.sleep(self.config.delay_between_updates_ms / 1000)

        logger.info("Update pass completed. Updated: {}, Unchanged: {}, Not found: {}, Failed: {}, Planned: {}",
                    summary.updated, summary.unchanged, summary.not_found, summary.failed, summary.planned)
        return summary
