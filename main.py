"""
NinjaRMM to Monday.com Integration Script

This module syncs NinjaRMM tickets into the Monday.com tickets board, keeps the
linked items up to date, and propagates kiosk health status to the kiosks
board. It handles configuration, logging, and report files for each run.
"""

import sys
import os
import json
import glob
import argparse
from datetime import datetime
from typing import Dict, List, Optional, Any

import dotenv
from loguru import logger

import constants
from http_utils import APIError, configure_ssl_warnings
from ninja_client import NinjaClient
from monday_client import MondayClient
from models import (
    ConfigError,
    SyncConfig,
    LookupEntry,
    build_device_lookup,
    device_records_from_items,
    load_sync_config,
)
from sync_engine import SyncMode, TicketReconciler, filter_by_min_date
from matching import MatchPolicy, find_unlinked_items, run_backfill
from health_status import update_health_status


def configure_logging(level: str = constants.LOGGING_LEVEL) -> None:
    """Configure loguru logging with both file and console output."""
    logger.remove()  # Remove default handler
    # File Logging
    logger.add(
        constants.LOG_FILE,
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} - {level} - {message}",
        rotation="10 MB",
        retention="30 days"
    )
    # Console Logging
    logger.add(
        sys.stderr,
        level=level,
        colorize=True
    )


def load_credentials() -> Dict[str, Optional[str]]:
    """
    Read API credentials from the environment.

    Returns:
        dict: Credential name -> value (None when unset)
    """
    credentials = {
        "NINJA_CLIENT_ID": os.getenv("NINJA_CLIENT_ID"),
        "NINJA_CLIENT_SECRET": os.getenv("NINJA_CLIENT_SECRET"),
        "MONDAY_API_TOKEN": os.getenv("MONDAY_API_TOKEN"),
    }

    # Do NOT log secrets. Log only presence to avoid leaking credentials.
    for name, value in credentials.items():
        if value:
            logger.debug("{} is set.", name)
        else:
            logger.warning("{} is not set.", name)

    return credentials


def save_json_report(data: Dict[str, Any], prefix: str) -> str:
    """
    Save a run report to a timestamped JSON file in the data directory.

    Args:
        data (dict): Report contents
        prefix (str): File name prefix, e.g. "sync_create"

    Returns:
        str: Path of the written file
    """
    os.makedirs(constants.DATA_DIR, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = os.path.join(constants.DATA_DIR, f"{prefix}_{timestamp}.json")

    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.info("Saved report to {}", filepath)
    return filepath


def cleanup_old_json_files(pattern: str, keep_count: int = constants.REPORTS_TO_KEEP,
                           data_dir: str = constants.DATA_DIR) -> None:
    """
    Remove old JSON files matching a pattern, keeping only the most recent ones.

    Args:
        pattern (str): File pattern to match (e.g., "sync_create_*.json")
        keep_count (int): Number of most recent files to keep (default: 10)
        data_dir (str): Directory holding the reports
    """
    try:
        files = glob.glob(os.path.join(data_dir, pattern))

        if len(files) <= keep_count:
            logger.debug("Found {} files matching '{}', no cleanup needed (keeping {})", len(files), pattern, keep_count)
            return

        # Sort files by modification time (newest first)
        files.sort(key=os.path.getmtime, reverse=True)
        files_to_delete = files[keep_count:]

        logger.info("Cleaning up old files for pattern '{}': keeping {}, deleting {}", pattern, keep_count, len(files_to_delete))

        for file_path in files_to_delete:
            try:
                os.remove(file_path)
                logger.debug("Deleted old file: {}", file_path)
            except OSError as e:
                logger.warning("Failed to delete file {}: {}", file_path, e)

    except OSError as e:
        logger.error("Exception occurred during cleanup for pattern '{}': {}", pattern, e)


def write_report(data: Dict[str, Any], prefix: str) -> str:
    """Save a report and prune older reports with the same prefix."""
    filepath = save_json_report(data, prefix)
    cleanup_old_json_files(f"{prefix}_*.json")
    return filepath


def create_ninja_client(credentials: Dict[str, Optional[str]]) -> NinjaClient:
    if not credentials.get("NINJA_CLIENT_ID") or not credentials.get("NINJA_CLIENT_SECRET"):
        raise ConfigError("NINJA_CLIENT_ID and NINJA_CLIENT_SECRET must be set")
    return NinjaClient(
        credentials["NINJA_CLIENT_ID"],
        credentials["NINJA_CLIENT_SECRET"],
        base_url=os.getenv("NINJA_BASE_URL") or constants.NINJA_BASE_URL,
    )


def create_monday_client(credentials: Dict[str, Optional[str]]) -> MondayClient:
    if not credentials.get("MONDAY_API_TOKEN"):
        raise ConfigError("MONDAY_API_TOKEN must be set")
    return MondayClient(credentials["MONDAY_API_TOKEN"])


def fetch_kiosk_lookup(monday_client: MondayClient, config: SyncConfig) -> Dict[str, LookupEntry]:
    """Fetch the kiosks board and build the kiosk lookup index."""
    logger.info("Fetching kiosks from Monday.com board {}...", config.kiosks_board_id)
    kiosks = monday_client.get_board_items(config.kiosks_board_id)
    lookup = build_device_lookup(device_records_from_items(kiosks, config.kiosk_column_titles))
    logger.info("Built kiosk lookup with {} kiosks", len(lookup))
    return lookup


def run_sync(config: SyncConfig, credentials: Dict[str, Optional[str]], mode: SyncMode,
             dry_run: bool = False, limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Run a create, update or test pass and save its report.

    Fetch failures propagate and end the run without a summary.
    """
    config.require_boards(tickets=True, kiosks=True)
    ninja_client = create_ninja_client(credentials)
    monday_client = create_monday_client(credentials)

    lookup = fetch_kiosk_lookup(monday_client, config)

    logger.info("Fetching items from Monday.com tickets board {}...", config.tickets_board_id)
    items = monday_client.get_board_items(config.tickets_board_id)
    logger.info("Fetched {} items from Monday.com", len(items))

    logger.info("Fetching tickets from NinjaRMM boards {}...", list(config.ninja_board_ids))
    tickets = ninja_client.get_all_tickets(config.ninja_board_ids)

    reconciler = TicketReconciler(monday_client, config, lookup)
    summary = reconciler.run(tickets, items, mode, dry_run=dry_run, limit=limit)

    report = summary.to_dict()
    prefix = f"sync_{mode.value}_dry_run" if dry_run else f"sync_{mode.value}"
    write_report(report, prefix)

    logger.info("Sync summary: total {}, created {}, updated {}, duplicates {}, not found {}, unchanged {}, failed {}, planned {}",
                summary.total, summary.created, summary.updated, summary.skipped_duplicate,
                summary.not_found, summary.unchanged, summary.failed, summary.planned)
    return report


def run_health(config: SyncConfig, credentials: Dict[str, Optional[str]], dry_run: bool = False) -> Dict[str, Any]:
    """Update kiosk health status from the tickets board and save the report."""
    config.require_boards(tickets=True, kiosks=True)
    monday_client = create_monday_client(credentials)

    logger.info("Fetching kiosks from Monday.com board {}...", config.kiosks_board_id)
    kiosk_items = monday_client.get_board_items(config.kiosks_board_id)
    logger.info("Fetching tickets from Monday.com board {}...", config.tickets_board_id)
    ticket_items = monday_client.get_board_items(config.tickets_board_id)

    summary = update_health_status(monday_client, kiosk_items, ticket_items, config, dry_run=dry_run)

    report = summary.to_dict()
    write_report(report, "health_dry_run" if dry_run else "health")
    return report


def run_backfill_command(config: SyncConfig, credentials: Dict[str, Optional[str]],
                         policy: MatchPolicy, dry_run: bool = False) -> Dict[str, Any]:
    """Match unlinked tickets board items to NinjaRMM tickets and save the report."""
    config.require_boards(tickets=True, kiosks=policy is MatchPolicy.ATTRIBUTES)
    ninja_client = create_ninja_client(credentials)
    monday_client = create_monday_client(credentials)

    logger.info("Fetching items from Monday.com tickets board {}...", config.tickets_board_id)
    items = monday_client.get_board_items(config.tickets_board_id)

    tickets = ninja_client.get_all_tickets(config.ninja_board_ids)
    lookup = fetch_kiosk_lookup(monday_client, config) if policy is MatchPolicy.ATTRIBUTES else {}

    report = run_backfill(monday_client, items, tickets, lookup, config, policy, dry_run=dry_run)

    logger.info("Backfill summary: considered {}, applied {}, planned {}, low confidence {}, for review {}, no match {}, failed {}",
                report.items_considered, len(report.applied), len(report.planned), len(report.low_confidence),
                len(report.review), len(report.no_match), len(report.failed))

    data = report.to_dict()
    write_report(data, f"backfill_{policy.value}")
    return data


def list_synced_tickets(config: SyncConfig, credentials: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
    """List NinjaRMM tickets in sync scope, newest ticket ID first."""
    ninja_client = create_ninja_client(credentials)
    tickets = filter_by_min_date(ninja_client.get_all_tickets(config.ninja_board_ids), config.min_create_timestamp)
    tickets.sort(key=lambda ticket: ticket.id, reverse=True)

    logger.info("Found {} tickets created on or after {}", len(tickets), config.min_create_date)
    logger.info("{:<9} | {:<20} | {}", "Ticket #", "Device/Kiosk", "Summary")
    for ticket in tickets:
        logger.info("{:<9} | {:<20} | {}", ticket.id, ticket.device or "N/A", (ticket.summary or "N/A")[:40])

    return [ticket.to_dict() for ticket in tickets]


def list_unlinked_items(config: SyncConfig, credentials: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
    """List tickets board items that have no NinjaRMM ticket ID."""
    config.require_boards(tickets=True, kiosks=False)
    monday_client = create_monday_client(credentials)
    items = monday_client.get_board_items(config.tickets_board_id)
    unlinked = find_unlinked_items(items, config.columns.ninja_ticket_id)

    logger.info("{} of {} items have no NinjaRMM ticket ID", len(unlinked), len(items))
    rows = []
    for item in unlinked:
        service_call = item.get_text(config.columns.service_call) or "Not Set"
        logger.info("Item #{} (Monday ID: {}) - Service Call: {}", item.name, item.id, service_call)
        rows.append({"item_id": item.id, "item_name": item.name, "service_call": service_call})
    return rows


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync NinjaRMM tickets to Monday.com and update kiosk health status."
    )
    parser.add_argument("--config", default=constants.FIELD_MAPPINGS_FILE,
                        help="Path to field-mappings.json (default: %(default)s)")
    parser.add_argument("--log-level", default=constants.LOGGING_LEVEL,
                        help="Console log level (default: %(default)s)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Create Monday.com items for new NinjaRMM tickets")
    sync_parser.add_argument("--dry-run", action="store_true", help="Preview without creating items")

    test_parser = subparsers.add_parser("test-sync", help="Create items for only the first few new tickets")
    test_parser.add_argument("--limit", type=int, default=None, help="Number of tickets to create")

    update_parser = subparsers.add_parser("update", help="Update linked Monday.com items from NinjaRMM")
    update_parser.add_argument("--dry-run", action="store_true", help="Preview without updating items")

    health_parser = subparsers.add_parser("health", help="Update kiosk health status")
    health_parser.add_argument("--dry-run", action="store_true", help="Preview without updating kiosks")

    subparsers.add_parser("sync-all", help="Create new items, then update kiosk health status")

    backfill_parser = subparsers.add_parser("backfill", help="Fill in missing NinjaRMM ticket IDs")
    backfill_parser.add_argument("--policy", choices=[policy.value for policy in MatchPolicy],
                                 default=MatchPolicy.ATTRIBUTES.value,
                                 help="attributes: kiosk/county/location/tags, applied when confident; "
                                      "summary: kiosk/date/summary, report only")
    backfill_parser.add_argument("--dry-run", action="store_true", help="Report matches without writing them")

    subparsers.add_parser("list-synced", help="List NinjaRMM tickets in sync scope")
    subparsers.add_parser("list-unlinked", help="List Monday.com items without a NinjaRMM ticket ID")
    subparsers.add_parser("show-config", help="Show the effective configuration")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the NinjaRMM to Monday.com integration script.

    Returns:
        int: Process exit code (1 on a fatal setup or fetch error)
    """
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level)

    # Load environment variables from .env file
    dotenv.load_dotenv()
    credentials = load_credentials()
    configure_ssl_warnings(constants.VERIFY_SSL)

    try:
        config = load_sync_config(args.config)

        logger.info("Monday.com API URL: {}", constants.MONDAY_API_URL)
        logger.info("Minimum create date: {}", config.min_create_date)

        if args.command == "sync":
            run_sync(config, credentials, SyncMode.CREATE, dry_run=args.dry_run)
        elif args.command == "test-sync":
            run_sync(config, credentials, SyncMode.TEST, limit=args.limit)
        elif args.command == "update":
            run_sync(config, credentials, SyncMode.UPDATE, dry_run=args.dry_run)
        elif args.command == "health":
            run_health(config, credentials, dry_run=args.dry_run)
        elif args.command == "sync-all":
            logger.info("Step 1: Syncing new tickets...")
            run_sync(config, credentials, SyncMode.CREATE)
            logger.info("Step 2: Updating kiosk health status...")
            run_health(config, credentials)
        elif args.command == "backfill":
            run_backfill_command(config, credentials, MatchPolicy(args.policy), dry_run=args.dry_run)
        elif args.command == "list-synced":
            list_synced_tickets(config, credentials)
        elif args.command == "list-unlinked":
            list_unlinked_items(config, credentials)
        elif args.command == "show-config":
            logger.info("Effective configuration:\n{}", json.dumps(config.to_dict(), indent=2))

    except (ConfigError, APIError) as e:
        logger.error("{} failed: {}", args.command, e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
