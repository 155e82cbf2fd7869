"""
Matching Engine

Finds the NinjaRMM ticket behind a Monday.com tickets board item that has no
NinjaRMM ticket ID yet. Two scoring policies are available:

- ATTRIBUTES: kiosk, county, location and core-issue tags. Confident matches
  get their ticket ID written back to the item.
- SUMMARY: kiosk, date and a word-overlap similarity between the ticket
  summary and the item name. Matches are only reported for manual review.
"""

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from models import (
    LookupEntry,
    MondayItem,
    NinjaTicket,
    SyncConfig,
    to_short_device_id,
    unix_to_calendar_date,
)
from sync_engine import build_linkage_index


class MatchPolicy(Enum):
    """Scoring policy used by a backfill run."""
    ATTRIBUTES = "attributes"
    SUMMARY = "summary"


@dataclass
class MatchResult:
    """Best candidate ticket for one tickets board item."""
    item_id: str
    item_name: str
    ticket_id: int
    score: float
    matches: List[str] = field(default_factory=list)
    ticket_summary: str = ""
    summary_similarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "ticket_id": self.ticket_id,
            "ticket_summary": self.ticket_summary,
            "score": round(self.score, 2),
            "matches": list(self.matches),
        }
        if self.summary_similarity is not None:
            data["summary_similarity"] = round(self.summary_similarity, 4)
        return data


@dataclass
class BackfillReport:
    """Outcome of a backfill run."""
    policy: MatchPolicy
    dry_run: bool = False
    items_considered: int = 0
    skipped: int = 0
    applied: List[MatchResult] = field(default_factory=list)
    planned: List[MatchResult] = field(default_factory=list)
    low_confidence: List[MatchResult] = field(default_factory=list)
    review: List[MatchResult] = field(default_factory=list)
    no_match: List[str] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy.value,
            "dry_run": self.dry_run,
            "items_considered": self.items_considered,
            "skipped": self.skipped,
            "applied": [match.to_dict() for match in self.applied],
            "planned": [match.to_dict() for match in self.planned],
            "low_confidence": [match.to_dict() for match in self.low_confidence],
            "review": [match.to_dict() for match in self.review],
            "no_match": list(self.no_match),
            "failed": list(self.failed),
        }


def _tokenize(text: str) -> List[str]:
    return re.split(r"\s+", text)


def string_similarity(text: Optional[str], other: Optional[str]) -> float:
    """
    Word-overlap similarity between two strings.

    Case-insensitive. Identical strings score 1.0. Otherwise the score is the
    number of words of ``text`` that are longer than three characters and
    appear verbatim among the words of ``other``, divided by the word count
    of the longer of the two. This is not an edit distance.

    Args:
        text (str): String whose words are counted (the ticket summary)
        other (str): String searched for those words (the item name)

    Returns:
        float: Score between 0.0 and 1.0
    """
    if not text or not other:
        return 0.0

    text_lower = text.lower()
    other_lower = other.lower()
    if text_lower == other_lower:
        return 1.0

    words = _tokenize(text_lower)
    other_words = _tokenize(other_lower)
    other_word_set = set(other_words)

    overlap = sum(1 for word in words if len(word) > 3 and word in other_word_set)
    return overlap / max(len(words), len(other_words))


def _attribute_fields(item: MondayItem, config: SyncConfig) -> Tuple[str, str, str, str]:
    columns = config.columns
    return (
        item.get_text(columns.kiosk),
        item.get_text(columns.county),
        item.get_text(columns.location),
        item.get_text(columns.core_issue),
    )


def score_attribute_match(item_fields: Tuple[str, str, str, str], ticket: NinjaTicket,
                          lookup: Dict[str, LookupEntry], config: SyncConfig) -> Tuple[int, List[str]]:
    """
    Score one ticket against an item's kiosk, county, location and tags.

    The ticket's own county and location are filled from the kiosk lookup only
    when the ticket does not carry them.

    Returns:
        tuple: (score, list of matched criteria)
    """
    item_kiosk, item_county, item_location, item_tags = item_fields

    ticket_kiosk = to_short_device_id(ticket.device)
    ticket_county = ticket.get_attribute_value(config.attributes.county) or None
    ticket_location = ticket.location or None

    kiosk_data = lookup.get(ticket_kiosk) if ticket_kiosk else None
    if kiosk_data:
        if not ticket_county and kiosk_data.county:
            ticket_county = kiosk_data.county
        if not ticket_location and kiosk_data.location:
            ticket_location = kiosk_data.location

    ticket_tags = ", ".join(ticket.tags or [])

    score = 0
    matches = []

    if item_kiosk and ticket_kiosk and item_kiosk == ticket_kiosk:
        score += 10
        matches.append("Kiosk")

    if item_county and ticket_county and item_county.lower() == str(ticket_county).lower():
        score += 5
        matches.append("County")

    if item_location and ticket_location:
        item_loc = item_location.lower()
        ticket_loc = ticket_location.lower()
        if item_loc == ticket_loc:
            score += 8
            matches.append("Location (exact)")
        elif item_loc in ticket_loc or ticket_loc in item_loc:
            score += 4
            matches.append("Location (partial)")

    if item_tags and ticket_tags:
        item_tags_lower = item_tags.lower()
        ticket_tags_lower = ticket_tags.lower()
        if item_tags_lower == ticket_tags_lower:
            score += 6
            matches.append("Tags (exact)")
        elif item_tags_lower in ticket_tags_lower or ticket_tags_lower in item_tags_lower:
            score += 3
            matches.append("Tags (partial)")

    return score, matches


def find_attribute_match(item: MondayItem, tickets: Iterable[NinjaTicket],
                         lookup: Dict[str, LookupEntry], config: SyncConfig) -> Optional[MatchResult]:
    """
    Find the highest scoring ticket for an item using the ATTRIBUTES policy.

    On a tie the first ticket seen is kept.

    Returns:
        MatchResult, or None if no ticket scored above zero
    """
    item_fields = _attribute_fields(item, config)
    best_match = None

    for ticket in tickets:
        score, matches = score_attribute_match(item_fields, ticket, lookup, config)
        if score > (best_match.score if best_match else 0):
            best_match = MatchResult(
                item_id=item.id,
                item_name=item.name,
                ticket_id=ticket.id,
                score=score,
                matches=matches,
                ticket_summary=ticket.summary,
            )

    return best_match


def find_summary_match(item: MondayItem, tickets: Iterable[NinjaTicket],
                       config: SyncConfig) -> Optional[MatchResult]:
    """
    Find the highest scoring ticket for an item using the SUMMARY policy.

    Scoring: +50 kiosk match, +40 date match, plus summary similarity x 30.

    Returns:
        MatchResult, or None if no ticket scored above zero
    """
    item_kiosk = item.get_text(config.columns.kiosk)
    item_date = item.get_text(config.columns.date)
    best_match = None

    for ticket in tickets:
        score = 0.0
        matches = []

        ticket_kiosk = to_short_device_id(ticket.device)
        if ticket_kiosk and item_kiosk and ticket_kiosk == item_kiosk:
            score += 50
            matches.append("Kiosk")

        ticket_date = unix_to_calendar_date(ticket.create_time)
        if ticket_date and item_date and ticket_date == item_date:
            score += 40
            matches.append("Date")

        similarity = string_similarity(ticket.summary, item.name)
        if similarity > 0:
            matches.append(f"Summary ({similarity:.0%})")
        score += similarity * 30

        if score > (best_match.score if best_match else 0):
            best_match = MatchResult(
                item_id=item.id,
                item_name=item.name,
                ticket_id=ticket.id,
                score=score,
                matches=matches,
                ticket_summary=ticket.summary,
                summary_similarity=similarity,
            )

    return best_match


def find_unlinked_items(items: Iterable[MondayItem], linkage_column_id: str) -> List[MondayItem]:
    """Items whose NinjaRMM ticket ID column is empty."""
    return [item for item in items if not item.get_linkage_key(linkage_column_id)]


def run_backfill(monday_client: Any, items: Iterable[MondayItem], tickets: List[NinjaTicket],
                 lookup: Dict[str, LookupEntry], config: SyncConfig, policy: MatchPolicy,
                 dry_run: bool = False, sleep: Callable[[float], None] = time.sleep) -> BackfillReport:
    """
    Match unlinked tickets board items to NinjaRMM tickets.

    With the ATTRIBUTES policy, every ticket not yet linked to an item is a
    candidate and items whose name is not numeric are skipped. A ticket that
    gets matched during the run is no longer a candidate for later items. Confident matches (score at or above the
    threshold) are written to the item's ticket ID column unless dry_run is
    set. With the SUMMARY policy, only tickets created on or after the
    minimum create date are candidates and nothing is ever written.

    Args:
        monday_client: MondayClient used to write ticket IDs
        items: All tickets board items
        tickets: NinjaRMM tickets
        lookup: Kiosk lookup index
        config (SyncConfig): Run configuration
        policy (MatchPolicy): Scoring policy
        dry_run (bool): Report confident matches without writing them
        sleep: Callable used for the delay between writes

    Returns:
        BackfillReport: What was matched, applied and skipped
    """
    items = list(items)
    linkage_column = config.columns.ninja_ticket_id
    unlinked_items = find_unlinked_items(items, linkage_column)
    report = BackfillReport(policy=policy, dry_run=dry_run or policy is MatchPolicy.SUMMARY)
    report.items_considered = len(unlinked_items)
    logger.info("Found {} items without a NinjaRMM ticket ID", len(unlinked_items))

    if policy is MatchPolicy.SUMMARY:
        min_timestamp = config.min_create_timestamp
        candidates = [t for t in tickets if t.create_time is not None and t.create_time >= min_timestamp]
        logger.info("{} tickets created on or after {}", len(candidates), config.min_create_date)

        for item in unlinked_items:
            match = find_summary_match(item, candidates, config)
            if match and match.score > config.summary_review_threshold:
                logger.info("Item '{}' -> ticket #{} (score {:.1f}, {})",
                            item.name, match.ticket_id, match.score, ", ".join(match.matches))
                report.review.append(match)
            else:
                report.no_match.append(item.id)

        logger.info("Found {} potential matches for review", len(report.review))
        return report

    linked_ticket_ids = set(build_linkage_index(items, linkage_column))

    for item in unlinked_items:
        if item.item_number is None:
            logger.debug("Skipping item '{}': name is not an item number", item.name)
            report.skipped += 1
            continue

        candidates = [ticket for ticket in tickets if str(ticket.id) not in linked_ticket_ids]
        match = find_attribute_match(item, candidates, lookup, config)

        if match is None:
            logger.info("Item #{}: no match found", item.name)
            report.no_match.append(item.id)
            continue

        if match.score < config.attribute_match_threshold:
            logger.warning("Item #{}: low confidence match (score {}) with ticket #{} - skipping ({})",
                           item.name, match.score, match.ticket_id, ", ".join(match.matches))
            report.low_confidence.append(match)
            continue

        if dry_run:
            logger.info("[DRY RUN] Item #{} would be linked to ticket #{} (score {})",
                        item.name, match.ticket_id, match.score)
            report.planned.append(match)
            linked_ticket_ids.add(str(match.ticket_id))
            continue

        try:
            monday_client.update_item_columns(
                config.tickets_board_id, item.id, {linkage_column: str(match.ticket_id)}
            )
        except Exception as e:
            logger.error("Item #{}: failed to write ticket ID {}: {}", item.name, match.ticket_id, e)
            report.failed.append({"item_id": item.id, "ticket_id": match.ticket_id, "error": str(e)})
            continue

        logger.info("Item #{} linked to ticket #{} (score {}, {})",
                    item.name, match.ticket_id, match.score, ", ".join(match.matches))
        report.applied.append(match)
        linked_ticket_ids.add(str(match.ticket_id))
        sleep(config.delay_between_updates_ms / 1000)

    return report
