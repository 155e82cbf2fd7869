"""
Tests for matching tickets board items to NinjaRMM tickets.
"""

import pytest

from conftest import MIN_CREATE_TIMESTAMP, ONE_DAY, TICKETS_BOARD_ID
from matching import (
    MatchPolicy,
    find_attribute_match,
    find_summary_match,
    run_backfill,
    string_similarity,
)
from models import LookupEntry


@pytest.fixture
def unlinked_item(make_item, config):
    """Build a tickets board item with no NinjaRMM ticket ID."""
    def _unlinked_item(item_id="7001", name="42", kiosk="", county="", location="", tags="", date=""):
        columns = config.columns
        return make_item(item_id, name, {
            columns.kiosk: kiosk,
            columns.county: county,
            columns.location: location,
            columns.core_issue: tags,
            columns.date: date,
            columns.ninja_ticket_id: "",
        })
    return _unlinked_item


# String similarity

def test_similarity_exact_match_ignores_case():
    assert string_similarity("Printer Jam", "printer jam") == 1.0


def test_similarity_counts_long_summary_words_found_in_name():
    # "printer" and "jammed" are in the name; "is" is too short to count
    assert string_similarity("printer is jammed", "jammed printer at front desk") == pytest.approx(2 / 5)


def test_similarity_ignores_short_words():
    assert string_similarity("the cat ran", "the cat sat") == 0.0


def test_similarity_is_asymmetric():
    assert string_similarity("screen screen cracked", "screen") == pytest.approx(2 / 3)
    assert string_similarity("screen", "screen screen cracked") == pytest.approx(1 / 3)


def test_similarity_of_empty_input_is_zero():
    assert string_similarity("", "anything") == 0.0
    assert string_similarity("anything", None) == 0.0


# Attribute policy

def test_kiosk_only_match_scores_ten(unlinked_item, make_ticket, config):
    item = unlinked_item(kiosk="6058")
    ticket = make_ticket(500, device="IBF-0136058")

    match = find_attribute_match(item, [ticket], {}, config)

    assert match.ticket_id == 500
    assert match.score == 10
    assert match.matches == ["Kiosk"]


def test_partial_location_and_tags_score_seven(unlinked_item, make_ticket, config):
    item = unlinked_item(location="Main Street Library", tags="Printer")
    ticket = make_ticket(501, location="main street", tags=["Printer", "Paper"])

    match = find_attribute_match(item, [ticket], {}, config)

    assert match.score == 7
    assert match.matches == ["Location (partial)", "Tags (partial)"]


def test_full_attribute_match(unlinked_item, make_ticket, config):
    item = unlinked_item(kiosk="6058", county="dade", location="HQ", tags="Printer, Paper")
    ticket = make_ticket(
        502, device="IBF-0136058", location="hq", tags=["Printer", "Paper"],
        attribute_values=[{"attributeId": 10, "value": "Dade"}],
    )

    match = find_attribute_match(item, [ticket], {}, config)

    assert match.score == 10 + 5 + 8 + 6
    assert match.matches == ["Kiosk", "County", "Location (exact)", "Tags (exact)"]


def test_lookup_fills_missing_county_and_location_only(unlinked_item, make_ticket, config):
    lookup = {"6058": LookupEntry(county="Dade", location="HQ", full_id="IBF-0136058")}
    item = unlinked_item(county="Dade", location="Lobby")

    missing = make_ticket(503, device="IBF-0136058")
    own_location = make_ticket(504, device="IBF-0136058", location="Lobby")

    assert find_attribute_match(item, [missing], lookup, config).matches == ["County"]
    assert find_attribute_match(item, [own_location], lookup, config).matches == ["County", "Location (exact)"]


def test_tie_keeps_first_ticket(unlinked_item, make_ticket, config):
    item = unlinked_item(kiosk="6058")
    tickets = [make_ticket(600, device="IBF-0136058"), make_ticket(601, device="IBF-0136058")]

    assert find_attribute_match(item, tickets, {}, config).ticket_id == 600


def test_no_positive_score_is_no_match(unlinked_item, make_ticket, config):
    item = unlinked_item(kiosk="1111")
    assert find_attribute_match(item, [make_ticket(700, device="IBF-0132222")], {}, config) is None


def test_backfill_applies_confident_match(unlinked_item, make_item, make_ticket, monday_client, sleeps, config):
    linked = make_item("7000", "41", {config.columns.ninja_ticket_id: "499", config.columns.kiosk: "6058"})
    item = unlinked_item(kiosk="6058")
    tickets = [make_ticket(500, device="IBF-0136058")]

    report = run_backfill(monday_client, [linked, item], tickets, {}, config,
                          MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert report.items_considered == 1
    assert [match.ticket_id for match in report.applied] == [500]
    assert monday_client.updates == [{
        "board_id": TICKETS_BOARD_ID,
        "item_id": "7001",
        "column_values": {config.columns.ninja_ticket_id: "500"},
    }]
    assert sleeps == [0.5]


def test_backfill_reports_low_confidence_without_applying(unlinked_item, make_ticket, monday_client, sleeps, config):
    item = unlinked_item(location="Main Street Library", tags="Printer")
    tickets = [make_ticket(501, location="main street", tags=["Printer", "Paper"])]

    report = run_backfill(monday_client, [item], tickets, {}, config, MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert report.applied == []
    assert [match.score for match in report.low_confidence] == [7]
    assert monday_client.updates == []


def test_backfill_dry_run_plans_only(unlinked_item, make_ticket, monday_client, sleeps, config):
    item = unlinked_item(kiosk="6058")
    tickets = [make_ticket(500, device="IBF-0136058")]

    report = run_backfill(monday_client, [item], tickets, {}, config, MatchPolicy.ATTRIBUTES,
                          dry_run=True, sleep=sleeps)

    assert [match.ticket_id for match in report.planned] == [500]
    assert monday_client.updates == []
    assert sleeps == []


def test_backfill_never_reuses_a_linked_ticket(unlinked_item, make_item, make_ticket, monday_client, sleeps, config):
    linked = make_item("7000", "41", {config.columns.ninja_ticket_id: "500", config.columns.kiosk: "6058"})
    first = unlinked_item(item_id="7001", name="42", kiosk="6058")
    second = unlinked_item(item_id="7002", name="43", kiosk="6058")
    tickets = [make_ticket(500, device="IBF-0136058")]

    report = run_backfill(monday_client, [linked, first, second], tickets, {}, config,
                          MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert report.applied == []
    assert report.no_match == ["7001", "7002"]
    assert monday_client.updates == []


def test_backfill_links_each_ticket_once_per_run(unlinked_item, make_ticket, monday_client, sleeps, config):
    first = unlinked_item(item_id="7001", name="42", kiosk="6058")
    second = unlinked_item(item_id="7002", name="43", kiosk="6058")
    tickets = [make_ticket(500, device="IBF-0136058")]

    report = run_backfill(monday_client, [first, second], tickets, {}, config,
                          MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert [(match.item_id, match.ticket_id) for match in report.applied] == [("7001", 500)]
    assert report.no_match == ["7002"]
    assert [update["item_id"] for update in monday_client.updates] == ["7001"]


def test_backfill_dry_run_plans_each_ticket_once(unlinked_item, make_ticket, monday_client, sleeps, config):
    first = unlinked_item(item_id="7001", name="42", kiosk="6058")
    second = unlinked_item(item_id="7002", name="43", kiosk="6058")
    tickets = [make_ticket(500, device="IBF-0136058")]

    report = run_backfill(monday_client, [first, second], tickets, {}, config,
                          MatchPolicy.ATTRIBUTES, dry_run=True, sleep=sleeps)

    assert [match.item_id for match in report.planned] == ["7001"]
    assert report.no_match == ["7002"]


def test_backfill_skips_items_with_non_numeric_names(unlinked_item, make_ticket, monday_client, sleeps, config):
    item = unlinked_item(name="Imported row", kiosk="6058")

    report = run_backfill(monday_client, [item], [make_ticket(500, device="IBF-0136058")], {}, config,
                          MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert report.skipped == 1
    assert monday_client.updates == []


def test_backfill_records_failed_write(unlinked_item, make_ticket, monday_client, sleeps, config):
    monday_client.failing_item_ids.add("7001")
    item = unlinked_item(kiosk="6058")

    report = run_backfill(monday_client, [item], [make_ticket(500, device="IBF-0136058")], {}, config,
                          MatchPolicy.ATTRIBUTES, sleep=sleeps)

    assert report.applied == []
    assert report.failed[0]["ticket_id"] == 500


# Summary policy

def test_summary_policy_scoring(unlinked_item, make_ticket, config):
    created = MIN_CREATE_TIMESTAMP + ONE_DAY
    item = unlinked_item(name="printer jammed", kiosk="6058", date="2025-07-02")
    ticket = make_ticket(800, device="IBF-0136058", create_time=created, summary="Printer jammed")

    match = find_summary_match(item, [ticket], config)

    assert match.score == pytest.approx(50 + 40 + 30)
    assert match.summary_similarity == 1.0


def test_summary_policy_never_writes(unlinked_item, make_ticket, monday_client, sleeps, config):
    item = unlinked_item(name="printer jammed", kiosk="6058", date="2025-07-02")
    weak = unlinked_item(item_id="7002", name="43")
    tickets = [
        make_ticket(800, device="IBF-0136058", create_time=MIN_CREATE_TIMESTAMP + ONE_DAY, summary="Printer jammed"),
        make_ticket(801, device="IBF-0136058", create_time=MIN_CREATE_TIMESTAMP - ONE_DAY, summary="Printer jammed"),
    ]

    report = run_backfill(monday_client, [item, weak], tickets, {}, config, MatchPolicy.SUMMARY, sleep=sleeps)

    assert report.dry_run is True
    assert [match.ticket_id for match in report.review] == [800]
    assert report.no_match == ["7002"]
    assert monday_client.updates == []
    assert sleeps == []


def test_summary_policy_ignores_tickets_before_cutoff(unlinked_item, make_ticket, monday_client, config):
    item = unlinked_item(name="printer jammed", kiosk="6058")
    old = make_ticket(801, device="IBF-0136058", create_time=MIN_CREATE_TIMESTAMP - ONE_DAY, summary="Printer jammed")

    # Scores well on its own, but is outside the sync window
    assert find_summary_match(item, [old], config).ticket_id == 801

    report = run_backfill(monday_client, [item], [old], {}, config, MatchPolicy.SUMMARY)
    assert report.review == []
    assert report.no_match == ["7001"]
