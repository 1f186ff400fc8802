"""
Unit tests for action item extraction.
"""

from datetime import datetime

from ledgerclaw.core.actions import extract_action_items, parse_due_date

REFERENCE = datetime(2026, 3, 15, 18, 0)

BRIEFING = """## Overview
Two card statements and one EMI reminder arrived today.

### Credit Card
- HDFC statement: total due ₹12,400

## Actions Required
- 🔴 Pay HDFC credit card bill due 20 Mar 2026
- 🟡 Renew car insurance by Mar 25
🟢 Review the new mutual fund factsheet
- ok
"""


class TestParseDueDate:
    """Tests for due date extraction from a description."""

    def test_day_month_year(self):
        assert parse_due_date("Pay bill due 20 Mar 2026", REFERENCE) == "2026-03-20"

    def test_month_day_uses_reference_year(self):
        assert parse_due_date("Renew policy by Mar 25", REFERENCE) == "2026-03-25"

    def test_numeric_dates_are_day_first(self):
        assert parse_due_date("Pay EMI before 05/04/2026", REFERENCE) == "2026-04-05"

    def test_iso_date(self):
        assert parse_due_date("File return, deadline: 2026-04-01", REFERENCE) == "2026-04-01"

    def test_due_date_cue(self):
        assert parse_due_date("Premium due date: 3 April 2026", REFERENCE) == "2026-04-03"

    def test_no_cue_word(self):
        assert parse_due_date("Statement for 20 Mar 2026", REFERENCE) is None

    def test_unparseable_candidate(self):
        assert parse_due_date("Pay by tomorrow evening", REFERENCE) is None


class TestExtractActionItems:
    """Tests for the briefing parser."""

    def test_extracts_items_in_order(self):
        items = extract_action_items(BRIEFING, REFERENCE)

        assert [i.priority for i in items] == ["urgent", "soon", "fyi"]
        assert items[0].description == "Pay HDFC credit card bill due 20 Mar 2026"
        assert items[0].due_date == "2026-03-20"
        assert items[1].due_date == "2026-03-25"
        assert items[2].description == "Review the new mutual fund factsheet"
        assert items[2].due_date is None

    def test_lines_before_anchor_are_ignored(self):
        items = extract_action_items(BRIEFING, REFERENCE)
        assert not any("statement" in i.description.lower() for i in items)

    def test_no_section_means_no_items(self):
        assert extract_action_items("## Overview\n- 🔴 Pay the bill due 20 Mar", REFERENCE) == []

    def test_empty_text(self):
        assert extract_action_items("", REFERENCE) == []

    def test_no_actions_line_skipped(self):
        text = "Actions Required\n- No actions required this week"
        assert extract_action_items(text, REFERENCE) == []

    def test_marker_heading_sets_priority_for_following_bullets(self):
        text = "Action required:\n🔴 Urgent:\n- Pay loan EMI due 18/03/2026\n- Call the bank about KYC"

        items = extract_action_items(text, REFERENCE)

        assert [i.description for i in items] == ["Pay loan EMI due 18/03/2026", "Call the bank about KYC"]
        assert all(i.priority == "urgent" for i in items)
        assert items[0].due_date == "2026-03-18"

    def test_unmarked_bullets_default_to_fyi(self):
        items = extract_action_items("ACTIONS REQUIRED\n* Check the SIP debit", REFERENCE)

        assert len(items) == 1
        assert items[0].priority == "fyi"

    def test_bold_marker_headings_are_not_items(self):
        text = (
            "Actions Required\n"
            "**🔴 Urgent**\n"
            "- Pay the card bill due 20 Mar 2026\n"
            "**🟢 FYI**\n"
            "- Salary credited"
        )

        items = extract_action_items(text, REFERENCE)

        assert [(i.description, i.priority) for i in items] == [
            ("Pay the card bill due 20 Mar 2026", "urgent"),
            ("Salary credited", "fyi"),
        ]
