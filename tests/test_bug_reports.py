"""
Tests for modules/bug_reports.py
"""

import pytest

import config
from modules.bug_reports import (
    BUG_STATUSES,
    UNDER_REVIEW,
    classify_status,
    get_bug_channel_id,
    make_custom_id,
    parse_custom_id,
    percentage,
    set_bug_channel_id,
    status_info,
    tally_statuses,
)


# =============================================================================
# Button IDs
# =============================================================================

class TestCustomIds:

    def test_roundtrip_every_status(self):
        for status in BUG_STATUSES:
            assert parse_custom_id(make_custom_id(status, "123456")) == (status, "123456")

    @pytest.mark.parametrize("custom_id", [
        "",
        None,
        "bugfixed_123",
        "bug_done_123",
        "bug_fixed_abc",
        "bug_fixed_123_extra",
        "ticket_fixed_123",
    ])
    def test_rejects_foreign_ids(self, custom_id):
        assert parse_custom_id(custom_id) is None

    def test_status_info_falls_back_to_under_review(self):
        assert status_info("fixed")['label'] == "✅ Fixed"
        assert status_info("nonsense") is UNDER_REVIEW


# =============================================================================
# Statistics
# =============================================================================

class TestTally:

    def test_classify(self):
        assert classify_status("🔍 Under Review") == 'underreview'
        assert classify_status("🔧 In Progress") == 'inprogress'
        assert classify_status("✅ Fixed") == 'fixed'
        assert classify_status("❌ Invalid") == 'invalid'
        assert classify_status("⏭️ Won't Fix") == 'wontfix'
        assert classify_status("Something else") is None

    def test_tally(self):
        counts = tally_statuses([
            "🔍 Under Review",
            "✅ Fixed",
            "✅ Fixed",
            "❌ Invalid",
            None,
            "garbled",
        ])

        assert counts == {
            'total': 6,
            'underreview': 1,
            'inprogress': 0,
            'fixed': 2,
            'invalid': 1,
            'wontfix': 0,
        }

    def test_percentage(self):
        assert percentage(0, 0) == 0
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67
        assert percentage(5, 5) == 100


# =============================================================================
# Channel setting
# =============================================================================

class TestBugChannel:

    async def test_falls_back_to_env(self, db, monkeypatch):
        monkeypatch.setattr(config, 'BUGS_CHANNEL_ID', "111")
        assert await get_bug_channel_id(db) == "111"

    async def test_unset(self, db, monkeypatch):
        monkeypatch.setattr(config, 'BUGS_CHANNEL_ID', None)
        assert await get_bug_channel_id(db) is None

    async def test_stored_setting_wins(self, db, monkeypatch):
        monkeypatch.setattr(config, 'BUGS_CHANNEL_ID', "111")

        await set_bug_channel_id(db, 222)

        assert await get_bug_channel_id(db) == "222"

    async def test_keeps_other_bot_settings(self, db):
        await db.set_setting('bot', {'other': True})

        await set_bug_channel_id(db, "333")

        assert await db.get_setting('bot') == {'other': True, 'bugsChannelId': "333"}
