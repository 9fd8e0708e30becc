"""
Tests for migrate_from_json.py
"""

import json

import pytest

from database import Database, DocumentShapeError, RankSettings
from migrate_from_json import import_legacy_data, normalize_progress


def write_json(path, data):
    path.write_text(json.dumps(data), encoding='utf-8')


# =============================================================================
# normalize_progress()
# =============================================================================

class TestNormalizeProgress:

    def test_level_recomputed(self):
        progress = normalize_progress({'xp': 500, 'level': 9, 'totalTextXp': 500}, RankSettings())
        assert progress.level == 2

    def test_voice_takes_the_remainder(self):
        progress = normalize_progress(
            {'xp': 500, 'totalTextXp': 200, 'totalVoiceXp': 100}, RankSettings()
        )
        assert progress.total_text_xp == 200
        assert progress.total_voice_xp == 300

    def test_text_clamped_to_xp(self):
        progress = normalize_progress({'xp': 500, 'totalTextXp': 900}, RankSettings())
        assert progress.total_text_xp == 500
        assert progress.total_voice_xp == 0

    def test_consistent_record_unchanged(self):
        data = {'xp': 300, 'level': 2, 'prestige': 1, 'lastMessageTimestamp': 7,
                'totalTextXp': 100, 'totalVoiceXp': 200}
        assert normalize_progress(data, RankSettings()).to_dict() == data

    def test_rejects_garbage(self):
        with pytest.raises(DocumentShapeError):
            normalize_progress("garbage", RankSettings())


# =============================================================================
# import_legacy_data()
# =============================================================================

class TestImport:

    async def test_full_import(self, db, tmp_path):
        write_json(tmp_path / 'ranks.json', {
            'roles': {'5': '1005'},
            'textXp': {'baseAmount': 20, 'cooldown': 30, 'randomBonus': 0},
            'voiceXp': {'perMinute': 5, 'afkDisabled': False},
            'formula': {'baseXp': 100, 'exponent': 1.5},
        })
        write_json(tmp_path / 'users.json', {
            '1': {'xp': 100, 'level': 1, 'totalTextXp': 100, 'totalVoiceXp': 0},
            '2': {'xp': 500, 'level': 1, 'totalTextXp': 50, 'totalVoiceXp': 50},
            '3': 'garbage',
        })
        write_json(tmp_path / 'statistics.json', {
            '1': {'messages': {'total': 4, 'daily': {}, 'weekly': {}, 'monthly': {}}},
            '2': 'not stats',
        })
        write_json(tmp_path / 'moderation.json', {
            'infractions': {'1': [{'id': 'abc', 'type': 'warn', 'active': True}]},
            'settings': {'logChannelId': '42', 'unknownKey': True},
        })

        counts = await import_legacy_data(db, tmp_path)

        assert counts == {'users': 2, 'skipped': 1, 'repaired': 1, 'statistics': 1, 'infractions': 1}

        settings = await db.get_rank_settings()
        assert settings.role_rewards == {5: '1005'}
        assert settings.voice_per_minute == 5

        repaired = await db.get_user_progress('2')
        assert repaired.level == 2
        assert repaired.total_text_xp + repaired.total_voice_xp == 500

        assert (await db.get_document(Database.STATISTICS, '1'))['messages']['total'] == 4
        assert await db.get_document(Database.INFRACTIONS, '1') == [{'id': 'abc', 'type': 'warn', 'active': True}]

        moderation = await db.get_setting('moderation')
        assert moderation['logChannelId'] == '42'
        assert 'unknownKey' not in moderation

    async def test_empty_folder(self, db, tmp_path):
        counts = await import_legacy_data(db, tmp_path)

        assert counts == {'users': 0, 'skipped': 0, 'repaired': 0, 'statistics': 0, 'infractions': 0}
        assert await db.list_documents(Database.USERS) == {}

    async def test_levels_use_imported_formula(self, db, tmp_path):
        write_json(tmp_path / 'ranks.json', {'formula': {'baseXp': 50, 'exponent': 2}})
        write_json(tmp_path / 'users.json', {'1': {'xp': 450, 'totalTextXp': 450}})

        await import_legacy_data(db, tmp_path)

        assert (await db.get_user_progress('1')).level == 3
