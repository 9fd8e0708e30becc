"""
============================================================================
MIGRATION SCRIPT - JSON FILES TO SQLITE
============================================================================
Import the legacy flat-file data into the document store.

This script will:
1. Read users.json, ranks.json, prestiges.json, statistics.json and
   moderation.json from the legacy data folder
2. Recompute every user's level from their XP and repair the text/voice
   XP split where it does not add up
3. Store settings, progress, statistics and infractions as documents

Usage:
    python migrate_from_json.py [data_dir]

Before running:
- Backup your JSON files first!
- Bot should NOT be running
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Import database
from database import Database, DocumentShapeError, RankSettings, PrestigeSettings, UserProgress
from modules.progression import level_for
import config


def load_json(path: Path) -> Optional[Any]:
    """Read a legacy file. Returns None when it does not exist."""
    if not path.exists():
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def normalize_progress(data: Dict, settings: RankSettings) -> UserProgress:
    """
    Turn a legacy user record into consistent progress.

    The level is recomputed from XP. When the text and voice totals do not
    add up to XP, text XP is trusted and voice XP takes the remainder.

    Raises:
        DocumentShapeError: the record is not a usable user entry
    """
    progress = UserProgress.from_dict(data)
    progress.level = level_for(progress.xp, settings)

    if progress.total_text_xp + progress.total_voice_xp != progress.xp:
        progress.total_text_xp = min(max(progress.total_text_xp, 0), progress.xp)
        progress.total_voice_xp = progress.xp - progress.total_text_xp

    return progress


async def import_legacy_data(db: Database, data_dir: Path) -> Dict[str, int]:
    """
    Import every legacy file found in data_dir.

    Args:
        db: Initialized database
        data_dir: Folder holding the legacy JSON files

    Returns:
        Counts of imported records per kind
    """
    counts = {'users': 0, 'skipped': 0, 'repaired': 0, 'statistics': 0, 'infractions': 0}

    ranks = load_json(data_dir / 'ranks.json')
    if ranks is not None:
        settings = RankSettings.from_dict(ranks)
        await db.save_rank_settings(settings)
        print("✅ Imported rank settings")
    else:
        settings = await db.get_rank_settings()

    prestiges = load_json(data_dir / 'prestiges.json')
    if prestiges is not None:
        await db.save_prestige_settings(PrestigeSettings.from_dict(prestiges))
        print("✅ Imported prestige settings")

    users = load_json(data_dir / 'users.json') or {}
    for user_id, data in users.items():
        try:
            original = UserProgress.from_dict(data)
            progress = normalize_progress(data, settings)
        except DocumentShapeError as e:
            print(f"⚠️  Skipping user {user_id}: {e}")
            counts['skipped'] += 1
            continue

        if progress != original:
            counts['repaired'] += 1
        await db.save_user_progress(str(user_id), progress)
        counts['users'] += 1
    print(f"✅ Imported {counts['users']} users ({counts['repaired']} repaired, {counts['skipped']} skipped)")

    statistics = load_json(data_dir / 'statistics.json') or {}
    for user_id, stats in statistics.items():
        if isinstance(stats, dict):
            await db.put_document(Database.STATISTICS, str(user_id), stats)
            counts['statistics'] += 1
    print(f"✅ Imported statistics for {counts['statistics']} users")

    moderation = load_json(data_dir / 'moderation.json')
    if moderation is not None:
        for user_id, infractions in moderation.get('infractions', {}).items():
            if isinstance(infractions, list):
                await db.put_document(Database.INFRACTIONS, str(user_id), infractions)
                counts['infractions'] += len(infractions)

        stored = dict(config.DEFAULT_MODERATION_SETTINGS)
        stored.update({
            key: value for key, value in moderation.get('settings', {}).items()
            if key in config.DEFAULT_MODERATION_SETTINGS
        })
        await db.set_setting('moderation', stored)
    print(f"✅ Imported {counts['infractions']} infractions")

    return counts


async def migrate(data_dir: Path):
    """Main migration function."""

    print("=" * 60)
    print("HEAVEN BOT DATA MIGRATION - JSON TO SQLITE")
    print("=" * 60)

    if not data_dir.is_dir():
        print(f"❌ Folder not found: {data_dir}")
        return

    # Initialize database
    print("\n🗄️  Initializing database...")
    db = Database(config.DATABASE_PATH)
    await db.initialize()

    try:
        print("\n📂 Importing legacy data...")
        counts = await import_legacy_data(db, data_dir)

        print("\n💾 Creating database backup...")
        await db.backup()
        print("✅ Backup created!")
    finally:
        await db.close()

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE!")
    print("=" * 60)
    print(f"✅ Users migrated: {counts['users']}")
    print(f"✅ Statistics migrated: {counts['statistics']}")
    print(f"✅ Infractions migrated: {counts['infractions']}")
    print()
    print("📝 Next steps:")
    print("   1. Start the bot: python bot.py")
    print("   2. Check a few users with /rank and /stats")
    print("   3. If everything looks good, archive the old JSON files")
    print("=" * 60)


async def verify_migration():
    """Verify migration was successful."""

    print("\n🔍 Verifying migration...")

    db = Database(config.DATABASE_PATH)
    await db.initialize()

    try:
        rows = await db.fetch_all(
            "SELECT collection, COUNT(*) AS total FROM documents GROUP BY collection"
        )
        print(f"\n📊 Database Statistics:")
        for row in rows:
            print(f"   {row['collection']}: {row['total']}")

        users = await db.get_all_user_progress()
        top = sorted(users.items(), key=lambda item: item[1].xp, reverse=True)[:5]
        if top:
            print(f"\n👥 Top Users:")
            for user_id, progress in top:
                print(f"   - {user_id}: level {progress.level}, {progress.xp:,} XP")
    finally:
        await db.close()

    print("\n✅ Verification complete!")


if __name__ == "__main__":
    data_dir = Path(sys.argv[1] if len(sys.argv) > 1 else config.LEGACY_DATA_DIR)

    print("Heaven Bot Migration Tool")
    print()
    print(f"This will import the JSON data in {data_dir}/ into {config.DATABASE_PATH}.")
    print("Make sure you have backups of your JSON files!")
    print()

    response = input("Continue? (yes/no): ").lower().strip()

    if response == 'yes':
        # Run migration
        asyncio.run(migrate(data_dir))

        # Verify
        print()
        verify_response = input("Run verification? (yes/no): ").lower().strip()
        if verify_response == 'yes':
            asyncio.run(verify_migration())

    else:
        print("❌ Migration cancelled")
