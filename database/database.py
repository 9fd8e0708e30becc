"""
============================================================================
DATABASE HANDLER
============================================================================
Async SQLite document store for all bot data.

Each record is one JSON document addressed by (collection, key) and is
always read and written whole, so the store behaves like the old flat
JSON files while living in a single SQLite file.

Features:
- Typed accessors for leveling documents
- Per-user locks for read-modify-write sequences
- Auto-initialization from schema.sql
- Backup system
"""

import aiosqlite
import asyncio
import copy
import json
import logging
import shutil
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from pathlib import Path

import config
from .models import (
    DocumentShapeError, UserProgress, RankSettings, PrestigeSettings
)

logger = logging.getLogger(__name__)


# ============================================================================
# ERRORS
# ============================================================================

class DatabaseError(Exception):
    """Base class for persistence failures."""


class StorageError(DatabaseError):
    """Transient I/O failure. The operation can be attempted again later."""


class CorruptDocumentError(DatabaseError):
    """A stored document cannot be decoded. Not recoverable by retrying."""

    def __init__(self, collection: str, key: str, detail: str):
        super().__init__(f"corrupt document {collection}/{key}: {detail}")
        self.collection = collection
        self.key = key


class Database:
    """
    Main database handler for HEAVENBOT.

    Usage:
        db = Database()
        await db.initialize()
        progress = await db.get_user_progress('123456789')
    """

    USERS = 'users'
    STATISTICS = 'statistics'
    INFRACTIONS = 'infractions'
    SETTINGS = 'settings'

    def __init__(self, db_path: str = None):
        """
        Initialize database handler.

        Args:
            db_path: Path to SQLite database file (defaults to config.DATABASE_PATH)
        """
        self.db_path = db_path or config.DATABASE_PATH
        self.db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._user_locks: Dict[str, asyncio.Lock] = {}

        # Ensure data directory exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    # ========================================================================
    # CONNECTION MANAGEMENT
    # ========================================================================

    async def initialize(self):
        """
        Open the connection and create tables.
        Should be called once when bot starts.
        """
        logger.info("Initializing database at %s", self.db_path)

        try:
            self.db = await aiosqlite.connect(self.db_path)
            self.db.row_factory = aiosqlite.Row

            schema_path = Path(__file__).parent / "schema.sql"
            with open(schema_path, 'r') as f:
                schema = f.read()
                await self.db.executescript(schema)

            await self.db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise StorageError(f"cannot open database {self.db_path}: {e}") from e

        logger.info("Database initialized")

    async def close(self):
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Database connection closed")

    async def backup(self, backup_path: str = None) -> Path:
        """
        Create a backup of the database.

        Args:
            backup_path: Where to save backup (defaults to data/backups/backup_TIMESTAMP.db)

        Returns:
            Path of the written backup
        """
        if not backup_path:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_dir = Path(self.db_path).parent / "backups"
            backup_dir.mkdir(exist_ok=True)
            backup_path = backup_dir / f"backup_{timestamp}.db"

        try:
            async with self._lock:
                if self.db:
                    await self.db.commit()
                shutil.copy2(self.db_path, backup_path)
        except (aiosqlite.Error, OSError) as e:
            raise StorageError(f"backup failed: {e}") from e

        logger.info("Database backed up to %s", backup_path)

        # Clean old backups (keep only MAX_BACKUPS)
        await self._cleanup_old_backups()
        return Path(backup_path)

    async def _cleanup_old_backups(self):
        """Remove old backup files, keeping only the most recent ones."""
        backup_dir = Path(self.db_path).parent / "backups"
        if not backup_dir.exists():
            return

        backups = sorted(backup_dir.glob("backup_*.db"), reverse=True)
        for old_backup in backups[config.MAX_BACKUPS:]:
            old_backup.unlink()

    def user_lock(self, user_id: str) -> asyncio.Lock:
        """
        Lock serialising read-modify-write of one user's documents.

        Hold it around get_user_progress ... save_user_progress so a text
        award, a voice accrual and a prestige update for the same user
        cannot overwrite each other.

        Locks are kept for the life of the process: one per user, plus one
        per user under the "stats:" and "infractions:" prefixes. That is
        bounded by the guild's member count.
        """
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    @asynccontextmanager
    async def _guarded(self, action: str):
        """Translate driver and filesystem errors into StorageError."""
        if self.db is None:
            raise StorageError(f"{action}: database is not initialized")
        try:
            yield
        except (aiosqlite.Error, OSError) as e:
            raise StorageError(f"{action}: {e}") from e

    async def execute(self, query: str, params: Tuple = ()) -> None:
        """
        Execute a write query and commit.

        Args:
            query: SQL query string
            params: Query parameters (tuple)
        """
        async with self._lock:
            async with self._guarded("execute"):
                await self.db.execute(query, params)
                await self.db.commit()

    async def fetch_one(self, query: str, params: Tuple = ()) -> Optional[Dict]:
        """
        Fetch a single row.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            Dict with row data or None
        """
        async with self._lock:
            async with self._guarded("fetch_one"):
                cursor = await self.db.execute(query, params)
                row = await cursor.fetchone()
                return dict(row) if row else None

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Dict]:
        """
        Fetch all rows.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of dicts with row data
        """
        async with self._lock:
            async with self._guarded("fetch_all"):
                cursor = await self.db.execute(query, params)
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    # ========================================================================
    # DOCUMENT OPERATIONS
    # ========================================================================

    @staticmethod
    def _decode(collection: str, key: str, body: str) -> Any:
        try:
            return json.loads(body)
        except (TypeError, ValueError) as e:
            raise CorruptDocumentError(collection, key, str(e)) from e

    async def get_document(self, collection: str, key: str) -> Optional[Any]:
        """
        Load one document.

        Returns:
            Decoded JSON value, or None when the document does not exist

        Raises:
            StorageError: the read failed
            CorruptDocumentError: the stored body is not valid JSON
        """
        row = await self.fetch_one(
            "SELECT body FROM documents WHERE collection = ? AND key = ?",
            (collection, str(key))
        )
        if row is None:
            return None
        return self._decode(collection, key, row['body'])

    async def put_document(self, collection: str, key: str, body: Any) -> None:
        """Insert or replace a whole document."""
        await self.execute(
            """
            INSERT INTO documents (collection, key, body, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(collection, key) DO UPDATE SET
                body = excluded.body,
                updated_at = CURRENT_TIMESTAMP
            """,
            (collection, str(key), json.dumps(body))
        )

    async def delete_document(self, collection: str, key: str) -> None:
        await self.execute(
            "DELETE FROM documents WHERE collection = ? AND key = ?",
            (collection, str(key))
        )

    async def list_documents(self, collection: str) -> Dict[str, Any]:
        """
        Load every document of a collection.

        Corrupt documents are logged and left out so one bad record does
        not hide the rest of the collection.
        """
        rows = await self.fetch_all(
            "SELECT key, body FROM documents WHERE collection = ?",
            (collection,)
        )

        documents = {}
        for row in rows:
            try:
                documents[row['key']] = self._decode(collection, row['key'], row['body'])
            except CorruptDocumentError as e:
                logger.critical("Skipping %s", e)
        return documents

    # ========================================================================
    # USER PROGRESS
    # ========================================================================

    async def get_user_progress(self, user_id: str) -> UserProgress:
        """
        Get a user's progress, or zeroed defaults if none is stored yet.

        Raises:
            StorageError: the read failed
            CorruptDocumentError: the document exists but is unreadable
        """
        data = await self.get_document(self.USERS, user_id)
        if data is None:
            return UserProgress()

        try:
            return UserProgress.from_dict(data)
        except DocumentShapeError as e:
            raise CorruptDocumentError(self.USERS, user_id, str(e)) from e

    async def save_user_progress(self, user_id: str, progress: UserProgress) -> None:
        await self.put_document(self.USERS, user_id, progress.to_dict())

    async def reset_user_progress(self, user_id: str) -> UserProgress:
        """Replace a user's progress with defaults (used after corruption)."""
        progress = UserProgress()
        async with self.user_lock(user_id):
            await self.save_user_progress(user_id, progress)
        logger.warning("Progress for user %s reset to defaults", user_id)
        return progress

    async def get_all_user_progress(self) -> Dict[str, UserProgress]:
        """Get every stored user's progress, skipping malformed records."""
        result = {}
        for user_id, data in (await self.list_documents(self.USERS)).items():
            try:
                result[user_id] = UserProgress.from_dict(data)
            except DocumentShapeError as e:
                logger.critical("Skipping malformed progress for user %s: %s", user_id, e)
        return result

    # ========================================================================
    # SETTINGS
    # ========================================================================

    async def get_setting(self, name: str, default: Any = None) -> Any:
        """
        Get a settings document.

        Args:
            name: Settings name ('ranks', 'prestiges', 'moderation', 'bot')
            default: Returned (as a copy) when nothing is stored

        Returns:
            Stored document or a deep copy of default
        """
        data = await self.get_document(self.SETTINGS, name)
        if data is None:
            return copy.deepcopy(default)
        return data

    async def set_setting(self, name: str, value: Any) -> None:
        await self.put_document(self.SETTINGS, name, value)

    async def get_rank_settings(self) -> RankSettings:
        data = await self.get_setting('ranks', config.DEFAULT_RANK_SETTINGS)
        try:
            return RankSettings.from_dict(data)
        except DocumentShapeError as e:
            raise CorruptDocumentError(self.SETTINGS, 'ranks', str(e)) from e

    async def save_rank_settings(self, settings: RankSettings) -> None:
        await self.set_setting('ranks', settings.to_dict())

    async def get_prestige_settings(self) -> PrestigeSettings:
        data = await self.get_setting('prestiges', config.DEFAULT_PRESTIGE_SETTINGS)
        try:
            return PrestigeSettings.from_dict(data)
        except DocumentShapeError as e:
            raise CorruptDocumentError(self.SETTINGS, 'prestiges', str(e)) from e

    async def save_prestige_settings(self, settings: PrestigeSettings) -> None:
        await self.set_setting('prestiges', settings.to_dict())


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

# Global database instance (initialized in bot.py)
db: Optional[Database] = None


async def get_db() -> Database:
    """Get global database instance."""
    global db
    if db is None:
        db = Database()
        await db.initialize()
    return db
