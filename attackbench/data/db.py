"""Module db: durable index of sealed evidence packages."""
#
# PURPOSE:
# Evidence files live on disk; this SQLite table remembers which packages
# exist so the in-memory index can be rebuilt after a restart.
#
# KEY CONCEPTS:
# - One persistent aiosqlite connection, opened lazily by init()
# - WAL mode: reads don't block the single writer
# - The full package manifest is stored as JSON; the other columns exist
#   for querying and ordering only
#

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiosqlite

from attackbench.errors import ErrorCode, WorkbenchError

logger = logging.getLogger(__name__)


class EvidenceIndex:
    """
    aiosqlite-backed table of evidence packages.

    Args:
        db_path: SQLite file (created on first init)
    """

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None
        self._db_lock: Optional[asyncio.Lock] = None
        self._db_connection: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        if self._initialized:
            return

        # asyncio.Lock must be created inside the running loop
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        if self._db_lock is None:
            self._db_lock = asyncio.Lock()

        async with self._init_lock:
            if self._initialized:
                return
            try:
                self._db_connection = await aiosqlite.connect(self.db_path, timeout=5.0)
                await self._db_connection.execute("PRAGMA journal_mode=WAL;")
                await self._db_connection.execute("PRAGMA synchronous=NORMAL;")
                await self._db_connection.execute("PRAGMA busy_timeout=5000;")
                await self._create_tables()
                await self._db_connection.commit()
                self._initialized = True
                logger.info(f"[EvidenceIndex] Initialized at {self.db_path} (WAL mode)")
            except (aiosqlite.Error, OSError) as e:
                logger.error(f"[EvidenceIndex] Init failed: {e}")
                raise WorkbenchError(
                    ErrorCode.DB_INIT_FAILED,
                    f"Could not open evidence index at {self.db_path}: {e}",
                ) from e

    async def _create_tables(self) -> None:
        await self._db_connection.execute("""
            CREATE TABLE IF NOT EXISTS evidence_packages (
                id TEXT PRIMARY KEY,
                session_id INTEGER NOT NULL,
                attack_name TEXT NOT NULL,
                target TEXT NOT NULL,
                port INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                success INTEGER NOT NULL,
                directory TEXT NOT NULL,
                manifest JSON NOT NULL CHECK(json_valid(manifest))
            )
        """)
        await self._db_connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_evidence_created ON evidence_packages(created_at)
        """)

    async def close(self) -> None:
        if self._db_connection is not None:
            await self._db_connection.close()
            self._db_connection = None
            self._initialized = False
            # Locks are bound to the loop that used them; a reopen may run on another
            self._init_lock = None
            self._db_lock = None
            logger.info("[EvidenceIndex] Connection closed.")

    async def _execute(self, query: str, params: tuple = ()) -> int:
        await self.init()
        async with self._db_lock:
            try:
                cursor = await self._db_connection.execute(query, params)
                await self._db_connection.commit()
                return cursor.rowcount
            except aiosqlite.Error as e:
                logger.error(f"[EvidenceIndex] Query failed: {e}")
                raise WorkbenchError(ErrorCode.DB_QUERY_FAILED, f"Evidence index query failed: {e}") from e

    async def upsert(self, manifest: Dict[str, Any]) -> None:
        """Insert or replace one package row from its manifest dict."""
        await self._execute("""
            INSERT OR REPLACE INTO evidence_packages
                (id, session_id, attack_name, target, port, created_at, success, directory, manifest)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            manifest["id"],
            manifest["session_id"],
            manifest["attack_name"],
            manifest["target"],
            manifest["port"],
            manifest["timestamp"],
            1 if manifest["success"] else 0,
            manifest["directory"],
            json.dumps(manifest, default=str),
        ))

    async def delete(self, package_id: str) -> bool:
        """Remove a row. Returns False if there was none."""
        return await self._execute("DELETE FROM evidence_packages WHERE id = ?", (package_id,)) > 0

    async def all(self) -> List[Dict[str, Any]]:
        """Every stored manifest, oldest first. Corrupt rows are skipped."""
        await self.init()
        async with self._db_lock:
            try:
                async with self._db_connection.execute(
                    "SELECT id, manifest FROM evidence_packages ORDER BY created_at"
                ) as cursor:
                    rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                raise WorkbenchError(ErrorCode.DB_QUERY_FAILED, f"Evidence index read failed: {e}") from e

        manifests = []
        for package_id, blob in rows:
            try:
                manifests.append(json.loads(blob))
            except json.JSONDecodeError as e:
                logger.warning(f"[EvidenceIndex] Skipping corrupt manifest for {package_id}: {e}")
        return manifests
