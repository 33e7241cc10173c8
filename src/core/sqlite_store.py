"""SQLite-backed hierarchical store with optimistic transactions and in-process watches."""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.errors import UpstreamError
from src.core.store import (
    ABORT,
    TransactionResult,
    TreeStore,
    Updater,
    WatchCallback,
    WatchHandle,
    WatchRegistry,
    join_path,
    normalize_value,
    split_path,
)


logger = logging.getLogger(__name__)

_SCHEMA = "CREATE TABLE IF NOT EXISTS nodes (path TEXT PRIMARY KEY, value TEXT NOT NULL)"


def _flatten(path: str, value: Any) -> list[tuple[str, str]]:  # noqa: ANN401
    """Flatten a normalized JSON tree into ``(path, json scalar)`` leaf rows."""
    if value is None:
        return []
    if isinstance(value, list):
        value = {str(index): child for index, child in enumerate(value)}
    if isinstance(value, dict):
        rows = []
        for key, child in value.items():
            rows.extend(_flatten(join_path(path, key), child))
        return rows
    return [(path, json.dumps(value))]


def _subtree_bounds(path: str) -> tuple[str, str]:
    # Every descendant path sorts in [path + "/", path + "0") since "0" follows "/".
    return f"{path}/", f"{path}0"


class SQLiteTreeStore(TreeStore):
    """Hierarchical store persisted as flattened leaf rows in one SQLite table.

    All statements run on a single aiosqlite connection guarded by an asyncio lock, so each
    write is atomic and readers only ever observe committed state. Transactions are
    optimistic: the updater runs outside the lock and the result is committed only if the
    node is unchanged, otherwise the updater runs again on the fresh value.
    """

    def __init__(self, db_path: str, *, max_retries: int = 25) -> None:
        self._db_path = Path(db_path).resolve() if db_path != ":memory:" else None
        self._max_retries = max_retries
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._watches = WatchRegistry()

    async def start(self) -> None:
        if self._conn is not None:
            return
        target = ":memory:"
        if self._db_path is not None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self._db_path)

        self._conn = await aiosqlite.connect(target, isolation_level=None)
        await self._conn.execute("PRAGMA journal_mode = WAL")
        await self._conn.execute(_SCHEMA)
        logger.info("Created new SQLite connection", extra={"db_path": target})

    async def close(self) -> None:
        for handle in self._watches.related(""):
            handle.close()
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Closed SQLite connection")

    @property
    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise UpstreamError("Store is not started")
        return self._conn

    async def _read_unlocked(self, path: str) -> Any:  # noqa: ANN401
        path = join_path(path)
        conn = self._connection
        if path:
            lower, upper = _subtree_bounds(path)
            cursor = await conn.execute(
                "SELECT path, value FROM nodes WHERE path = ? OR (path >= ? AND path < ?)",
                (path, lower, upper),
            )
        else:
            cursor = await conn.execute("SELECT path, value FROM nodes")
        rows = await cursor.fetchall()
        if not rows:
            return None

        prefix_length = len(split_path(path))
        tree: dict[str, Any] = {}
        for row_path, raw in rows:
            if row_path == path:
                return json.loads(raw)
            segments = split_path(row_path)[prefix_length:]
            node = tree
            for segment in segments[:-1]:
                node = node.setdefault(segment, {})
            node[segments[-1]] = json.loads(raw)
        return normalize_value(tree)

    async def _write_unlocked(self, path: str, value: Any) -> None:  # noqa: ANN401
        path = join_path(path)
        conn = self._connection
        rows = _flatten(path, normalize_value(value))

        await conn.execute("BEGIN IMMEDIATE")
        try:
            if path:
                lower, upper = _subtree_bounds(path)
                await conn.execute("DELETE FROM nodes WHERE path = ? OR (path >= ? AND path < ?)", (path, lower, upper))
                segments = split_path(path)
                # A scalar stored at an ancestor would shadow the new subtree.
                for depth in range(1, len(segments)):
                    await conn.execute("DELETE FROM nodes WHERE path = ?", ("/".join(segments[:depth]),))
            else:
                await conn.execute("DELETE FROM nodes")
            if rows:
                await conn.executemany("INSERT INTO nodes (path, value) VALUES (?, ?)", rows)
            await conn.execute("COMMIT")
        except Exception:
            await conn.execute("ROLLBACK")
            raise

    async def _notify_unlocked(self, path: str) -> None:
        handles = self._watches.related(path)
        if not handles:
            return
        snapshots: dict[str, Any] = {}
        for handle in handles:
            if handle.path not in snapshots:
                snapshots[handle.path] = await self._read_unlocked(handle.path)
        for handle in handles:
            WatchRegistry.deliver(handle, copy.deepcopy(snapshots[handle.path]))

    async def read_path(self, path: str) -> Any:  # noqa: ANN401
        try:
            async with self._lock:
                return await self._read_unlocked(path)
        except aiosqlite.Error as e:
            logger.error("read_path_failed", extra={"path": path, "error": str(e)})
            raise UpstreamError(f"Failed to read {path}: {e}") from e

    async def write_path(self, path: str, value: Any) -> None:  # noqa: ANN401
        try:
            async with self._lock:
                await self._write_unlocked(path, value)
                logger.debug("Wrote path", extra={"path": path})
                await self._notify_unlocked(path)
        except (aiosqlite.Error, TypeError) as e:
            logger.error("write_path_failed", extra={"path": path, "error": str(e)})
            raise UpstreamError(f"Failed to write {path}: {e}") from e

    async def patch_path(self, path: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        try:
            async with self._lock:
                conn = self._connection
                rows = []
                for key, child in fields.items():
                    rows.append((join_path(path, key), _flatten(join_path(path, key), normalize_value(child))))

                await conn.execute("BEGIN IMMEDIATE")
                try:
                    segments = split_path(path)
                    for depth in range(1, len(segments) + 1):
                        await conn.execute("DELETE FROM nodes WHERE path = ?", ("/".join(segments[:depth]),))
                    for child_path, leaves in rows:
                        lower, upper = _subtree_bounds(child_path)
                        await conn.execute(
                            "DELETE FROM nodes WHERE path = ? OR (path >= ? AND path < ?)", (child_path, lower, upper)
                        )
                        if leaves:
                            await conn.executemany("INSERT INTO nodes (path, value) VALUES (?, ?)", leaves)
                    await conn.execute("COMMIT")
                except Exception:
                    await conn.execute("ROLLBACK")
                    raise

                logger.debug("Patched path", extra={"path": path, "fields": sorted(fields)})
                await self._notify_unlocked(path)
        except (aiosqlite.Error, TypeError) as e:
            logger.error("patch_path_failed", extra={"path": path, "error": str(e)})
            raise UpstreamError(f"Failed to patch {path}: {e}") from e

    async def transact(self, path: str, updater: Updater) -> TransactionResult:
        try:
            for attempt in range(1, self._max_retries + 1):
                async with self._lock:
                    current = await self._read_unlocked(path)

                new_value = updater(copy.deepcopy(current))
                if new_value is ABORT:
                    logger.debug("Transaction aborted by updater", extra={"path": path, "attempt": attempt})
                    return TransactionResult(committed=False, value=current)

                async with self._lock:
                    latest = await self._read_unlocked(path)
                    if latest != current:
                        logger.info("Transaction conflict, retrying", extra={"path": path, "attempt": attempt})
                        continue
                    await self._write_unlocked(path, new_value)
                    committed = await self._read_unlocked(path)
                    await self._notify_unlocked(path)

                logger.info("Transaction committed", extra={"path": path, "attempt": attempt})
                return TransactionResult(committed=True, value=committed)
        except (aiosqlite.Error, TypeError) as e:
            logger.error("transact_failed", extra={"path": path, "error": str(e)})
            raise UpstreamError(f"Transaction on {path} failed: {e}") from e

        logger.error("transact_retries_exhausted", extra={"path": path, "max_retries": self._max_retries})
        raise UpstreamError(f"Transaction on {path} aborted after {self._max_retries} conflicting attempts")

    async def watch(self, path: str, callback: WatchCallback) -> WatchHandle:
        async with self._lock:
            handle = self._watches.add(path, callback)
            try:
                current = await self._read_unlocked(path)
            except aiosqlite.Error as e:
                handle.close()
                raise UpstreamError(f"Failed to watch {path}: {e}") from e
        logger.info("Watch registered", extra={"path": handle.path, "watchers": self._watches.count(handle.path)})
        WatchRegistry.deliver(handle, current)
        return handle

    def active_watch_count(self, path: str | None = None) -> int:
        return self._watches.count(path)
