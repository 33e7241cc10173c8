"""Hierarchical key-value store interface shared by the SQLite and Firebase backends.

Paths look like ``groups/{groupId}`` or ``lists/{groupId}/{listId}/items``. Values are JSON
trees: writing ``None`` deletes a node, empty mappings do not exist, and lists are stored as
index-keyed children.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final


logger = logging.getLogger(__name__)


class _Abort:
    """Sentinel returned by a transaction updater to leave the node untouched."""

    _instance: "_Abort | None" = None

    def __new__(cls) -> "_Abort":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"


ABORT: Final = _Abort()

Updater = Callable[[Any], Any]
WatchCallback = Callable[[Any], None]


@dataclass
class TransactionResult:
    """Outcome of ``TreeStore.transact``."""

    committed: bool
    value: Any


def split_path(path: str) -> list[str]:
    """Split a slash separated path into its segments."""
    return [segment for segment in path.strip("/").split("/") if segment]


def join_path(*segments: str) -> str:
    """Join path segments, ignoring empty ones."""
    return "/".join(part for segment in segments for part in split_path(str(segment)))


def paths_related(first: str, second: str) -> bool:
    """Return True when the paths are equal or one is an ancestor of the other."""
    a, b = split_path(first), split_path(second)
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


def normalize_value(value: Any) -> Any:  # noqa: ANN401
    """Normalize a JSON tree the way the store would return it.

    Empty mappings and lists collapse to None, None children are dropped, and index-keyed
    mappings with keys ``0..n-1`` become lists.
    """
    if isinstance(value, list):
        value = {str(index): child for index, child in enumerate(value)}
    if isinstance(value, dict):
        children = {str(key): normalize_value(child) for key, child in value.items()}
        children = {key: child for key, child in children.items() if child is not None}
        if not children:
            return None
        if all(key.isdigit() for key in children) and sorted(int(key) for key in children) == list(
            range(len(children))
        ):
            return [children[str(index)] for index in range(len(children))]
        return children
    return value


@dataclass(eq=False)
class WatchHandle:
    """Registration of one watch callback on one path."""

    path: str
    callback: WatchCallback
    _on_close: Callable[["WatchHandle"], None] = field(repr=False)
    active: bool = True

    def close(self) -> None:
        """Deregister the watch. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._on_close(self)


class WatchRegistry:
    """Process-local registry of watch callbacks keyed by path."""

    def __init__(self) -> None:
        self._handles: dict[str, list[WatchHandle]] = {}

    def add(self, path: str, callback: WatchCallback, on_close: Callable[[WatchHandle], None] | None = None) -> WatchHandle:
        normalized = join_path(path)

        def _remove(handle: WatchHandle) -> None:
            handles = self._handles.get(normalized, [])
            if handle in handles:
                handles.remove(handle)
            if not handles:
                self._handles.pop(normalized, None)
            if on_close is not None:
                on_close(handle)

        handle = WatchHandle(path=normalized, callback=callback, _on_close=_remove)
        self._handles.setdefault(normalized, []).append(handle)
        return handle

    def related(self, path: str) -> list[WatchHandle]:
        """Return active handles whose path is related to ``path``."""
        return [
            handle
            for watched, handles in list(self._handles.items())
            if paths_related(watched, path)
            for handle in list(handles)
            if handle.active
        ]

    def count(self, path: str | None = None) -> int:
        if path is None:
            return sum(len(handles) for handles in self._handles.values())
        return len(self._handles.get(join_path(path), []))

    @staticmethod
    def deliver(handle: WatchHandle, value: Any) -> None:  # noqa: ANN401
        """Invoke a watch callback; a failing watcher never fails the write that triggered it."""
        if not handle.active:
            return
        try:
            handle.callback(value)
        except Exception:
            logger.exception("watch_callback_failed", extra={"path": handle.path})


class TreeStore(ABC):
    """Atomic read/write/patch/transact/watch primitives over a hierarchical store."""

    @abstractmethod
    async def start(self) -> None:
        """Open connections. Called once by the application lifespan."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections and drop every watch."""

    @abstractmethod
    async def read_path(self, path: str) -> Any:  # noqa: ANN401
        """Return the value stored at ``path`` or None when absent."""

    @abstractmethod
    async def write_path(self, path: str, value: Any) -> None:  # noqa: ANN401
        """Overwrite the subtree at ``path`` with ``value``."""

    @abstractmethod
    async def patch_path(self, path: str, fields: dict[str, Any]) -> None:
        """Overwrite only the named children of ``path``, leaving siblings untouched."""

    @abstractmethod
    async def transact(self, path: str, updater: Updater) -> TransactionResult:
        """Atomically replace the value at ``path`` with ``updater(current)``.

        The updater may run more than once when a concurrent write wins the race; it must be
        free of side effects. Returning ``ABORT`` leaves the node untouched and notifies no
        watcher.
        """

    @abstractmethod
    async def watch(self, path: str, callback: WatchCallback) -> WatchHandle:
        """Register ``callback`` for full snapshots of ``path``.

        The callback receives the current value right after registration and again after
        every committed change at, above or below ``path``.
        """

    @abstractmethod
    def active_watch_count(self, path: str | None = None) -> int:
        """Return the number of registered watches (on ``path`` when given)."""
