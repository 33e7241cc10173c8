"""Live list snapshots pushed to connected viewers.

Each open socket gets one ``ListViewer`` that holds a store watch on
``lists/{groupId}/{listId}`` for exactly as long as the socket is attached. Notifications
are full snapshots, so a viewer that falls behind only ever sends the latest one.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from src.core.errors import ValidationFailed
from src.core.store import TreeStore, WatchHandle
from src.domain.grocery_list import GroceryList
from src.services.group_service import GroupService
from src.services.identity_service import IdentityVerifier
from src.services.list_service import lists_path


logger = logging.getLogger(__name__)

SendSnapshot = Callable[[Any], Awaitable[None]]


class ViewerState(StrEnum):
    """Lifecycle of one viewer connection. ``CLOSED`` is terminal."""

    CONNECTING = "connecting"
    ATTACHED = "attached"
    CLOSED = "closed"


@dataclass(frozen=True)
class ViewerBinding:
    """Identity and target bound to a connection for its whole lifetime."""

    uid: str
    group_id: str
    list_id: str

    @property
    def path(self) -> str:
        return lists_path(self.group_id, self.list_id)


def snapshot_payload(list_id: str, raw: Any) -> dict[str, Any] | None:  # noqa: ANN401
    """JSON body pushed for one snapshot; None when the list no longer exists."""
    if not isinstance(raw, dict):
        return None
    return GroceryList.from_store(list_id, raw).to_store()


class ConnectionGate:
    """Authenticates and authorizes a live connection once, before the upgrade."""

    def __init__(self, identity: IdentityVerifier, groups: GroupService) -> None:
        self._identity = identity
        self._groups = groups

    async def authorize(self, token: str, group_id: str, list_id: str) -> ViewerBinding:
        """Return the binding for an allowed connection.

        Raises:
            Unauthorized: If the token does not verify
            Forbidden: If the caller is not a member of the group
            ValidationFailed: If the group or list is missing
        """
        uid = await self._identity.verify(token)
        if not group_id or not list_id:
            raise ValidationFailed("groupId and listId are required")
        await self._groups.require_member(group_id, uid)
        logger.info("Live connection authorized", extra={"uid": uid, "group_id": group_id, "list_id": list_id})
        return ViewerBinding(uid=uid, group_id=group_id, list_id=list_id)


class ListViewer:
    """Pushes snapshots of one list to one socket while attached."""

    def __init__(self, binding: ViewerBinding, store: TreeStore, send: SendSnapshot) -> None:
        self.id = str(uuid.uuid4())
        self.binding = binding
        self.state = ViewerState.CONNECTING
        self._store = store
        self._send = send
        self._handle: WatchHandle | None = None
        self._latest: Any = None
        self._pending = asyncio.Event()
        self._sender: asyncio.Task[None] | None = None

    async def attach(self) -> None:
        """Register the store watch and start pushing snapshots."""
        if self.state is not ViewerState.CONNECTING:
            raise RuntimeError(f"Viewer cannot attach from state {self.state}")

        self.state = ViewerState.ATTACHED
        self._sender = asyncio.create_task(self._run_sender(), name=f"list-viewer-{self.id}")
        try:
            self._handle = await self._store.watch(self.binding.path, self._on_snapshot)
        except Exception:
            self.close()
            raise
        logger.info("Viewer attached", extra={"viewer_id": self.id, "path": self.binding.path})

    def _on_snapshot(self, value: Any) -> None:  # noqa: ANN401
        if self.state is not ViewerState.ATTACHED:
            return
        self._latest = value
        self._pending.set()

    async def _run_sender(self) -> None:
        while self.state is ViewerState.ATTACHED:
            await self._pending.wait()
            self._pending.clear()
            if self.state is not ViewerState.ATTACHED:
                return

            try:
                payload = snapshot_payload(self.binding.list_id, self._latest)
            except ValidationError:
                logger.exception("snapshot_invalid", extra={"path": self.binding.path})
                continue

            try:
                await self._send(payload)
            except Exception as e:
                logger.warning("snapshot_send_failed", extra={"viewer_id": self.id, "error": str(e)})
                self.close()
                return

    def close(self) -> None:
        """Enter ``CLOSED``: deregister the watch now and stop the sender."""
        if self.state is ViewerState.CLOSED:
            return
        self.state = ViewerState.CLOSED
        if self._handle is not None:
            self._handle.close()
        self._pending.set()
        if self._sender is not None and self._sender is not asyncio.current_task():
            self._sender.cancel()
        logger.info("Viewer closed", extra={"viewer_id": self.id, "path": self.binding.path})


class LiveSyncBroadcaster:
    """Process-local registry of live viewer registrations."""

    def __init__(self, store: TreeStore) -> None:
        self._store = store
        self._viewers: dict[str, ListViewer] = {}

    async def attach(self, binding: ViewerBinding, send: SendSnapshot) -> ListViewer:
        viewer = ListViewer(binding, self._store, send)
        await viewer.attach()
        self._viewers[viewer.id] = viewer
        return viewer

    def detach(self, viewer: ListViewer) -> None:
        viewer.close()
        self._viewers.pop(viewer.id, None)

    def viewer_count(self, list_id: str | None = None) -> int:
        return sum(
            1
            for viewer in self._viewers.values()
            if viewer.state is ViewerState.ATTACHED and (list_id is None or viewer.binding.list_id == list_id)
        )

    def registrations(self) -> list[ViewerBinding]:
        return [viewer.binding for viewer in self._viewers.values() if viewer.state is ViewerState.ATTACHED]

    def close_all(self) -> None:
        for viewer in list(self._viewers.values()):
            self.detach(viewer)
