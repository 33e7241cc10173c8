"""Group membership, ownership and default group provisioning."""

import logging
import time
import uuid
from typing import Any

from src.core.config import Constants
from src.core.errors import Forbidden, NotFound
from src.core.logging import span
from src.core.store import ABORT, TreeStore, join_path
from src.domain.group import Group
from src.domain.update_models import GroupUpdate


logger = logging.getLogger(__name__)

_DEFAULT_GROUP_NAMESPACE = uuid.UUID("6f1c5d0e-3b7a-4e36-9a51-2c0f8e4b7d19")


def default_group_id(uid: str) -> str:
    """Deterministic id of a user's default private group."""
    return str(uuid.uuid5(_DEFAULT_GROUP_NAMESPACE, uid))


def _now_ms() -> int:
    return int(time.time() * 1000)


class GroupService:
    """Reads and writes ``groups/{groupId}``."""

    def __init__(self, store: TreeStore) -> None:
        self._store = store

    async def get_group(self, group_id: str) -> Group:
        raw = await self._store.read_path(join_path("groups", group_id))
        if not raw:
            raise NotFound(f"Group not found: {group_id}")
        return Group.from_store(group_id, raw)

    async def is_member(self, group_id: str, uid: str) -> bool:
        if not group_id or not uid:
            return False
        return bool(await self._store.read_path(join_path("groups", group_id, "members", uid)))

    async def is_owner(self, group_id: str, uid: str) -> bool:
        if not group_id or not uid:
            return False
        return await self._store.read_path(join_path("groups", group_id, "owner")) == uid

    async def require_member(self, group_id: str, uid: str) -> None:
        """Raise Forbidden unless ``uid`` belongs to the group."""
        if not await self.is_member(group_id, uid):
            logger.warning("group_membership_denied", extra={"group_id": group_id, "uid": uid})
            raise Forbidden("Forbidden")

    async def require_owner(self, group_id: str, uid: str) -> None:
        """Raise NotFound for a missing group and Forbidden unless ``uid`` owns it."""
        if await self.is_owner(group_id, uid):
            return
        if await self._store.read_path(join_path("groups", group_id, "owner")) is None:
            raise NotFound(f"Group not found: {group_id}")
        logger.warning("group_owner_denied", extra={"group_id": group_id, "uid": uid})
        raise Forbidden("Forbidden, not group owner")

    async def list_groups_for(self, uid: str) -> list[Group]:
        """Return the user's groups, creating the default private group if they own none."""
        with span("group_service.list_groups_for"):
            raw_groups: dict[str, Any] = await self._store.read_path("groups") or {}
            groups = [
                Group.from_store(group_id, raw)
                for group_id, raw in raw_groups.items()
                if isinstance(raw, dict) and (raw.get("members") or {}).get(uid)
            ]

            if not any(group.owner == uid for group in groups):
                default = await self._ensure_default_group(uid)
                groups = [group for group in groups if group.id != default.id]
                groups.insert(0, default)

            return groups

    async def _ensure_default_group(self, uid: str) -> Group:
        group_id = default_group_id(uid)
        record = Group(
            id=group_id,
            name=Constants.DEFAULT_GROUP_NAME,
            owner=uid,
            members=[uid],
            created_at=_now_ms(),
        ).to_record()

        def _create_if_missing(current: Any) -> Any:  # noqa: ANN401
            if current:
                return ABORT
            return record

        result = await self._store.transact(join_path("groups", group_id), _create_if_missing)
        if result.committed:
            logger.info("Default group created", extra={"uid": uid, "group_id": group_id})
        return Group.from_store(group_id, result.value)

    async def create_group(self, *, uid: str, name: str) -> Group:
        with span("group_service.create_group"):
            group = Group(id=str(uuid.uuid4()), name=name, owner=uid, members=[uid], created_at=_now_ms())
            await self._store.write_path(join_path("groups", group.id), group.to_record())
            logger.info("Group created", extra={"uid": uid, "group_id": group.id})
            return group

    async def update_group(self, *, group_id: str, uid: str, update: GroupUpdate) -> Group:
        with span("group_service.update_group"):
            await self.require_owner(group_id, uid)

            fields: dict[str, Any] = {}
            if update.name is not None:
                fields["name"] = update.name
            if update.members is not None:
                # The owner can never be removed from their own group.
                fields["members"] = dict.fromkeys({*update.members, uid}, True)

            await self._store.patch_path(join_path("groups", group_id), fields)
            logger.info("Group updated", extra={"group_id": group_id, "fields": sorted(fields)})
            return await self.get_group(group_id)

    async def delete_group(self, *, group_id: str, uid: str) -> None:
        with span("group_service.delete_group"):
            await self.require_owner(group_id, uid)
            await self._store.write_path(join_path("groups", group_id), None)
            logger.info("Group deleted", extra={"group_id": group_id, "uid": uid})

    async def member_uids(self, group_id: str) -> list[str]:
        members = await self._store.read_path(join_path("groups", group_id, "members")) or {}
        return sorted(uid for uid, present in members.items() if present)
