"""Group domain models."""

from typing import Any

from pydantic import Field

from src.domain.grocery_list import CamelModel


class Group(CamelModel):
    """A set of users sharing grocery lists."""

    id: str = Field(..., description="Unique group ID")
    name: str = Field(..., description="Display name of the group")
    owner: str = Field(..., description="UID of the member with elevated authorization")
    members: list[str] = Field(default_factory=list, description="UIDs of all members, owner included")
    created_at: int | None = Field(default=None, description="Creation time in epoch milliseconds")

    @classmethod
    def from_store(cls, group_id: str, raw: dict[str, Any]) -> "Group":
        members = raw.get("members") or {}
        return cls(
            id=group_id,
            name=raw.get("name", ""),
            owner=raw.get("owner", ""),
            members=sorted(uid for uid, present in members.items() if present),
            created_at=raw.get("createdAt"),
        )

    def to_record(self) -> dict[str, Any]:
        """Store layout: members as a ``{uid: true}`` mapping."""
        record: dict[str, Any] = {
            "name": self.name,
            "owner": self.owner,
            "members": dict.fromkeys(self.members, True),
        }
        if self.created_at is not None:
            record["createdAt"] = self.created_at
        return record
