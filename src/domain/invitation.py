"""Group invitation domain models."""

from enum import StrEnum
from typing import Any

from pydantic import Field

from src.domain.grocery_list import CamelModel


class InvitationStatus(StrEnum):
    """Lifecycle of an invitation; answered invitations are deleted."""

    PENDING = "pending"


class Invitation(CamelModel):
    """An offer to join a group, addressed to one user."""

    id: str
    group_id: str = Field(..., description="Group the invitee would join")
    group_name: str = Field(default="", description="Group name when the invitation was sent")
    inviter_uid: str
    inviter_name: str = Field(default="A user", description="Display name shown to the invitee")
    invitee_uid: str
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: int = Field(..., description="Creation time in epoch milliseconds")

    @classmethod
    def from_store(cls, invitation_id: str, raw: dict[str, Any]) -> "Invitation":
        return cls.model_validate({**raw, "id": invitation_id})

    def to_record(self) -> dict[str, Any]:
        """Store layout: everything but the id, which is the node key."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})
