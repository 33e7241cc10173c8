"""Pydantic models for request bodies that create records."""

from pydantic import Field, field_validator

from src.core.weeks import parse_instant
from src.domain.grocery_list import CamelModel, Recipe


class ListCreate(CamelModel):
    """Body of ``POST /list``."""

    week_start: str = Field(..., description="Week start as an ISO-8601 timestamp")

    @field_validator("week_start")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        """Validate the week start parses as a timestamp."""
        try:
            parse_instant(v)
        except Exception as e:
            raise ValueError(f"weekStart must be an ISO-8601 timestamp, got {v!r}") from e
        return v


class MealCreate(CamelModel):
    """Body of ``POST /meal``."""

    group_id: str = Field(..., min_length=1)
    list_id: str = Field(..., min_length=1)
    recipe: Recipe


class GroupCreate(CamelModel):
    """Body of ``POST /group``."""

    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank names."""
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v


class ItemCreate(CamelModel):
    """Body of ``POST /list/{id}/items``."""

    text: str = ""
    quantity: str | None = None
    after_item_id: str | None = Field(default=None, description="Insert directly after this item")


class InvitationCreate(CamelModel):
    """Body of ``POST /group/{id}/invitations``."""

    invitee_uid: str = Field(..., min_length=1, description="UID of the user being invited")


class PushTokenCreate(CamelModel):
    """Body of ``POST /notification/save-push-token``."""

    token: str = Field(..., min_length=1)
