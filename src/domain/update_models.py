"""Update models for partial writes."""

from pydantic import Field, model_validator
from pydantic.alias_generators import to_camel

from src.domain.grocery_list import CamelModel, DayOfWeek, Item


def _reject_nulls(model: CamelModel, *field_names: str) -> None:
    """An explicit null would delete the stored field."""
    nulls = [to_camel(name) for name in field_names if name in model.model_fields_set and getattr(model, name) is None]
    if nulls:
        raise ValueError(f"{', '.join(nulls)} cannot be null")


class ItemUpdate(CamelModel):
    """Fields of a single item that may be merged in place."""

    text: str | None = None
    checked: bool | None = None
    quantity: str | None = None
    override_quantity: str | None = None

    @model_validator(mode="after")
    def require_a_field(self) -> "ItemUpdate":
        """Reject empty patches and explicit nulls."""
        if not self.model_fields_set:
            raise ValueError("At least one of text, checked, quantity or overrideQuantity is required")
        _reject_nulls(self, "text", "checked", "quantity", "override_quantity")
        return self


class ItemMove(CamelModel):
    """Target neighbours of a reordered item; either may be omitted at the list edges."""

    after_item_id: str | None = None
    before_item_id: str | None = None


class MealUpdate(CamelModel):
    """Fields of a meal that may be changed after creation."""

    day_of_week: DayOfWeek | None = None
    name: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def keep_name(self) -> "MealUpdate":
        _reject_nulls(self, "name")
        return self


class GroupUpdate(CamelModel):
    """Body of ``PUT /group/{id}``."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    members: list[str] | None = None

    @model_validator(mode="after")
    def require_a_field(self) -> "GroupUpdate":
        """Reject updates that change nothing."""
        if self.name is None and self.members is None:
            raise ValueError("Name or members is required for an update")
        return self


class CategorizeRequest(CamelModel):
    """Optional body of ``POST /list/categorize/{id}``."""

    items: list[Item] | None = None
