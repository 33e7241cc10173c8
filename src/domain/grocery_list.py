"""Grocery list, item and meal domain models."""

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model using camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self) -> dict[str, Any]:
        """Serialize for the store and for API responses."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DayOfWeek(StrEnum):
    """Day a meal is planned for."""

    SUNDAY = "Sunday"
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"


class Item(CamelModel):
    """One row of a grocery list: a content entry or a section header."""

    id: str = Field(..., description="Unique item ID, immutable")
    text: str = Field(default="", description="Display text")
    checked: bool = Field(default=False, description="Whether the item has been picked up")
    is_section: bool = Field(default=False, description="True for section header rows")
    list_order: str = Field(
        ...,
        alias="listOrder",
        validation_alias=AliasChoices("listOrder", "order", "list_order"),
        description="Rank governing position in the flat list view",
    )
    meal_order: str | None = Field(default=None, description="Rank governing position under its meal")
    meal_id: str | None = Field(default=None, description="Meal this item was imported from")
    quantity: str | None = Field(default=None, description="Quantity from the recipe")
    override_quantity: str | None = Field(default=None, description="Quantity entered by a user")


class Meal(CamelModel):
    """A planned dish attached to a list."""

    id: str
    list_id: str
    name: str
    recipe_id: str | None = None
    day_of_week: DayOfWeek | None = None
    added_to_cookbook: bool | None = None


class Ingredient(CamelModel):
    """Ingredient line of a recipe."""

    name: str = Field(..., min_length=1)
    quantity: str | None = None


class Recipe(CamelModel):
    """Recipe whose ingredients are expanded into list items."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    photo_url: str | None = Field(default=None, alias="photoURL")
    ingredients: list[Ingredient] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)


def _children(raw: Any) -> list[Any]:  # noqa: ANN401
    """Children of a stored collection that may be a mapping or a list."""
    if isinstance(raw, dict):
        return list(raw.values())
    if isinstance(raw, list):
        return [child for child in raw if child is not None]
    return []


def sort_items(items: list[Item]) -> list[Item]:
    """Return items in display order."""
    return sorted(items, key=lambda item: (item.list_order, item.id))


def items_from_store(raw: Any) -> list[Item]:  # noqa: ANN401
    """Parse the stored ``items`` node into items sorted by ``listOrder``."""
    return sort_items([Item.model_validate(child) for child in _children(raw)])


def items_to_store(items: list[Item]) -> dict[str, dict[str, Any]]:
    """Serialize items as a mapping keyed by item id."""
    return {item.id: item.to_store() for item in items}


def meals_from_store(raw: Any) -> list[Meal]:  # noqa: ANN401
    return [Meal.model_validate(child) for child in _children(raw)]


class GroceryList(CamelModel):
    """One group's grocery list for one calendar week."""

    id: str
    week_start: str
    items: list[Item] = Field(default_factory=list)
    meals: list[Meal] = Field(default_factory=list)

    @classmethod
    def from_store(cls, list_id: str, raw: dict[str, Any]) -> "GroceryList":
        return cls(
            id=list_id,
            week_start=raw.get("weekStart", ""),
            items=items_from_store(raw.get("items")),
            meals=meals_from_store(raw.get("meals")),
        )

    @property
    def has_content(self) -> bool:
        """False for an empty list or one holding only a single blank item."""
        if not self.items:
            return False
        return not (len(self.items) == 1 and not self.items[0].text)

    def last_list_order(self) -> str | None:
        return self.items[-1].list_order if self.items else None


class ListSummary(CamelModel):
    """Projection returned by weekly provisioning."""

    id: str
    week_start: str
    has_content: bool


class Section(BaseModel):
    """A named group of item texts returned by the categorizer."""

    name: str = Field(..., description="Section name, e.g. 'Dairy & Eggs'")
    items: list[str] = Field(default_factory=list, description="Item texts belonging to the section")


class CategorizedSections(BaseModel):
    """Categorizer output."""

    sections: list[Section] = Field(default_factory=list)
