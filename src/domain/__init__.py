"""Domain models and DTOs."""

from src.domain.create_models import (
    GroupCreate,
    InvitationCreate,
    ItemCreate,
    ListCreate,
    MealCreate,
    PushTokenCreate,
)
from src.domain.grocery_list import (
    CategorizedSections,
    DayOfWeek,
    GroceryList,
    Ingredient,
    Item,
    ListSummary,
    Meal,
    Recipe,
    Section,
)
from src.domain.group import Group
from src.domain.invitation import Invitation, InvitationStatus
from src.domain.notification import Notification, NotificationType
from src.domain.update_models import CategorizeRequest, GroupUpdate, ItemMove, ItemUpdate, MealUpdate


__all__ = [
    "CategorizeRequest",
    "CategorizedSections",
    "DayOfWeek",
    "GroceryList",
    "Group",
    "GroupCreate",
    "GroupUpdate",
    "Ingredient",
    "Invitation",
    "InvitationCreate",
    "InvitationStatus",
    "Item",
    "ItemCreate",
    "ItemMove",
    "ItemUpdate",
    "ListCreate",
    "ListSummary",
    "MealUpdate",
    "Meal",
    "MealCreate",
    "Notification",
    "NotificationType",
    "PushTokenCreate",
    "Recipe",
    "Section",
]
