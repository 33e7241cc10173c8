"""Meal endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from src.domain.create_models import MealCreate
from src.domain.notification import NotificationType
from src.domain.update_models import MealUpdate
from src.interface.dependencies import GroupAccess, current_uid, get_services, group_member
from src.services.container import Services


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meal", tags=["meal"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_meal(
    body: MealCreate,
    background_tasks: BackgroundTasks,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Add a recipe to a list as a meal plus one item per ingredient.

    Other group members are notified after the response is sent.
    """
    await services.groups.require_member(body.group_id, uid)
    meal = await services.items.add_meal_from_recipe(group_id=body.group_id, list_id=body.list_id, recipe=body.recipe)

    background_tasks.add_task(
        services.notifications.notify_group,
        body.group_id,
        uid,
        NotificationType.MEAL_ADDED,
        {"listId": body.list_id, "mealId": meal.id, "mealName": meal.name},
    )
    return meal.to_store()


@router.patch("/{meal_id}")
async def update_meal(
    meal_id: str,
    body: MealUpdate,
    list_id: str = Query(..., alias="listId", min_length=1),
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    meal = await services.items.update_meal(group_id=access.group_id, list_id=list_id, meal_id=meal_id, update=body)
    return meal.to_store()
