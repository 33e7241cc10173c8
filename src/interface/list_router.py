"""Grocery list and item endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from src.domain.create_models import ItemCreate, ListCreate
from src.domain.update_models import CategorizeRequest, ItemMove, ItemUpdate
from src.interface.dependencies import GroupAccess, get_services, group_member
from src.services.container import Services


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/list", tags=["list"])


@router.get("")
async def get_weekly_lists(
    tz: str | None = Query(default=None, description="IANA timezone of the caller"),
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Ensure this week's and next week's lists exist and summarize all of the group's lists."""
    summaries = await services.lists.ensure_weekly_lists(access.group_id, tz or services.settings.default_timezone)
    return [summary.to_store() for summary in summaries]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_list(
    body: ListCreate,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.lists.create_list(access.group_id, body.week_start)


@router.post("/categorize/{list_id}")
async def categorize_list(
    list_id: str,
    body: CategorizeRequest | None = None,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Regroup the list's items into sections and return the rebuilt sequence."""
    items = await services.items.categorize(
        group_id=access.group_id,
        list_id=list_id,
        items=body.items if body is not None else None,
    )
    return [item.to_store() for item in items]


@router.get("/{list_id}")
async def get_list(
    list_id: str,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    grocery_list = await services.lists.get_list(access.group_id, list_id)
    return grocery_list.to_store()


@router.post("/{list_id}/items", status_code=status.HTTP_201_CREATED)
async def insert_item(
    list_id: str,
    body: ItemCreate,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    item = await services.items.insert_item(group_id=access.group_id, list_id=list_id, create=body)
    return item.to_store()


@router.patch("/{list_id}/items/{item_id}")
async def update_item(
    list_id: str,
    item_id: str,
    body: ItemUpdate,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    item = await services.items.update_item(group_id=access.group_id, list_id=list_id, item_id=item_id, update=body)
    return item.to_store()


@router.post("/{list_id}/items/{item_id}/move")
async def move_item(
    list_id: str,
    item_id: str,
    body: ItemMove,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    item = await services.items.move_item(group_id=access.group_id, list_id=list_id, item_id=item_id, move=body)
    return item.to_store()


@router.delete("/{list_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    list_id: str,
    item_id: str,
    access: GroupAccess = Depends(group_member),
    services: Services = Depends(get_services),
) -> Response:
    await services.items.delete_item(group_id=access.group_id, list_id=list_id, item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
